import io

import pytest

from benchkit.registry import (
    AggregationReportMode,
    Benchmark,
    BenchmarkFamilies,
    BigO,
    TimeUnit,
    add_negated_powers,
    add_powers,
    add_range,
    clear_registered_benchmarks,
    create_dense_range,
    create_range,
    find_benchmarks,
    get_families,
    register_benchmark,
)


def noop(state):
    return state


def names(instances):
    return [instance.name() for instance in instances]


@pytest.fixture
def families():
    return BenchmarkFamilies()


@pytest.fixture
def clean_registry():
    clear_registered_benchmarks()
    yield get_families()
    clear_registered_benchmarks()


def single(families, bench):
    families.add_benchmark(bench)
    return families.find_benchmarks(".")


# ---------------------------------------------------------------- ranges


def test_add_powers_basic():
    assert add_powers(1, 64, 8) == [1, 8, 64]
    assert add_powers(2, 31, 2) == [2, 4, 8, 16]


def test_add_powers_rejects_bad_input():
    with pytest.raises(ValueError):
        add_powers(-1, 4, 2)
    with pytest.raises(ValueError):
        add_powers(5, 4, 2)
    with pytest.raises(ValueError):
        add_powers(1, 4, 1)


def test_add_powers_stops_at_int64_limit():
    result = add_powers(1, 2**63 - 1, 2)
    assert result[-1] == 2**62
    assert len(result) == 63


def test_add_negated_powers():
    assert add_negated_powers(-7, -1, 2) == [-4, -2, -1]


def test_add_negated_powers_requires_nonpositive_hi():
    with pytest.raises(ValueError):
        add_negated_powers(-4, 1, 2)


def test_add_range_single_value():
    assert add_range(5, 5, 8) == [5]


def test_add_range_adjacent_values():
    assert add_range(5, 6, 8) == [5, 6]


def test_add_range_across_zero():
    assert add_range(-8, 8, 2) == [-8, -4, -2, -1, 0, 1, 2, 4, 8]


def test_add_range_big_args():
    assert add_range(1 << 30, 1 << 31, 2) == [1073741824, 2147483648]


def test_add_range_rejects_reversed_bounds():
    with pytest.raises(ValueError):
        add_range(8, 1, 2)


def test_create_range_default_multiplier_values():
    assert create_range(1, 1 << 10, 8) == [1, 8, 64, 512, 1024]
    assert create_range(1, 1 << 20, 8) == [
        1, 8, 64, 512, 4096, 32768, 262144, 1048576
    ]


def test_create_dense_range():
    assert create_dense_range(1, 10, 3) == [1, 4, 7, 10]
    assert create_dense_range(0, 4, 1) == [0, 1, 2, 3, 4]


def test_create_dense_range_rejects_start_above_limit():
    with pytest.raises(ValueError):
        create_dense_range(5, 1, 1)


# ---------------------------------------------------------------- names


def test_plain_name(families):
    assert names(single(families, Benchmark("BM_basic", noop))) == ["BM_basic"]


def test_no_arg_name(families):
    assert names(single(families, Benchmark("BM_no_arg_name", noop).arg(3))) == [
        "BM_no_arg_name/3"
    ]


def test_arg_name(families):
    bench = Benchmark("BM_arg_name", noop).arg_name("first").arg(3)
    assert names(single(families, bench)) == ["BM_arg_name/first:3"]


def test_arg_names_with_blank(families):
    bench = Benchmark("BM_arg_names", noop).args([2, 5, 4]).arg_names(
        ["first", "", "third"]
    )
    assert names(single(families, bench)) == ["BM_arg_names/first:2/5/third:4"]


def test_custom_name(families):
    bench = Benchmark("BM_name", noop).set_name("BM_custom_name")
    assert names(single(families, bench)) == ["BM_custom_name"]


def test_big_args_names(families):
    bench = Benchmark("BM_BigArgs", noop).range_multiplier(2).range(1 << 30, 1 << 31)
    assert names(single(families, bench)) == [
        "BM_BigArgs/1073741824",
        "BM_BigArgs/2147483648",
    ]


def test_repeats_name(families):
    bench = Benchmark("BM_Repeat", noop).repetitions(2)
    assert names(single(families, bench)) == ["BM_Repeat/repeats:2"]


def test_user_stats_name(families):
    bench = (
        Benchmark("BM_UserStats", noop)
        .repetitions(3)
        .iterations(5)
        .use_manual_time()
        .compute_statistics("", lambda v: v[-1])
    )
    assert names(single(families, bench)) == [
        "BM_UserStats/iterations:5/repeats:3/manual_time"
    ]


def test_real_time_and_threads_in_name(families):
    bench = Benchmark("BM_x", noop).threads(2).use_real_time()
    assert names(single(families, bench)) == ["BM_x/real_time/threads:2"]


def test_process_time_with_manual_time_name(families):
    bench = Benchmark("BM_x", noop).measure_process_cpu_time().use_manual_time()
    assert names(single(families, bench)) == ["BM_x/process_time/manual_time"]


# ---------------------------------------------------------------- configuration


def test_ranges_product_first_varies_fastest(families):
    bench = Benchmark("BM_SetInsert", noop).ranges([(1 << 10, 8 << 10), (128, 512)])
    assert [list(i.args) for i in single(families, bench)] == [
        [1024, 128],
        [4096, 128],
        [8192, 128],
        [1024, 512],
        [4096, 512],
        [8192, 512],
    ]


def test_args_product_order():
    bench = Benchmark("BM_p", noop).args_product([[1, 2], [3, 4]])
    assert bench._args == [[1, 3], [2, 3], [1, 4], [2, 4]]


def test_range_applies_to_sequential(families):
    bench = Benchmark("BM_Sequential", noop).range(1 << 0, 1 << 10)
    assert [i.args[0] for i in single(families, bench)] == [1, 8, 64, 512, 1024]


def test_thread_range_counts(families):
    bench = Benchmark("BM_CalculatePi", noop).thread_range(1, 32)
    assert [i.threads for i in single(families, bench)] == [1, 2, 4, 8, 16, 32]


@pytest.mark.parametrize(
    "low, high, stride, expected",
    [(1, 3, 1, [1, 2, 3]), (1, 4, 2, [1, 3, 4]), (5, 14, 3, [5, 8, 11, 14])],
)
def test_dense_thread_range(families, low, high, stride, expected):
    bench = Benchmark("BM_DenseThreadRanges", noop).arg(1).dense_thread_range(
        low, high, stride
    )
    assert [i.threads for i in single(families, bench)] == expected


def test_default_thread_count_is_one(families):
    assert [i.threads for i in single(families, Benchmark("BM_x", noop))] == [1]


def test_thread_per_cpu_is_positive(families):
    instances = single(families, Benchmark("BM_x", noop).thread_per_cpu())
    assert len(instances) == 1
    assert instances[0].threads >= 1


def test_arg_count_mismatch_raises():
    bench = Benchmark("BM_x", noop).args([1, 2])
    with pytest.raises(ValueError):
        bench.arg(3)


def test_arg_names_count_mismatch_raises():
    with pytest.raises(ValueError):
        Benchmark("BM_x", noop).arg_names(["a", "b"]).arg(1)


def test_args_count():
    bench = Benchmark("BM_x", noop)
    assert bench.args_count() == -1
    bench.arg_names(["a", "b"])
    assert bench.args_count() == 2
    bench.args([1, 2])
    assert bench.args_count() == 2


def test_real_and_manual_time_are_exclusive():
    with pytest.raises(ValueError):
        Benchmark("BM_x", noop).use_real_time().use_manual_time()
    with pytest.raises(ValueError):
        Benchmark("BM_x", noop).use_manual_time().use_real_time()


def test_min_time_and_iterations_are_exclusive():
    with pytest.raises(ValueError):
        Benchmark("BM_x", noop).iterations(5).min_time(0.5)
    with pytest.raises(ValueError):
        Benchmark("BM_x", noop).min_time(0.5).iterations(5)


@pytest.mark.parametrize(
    "configure",
    [
        lambda b: b.range_multiplier(1),
        lambda b: b.min_time(0.0),
        lambda b: b.iterations(0),
        lambda b: b.repetitions(0),
        lambda b: b.threads(0),
        lambda b: b.thread_range(0, 4),
        lambda b: b.thread_range(4, 2),
        lambda b: b.dense_thread_range(1, 4, 0),
        lambda b: b.dense_range(5, 1),
    ],
)
def test_invalid_configuration_raises(configure):
    with pytest.raises(ValueError):
        configure(Benchmark("BM_x", noop))


def test_apply_receives_benchmark():
    def custom(bench):
        bench.arg(7).arg(9)

    bench = Benchmark("BM_x", noop).apply(custom)
    assert bench._args == [[7], [9]]


def test_unit_and_complexity_propagate(families):
    bench = Benchmark("BM_x", noop).unit(TimeUnit.MICROSECOND).complexity(BigO.O1)
    instance = single(families, bench)[0]
    assert instance.time_unit is TimeUnit.MICROSECOND
    assert instance.time_unit.value == "us"
    assert instance.complexity is BigO.O1


def test_complexity_lambda():
    def curve(n):
        return float(n)

    bench = Benchmark("BM_x", noop).complexity(curve)
    assert bench._complexity is BigO.LAMBDA
    assert bench._complexity_lambda is curve


def test_default_statistics_and_custom_appended(families):
    bench = Benchmark("BM_x", noop).compute_statistics("", lambda v: v[-1])
    instance = single(families, bench)[0]
    assert [name for name, _ in instance.statistics] == ["mean", "median", "stddev", ""]
    funcs = dict(instance.statistics)
    assert funcs["mean"]([150.0, 150.0, 150.0]) == 150.0
    assert funcs["median"]([150.0, 150.0, 150.0]) == 150.0
    assert funcs["stddev"]([150.0, 150.0, 150.0]) == 0.0


def test_report_aggregates_only_modes():
    bench = Benchmark("BM_x", noop)
    assert bench._aggregation_report_mode == AggregationReportMode.UNSPECIFIED
    bench.report_aggregates_only(True)
    assert bench._aggregation_report_mode == AggregationReportMode.REPORT_AGGREGATES_ONLY
    bench.report_aggregates_only(False)
    assert bench._aggregation_report_mode == AggregationReportMode.DEFAULT


def test_display_aggregates_only_modes():
    bench = Benchmark("BM_x", noop).display_aggregates_only(True)
    assert bench._aggregation_report_mode == (
        AggregationReportMode.DEFAULT
        | AggregationReportMode.DISPLAY_REPORT_AGGREGATES_ONLY
    )
    bench.display_aggregates_only(False)
    assert bench._aggregation_report_mode == AggregationReportMode.DEFAULT


# ---------------------------------------------------------------- families


def test_add_benchmark_returns_indices(families):
    assert families.add_benchmark(Benchmark("a", noop)) == 0
    assert families.add_benchmark(Benchmark("b", noop)) == 1
    assert len(families) == 2


def test_family_indices_count_only_matching_families(families):
    for name in ["BM_basic", "other", "BM_label", "BM_arg"]:
        families.add_benchmark(Benchmark(name, noop))
    families.add_benchmark(Benchmark("BM_many", noop).arg(1).arg(2))
    found = families.find_benchmarks("BM_")
    assert [(i.name(), i.family_index, i.per_family_instance_index) for i in found] == [
        ("BM_basic", 0, 0),
        ("BM_label", 1, 0),
        ("BM_arg", 2, 0),
        ("BM_many/1", 3, 0),
        ("BM_many/2", 3, 1),
    ]


def test_negative_filter(families):
    families.add_benchmark(Benchmark("BM_keep", noop))
    families.add_benchmark(Benchmark("BM_drop", noop))
    assert names(families.find_benchmarks("-drop")) == ["BM_keep"]


def test_filter_matches_substring(families):
    families.add_benchmark(Benchmark("BM_Repeat", noop).repetitions(3))
    assert names(families.find_benchmarks("repeats:3$")) == ["BM_Repeat/repeats:3"]


def test_bad_regex_raises(families):
    families.add_benchmark(Benchmark("BM_x", noop))
    with pytest.raises(ValueError, match="Could not compile benchmark re"):
        families.find_benchmarks("(")


def test_large_family_warns(families):
    families.add_benchmark(Benchmark("BM_big", noop).dense_range(0, 100))
    err = io.StringIO()
    found = families.find_benchmarks(".", err)
    assert len(found) == 101
    assert "BM_big will be repeated at least 101 times." in err.getvalue()


def test_clear_empties_families(families):
    families.add_benchmark(Benchmark("BM_x", noop))
    families.clear()
    assert families.find_benchmarks(".") == []


# ---------------------------------------------------------------- global registry


def test_register_and_find(clean_registry):
    register_benchmark("BM_function", noop)
    register_benchmark("BM_function_manual_registration", noop)
    assert names(find_benchmarks(".")) == [
        "BM_function",
        "BM_function_manual_registration",
    ]


def test_register_with_extra_args(clean_registry):
    labels = []

    def bm_extra_args(state, label):
        labels.append((state, label))

    for name, label in [("test1", "One"), ("test2", "Two"), ("test3", "Three")]:
        register_benchmark(name, bm_extra_args, label)
    found = find_benchmarks(".")
    assert names(found) == ["test1", "test2", "test3"]
    for instance in found:
        instance.benchmark.func("state")
    assert labels == [("state", "One"), ("state", "Two"), ("state", "Three")]


def test_register_returns_configurable_benchmark(clean_registry):
    register_benchmark("BM_r", noop).arg(8).arg(512)
    assert names(find_benchmarks(".")) == ["BM_r/8", "BM_r/512"]


def test_clear_registered_benchmarks(clean_registry):
    register_benchmark("custom_fixture", noop)
    clear_registered_benchmarks()
    assert find_benchmarks(".") == []
    register_benchmark("lambda_benchmark", noop)
    assert names(find_benchmarks(".")) == ["lambda_benchmark"]