"""Benchmark families, their argument ranges, and the global registry."""

from __future__ import annotations

import enum
import itertools
import os
import re
import statistics
import sys
import threading
from collections.abc import Callable, Iterable, Sequence
from typing import IO, Any

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1

# For non-dense ranges, intermediate values are powers of this multiplier.
RANGE_MULTIPLIER = 8
# Families running on more inputs than this trigger a warning.
MAX_FAMILY_SIZE = 100


class TimeUnit(enum.Enum):
    """Unit in which a benchmark's times are reported."""

    NANOSECOND = "ns"
    MICROSECOND = "us"
    MILLISECOND = "ms"
    SECOND = "s"


class AggregationReportMode(enum.IntFlag):
    """Which reports show only aggregates rather than every repetition."""

    UNSPECIFIED = 0
    DEFAULT = 1
    FILE_REPORT_AGGREGATES_ONLY = 2
    DISPLAY_REPORT_AGGREGATES_ONLY = 4
    REPORT_AGGREGATES_ONLY = 6


class BigO(enum.Enum):
    """Asymptotic complexity to fit benchmark results against."""

    NONE = "none"
    O1 = "1"
    N = "N"
    N_SQUARED = "N^2"
    N_CUBED = "N^3"
    LOG_N = "lgN"
    N_LOG_N = "NlgN"
    AUTO = "auto"
    LAMBDA = "lambda"


def _mean(values: Sequence[float]) -> float:
    return statistics.fmean(values) if values else 0.0


def _median(values: Sequence[float]) -> float:
    return statistics.median(values) if values else 0.0


def _stddev(values: Sequence[float]) -> float:
    return statistics.stdev(values) if len(values) >= 2 else 0.0


def add_powers(lo: int, hi: int, mult: int) -> list[int]:
    """Return the powers of mult in the closed interval [lo, hi]."""
    if lo < 0:
        raise ValueError(f"lo must be non-negative, got {lo}")
    if hi < lo:
        raise ValueError(f"hi ({hi}) must not be below lo ({lo})")
    if mult < 2:
        raise ValueError(f"multiplier must be at least 2, got {mult}")
    powers = []
    value = 1
    while value <= hi:
        if value >= lo:
            powers.append(value)
        if value > _INT64_MAX // mult:
            break
        value *= mult
    return powers


def add_negated_powers(lo: int, hi: int, mult: int) -> list[int]:
    """Return the negated powers of mult in [lo, hi], ascending; hi must be <= 0."""
    if lo <= _INT64_MIN or hi <= _INT64_MIN:
        raise ValueError("bounds must be above the smallest 64-bit integer")
    if hi < lo:
        raise ValueError(f"hi ({hi}) must not be below lo ({lo})")
    if hi > 0:
        raise ValueError(f"hi must not be positive, got {hi}")
    return [-power for power in reversed(add_powers(-hi, -lo, mult))]


def add_range(lo: int, hi: int, mult: int) -> list[int]:
    """Return lo, the powers of mult strictly between lo and hi, and hi."""
    if hi < lo:
        raise ValueError(f"hi ({hi}) must not be below lo ({lo})")
    if mult < 2:
        raise ValueError(f"multiplier must be at least 2, got {mult}")
    values = [lo]
    if lo == hi:
        return values
    if lo + 1 == hi:
        values.append(hi)
        return values
    lo_inner = lo + 1
    hi_inner = hi - 1
    if lo_inner < 0:
        values.extend(add_negated_powers(lo_inner, min(hi_inner, -1), mult))
    if lo < 0 and hi >= 0:
        values.append(0)
    if hi_inner > 0:
        values.extend(add_powers(max(lo_inner, 1), hi_inner, mult))
    if hi != values[-1]:
        values.append(hi)
    return values


def create_range(lo: int, hi: int, multi: int) -> list[int]:
    """Return the sparse range used by Benchmark.range with multiplier multi."""
    return add_range(lo, hi, multi)


def create_dense_range(start: int, limit: int, step: int = 1) -> list[int]:
    """Return every step-th value from start up to and including limit."""
    if start > limit:
        raise ValueError(f"start ({start}) must not exceed limit ({limit})")
    if step < 1:
        raise ValueError(f"step must be positive, got {step}")
    return list(range(start, limit + 1, step))


class Benchmark:
    """A family of benchmarks: one function run over sets of arguments and threads.

    Configuration methods return the benchmark so that calls can be chained.
    """

    def __init__(self, name: str, func: Callable[..., Any]) -> None:
        self.name = name
        self.func = func
        self._args: list[list[int]] = []
        self._arg_names: list[str] = []
        self._thread_counts: list[int] = []
        self._aggregation_report_mode = AggregationReportMode.UNSPECIFIED
        self._time_unit = TimeUnit.NANOSECOND
        self._range_multiplier = RANGE_MULTIPLIER
        self._min_time = 0.0
        self._iterations = 0
        self._repetitions = 0
        self._measure_process_cpu_time = False
        self._use_real_time = False
        self._use_manual_time = False
        self._complexity = BigO.NONE
        self._complexity_lambda: Callable[[int], float] | None = None
        self._statistics: list[tuple[str, Callable[[Sequence[float]], float]]] = []
        self.compute_statistics("mean", _mean)
        self.compute_statistics("median", _median)
        self.compute_statistics("stddev", _stddev)

    def __repr__(self) -> str:
        return f"Benchmark({self.name!r})"

    def _check_args_count(self, count: int) -> None:
        current = self.args_count()
        if current not in (-1, count):
            raise ValueError(
                f"benchmark {self.name!r} takes {current} arguments, not {count}"
            )

    def set_name(self, name: str) -> Benchmark:
        """Rename the family."""
        self.name = name
        return self

    def arg(self, x: int) -> Benchmark:
        """Add a run with the single argument x."""
        self._check_args_count(1)
        self._args.append([x])
        return self

    def unit(self, unit: TimeUnit) -> Benchmark:
        """Set the time unit of the reports."""
        self._time_unit = TimeUnit(unit)
        return self

    def range(self, start: int, limit: int) -> Benchmark:
        """Add runs for start, limit and the powers of the multiplier between."""
        self._check_args_count(1)
        for value in add_range(start, limit, self._range_multiplier):
            self._args.append([value])
        return self

    def ranges(self, ranges: Sequence[tuple[int, int]]) -> Benchmark:
        """Add runs for every combination of values from several ranges."""
        self._check_args_count(len(ranges))
        arglists = [add_range(lo, hi, self._range_multiplier) for lo, hi in ranges]
        return self.args_product(arglists)

    def args_product(self, arglists: Sequence[Sequence[int]]) -> Benchmark:
        """Add runs for the cartesian product of the lists; the first varies fastest."""
        self._check_args_count(len(arglists))
        for combo in itertools.product(*reversed([list(a) for a in arglists])):
            self._args.append(list(reversed(combo)))
        return self

    def arg_name(self, name: str) -> Benchmark:
        """Name the single argument."""
        self._check_args_count(1)
        self._arg_names = [name]
        return self

    def arg_names(self, names: Sequence[str]) -> Benchmark:
        """Name each argument; an empty name leaves that argument unnamed."""
        self._check_args_count(len(names))
        self._arg_names = list(names)
        return self

    def dense_range(self, start: int, limit: int, step: int = 1) -> Benchmark:
        """Add runs for every step-th value from start to limit inclusive."""
        self._check_args_count(1)
        for value in create_dense_range(start, limit, step):
            self._args.append([value])
        return self

    def args(self, args: Sequence[int]) -> Benchmark:
        """Add a run with the given argument list."""
        self._check_args_count(len(args))
        self._args.append(list(args))
        return self

    def apply(self, custom_arguments: Callable[[Benchmark], Any]) -> Benchmark:
        """Let a function configure this benchmark."""
        custom_arguments(self)
        return self

    def range_multiplier(self, multiplier: int) -> Benchmark:
        """Set the multiplier used by range and ranges."""
        if multiplier <= 1:
            raise ValueError(f"range multiplier must exceed 1, got {multiplier}")
        self._range_multiplier = multiplier
        return self

    def min_time(self, t: float) -> Benchmark:
        """Run each benchmark for at least t seconds."""
        if t <= 0.0:
            raise ValueError(f"minimum time must be positive, got {t}")
        if self._iterations != 0:
            raise ValueError("cannot set a minimum time with an explicit iteration count")
        self._min_time = t
        return self

    def iterations(self, n: int) -> Benchmark:
        """Run exactly n iterations instead of timing the run."""
        if n <= 0:
            raise ValueError(f"iteration count must be positive, got {n}")
        if self._min_time != 0.0:
            raise ValueError("cannot set an iteration count with a minimum time")
        self._iterations = n
        return self

    def repetitions(self, n: int) -> Benchmark:
        """Repeat each run n times."""
        if n <= 0:
            raise ValueError(f"repetition count must be positive, got {n}")
        self._repetitions = n
        return self

    def report_aggregates_only(self, value: bool = True) -> Benchmark:
        """Report only aggregates of the repetitions, to display and file."""
        self._aggregation_report_mode = (
            AggregationReportMode.REPORT_AGGREGATES_ONLY
            if value
            else AggregationReportMode.DEFAULT
        )
        return self

    def display_aggregates_only(self, value: bool = True) -> Benchmark:
        """Display only aggregates of the repetitions; files still get every run."""
        mode = int(self._aggregation_report_mode) | AggregationReportMode.DEFAULT
        display = int(AggregationReportMode.DISPLAY_REPORT_AGGREGATES_ONLY)
        mode = mode | display if value else mode & ~display
        self._aggregation_report_mode = AggregationReportMode(mode)
        return self

    def measure_process_cpu_time(self) -> Benchmark:
        """Measure CPU time of the whole process rather than the benchmark threads."""
        self._measure_process_cpu_time = True
        return self

    def use_real_time(self) -> Benchmark:
        """Base iteration decisions on wall-clock time."""
        if self._use_manual_time:
            raise ValueError("Cannot set UseRealTime and UseManualTime simultaneously.")
        self._use_real_time = True
        return self

    def use_manual_time(self) -> Benchmark:
        """Base iteration decisions on manually reported iteration times."""
        if self._use_real_time:
            raise ValueError("Cannot set UseRealTime and UseManualTime simultaneously.")
        self._use_manual_time = True
        return self

    def complexity(
        self, complexity: BigO | Callable[[int], float] = BigO.AUTO
    ) -> Benchmark:
        """Set the asymptotic complexity, or a function of N that computes it."""
        if isinstance(complexity, BigO):
            self._complexity = complexity
        elif callable(complexity):
            self._complexity_lambda = complexity
            self._complexity = BigO.LAMBDA
        else:
            self._complexity = BigO(complexity)
        return self

    def compute_statistics(
        self, name: str, func: Callable[[Sequence[float]], float]
    ) -> Benchmark:
        """Add a statistic computed over the repetitions."""
        self._statistics.append((name, func))
        return self

    def threads(self, t: int) -> Benchmark:
        """Add a run with t threads."""
        if t <= 0:
            raise ValueError(f"thread count must be positive, got {t}")
        self._thread_counts.append(t)
        return self

    def thread_range(self, min_threads: int, max_threads: int) -> Benchmark:
        """Add runs for min_threads, max_threads and the powers of two between."""
        if min_threads <= 0:
            raise ValueError(f"thread count must be positive, got {min_threads}")
        if max_threads < min_threads:
            raise ValueError("max_threads must not be below min_threads")
        self._thread_counts.extend(add_range(min_threads, max_threads, 2))
        return self

    def dense_thread_range(
        self, min_threads: int, max_threads: int, stride: int = 1
    ) -> Benchmark:
        """Add runs for every stride-th thread count, always including max_threads."""
        if min_threads <= 0:
            raise ValueError(f"thread count must be positive, got {min_threads}")
        if max_threads < min_threads:
            raise ValueError("max_threads must not be below min_threads")
        if stride < 1:
            raise ValueError(f"stride must be positive, got {stride}")
        self._thread_counts.extend(range(min_threads, max_threads, stride))
        self._thread_counts.append(max_threads)
        return self

    def thread_per_cpu(self) -> Benchmark:
        """Add a run with one thread per CPU."""
        self._thread_counts.append(os.cpu_count() or 1)
        return self

    def args_count(self) -> int:
        """Return the number of arguments per run, or -1 if not yet known."""
        if not self._args:
            return len(self._arg_names) if self._arg_names else -1
        return len(self._args[0])


class BenchmarkInstance:
    """One concrete run of a family: a single argument set and thread count."""

    def __init__(
        self,
        benchmark: Benchmark,
        family_index: int,
        per_family_instance_index: int,
        args: Sequence[int],
        threads: int,
    ) -> None:
        self.benchmark = benchmark
        self.family_index = family_index
        self.per_family_instance_index = per_family_instance_index
        self.args = tuple(args)
        self.threads = threads
        self.time_unit = benchmark._time_unit
        self.min_time = benchmark._min_time
        self.iterations = benchmark._iterations
        self.repetitions = benchmark._repetitions
        self.measure_process_cpu_time = benchmark._measure_process_cpu_time
        self.use_real_time = benchmark._use_real_time
        self.use_manual_time = benchmark._use_manual_time
        self.complexity = benchmark._complexity
        self.complexity_lambda = benchmark._complexity_lambda
        self.statistics = tuple(benchmark._statistics)
        self.aggregation_report_mode = benchmark._aggregation_report_mode
        self._name = self._build_name(benchmark)

    def _build_name(self, benchmark: Benchmark) -> str:
        parts = [benchmark.name]
        arg_names = benchmark._arg_names
        for index, value in enumerate(self.args):
            arg_label = arg_names[index] if index < len(arg_names) else ""
            parts.append(f"{arg_label}:{value}" if arg_label else str(value))
        if benchmark._min_time != 0.0:
            parts.append(f"min_time:{benchmark._min_time:0.3f}")
        if benchmark._iterations != 0:
            parts.append(f"iterations:{benchmark._iterations}")
        if benchmark._repetitions != 0:
            parts.append(f"repeats:{benchmark._repetitions}")
        time_type = []
        if benchmark._measure_process_cpu_time:
            time_type.append("process_time")
        if benchmark._use_manual_time:
            time_type.append("manual_time")
        elif benchmark._use_real_time:
            time_type.append("real_time")
        parts.extend(time_type)
        if benchmark._thread_counts:
            parts.append(f"threads:{self.threads}")
        return "/".join(part for part in parts if part)

    def name(self) -> str:
        """Return the full name, such as "BM_foo/first:3/repeats:2"."""
        return self._name

    def __repr__(self) -> str:
        return f"BenchmarkInstance({self._name!r})"


class BenchmarkFamilies:
    """A thread-safe list of registered benchmark families."""

    def __init__(self) -> None:
        self._families: list[Benchmark] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._families)

    def add_benchmark(self, family: Benchmark) -> int:
        """Register a family and return its index."""
        with self._lock:
            self._families.append(family)
            return len(self._families) - 1

    def clear(self) -> None:
        """Forget every registered family."""
        with self._lock:
            self._families.clear()

    def find_benchmarks(
        self, spec: str, err: IO[str] | None = None
    ) -> list[BenchmarkInstance]:
        """Return the instances whose names match the regular expression spec.

        A leading "-" inverts the filter. Warnings go to err. Raises ValueError
        if spec is not a valid regular expression.
        """
        if err is None:
            err = sys.stderr
        negative = spec.startswith("-")
        if negative:
            spec = spec[1:]
        try:
            pattern = re.compile(spec)
        except re.error as exc:
            raise ValueError(f"Could not compile benchmark re: {exc}") from exc

        instances: list[BenchmarkInstance] = []
        next_family_index = 0
        with self._lock:
            for family in self._families:
                family_index = next_family_index
                per_family_instance_index = 0
                if family.args_count() == -1:
                    family.args([])
                thread_counts = list(family._thread_counts) or [1]
                family_size = len(family._args) * len(thread_counts)
                if family_size > MAX_FAMILY_SIZE:
                    err.write(
                        f"The number of inputs is very large. {family.name} "
                        f"will be repeated at least {family_size} times.\n"
                    )
                for args in family._args:
                    for num_threads in thread_counts:
                        instance = BenchmarkInstance(
                            family,
                            family_index,
                            per_family_instance_index,
                            args,
                            num_threads,
                        )
                        matched = pattern.search(instance.name()) is not None
                        if matched != negative:
                            instances.append(instance)
                            per_family_instance_index += 1
                            if next_family_index == family_index:
                                next_family_index += 1
        return instances


_FAMILIES = BenchmarkFamilies()


def get_families() -> BenchmarkFamilies:
    """Return the process-wide registry."""
    return _FAMILIES


def register_benchmark(name: str, func: Callable[..., Any], *args: Any) -> Benchmark:
    """Register func under name; extra args are passed after the state."""
    if args:
        target = func

        def bound(state: Any) -> Any:
            return target(state, *args)

        func = bound
    benchmark = Benchmark(name, func)
    _FAMILIES.add_benchmark(benchmark)
    return benchmark


def clear_registered_benchmarks() -> None:
    """Remove every family from the process-wide registry."""
    _FAMILIES.clear()


def find_benchmarks(spec: str, err: IO[str] | None = None) -> list[BenchmarkInstance]:
    """Return matching instances from the process-wide registry."""
    return _FAMILIES.find_benchmarks(spec, err)


def _names(instances: Iterable[BenchmarkInstance]) -> list[str]:
    return [instance.name() for instance in instances]