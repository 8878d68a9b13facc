# benchkit

A small library for registering micro-benchmarks, expanding their argument
sets, and running them with an adaptive iteration count.

## Install

```
pip install .
```

To run the test suite, install the `test` extra and run `pytest`:

```
pip install ".[test]"
pytest
```

## Registering benchmarks

Register a callable with `benchkit.registry.register_benchmark`. The callable
receives the benchmark state; any extra arguments given to
`register_benchmark` are passed after it. Configuration methods return the
`Benchmark`, so calls can be chained:

```python
from benchkit.registry import register_benchmark, TimeUnit

def bm_sum(state):
    for _ in state:
        sum(range(state.range(0)))

(register_benchmark("bm_sum", bm_sum)
    .range_multiplier(2)
    .range(8, 1024)
    .unit(TimeUnit.MICROSECOND)
    .threads(2))
```

The `Benchmark` methods are:

- `arg`, `args`, `range`, `ranges`, `dense_range` and `args_product` add
  argument sets. Mixing argument lists of different lengths raises
  `ValueError`.
- `arg_name` and `arg_names` label the arguments in instance names, for
  example `bm/first:2/5/third:4`.
- `threads`, `thread_range`, `dense_thread_range` and `thread_per_cpu` add
  thread counts.
- `min_time`, `iterations`, `repetitions`, `use_real_time`, `use_manual_time`,
  `measure_process_cpu_time`, `report_aggregates_only`,
  `display_aggregates_only`, `complexity` and `compute_statistics` set how the
  benchmark is run and reported. Every benchmark starts with the `mean`,
  `median` and `stddev` statistics.
- `set_name` renames the family, `apply` hands the benchmark to a
  configuring function, and `args_count` returns the number of arguments per
  run (or -1 if not yet known).

`create_range` and `create_dense_range` build argument lists without
registering anything. Powers of the multiplier fill the interval between the
two ends:

```python
from benchkit.registry import create_range, create_dense_range

create_range(1, 1024, 8)       # [1, 8, 64, 512, 1024]
create_dense_range(0, 10, 5)   # [0, 5, 10]
```

## Selecting benchmarks

`find_benchmarks(spec, err)` expands every registered family into
`BenchmarkInstance` objects whose `name()` matches the regular expression
`spec`. A leading `-` inverts the filter. An invalid expression raises
`ValueError`; a family with more than 100 inputs writes a warning to `err`
(standard error by default). `clear_registered_benchmarks()` removes all
registrations, and `get_families()` returns the process-wide
`BenchmarkFamilies` registry.

## Running

Inside a benchmark function the state offers `range(pos)`, iteration with
`for _ in state`, `keep_running()`, `keep_running_batch(n)`,
`pause_timing()`, `resume_timing()`, `set_iteration_time(seconds)`,
`skip_with_error(message)`, `set_label(label)`, `set_complexity_n(n)`, a
`counters` dictionary, and the `thread_index` and `threads` attributes.

`benchkit.runner.BenchmarkRunner` takes an instance, an optional
`PerFamilyRunReports` collector and `RunnerSettings` (default minimum time
0.5 seconds, one repetition). It runs the instance's threads, grows the
iteration count until the measurement is long enough, repeats as configured,
and collects `RunReport` values:

```python
from benchkit.registry import find_benchmarks
from benchkit.runner import BenchmarkRunner, RunnerSettings

for instance in find_benchmarks("bm_sum"):
    runner = BenchmarkRunner(instance, None, RunnerSettings())
    while runner.has_repeats_remaining():
        runner.do_one_repetition()
    results = runner.get_results()
    for report in results.non_aggregates + results.aggregates_only:
        print(report.benchmark_name(), report.adjusted_real_time(),
              report.time_unit.value)
```

With two or more successful repetitions, `get_results()` adds one aggregate
report per statistic, named like `bm_sum/8/threads:2_mean`.
`run_in_thread` runs a benchmark function once on its own for a given
iteration count and returns its `ThreadResults`.

## Building blocks

- `benchkit.timer.ThreadTimer` accumulates real, CPU (thread or process) and
  manually reported time.
- `benchkit.barrier.Barrier` lets benchmark threads meet; threads that leave
  early call `remove_thread()`.
- `benchkit.colorprint` writes ANSI-coloured text (`color_print`,
  `LogColor`, `format_string`) and detects colour-capable terminals
  (`is_color_terminal`).
- `benchkit.log` gives verbosity-levelled diagnostics on standard error
  (`set_log_level`, `get_log_level`, `vlog`).

## What it does not do

benchkit has no command-line program and does not read command-line flags or
environment variables; settings are passed in code through `RunnerSettings`
and the `Benchmark` methods. It does not print console, JSON or CSV reports
itself: it hands back `RunReport` objects for you to format. The complexity
recorded on reports is not fitted to a curve.