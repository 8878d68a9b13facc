"""Running one benchmark instance: iteration-count search, repetitions, reports."""

from __future__ import annotations

import dataclasses
import math
import threading
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any

from benchkit.barrier import Barrier
from benchkit.log import vlog
from benchkit.registry import AggregationReportMode, BenchmarkInstance, BigO, TimeUnit
from benchkit.timer import ThreadTimer

MAX_ITERATIONS = 1_000_000_000

_TIME_UNIT_MULTIPLIERS = {
    TimeUnit.NANOSECOND: 1e9,
    TimeUnit.MICROSECOND: 1e6,
    TimeUnit.MILLISECOND: 1e3,
    TimeUnit.SECOND: 1.0,
}


@dataclass
class RunnerSettings:
    """Defaults used where a benchmark does not choose for itself."""

    min_time: float = 0.5
    repetitions: int = 1
    report_aggregates_only: bool = False
    display_aggregates_only: bool = False


@dataclass
class ThreadResults:
    """Measurements gathered by one or more benchmark threads."""

    iterations: int = 0
    real_time_used: float = 0.0
    cpu_time_used: float = 0.0
    manual_time_used: float = 0.0
    complexity_n: int = 0
    counters: dict[str, float] = field(default_factory=dict)
    has_error: bool = False
    error_message: str = ""
    report_label: str = ""

    def merge(self, other: ThreadResults) -> None:
        """Add another thread's measurements to these."""
        self.iterations += other.iterations
        self.real_time_used += other.real_time_used
        self.cpu_time_used += other.cpu_time_used
        self.manual_time_used += other.manual_time_used
        self.complexity_n += other.complexity_n
        for name, value in other.counters.items():
            self.counters[name] = self.counters.get(name, 0.0) + value
        if other.has_error and not self.has_error:
            self.has_error = True
            self.error_message = other.error_message
        if other.report_label:
            self.report_label = other.report_label


@dataclass
class IterationResults:
    """The outcome of running all threads for one iteration count."""

    results: ThreadResults = field(default_factory=ThreadResults)
    iters: int = 0
    seconds: float = 0.0


@dataclass
class RunReport:
    """The report of one repetition, or of an aggregate over repetitions."""

    run_name: str = ""
    family_index: int = 0
    per_family_instance_index: int = 0
    run_type: str = "iteration"
    aggregate_name: str = ""
    error_occurred: bool = False
    error_message: str = ""
    report_label: str = ""
    iterations: int = 1
    time_unit: TimeUnit = TimeUnit.NANOSECOND
    threads: int = 1
    repetition_index: int = -1
    repetitions: int = 0
    real_accumulated_time: float = 0.0
    cpu_accumulated_time: float = 0.0
    seconds: float = 0.0
    complexity_n: int = 0
    complexity: BigO = BigO.NONE
    complexity_lambda: Callable[[int], float] | None = None
    statistics: tuple[tuple[str, Callable[[Sequence[float]], float]], ...] = ()
    counters: dict[str, float] = field(default_factory=dict)

    def benchmark_name(self) -> str:
        """Return the run name, suffixed with the aggregate name for aggregates."""
        if self.run_type == "aggregate":
            return f"{self.run_name}_{self.aggregate_name}"
        return self.run_name

    def _adjusted(self, seconds: float) -> float:
        value = seconds * _TIME_UNIT_MULTIPLIERS[self.time_unit]
        return value / self.iterations if self.iterations else value

    def adjusted_real_time(self) -> float:
        """Return the real time per iteration in the report's time unit."""
        return self._adjusted(self.real_accumulated_time)

    def adjusted_cpu_time(self) -> float:
        """Return the CPU time per iteration in the report's time unit."""
        return self._adjusted(self.cpu_accumulated_time)


@dataclass
class PerFamilyRunReports:
    """Successful runs collected across the instances of one family."""

    num_runs_done: int = 0
    runs: list[RunReport] = field(default_factory=list)


@dataclass
class RunResults:
    """Every repetition's report plus the aggregates computed over them."""

    non_aggregates: list[RunReport] = field(default_factory=list)
    aggregates_only: list[RunReport] = field(default_factory=list)
    display_report_aggregates_only: bool = False
    file_report_aggregates_only: bool = False


class _State:
    """Handed to a benchmark function; drives its measured loop."""

    def __init__(
        self,
        max_iterations: int,
        ranges: Sequence[int],
        thread_index: int,
        threads: int,
        timer: ThreadTimer,
        barrier: Barrier,
        results: ThreadResults,
    ) -> None:
        self.max_iterations = max_iterations
        self.thread_index = thread_index
        self.threads = threads
        self.counters: dict[str, float] = {}
        self._ranges = tuple(ranges)
        self._timer = timer
        self._barrier = barrier
        self._results = results
        self._total_iterations = 0
        self._batch_leftover = 0
        self._started = False
        self._finished = False
        self._error_occurred = False
        self._complexity_n = 0

    @property
    def error_occurred(self) -> bool:
        return self._error_occurred

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def complexity_length_n(self) -> int:
        return self._complexity_n

    def range(self, pos: int = 0) -> int:
        """Return argument number pos of this run."""
        return self._ranges[pos]

    def iterations(self) -> int:
        """Return the number of iterations run so far."""
        if not self._started:
            return 0
        return self.max_iterations - self._total_iterations + self._batch_leftover

    def __iter__(self) -> Iterator[None]:
        self._start_keep_running()
        while self._total_iterations > 0:
            self._total_iterations -= 1
            yield None
        self._finish_keep_running()

    def keep_running(self) -> bool:
        """Return True while another iteration should run."""
        return self._keep_running_internal(1, is_batch=False)

    def keep_running_batch(self, n: int) -> bool:
        """Return True while another batch of n iterations should run."""
        if n <= 0:
            raise ValueError(f"batch size must be positive, got {n}")
        return self._keep_running_internal(n, is_batch=True)

    def _keep_running_internal(self, n: int, is_batch: bool) -> bool:
        if self._total_iterations >= n:
            self._total_iterations -= n
            return True
        if not self._started:
            self._start_keep_running()
            if not self._error_occurred and self._total_iterations >= n:
                self._total_iterations -= n
                return True
        if is_batch and self._total_iterations != 0:
            self._batch_leftover = n - self._total_iterations
            self._total_iterations = 0
            return True
        self._finish_keep_running()
        return False

    def _start_keep_running(self) -> None:
        if self._started or self._finished:
            raise RuntimeError("benchmark loop started twice")
        self._started = True
        self._total_iterations = 0 if self._error_occurred else self.max_iterations
        self._barrier.wait()
        if not self._error_occurred:
            self.resume_timing()

    def _finish_keep_running(self) -> None:
        if not self._started or (self._finished and not self._error_occurred):
            raise RuntimeError("benchmark loop finished without being started")
        if not self._error_occurred:
            self.pause_timing()
        self._total_iterations = 0
        self._finished = True
        self._barrier.wait()

    def _require_timing_allowed(self) -> None:
        if not self._started or self._finished or self._error_occurred:
            raise RuntimeError("timing can only be changed inside a running loop")

    def pause_timing(self) -> None:
        """Stop measuring until resume_timing is called."""
        self._require_timing_allowed()
        self._timer.stop_timer()

    def resume_timing(self) -> None:
        """Resume measuring after pause_timing."""
        self._require_timing_allowed()
        self._timer.start_timer()

    def set_iteration_time(self, seconds: float) -> None:
        """Report the time of one iteration for manually timed benchmarks."""
        self._timer.set_iteration_time(seconds)

    def skip_with_error(self, message: str) -> None:
        """Stop the run and report it as failed with message."""
        self._error_occurred = True
        if not self._results.has_error:
            self._results.has_error = True
            self._results.error_message = message
        self._total_iterations = 0
        if self._timer.running():
            self._timer.stop_timer()

    def set_label(self, label: str) -> None:
        """Attach a label to the report."""
        self._results.report_label = label

    def set_complexity_n(self, n: int) -> None:
        """Record the problem size for complexity fitting."""
        self._complexity_n = n


def _run_thread(
    instance: BenchmarkInstance,
    iterations: int,
    thread_index: int,
    timer: ThreadTimer | None,
    barrier: Barrier,
) -> ThreadResults:
    if timer is None:
        timer = ThreadTimer(instance.measure_process_cpu_time)
    results = ThreadResults()
    state = _State(
        iterations,
        instance.args,
        thread_index,
        instance.threads,
        timer,
        barrier,
        results,
    )
    try:
        instance.benchmark.func(state)
    finally:
        if not state.finished:
            barrier.remove_thread()
    if not (state.error_occurred or state.iterations() >= state.max_iterations):
        raise RuntimeError(
            "Benchmark returned before State::KeepRunning() returned false!"
        )
    results.iterations = state.iterations()
    results.cpu_time_used = timer.cpu_time_used()
    results.real_time_used = timer.real_time_used()
    results.manual_time_used = timer.manual_time_used()
    results.complexity_n = state.complexity_length_n
    for name, value in state.counters.items():
        results.counters[name] = results.counters.get(name, 0.0) + float(value)
    return results


def run_in_thread(
    instance: BenchmarkInstance,
    iterations: int,
    thread_index: int = 0,
    timer: ThreadTimer | None = None,
) -> ThreadResults:
    """Run the benchmark function once, alone, for the given iteration count."""
    return _run_thread(instance, iterations, thread_index, timer, Barrier(1))


def create_run_report(
    instance: BenchmarkInstance,
    results: ThreadResults,
    seconds: float,
    repetition_index: int,
    repeats: int,
) -> RunReport:
    """Build the report of one repetition from the merged thread results."""
    report = RunReport(
        run_name=instance.name(),
        family_index=instance.family_index,
        per_family_instance_index=instance.per_family_instance_index,
        error_occurred=results.has_error,
        error_message=results.error_message,
        report_label=results.report_label,
        iterations=results.iterations,
        time_unit=instance.time_unit,
        threads=instance.threads,
        repetition_index=repetition_index,
        repetitions=repeats,
        seconds=seconds,
    )
    if not report.error_occurred:
        report.real_accumulated_time = (
            results.manual_time_used
            if instance.use_manual_time
            else results.real_time_used
        )
        report.cpu_accumulated_time = results.cpu_time_used
        report.complexity_n = results.complexity_n
        report.complexity = instance.complexity
        report.complexity_lambda = instance.complexity_lambda
        report.statistics = instance.statistics
        report.counters = dict(results.counters)
    return report


def _compute_stats(reports: Sequence[RunReport]) -> list[RunReport]:
    runs = [report for report in reports if not report.error_occurred]
    if len(runs) < 2:
        return []
    first = runs[0]
    real_times = [r.real_accumulated_time / max(r.iterations, 1) for r in runs]
    cpu_times = [r.cpu_accumulated_time / max(r.iterations, 1) for r in runs]
    count = len(runs)
    return [
        dataclasses.replace(
            first,
            run_type="aggregate",
            aggregate_name=name,
            repetition_index=-1,
            iterations=count,
            real_accumulated_time=func(real_times) * count,
            cpu_accumulated_time=func(cpu_times) * count,
            counters={},
        )
        for name, func in first.statistics
    ]


def _lround(value: float) -> int:
    return int(math.floor(value + 0.5))


class BenchmarkRunner:
    """Runs every repetition of one benchmark instance and collects reports."""

    def __init__(
        self,
        instance: BenchmarkInstance,
        reports_for_family: PerFamilyRunReports | None = None,
        settings: RunnerSettings | None = None,
    ) -> None:
        if settings is None:
            settings = RunnerSettings()
        self.instance = instance
        self.reports_for_family = reports_for_family
        self.min_time = instance.min_time if instance.min_time != 0.0 else settings.min_time
        self.repeats = instance.repetitions or settings.repetitions
        self.has_explicit_iteration_count = instance.iterations != 0
        # Kept between repetitions: only the first one searches for it.
        self.iters = instance.iterations if self.has_explicit_iteration_count else 1
        self.num_repetitions_done = 0
        self.run_results = RunResults(
            display_report_aggregates_only=(
                settings.report_aggregates_only or settings.display_aggregates_only
            ),
            file_report_aggregates_only=settings.report_aggregates_only,
        )
        mode = instance.aggregation_report_mode
        if mode != AggregationReportMode.UNSPECIFIED:
            self.run_results.display_report_aggregates_only = bool(
                mode & AggregationReportMode.DISPLAY_REPORT_AGGREGATES_ONLY
            )
            self.run_results.file_report_aggregates_only = bool(
                mode & AggregationReportMode.FILE_REPORT_AGGREGATES_ONLY
            )

    def num_repeats(self) -> int:
        """Return how many repetitions will run."""
        return self.repeats

    def has_repeats_remaining(self) -> bool:
        """Return True until every repetition has run."""
        return self.num_repeats() != self.num_repetitions_done

    def do_n_iterations(self) -> IterationResults:
        """Run all threads for the current iteration count and merge results."""
        instance = self.instance
        vlog(2, f"Running {instance.name()} for {self.iters}\n")
        barrier = Barrier(instance.threads)
        per_thread: dict[int, ThreadResults] = {}
        failures: list[BaseException] = []
        lock = threading.Lock()

        def work(thread_index: int) -> None:
            try:
                outcome = _run_thread(instance, self.iters, thread_index, None, barrier)
            except BaseException as exc:  # re-raised in the calling thread
                with lock:
                    failures.append(exc)
                return
            with lock:
                per_thread[thread_index] = outcome

        pool = [
            threading.Thread(target=work, args=(thread_index,), daemon=True)
            for thread_index in range(1, instance.threads)
        ]
        for thread in pool:
            thread.start()
        work(0)
        for thread in pool:
            thread.join()
        if failures:
            raise failures[0]

        merged = ThreadResults()
        for thread_index in sorted(per_thread):
            merged.merge(per_thread[thread_index])

        merged.real_time_used /= instance.threads
        merged.manual_time_used /= instance.threads
        if instance.measure_process_cpu_time:
            merged.cpu_time_used /= instance.threads
        vlog(2, f"Ran in {merged.cpu_time_used}/{merged.real_time_used}\n")

        seconds = merged.cpu_time_used
        if instance.use_manual_time:
            seconds = merged.manual_time_used
        elif instance.use_real_time:
            seconds = merged.real_time_used
        return IterationResults(
            results=merged,
            iters=merged.iterations // instance.threads,
            seconds=seconds,
        )

    def predict_num_iters_needed(self, i: IterationResults) -> int:
        """Estimate an iteration count that will run for at least min_time."""
        multiplier = self.min_time * 1.4 / max(i.seconds, 1e-9)
        ratio = i.seconds / self.min_time if self.min_time else math.inf
        if ratio <= 0.1:
            multiplier = min(10.0, multiplier)
        if multiplier <= 1.0:
            multiplier = 2.0
        max_next_iters = _lround(max(multiplier * i.iters, i.iters + 1.0))
        next_iters = min(max_next_iters, MAX_ITERATIONS)
        vlog(3, f"Next iters: {next_iters}, {multiplier}\n")
        return next_iters

    def should_report_iteration_results(self, i: IterationResults) -> bool:
        """Return True if a run was long enough, or failed, and so is final."""
        return (
            i.results.has_error
            or i.iters >= MAX_ITERATIONS
            or i.seconds >= self.min_time
            or (
                i.results.real_time_used >= 5 * self.min_time
                and not self.instance.use_manual_time
            )
        )

    def do_one_repetition(self) -> None:
        """Run one repetition, searching for the iteration count on the first."""
        if not self.has_repeats_remaining():
            raise RuntimeError("all repetitions have already been run")
        is_first_repetition = self.num_repetitions_done == 0
        while True:
            i = self.do_n_iterations()
            if (
                not is_first_repetition
                or self.has_explicit_iteration_count
                or self.should_report_iteration_results(i)
            ):
                break
            self.iters = self.predict_num_iters_needed(i)

        report = create_run_report(
            self.instance, i.results, i.seconds, self.num_repetitions_done, self.repeats
        )
        if self.reports_for_family is not None:
            self.reports_for_family.num_runs_done += 1
            if not report.error_occurred:
                self.reports_for_family.runs.append(report)
        self.run_results.non_aggregates.append(report)
        self.num_repetitions_done += 1

    def get_results(self) -> RunResults:
        """Return every report, with aggregates over the repetitions."""
        if self.has_repeats_remaining():
            raise RuntimeError("not every repetition has been run yet")
        self.run_results.aggregates_only = _compute_stats(self.run_results.non_aggregates)
        return self.run_results