from __future__ import annotations

import copy
import dataclasses
import gc
import logging
import math
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, Sequence

from joblib import Parallel, cpu_count, delayed
from scipy.stats import t as student_t
from tqdm import tqdm

from chrono_probe.algorithms import AlgorithmUnderTest, adapt, check_unique_names
from chrono_probe.distributions import InputSeries, InputStep
from chrono_probe.errors import ClockResolutionError
from chrono_probe.results import AlgorithmResult, MeasurementFailure, MeasurementPoint, ResultSet


logger = logging.getLogger(__name__)

Clock = Callable[[], float]


# ---------------------------------- Clock -------------------------------------

def _resolution_once(clock: Clock, max_reads: int) -> float:
    start = clock()
    for _ in range(max_reads):
        elapsed = clock() - start
        if elapsed > 0:
            return elapsed
    raise ClockResolutionError(f"clock did not advance within {max_reads} reads.")


def estimate_resolution(clock: Clock = time.perf_counter, trials: int = 100, max_reads: int = 10**6) -> float:
    """
    Average smallest non-zero increment observed on a monotonic clock.

    Raises ClockResolutionError when the clock stays still for `max_reads`
    consecutive reads.
    """
    if trials < 1 or max_reads < 1:
        raise ValueError("trials and max_reads must be positive.")
    return sum(_resolution_once(clock, max_reads) for _ in range(trials)) / trials


@contextmanager
def _gc_paused(enabled: bool):
    if enabled:
        gc.collect()
        gc.disable()
    try:
        yield
    finally:
        if enabled:
            gc.enable()


# ------------------------------ Configuration ---------------------------------

@dataclass(frozen=True)
class MeasurementConfig:
    """
    Settings of the repeat-until-precise timing loop.

    target_precision : stop once the relative standard error of the mean time
        per call (or, with `confidence`, the relative half-width of the
        Student-t interval) is at or below this value.
    warmup_runs : untimed calls before calibration.
    min_samples : timed samples required before convergence is checked (>= 2).
    max_samples : repetition cap; the point is emitted flagged as capped.
    max_batch : largest number of calls grouped into one timed sample.
    resolution : clock resolution in seconds; estimated when None.
    disable_gc : collect garbage then pause the collector around timed blocks.
    clock : monotonic clock returning seconds.
    """

    target_precision: float = 0.001
    warmup_runs: int = 2
    min_samples: int = 5
    max_samples: int = 1000
    max_batch: int = 2**24
    confidence: Optional[float] = None
    resolution: Optional[float] = None
    disable_gc: bool = True
    clock: Clock = field(default=time.perf_counter, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not (self.target_precision > 0 and math.isfinite(self.target_precision)):
            raise ValueError(f"target_precision must be a positive number (got {self.target_precision}).")
        if self.warmup_runs < 0:
            raise ValueError("warmup_runs must be non-negative.")
        if self.min_samples < 2:
            raise ValueError("min_samples must be at least 2 (a spread needs two samples).")
        if self.max_samples < self.min_samples:
            raise ValueError(f"max_samples ({self.max_samples}) must be >= min_samples ({self.min_samples}).")
        if self.max_batch < 1:
            raise ValueError("max_batch must be positive.")
        if self.confidence is not None and not (0 < self.confidence < 1):
            raise ValueError("confidence must be in (0, 1).")
        if self.resolution is not None and self.resolution < 0:
            raise ValueError("resolution must be non-negative.")

    def min_block_time(self, resolution: float) -> float:
        """Shortest timed block whose clock quantization error is below target."""
        return resolution * (1.0 / self.target_precision + 1.0)


# ------------------------------- State machine --------------------------------

class SamplerState(Enum):
    WARMING_UP = "warming_up"
    CALIBRATING = "calibrating"
    SAMPLING = "sampling"
    CONVERGED = "converged"
    CAPPED_OUT = "capped_out"


class AdaptiveSampler:
    """
    Repeat-until-precise loop for one (algorithm, input) pair, without timing.

    WARMING_UP -> CALIBRATING -> SAMPLING -> CONVERGED | CAPPED_OUT

    The caller runs the algorithm and feeds back what happened: record_warmup()
    after an untimed call, record_block(elapsed) after `batch` timed calls.
    During calibration the batch doubles until one block lasts longer than
    min_block_time; that block is the first sample. While sampling, a
    non-positive block doubles the batch and is discarded. Growing past
    max_batch raises ClockResolutionError.
    """

    def __init__(
        self,
        target_precision: float,
        *,
        warmup_runs: int = 2,
        min_samples: int = 5,
        max_samples: int = 1000,
        min_block_time: float = 0.0,
        max_batch: int = 2**24,
        confidence: Optional[float] = None,
    ) -> None:
        self.target_precision = float(target_precision)
        self.min_samples = int(min_samples)
        self.max_samples = int(max_samples)
        self.min_block_time = float(min_block_time)
        self.max_batch = int(max_batch)
        self.confidence = confidence

        self.state = SamplerState.WARMING_UP if warmup_runs > 0 else SamplerState.CALIBRATING
        self.batch = 1
        self.n = 0
        self.mean = 0.0
        self._m2 = 0.0
        self._warmups_left = int(warmup_runs)
        self.history: List[float] = []

    @classmethod
    def from_config(cls, config: MeasurementConfig, resolution: float) -> "AdaptiveSampler":
        return cls(
            config.target_precision,
            warmup_runs=config.warmup_runs,
            min_samples=config.min_samples,
            max_samples=config.max_samples,
            min_block_time=config.min_block_time(resolution),
            max_batch=config.max_batch,
            confidence=config.confidence,
        )

    @property
    def done(self) -> bool:
        return self.state in (SamplerState.CONVERGED, SamplerState.CAPPED_OUT)

    @property
    def variance(self) -> float:
        return self._m2 / (self.n - 1) if self.n > 1 else math.nan

    @property
    def precision(self) -> float:
        if self.n < 2 or self.mean <= 0:
            return math.inf
        spread = math.sqrt(self.variance / self.n) / self.mean
        if self.confidence is not None:
            spread *= float(student_t.ppf(0.5 * (1.0 + self.confidence), self.n - 1))
        return spread

    def record_warmup(self) -> None:
        if self.state is not SamplerState.WARMING_UP:
            raise RuntimeError(f"warm-up call recorded in state {self.state.name}.")
        self._warmups_left -= 1
        if self._warmups_left <= 0:
            self.state = SamplerState.CALIBRATING

    def record_block(self, elapsed: float) -> None:
        if self.state is SamplerState.CALIBRATING:
            if elapsed <= self.min_block_time:
                self._grow_batch(elapsed)
                return
            self.state = SamplerState.SAMPLING
        elif self.state is SamplerState.SAMPLING:
            if elapsed <= 0:
                self._grow_batch(elapsed)
                return
        else:
            raise RuntimeError(f"timed block recorded in state {self.state.name}.")

        self._add(elapsed / self.batch)
        self._advance()

    def _grow_batch(self, elapsed: float) -> None:
        if self.batch * 2 > self.max_batch:
            raise ClockResolutionError(
                f"block of {self.batch} calls took {elapsed:.3g}s, not above the "
                f"measurable minimum {self.min_block_time:.3g}s, and max_batch={self.max_batch} is reached."
            )
        self.batch *= 2

    def _add(self, x: float) -> None:
        # Welford running mean / variance
        self.n += 1
        delta = x - self.mean
        self.mean += delta / self.n
        self._m2 += delta * (x - self.mean)

    def _advance(self) -> None:
        precision = self.precision
        self.history.append(precision)
        if self.n >= self.min_samples and precision <= self.target_precision:
            self.state = SamplerState.CONVERGED
        elif self.n >= self.max_samples:
            self.state = SamplerState.CAPPED_OUT


# -------------------------------- Engine --------------------------------------

def _timed_block(algorithm: AlgorithmUnderTest, value: Any, batch: int, clock: Clock, disable_gc: bool) -> float:
    fn = algorithm.function
    # copies for in-place algorithms are made before the clock starts
    copies = [copy.deepcopy(value) for _ in range(batch)] if algorithm.mutates else None
    with _gc_paused(disable_gc):
        if copies is None:
            start = clock()
            for _ in range(batch):
                fn(value)
            end = clock()
        else:
            start = clock()
            for arg in copies:
                fn(arg)
            end = clock()
    return end - start


def measure_point(
    algorithm: AlgorithmUnderTest,
    step: InputStep,
    config: MeasurementConfig,
    resolution: float,
) -> MeasurementPoint | MeasurementFailure:
    """
    Time one algorithm on one input step.

    Instances of the step are used in rotation, one per warm-up call or timed
    block. Any exception raised by the algorithm (or a clock too coarse for
    the call) yields a MeasurementFailure instead of a point.
    """
    instances = step.instances
    if not instances:
        raise ValueError(f"input step of size {step.size} has no instances.")

    sampler = AdaptiveSampler.from_config(config, resolution)
    block = 0
    try:
        while not sampler.done:
            value = instances[block % len(instances)]
            if sampler.state is SamplerState.WARMING_UP:
                algorithm(copy.deepcopy(value) if algorithm.mutates else value)
                sampler.record_warmup()
            else:
                elapsed = _timed_block(algorithm, value, sampler.batch, config.clock, config.disable_gc)
                sampler.record_block(elapsed)
            block += 1
    except Exception as exc:
        logger.warning(
            "%s failed at size %s (%s: %s); recording failure and continuing",
            algorithm.name, step.size, type(exc).__name__, exc,
        )
        return MeasurementFailure.from_exception(step.size, exc)

    capped = sampler.state is SamplerState.CAPPED_OUT
    if capped:
        logger.info(
            "%s at size %s capped at %d samples with precision %.3g (target %.3g)",
            algorithm.name, step.size, sampler.n, sampler.precision, config.target_precision,
        )
    return MeasurementPoint(
        size=step.size,
        time=sampler.mean,
        repetitions=sampler.n,
        precision=sampler.precision,
        batch=sampler.batch,
        capped=capped,
    )


def measure(
    inputs: InputSeries | Sequence[InputStep],
    algorithms: Iterable[AlgorithmUnderTest | Callable[[Any], Any]],
    target_precision: float | None = None,
    *,
    config: MeasurementConfig | None = None,
    n_jobs: int = 1,
    backend: str = "loky",
    verbose: bool = False,
) -> ResultSet:
    """
    Time every algorithm on every input step.

    Parameters
    ----------
    inputs : InputSeries
        Steps ordered by non-decreasing size; read only.
    algorithms : iterable of AlgorithmUnderTest or plain callables
        Names must be unique.
    target_precision : float | None
        Relative precision target; overrides config.target_precision.
    config : MeasurementConfig | None
        Loop settings; defaults to MeasurementConfig(target_precision).
    n_jobs : int
        1 = sequential. Otherwise every (algorithm, step) pair is an
        independent joblib task (-1 = all cores). Concurrent timing shares
        CPU caches and cores, so sequential runs are the reference.
    backend : str
        joblib backend for n_jobs != 1 ("loky" needs picklable algorithms;
        "threading" does not).
    verbose : bool
        Show tqdm progress bars.

    Returns
    -------
    ResultSet
        One AlgorithmResult per algorithm, entries in input order, failures
        kept as MeasurementFailure markers.
    """
    # ---- configuration (fail fast) ----
    if config is None:
        config = MeasurementConfig(target_precision=0.001 if target_precision is None else target_precision)
    elif target_precision is not None and target_precision != config.target_precision:
        config = dataclasses.replace(config, target_precision=target_precision)

    algos = [adapt(a) for a in algorithms]
    if not algos:
        raise ValueError("at least one algorithm is required.")
    check_unique_names(algos)
    steps = list(inputs)
    if not steps:
        raise ValueError("inputs contain no steps.")

    resolution = config.resolution if config.resolution is not None else estimate_resolution(config.clock)
    logger.info(
        "Clock resolution %.3g s; minimum timed block %.3g s for target precision %g",
        resolution, config.min_block_time(resolution), config.target_precision,
    )

    pairs = [(a, s) for a in range(len(algos)) for s in range(len(steps))]

    if n_jobs == 1:
        entries = []
        for a, algo in enumerate(algos):
            logger.info("Processing %s (%d/%d)", algo.name, a + 1, len(algos))
            iterator = tqdm(steps, desc=algo.name) if verbose else steps
            entries.extend(measure_point(algo, step, config, resolution) for step in iterator)
    else:
        if n_jobs == -1:
            n_jobs = cpu_count()
        logger.info("Measuring %d pairs with %d workers (backend=%s)", len(pairs), n_jobs, backend)
        iterator = tqdm(pairs, desc="Measure") if verbose else pairs
        entries = Parallel(n_jobs=n_jobs, backend=backend)(
            delayed(measure_point)(algos[a], steps[s], config, resolution) for a, s in iterator
        )

    by_algo = {algo.name: [] for algo in algos}
    for (a, _), entry in zip(pairs, entries):
        by_algo[algos[a].name].append(entry)

    n_failed = sum(e.failed for e in entries)
    if n_failed:
        logger.warning("%d of %d measurements failed", n_failed, len(entries))

    return ResultSet(
        (AlgorithmResult(name=name, entries=tuple(es)) for name, es in by_algo.items()),
        target_precision=config.target_precision,
        resolution=resolution,
        confidence=config.confidence,
    )
