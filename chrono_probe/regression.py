from __future__ import annotations

import math
import warnings
from dataclasses import dataclass
from typing import Iterable, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy import stats

from chrono_probe.errors import InsufficientDataError
from chrono_probe.results import AlgorithmResult, MeasurementPoint, ResultSet


@dataclass(frozen=True)
class RegressionFit:
    """
    Least-squares line y = slope * x + intercept through log-log points.

    slope approximates the polynomial complexity exponent (about 1 for linear
    time, about 2 for quadratic); intercept is the log of the constant factor.
    """

    slope: float
    intercept: float
    r_squared: float = math.nan
    stderr: float = math.nan
    n_points: int = 0
    excluded: int = 0
    log_base: float | None = None

    def __iter__(self):
        # allows: slope, intercept = fit
        return iter((self.slope, self.intercept))

    def predict(self, size: float) -> float:
        """Predicted time (seconds) at a raw input size, for a log-log fit."""
        if self.log_base is None:
            return self.slope * size + self.intercept
        base = self.log_base
        return base ** (self.slope * math.log(size, base) + self.intercept)


def _log(value: float, base: float) -> float:
    return math.log(value) if base == math.e else math.log(value, base)


def log_scale(result: AlgorithmResult, base: float = math.e) -> AlgorithmResult:
    """
    Take the logarithm of size and time of every point.

    Failure markers and points with size <= 0 or time <= 0 are dropped; the
    number dropped is recorded in `excluded` of the returned result.
    """
    if base <= 0 or base == 1:
        raise ValueError(f"log base must be positive and != 1 (got {base}).")
    if result.log_base is not None:
        raise ValueError(f"{result.name!r} is already on a log scale (base {result.log_base}).")

    kept = []
    excluded = 0
    for e in result.entries:
        if e.failed or e.size <= 0 or e.time <= 0:
            excluded += 1
            continue
        kept.append(MeasurementPoint(
            size=_log(e.size, base), time=_log(e.time, base),
            repetitions=e.repetitions, precision=e.precision,
            batch=e.batch, capped=e.capped,
        ))
    return AlgorithmResult(name=result.name, entries=tuple(kept), log_base=base, excluded=excluded)


def exp_scale(result: AlgorithmResult) -> AlgorithmResult:
    """Inverse of log_scale: exponentiate both coordinates back."""
    if result.log_base is None:
        raise ValueError(f"{result.name!r} is not on a log scale.")
    base = result.log_base
    entries = tuple(
        MeasurementPoint(
            size=base ** p.size, time=base ** p.time,
            repetitions=p.repetitions, precision=p.precision,
            batch=p.batch, capped=p.capped,
        )
        for p in result.points
    )
    return AlgorithmResult(name=result.name, entries=entries)


PointsLike = Union[AlgorithmResult, Iterable[Tuple[float, float]], Iterable[MeasurementPoint]]


def _as_xy(points: PointsLike) -> tuple[np.ndarray, np.ndarray]:
    if isinstance(points, AlgorithmResult):
        pairs = [(p.size, p.time) for p in points.points]
    else:
        pairs = []
        for p in points:
            if isinstance(p, MeasurementPoint):
                pairs.append((p.size, p.time))
            elif getattr(p, "failed", False):
                continue
            else:
                x, y = p
                pairs.append((x, y))
    xy = np.asarray(pairs, dtype=np.float64).reshape(-1, 2)
    finite = np.all(np.isfinite(xy), axis=1)
    return xy[finite, 0], xy[finite, 1]


def linear_regression(points: PointsLike) -> RegressionFit:
    """
    Ordinary least squares of y on x (vertical residuals).

    Parameters
    ----------
    points : AlgorithmResult | iterable of (x, y) | iterable of MeasurementPoint
        Usually the output of log_scale. Failure markers and non-finite pairs
        are ignored.

    Returns
    -------
    RegressionFit

    Raises
    ------
    InsufficientDataError
        Fewer than two usable points, or all x identical.
    """
    x, y = _as_xy(points)
    name = points.name if isinstance(points, AlgorithmResult) else "series"
    if x.size < 2:
        raise InsufficientDataError(
            f"{name!r}: need at least two valid points for a regression (got {x.size})."
        )
    if np.ptp(x) == 0.0:
        raise InsufficientDataError(f"{name!r}: all sizes are identical; slope is undefined.")

    with warnings.catch_warnings():
        # two points give a perfect fit; scipy warns about the degenerate stderr
        warnings.simplefilter("ignore", RuntimeWarning)
        res = stats.linregress(x, y)

    r_squared = float(res.rvalue) ** 2 if np.isfinite(res.rvalue) else math.nan
    if isinstance(points, AlgorithmResult):
        excluded, base = points.excluded, points.log_base
    else:
        excluded, base = 0, None
    return RegressionFit(
        slope=float(res.slope),
        intercept=float(res.intercept),
        r_squared=r_squared,
        stderr=float(res.stderr),
        n_points=int(x.size),
        excluded=int(excluded),
        log_base=base,
    )


def fit_result_set(results: ResultSet, base: float = math.e) -> pd.DataFrame:
    """
    Log-log fit per algorithm. An algorithm without enough data gets NaN
    coefficients and the error message; the other rows are unaffected.
    """
    rows = []
    for name, result in results.items():
        scaled = log_scale(result, base=base)
        try:
            fit = linear_regression(scaled)
        except InsufficientDataError as e:
            rows.append(dict(
                name=name, slope=math.nan, intercept=math.nan, r_squared=math.nan,
                stderr=math.nan, n_points=len(scaled.points), excluded=scaled.excluded,
                error=str(e),
            ))
            continue
        rows.append(dict(
            name=name, slope=fit.slope, intercept=fit.intercept, r_squared=fit.r_squared,
            stderr=fit.stderr, n_points=fit.n_points, excluded=fit.excluded, error=None,
        ))
    columns = ["name", "slope", "intercept", "r_squared", "stderr", "n_points", "excluded", "error"]
    df = pd.DataFrame(rows, columns=columns)
    # keep None for fitted rows (a string dtype would turn it into NaN)
    df["error"] = pd.Series([r["error"] for r in rows], index=df.index, dtype=object)
    return df


def fit_points(sizes: Sequence[float], times: Sequence[float], base: float = math.e) -> RegressionFit:
    """Log-log fit straight from raw (size, time) columns, e.g. read from CSV."""
    entries = tuple(
        MeasurementPoint(size=float(s), time=float(t))
        for s, t in sorted(zip(sizes, times))
    )
    return linear_regression(log_scale(AlgorithmResult(name="series", entries=entries), base=base))
