from __future__ import annotations

import copy
import math
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

import pandas as pd


# ------------------------------- Entries --------------------------------------

@dataclass(frozen=True)
class MeasurementPoint:
    """
    One aggregated timing observation.

    size : input size (a log-size after log_scale)
    time : mean seconds per call (a log-time after log_scale)
    repetitions : timed samples taken
    precision : achieved relative spread of the mean
    batch : calls per timed sample
    capped : the repetition cap was hit before the precision target
    """

    size: float
    time: float
    repetitions: int = 1
    precision: float = 0.0
    batch: int = 1
    capped: bool = False

    failed = False


@dataclass(frozen=True)
class MeasurementFailure:
    """Marker left in place of a point whose measurement failed."""

    size: float
    error_type: str
    message: str = ""

    failed = True

    @classmethod
    def from_exception(cls, size: float, exc: BaseException) -> "MeasurementFailure":
        return cls(size=size, error_type=type(exc).__name__, message=str(exc))


Entry = Union[MeasurementPoint, MeasurementFailure]


def _entry_to_dict(entry: Entry) -> Dict[str, Any]:
    out = asdict(entry)
    out["failed"] = entry.failed
    return out


def _entry_from_dict(d: Dict[str, Any]) -> Entry:
    d = dict(d)
    if d.pop("failed", False):
        return MeasurementFailure(size=d["size"], error_type=d["error_type"], message=d.get("message", ""))
    return MeasurementPoint(**d)


# ------------------------------ AlgorithmResult -------------------------------

@dataclass(frozen=True)
class AlgorithmResult:
    """
    Timing series of one algorithm: points (and failure markers) ordered by
    increasing input size.

    log_base is None for raw timings and the logarithm base after log_scale;
    excluded counts the entries log_scale had to drop.
    """

    name: str
    entries: tuple = ()
    log_base: Optional[float] = None
    excluded: int = 0

    def __post_init__(self) -> None:
        entries = tuple(self.entries)
        object.__setattr__(self, "entries", entries)
        sizes = [e.size for e in entries]
        if any(b < a for a, b in zip(sizes, sizes[1:])):
            raise ValueError(f"entries of {self.name!r} must be ordered by increasing size.")

    def __iter__(self) -> Iterator[Entry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def points(self) -> List[MeasurementPoint]:
        return [e for e in self.entries if not e.failed]

    @property
    def failures(self) -> List[MeasurementFailure]:
        return [e for e in self.entries if e.failed]

    @property
    def sizes(self) -> List[float]:
        return [p.size for p in self.points]

    @property
    def times(self) -> List[float]:
        return [p.time for p in self.points]

    def by_size(self, size: float) -> List[Entry]:
        return [e for e in self.entries if e.size == size]

    def _require_points(self) -> List[MeasurementPoint]:
        points = self.points
        if not points:
            raise ValueError(f"{self.name!r} has no successful measurements.")
        return points

    def max_time(self) -> float:
        return max(p.time for p in self._require_points())

    def min_time(self) -> float:
        return min(p.time for p in self._require_points())

    def max_size(self) -> float:
        return max(p.size for p in self._require_points())

    def min_size(self) -> float:
        return min(p.size for p in self._require_points())

    def log_scale(self, base: float = math.e) -> "AlgorithmResult":
        from chrono_probe.regression import log_scale
        return log_scale(self, base=base)

    def linear_regression(self):
        from chrono_probe.regression import linear_regression
        return linear_regression(self)

    def clone(self) -> "AlgorithmResult":
        return copy.deepcopy(self)

    def to_frame(self) -> pd.DataFrame:
        rows = []
        for e in self.entries:
            row = dict(algorithm=self.name, size=e.size, failed=e.failed)
            if e.failed:
                row.update(time=math.nan, error_type=e.error_type, message=e.message)
            else:
                row.update(
                    time=e.time, repetitions=e.repetitions, precision=e.precision,
                    batch=e.batch, capped=e.capped,
                )
            rows.append(row)
        columns = ["algorithm", "size", "time", "repetitions", "precision",
                   "batch", "capped", "failed", "error_type", "message"]
        return pd.DataFrame(rows, columns=columns)

    def to_dict(self) -> Dict[str, Any]:
        return dict(
            name=self.name,
            log_base=self.log_base,
            excluded=self.excluded,
            entries=[_entry_to_dict(e) for e in self.entries],
        )

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "AlgorithmResult":
        return cls(
            name=d["name"],
            entries=tuple(_entry_from_dict(e) for e in d.get("entries", [])),
            log_base=d.get("log_base"),
            excluded=int(d.get("excluded", 0)),
        )


# -------------------------------- ResultSet -----------------------------------

class ResultSet(Mapping):
    """
    Read-only mapping algorithm name -> AlgorithmResult, in measurement order,
    plus the settings the timings were taken with.
    """

    def __init__(
        self,
        results: Iterable[AlgorithmResult] = (),
        *,
        target_precision: float | None = None,
        resolution: float | None = None,
        confidence: float | None = None,
    ) -> None:
        self._results: Dict[str, AlgorithmResult] = {}
        for result in results:
            if result.name in self._results:
                raise ValueError(f"duplicate algorithm name {result.name!r} in ResultSet.")
            self._results[result.name] = result
        self.target_precision = target_precision
        self.resolution = resolution
        self.confidence = confidence

    def __getitem__(self, name: str) -> AlgorithmResult:
        return self._results[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._results)

    def __len__(self) -> int:
        return len(self._results)

    def __repr__(self) -> str:
        inner = ", ".join(f"{name!r}: {len(r)} entries" for name, r in self._results.items())
        return f"ResultSet({{{inner}}}, target_precision={self.target_precision})"

    @property
    def names(self) -> List[str]:
        return list(self._results)

    def _with_points(self) -> List[AlgorithmResult]:
        results = [r for r in self._results.values() if r.points]
        if not results:
            raise ValueError("ResultSet has no successful measurements.")
        return results

    def max_time(self) -> float:
        return max(r.max_time() for r in self._with_points())

    def min_time(self) -> float:
        return min(r.min_time() for r in self._with_points())

    def max_size(self) -> float:
        return max(r.max_size() for r in self._with_points())

    def min_size(self) -> float:
        return min(r.min_size() for r in self._with_points())

    def log_scale(self, base: float = math.e) -> "ResultSet":
        return ResultSet(
            (r.log_scale(base) for r in self._results.values()),
            target_precision=self.target_precision,
            resolution=self.resolution,
            confidence=self.confidence,
        )

    def clone(self) -> "ResultSet":
        return copy.deepcopy(self)

    def to_frame(self) -> pd.DataFrame:
        """Long format: one row per (algorithm, entry), failures included."""
        frames = [r.to_frame() for r in self._results.values()]
        if not frames:
            return AlgorithmResult(name="").to_frame()
        return pd.concat(frames, ignore_index=True)

    def to_dict(self) -> Dict[str, Any]:
        return dict(
            target_precision=self.target_precision,
            resolution=self.resolution,
            confidence=self.confidence,
            measurements=[r.to_dict() for r in self._results.values()],
        )

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ResultSet":
        return cls(
            (AlgorithmResult.from_dict(m) for m in d.get("measurements", [])),
            target_precision=d.get("target_precision"),
            resolution=d.get("resolution"),
            confidence=d.get("confidence"),
        )
