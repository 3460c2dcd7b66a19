from __future__ import annotations

import logging
import math
import sys
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterator, Sequence

import numpy as np
from joblib import Parallel, delayed

from chrono_probe.errors import InvalidAlphabetError, InvalidRangeError


logger = logging.getLogger(__name__)

LAWS = ("uniform", "exponential", "reciprocal")
SAMPLINGS = ("fixed", "random")
SPACINGS = ("linear", "log")
SYMBOL_METHODS = ("uniform_symbols", "periodic", "cyclic")
METHODS = SYMBOL_METHODS + ("integers",)

UINT32_BOUND = 2**32
# beyond this spread exp(y - x) overflows a double
_MAX_LOG_SPREAD = sys.float_info.max_exp * math.log(2.0)


# ------------------------------ Inverse CDFs ----------------------------------

def _uniform_inverse_cdf(u: float, lo: int, hi: int) -> float:
    return lo + (hi - lo) * u


def _reciprocal_inverse_cdf(u: float, lo: int, hi: int) -> float:
    return lo * (hi / lo) ** u


def _exponential_inverse_cdf(u: float, lo: int, hi: int) -> float:
    """
    Truncated exponential on [lo, hi] by inverse transform sampling.

    lambda = ln(hi / lo) / (hi - lo), so the mean matches the reciprocal law on
    the same range. With x = lambda*lo and y = lambda*hi:

        F^-1(u) = (y - ln((1 - u) e^(y - x) + u)) / lambda

    When e^(y - x) is not representable the asymptotic forms are used.
    """
    lam = math.log(hi / lo) / (hi - lo)
    x = lam * lo
    y = lam * hi
    if y - x < _MAX_LOG_SPREAD:
        z = y - math.log((1.0 - u) * math.exp(y - x) + u)
    elif y - x > math.log(1.0 / (1.0 - u)):
        z = x - math.log(1.0 - u)
    else:
        z = y - math.log(u)
    return z / lam


_INVERSE_CDFS = {
    "uniform": _uniform_inverse_cdf,
    "exponential": _exponential_inverse_cdf,
    "reciprocal": _reciprocal_inverse_cdf,
}


# ------------------------------- Distribution ---------------------------------

@dataclass(frozen=True)
class Distribution:
    """
    How algorithm inputs are generated: a size law on [min_size, max_size],
    a step-spacing policy and a generation method.

    Parameters
    ----------
    law : {"uniform", "exponential", "reciprocal"}
        Truncated probability law for input sizes. "uniform" spaces sizes
        linearly, "reciprocal" (log-uniform) spaces them logarithmically and
        "exponential" concentrates them towards min_size.
    min_size, max_size : int
        Inclusive size bounds, 0 <= min_size <= max_size. The exponential and
        reciprocal laws need min_size >= 1.
    method : {"uniform_symbols", "periodic", "cyclic", "integers"}
        How one input of a given size is materialized.
    alphabet : sequence of str
        Distinct one-character symbols. Required by the symbol methods,
        ignored by "integers".
    sampling : {"fixed", "random"}
        "fixed" evaluates the law at evenly spaced quantiles, "random" at
        sorted uniform draws from the seeded source.
    spacing : {None, "linear", "log"}
        Explicit step grid, independent of the law. "linear" spaces sizes
        evenly, "log" geometrically (min_size * r**i); both include the two
        bounds. None keeps the law's quantiles. Requires sampling="fixed".
    """

    law: str
    min_size: int
    max_size: int
    method: str = "uniform_symbols"
    alphabet: tuple[str, ...] = ("a", "b")
    sampling: str = "fixed"
    spacing: str | None = None

    def __post_init__(self) -> None:
        # ---- validation ----
        if self.law not in LAWS:
            raise ValueError(f"law must be one of {LAWS} (got {self.law!r}).")
        if self.sampling not in SAMPLINGS:
            raise ValueError(f"sampling must be one of {SAMPLINGS} (got {self.sampling!r}).")
        if self.spacing is not None:
            if self.spacing not in SPACINGS:
                raise ValueError(f"spacing must be None or one of {SPACINGS} (got {self.spacing!r}).")
            if self.sampling != "fixed":
                raise ValueError(f"spacing={self.spacing!r} needs sampling='fixed'.")
        if self.method not in METHODS:
            raise ValueError(f"method must be one of {METHODS} (got {self.method!r}).")

        for bound in (self.min_size, self.max_size):
            if isinstance(bound, bool) or not isinstance(bound, (int, np.integer)):
                raise InvalidRangeError(f"size bounds must be integers (got {bound!r}).")
        if self.min_size < 0:
            raise InvalidRangeError(f"min_size must be non-negative (got {self.min_size}).")
        if self.min_size > self.max_size:
            raise InvalidRangeError(
                f"min_size ({self.min_size}) is greater than max_size ({self.max_size})."
            )
        if self.law in ("exponential", "reciprocal") and self.min_size < 1:
            raise InvalidRangeError(f"law={self.law!r} needs min_size >= 1.")
        if self.spacing == "log" and self.min_size < 1:
            raise InvalidRangeError("spacing='log' needs min_size >= 1.")

        alphabet = tuple(self.alphabet) if self.alphabet is not None else ()
        object.__setattr__(self, "alphabet", alphabet)
        if self.method in SYMBOL_METHODS:
            if not alphabet:
                raise InvalidAlphabetError(f"method={self.method!r} needs a non-empty alphabet.")
            if any(not isinstance(s, str) or len(s) != 1 for s in alphabet):
                raise InvalidAlphabetError("alphabet symbols must be one-character strings.")
            if len(set(alphabet)) != len(alphabet):
                raise InvalidAlphabetError(f"alphabet contains repeated symbols: {alphabet!r}.")

    @property
    def label(self) -> str:
        spacing = f"{self.spacing} spacing" if self.spacing else f"{self.sampling} sampling"
        return f"{self.law.capitalize()} [{self.min_size}, {self.max_size}], {spacing}, {self.method}"

    def inverse_cdf(self, u: float) -> float:
        """Map u in [0, 1] to a (real-valued) size following the law."""
        if not 0.0 <= u <= 1.0:
            raise ValueError(f"u must be in [0, 1] (got {u}).")
        lo, hi = int(self.min_size), int(self.max_size)
        # endpoints are exact for every law
        if u == 0.0 or lo == hi:
            return float(lo)
        if u == 1.0:
            return float(hi)
        return _INVERSE_CDFS[self.law](u, lo, hi)

    def _grid_point(self, u: float) -> float:
        lo, hi = int(self.min_size), int(self.max_size)
        if u == 0.0 or lo == hi:
            return float(lo)
        if u == 1.0:
            return float(hi)
        if self.spacing == "log":
            return _reciprocal_inverse_cdf(u, lo, hi)
        return _uniform_inverse_cdf(u, lo, hi)

    def sizes(self, n_steps: int, rng: np.random.Generator | None = None) -> list[int]:
        """
        Non-decreasing input sizes, one per step, all within [min_size, max_size].

        With an explicit spacing the sizes lie on the linear or geometric grid
        between the bounds; otherwise they are quantiles of the law.
        """
        if not isinstance(n_steps, int) or n_steps < 1:
            raise ValueError("n_steps must be a positive integer.")

        if self.sampling == "fixed":
            u = np.linspace(0.0, 1.0, n_steps) if n_steps > 1 else np.zeros(1)
        else:
            rng = np.random.default_rng() if rng is None else rng
            u = np.sort(rng.random(n_steps))

        place = self.inverse_cdf if self.spacing is None else self._grid_point
        raw = np.floor([place(float(v)) for v in u])
        clipped = np.clip(raw, self.min_size, self.max_size).astype(np.int64)
        # guard against float round-off breaking the ordering
        return np.maximum.accumulate(clipped).tolist()

    def materialize(self, size: int, rng: np.random.Generator) -> Any:
        """Build one input of the given size with the configured method."""
        if size < 0:
            raise ValueError("size must be non-negative.")

        if self.method == "integers":
            return rng.integers(0, UINT32_BOUND, size=size, dtype=np.uint64).tolist()

        symbols = np.asarray(self.alphabet)
        k = symbols.size
        if self.method == "uniform_symbols":
            idx = rng.integers(0, k, size=size)
        elif self.method == "periodic":
            if size == 0:
                return ""
            period = int(rng.integers(1, size + 1))
            idx = np.resize(rng.integers(0, k, size=period), size)
        else:  # "cyclic"
            idx = np.arange(size) % k
        return "".join(symbols[idx].tolist())


# -------------------------------- Input series --------------------------------

@dataclass(frozen=True)
class InputStep:
    size: int
    instances: tuple

    def __len__(self) -> int:
        return len(self.instances)


@dataclass(frozen=True)
class InputSeries:
    """Generated inputs, one step per size, sizes non-decreasing."""

    distribution: Distribution
    steps: tuple[InputStep, ...]
    seed: int | None = None

    def __len__(self) -> int:
        return len(self.steps)

    def __iter__(self) -> Iterator[InputStep]:
        return iter(self.steps)

    def __getitem__(self, i: int) -> InputStep:
        return self.steps[i]

    @property
    def sizes(self) -> list[int]:
        return [step.size for step in self.steps]

    @property
    def repetitions(self) -> int:
        return len(self.steps[0]) if self.steps else 0

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready form: distribution fields, seed and every instance."""
        distribution = asdict(self.distribution)
        distribution["alphabet"] = list(distribution["alphabet"])
        return dict(
            distribution=distribution,
            seed=self.seed,
            steps=[dict(size=step.size, instances=list(step.instances)) for step in self.steps],
        )

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "InputSeries":
        distribution = dict(d["distribution"])
        distribution["alphabet"] = tuple(distribution.get("alphabet") or ())
        return cls(
            distribution=Distribution(**distribution),
            steps=tuple(InputStep(size=int(s["size"]), instances=tuple(s["instances"])) for s in d["steps"]),
            seed=d.get("seed"),
        )


def _build_step(
    distribution: Distribution,
    size: int,
    repetitions: int,
    seed_seq: np.random.SeedSequence,
) -> InputStep:
    rng = np.random.default_rng(seed_seq)
    return InputStep(
        size=int(size),
        instances=tuple(distribution.materialize(int(size), rng) for _ in range(repetitions)),
    )


def generate_inputs(
    distribution: Distribution,
    n_steps: int,
    *,
    repetitions: int = 1,
    seed: int | None = None,
    n_jobs: int = 1,
) -> InputSeries:
    """
    Generate an InputSeries covering [min_size, max_size].

    Determinism
    -----------
    The seed is split up front with numpy's SeedSequence: one child stream for
    the size draws and one per step for materialization. The same
    (distribution, n_steps, repetitions, seed) therefore yields an identical
    series whether steps are built sequentially or in parallel.

    Parameters
    ----------
    distribution : Distribution
    n_steps : int
        Number of size steps (n_steps >= 1).
    repetitions : int
        Independent instances generated per size step (>= 1).
    seed : int | None
        Seed of the random source; None draws fresh OS entropy.
    n_jobs : int
        joblib workers used to materialize steps (1 = sequential).

    Returns
    -------
    InputSeries
    """
    # ---- validation ----
    if not isinstance(n_steps, int) or n_steps < 1:
        raise ValueError("n_steps must be a positive integer.")
    if not isinstance(repetitions, int) or repetitions < 1:
        raise ValueError("repetitions must be a positive integer.")

    root = np.random.SeedSequence(seed)
    size_seq, *step_seqs = root.spawn(n_steps + 1)
    sizes = distribution.sizes(n_steps, rng=np.random.default_rng(size_seq))

    logger.debug("Generating %d steps x %d instances (%s)", n_steps, repetitions, distribution.label)

    if n_jobs == 1:
        steps = [
            _build_step(distribution, size, repetitions, ss)
            for size, ss in zip(sizes, step_seqs)
        ]
    else:
        steps = Parallel(n_jobs=n_jobs)(
            delayed(_build_step)(distribution, size, repetitions, ss)
            for size, ss in zip(sizes, step_seqs)
        )

    return InputSeries(distribution=distribution, steps=tuple(steps), seed=seed)


def distribution_from_config(cfg: dict) -> Distribution:
    """Build a Distribution from the matching keys of an experiment config."""
    alphabet: Sequence[str] | None = cfg.get("alphabet")
    return Distribution(
        law=cfg["law"],
        min_size=int(cfg["min_size"]),
        max_size=int(cfg["max_size"]),
        method=cfg.get("method", "uniform_symbols"),
        alphabet=tuple(alphabet) if alphabet is not None else (),
        sampling=cfg.get("sampling", "fixed"),
        spacing=cfg.get("spacing"),
    )
