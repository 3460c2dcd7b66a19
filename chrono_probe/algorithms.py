from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterable


@dataclass(frozen=True)
class AlgorithmUnderTest:
    """
    A named routine to be timed.

    The routine only computes; timing is done by the caller so that the
    routine cannot influence its own measurement. Its return value is
    discarded and its exceptions propagate unchanged.

    Parameters
    ----------
    name : str
        Name used in results and plots; unique within one experiment.
    function : callable
        Takes one generated input.
    mutates : bool
        The routine modifies its input in place (e.g. an in-place sort). The
        engine then passes a fresh copy to every call, prepared outside the
        timed block.
    """

    name: str
    function: Callable[[Any], Any]
    mutates: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            raise ValueError("algorithm name must be a non-empty string.")
        if not callable(self.function):
            raise TypeError(f"function for {self.name!r} is not callable.")

    def __call__(self, value: Any) -> Any:
        return self.function(value)


def adapt(
    function: Callable[[Any], Any] | AlgorithmUnderTest,
    name: str | None = None,
    mutates: bool = False,
) -> AlgorithmUnderTest:
    """Wrap any one-argument callable; the name defaults to its __name__."""
    if isinstance(function, AlgorithmUnderTest):
        return function
    if name is None:
        name = getattr(function, "__name__", None) or repr(function)
    return AlgorithmUnderTest(name=name, function=function, mutates=mutates)


def check_unique_names(algorithms: Iterable[AlgorithmUnderTest]) -> None:
    seen: set[str] = set()
    for algo in algorithms:
        if algo.name in seen:
            raise ValueError(f"duplicate algorithm name {algo.name!r}; names must be unique.")
        seen.add(algo.name)
