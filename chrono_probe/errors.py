class ChronoProbeError(Exception):
    """Base class for every error raised by chrono_probe."""


class InvalidRangeError(ChronoProbeError, ValueError):
    """Size bounds of a Distribution are unusable (e.g. min_size > max_size)."""


class InvalidAlphabetError(ChronoProbeError, ValueError):
    """The generation method needs symbols but the alphabet is empty or malformed."""


class InsufficientDataError(ChronoProbeError, ValueError):
    """Fewer than two usable points are left for a regression."""


class ClockResolutionError(ChronoProbeError, RuntimeError):
    """A timed block stayed below the clock resolution even at the largest batch."""
