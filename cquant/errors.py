class QuantizationError(Exception):
    """Base class for errors raised by the cquant package."""


class InvalidArgumentError(QuantizationError, ValueError):
    """Raised when a core operation is called with unusable arguments (empty grid, num_colors < 1, ...)."""


class MalformedGridError(QuantizationError, ValueError):
    """Raised when pixel data cannot form a valid ColorGrid (ragged rows, bad channel values)."""
