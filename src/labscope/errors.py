class LabscopeError(Exception):
    """Base class for all labscope errors."""


class InsufficientDataError(LabscopeError, ValueError):
    """Reference matrix is too small or degenerate to fit a model."""


class DimensionMismatchError(LabscopeError, ValueError):
    """Query columns do not match the columns the model was fitted on."""


class InvalidParameterError(LabscopeError, ValueError):
    """A configuration value is outside its valid range."""
