"""
Exceptions and warnings raised by the covariance engine.
"""


class InvalidInputError(ValueError):
    """Raised when the input matrix or a parameter has an invalid shape or value."""


class InsufficientDataWarning(UserWarning):
    """Issued when covariance cells are missing because a feature pair has
    fewer than two paired observations."""


class WorkerFailureError(RuntimeError):
    """Raised when computing the statistics of a partition fails."""
