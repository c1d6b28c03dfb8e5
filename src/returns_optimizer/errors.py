"""Error hierarchy for the Return Optimization Engine.

Missing inventory or an unknown identifier is not an error: the engine
returns an empty or zero-valued result for those.
"""


class OptimizerError(Exception):
    """Base error for all optimizer failures.

    Attributes:
        status_code: HTTP-equivalent status for the calling layer.
    """

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(OptimizerError):
    """Backing store unavailable or settings invalid. Never retried."""

    status_code = 500


class ValidationError(OptimizerError, ValueError):
    """Request rejected before any computation (bad identifier, quantity)."""

    status_code = 400
