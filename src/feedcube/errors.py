"""
Exception and warning types raised by the hybrid solver.
"""


class FeedcubeError(Exception):
    """Base class for all solver errors."""


class ConfigError(FeedcubeError, ValueError):
    """Invalid model or solver configuration."""

    def __init__(self, message="Invalid configuration."):
        super().__init__(message)


class NotSolvedError(FeedcubeError, RuntimeError):
    """A trajectory query was made before a successful solve."""

    def __init__(self, message="Solve the model first before querying results."):
        super().__init__(message)


class NoProgressError(FeedcubeError, RuntimeError):
    """Repeated zero-length integration segments."""

    def __init__(self, t: float, domain: int, count: int, message=None):
        self.t = t
        self.domain = domain
        self.count = count

        if message is None:
            message = (
                f"No progress at t={t:.12g}: {count} consecutive zero-length "
                f"segments in domain {domain}. The event table is "
                f"misclassifying the current state."
            )

        super().__init__(message)


class SolverError(FeedcubeError, RuntimeError):
    """The ODE integrator failed on a segment."""


class TransitionError(FeedcubeError, RuntimeError):
    """A jump or saltation matrix could not be constructed."""


class ConvergenceWarning(UserWarning):
    """An iterative search stopped before reaching its target precision."""
