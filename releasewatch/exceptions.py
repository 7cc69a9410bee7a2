"""
Exceptions
Error taxonomy for the engine.

Only caller-facing misuse is raised out of the public API
(NotFoundError, ConfigurationError). Action failures are
raised inside actions and captured into FireEvents by the engine.
"""


class ReleaseWatchError(Exception):
    """Base exception for all releasewatch errors."""
    pass


# =============================================================================
# Caller-facing
# =============================================================================

class NotFoundError(ReleaseWatchError):
    """Unknown deployment id or rule name."""

    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: {key}")


class ConfigurationError(ReleaseWatchError):
    """Invalid trigger rule or action configuration."""
    pass


# =============================================================================
# Action failures (captured, never propagated by the engine)
# =============================================================================

class ActionFailure(ReleaseWatchError):
    """An action or collaborator call failed."""
    pass


class ActionTimeout(ActionFailure):
    """An action did not finish within its time budget."""

    def __init__(self, seconds: float):
        self.seconds = seconds
        super().__init__("timeout")
