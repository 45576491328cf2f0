"""Exception types raised by the update orchestrator."""


class UpdateError(Exception):
    """Base class for orchestrator errors."""


class PreconditionError(UpdateError):
    """A fatal startup requirement is not met; no section has run."""


class BaselineError(UpdateError):
    """A baseline snapshot file could not be read or parsed."""

    def __init__(self, path, reason: str):
        super().__init__(f"Invalid baseline {path}: {reason}")
        self.path = path
        self.reason = reason
