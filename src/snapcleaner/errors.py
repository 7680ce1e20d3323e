"""Exception types for SnapCleaner."""


class SnapCleanerError(Exception):
    """Base class for all SnapCleaner errors."""


class ConfigurationError(SnapCleanerError):
    """Invalid retention policy or configuration value."""


class ConnectionFailure(SnapCleanerError):
    """The snapshot platform could not be reached before the run started."""


class EnumerationFailure(SnapCleanerError):
    """Snapshots could not be listed for a scope."""

    def __init__(self, scope: str, message: str):
        self.scope = scope
        self.message = message
        super().__init__(f"{scope}: {message}")


class DeletionFailure(SnapCleanerError):
    """A single snapshot deletion was rejected by the platform."""

    def __init__(self, snapshot_id: str, message: str):
        self.snapshot_id = snapshot_id
        self.message = message
        super().__init__(message)
