class TrackerError(Exception):
    """Base class for every error the data layer raises on purpose."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(TrackerError):
    """Malformed or missing input. Raised before anything is written."""


class NotFoundError(TrackerError):
    """A referenced record (usually the owning application) does not exist."""


class StorageError(TrackerError):
    """Disk, schema or migration failure underneath the store."""
