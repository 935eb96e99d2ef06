"""Custom exceptions for Deploy Runtime."""

from typing import Optional


class DeployRuntimeError(Exception):
    """Base exception for all runtime errors."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class ValidationError(DeployRuntimeError):
    """Malformed mount path or missing parameter. No state was mutated."""
    pass


class PathInUseError(DeployRuntimeError):
    """An artifact is already deployed (or being deployed) at the mount path."""
    pass


class DuplicatePathError(PathInUseError):
    """Registry insert for a mount path that already has an entry."""
    pass


class NotFoundError(DeployRuntimeError):
    """Nothing is deployed at the mount path."""
    pass


class ContextNotFoundError(NotFoundError):
    """Registry removal for a mount path with no entry."""
    pass


class UnderlyingActionFailedError(DeployRuntimeError):
    """The install/uninstall mechanism itself errored."""
    pass


class TransferFailedError(UnderlyingActionFailedError):
    """I/O error while streaming artifact bytes. Partial data may remain on disk."""

    def __init__(self, message: str, location: Optional[str] = None, code: Optional[str] = None):
        super().__init__(message, code)
        self.location = location


class ActivationFailedError(DeployRuntimeError):
    """The artifact was placed but could not be started."""
    pass


class DeploymentTimedOutError(DeployRuntimeError):
    """The monitor did not observe the expected state within its timeout."""
    pass


class MonitorError(DeployRuntimeError):
    """Monitor-related errors."""
    pass


class MonitorStateError(MonitorError):
    """Operation not allowed in the monitor's current lifecycle state."""
    pass


class MonitorNotificationError(MonitorError):
    """One or more listeners raised while being notified."""

    def __init__(self, message: str, errors: Optional[list] = None):
        super().__init__(message)
        self.errors = errors or []


class ConfigurationError(DeployRuntimeError):
    """Configuration error."""
    pass
