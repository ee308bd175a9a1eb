from __future__ import annotations

"""Typed errors raised by the completion, embedding and database clients."""

SUBSYSTEM_COMPLETION = "completion"
SUBSYSTEM_EMBEDDING = "embedding"
SUBSYSTEM_DATABASE = "database"


class ServiceError(RuntimeError):
    """Base error tagged with the failing subsystem and an error kind."""
    kind = "service_error"

    def __init__(self, subsystem: str, message: str) -> None:
        super().__init__(message)
        self.subsystem = subsystem


class ConfigMissingError(ServiceError):
    """Raised when a credential or connection string is not configured."""
    kind = "config_missing"


class UpstreamFailureError(ServiceError):
    """Raised when an external service call fails or returns garbage."""
    kind = "upstream_failure"
