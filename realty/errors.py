"""Exception hierarchy for the listing backend.

Exception Hierarchy:
    RealtyError (base)
    ├── CacheError - Cache layer failures that are surfaced to callers
    │   ├── CacheNotInitializedError - Client used before connect()
    │   └── CacheConnectionError - Redis unreachable at startup
    ├── NotFoundError - Requested document does not exist
    ├── ConflictError - Document already exists
    └── InvalidRequestError - Request rejected before touching the store

Steady-state cache failures (timeouts, lost connections, corrupt values)
are never raised; they are logged and collapsed to a miss or no-op.
"""

from typing import Any


class RealtyError(Exception):
    """Base exception for all listing backend errors.

    Attributes:
        message: Human-readable error message.
        details: Additional error details.
    """

    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/API responses."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class CacheError(RealtyError):
    """Cache layer error that must reach the caller."""


class CacheNotInitializedError(CacheError):
    """The key-value client was used before a successful connect()."""

    def __init__(self, message: str = "Redis client not initialized") -> None:
        super().__init__(message)


class CacheConnectionError(CacheError):
    """Redis could not be reached while connecting.

    Attributes:
        url: Connection URL with credentials stripped.
        attempts: Number of connection attempts made.
    """

    def __init__(self, message: str, *, url: str, attempts: int) -> None:
        super().__init__(message, details={"url": url, "attempts": attempts})
        self.url = url
        self.attempts = attempts


class NotFoundError(RealtyError):
    """Requested document does not exist.

    Attributes:
        resource: Resource type, e.g. "property".
        resource_id: Identifier that was looked up.
    """

    status_code = 404

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        super().__init__(
            f"{resource.capitalize()} not found",
            details={"resource": resource, "resource_id": resource_id},
        )
        self.resource = resource
        self.resource_id = resource_id


class ConflictError(RealtyError):
    """Document already exists."""

    status_code = 409


class InvalidRequestError(RealtyError):
    """Request rejected before it reached the store."""

    status_code = 400
