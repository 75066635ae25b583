"""Error types shared by the food cache, sync and scoring services."""

from enum import StrEnum


class ErrorCode(StrEnum):
    """Machine-readable failure categories."""

    NOT_FOUND = "NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_INITIALIZED = "NOT_INITIALIZED"
    CACHE_ERROR = "CACHE_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    RATE_LIMITED = "RATE_LIMITED"
    PARSING_ERROR = "PARSING_ERROR"


class Tier(StrEnum):
    """Storage tiers a food lookup can travel through."""

    LOCAL = "local"
    CLOUD = "cloud"
    EXTERNAL = "external"


class FoodServiceError(Exception):
    """Base error carrying a code and diagnostic details."""

    code = ErrorCode.CACHE_ERROR

    def __init__(self, message: str, **details: object) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class NotFoundError(FoodServiceError):
    """Raised when a key is absent from every tier."""

    code = ErrorCode.NOT_FOUND

    def __init__(self, key: str, kind: str = "Product") -> None:
        super().__init__(f"{kind} not found: {key}", key=key)
        self.key = key


class ValidationError(FoodServiceError):
    """Raised for input rejected before any I/O happens."""

    code = ErrorCode.VALIDATION_ERROR


class NotInitializedError(FoodServiceError):
    """Raised when a cache or service is used before initialize()."""

    code = ErrorCode.NOT_INITIALIZED


class CacheError(FoodServiceError):
    """Storage failure inside the local or cloud tier."""

    code = ErrorCode.CACHE_ERROR

    def __init__(
        self, message: str, *, tier: Tier, operation: str, **details: object
    ) -> None:
        super().__init__(message, tier=tier, operation=operation, **details)
        self.tier = tier
        self.operation = operation


class ExternalSourceError(FoodServiceError):
    """Network or protocol failure talking to the third-party product database."""

    code = ErrorCode.NETWORK_ERROR


class RateLimitedError(ExternalSourceError):
    """The third-party product database refused the request for rate reasons."""

    code = ErrorCode.RATE_LIMITED


class TierError(FoodServiceError):
    """A tier failed with something other than not-found during orchestration."""

    def __init__(
        self, tier: Tier, operation: str, subject: str, cause: Exception
    ) -> None:
        super().__init__(
            f"{operation} failed in {tier} tier for {subject!r}: {cause}",
            tier=tier,
            operation=operation,
            subject=subject,
        )
        self.tier = tier
        self.operation = operation
        self.subject = subject
        self.code = getattr(cause, "code", ErrorCode.CACHE_ERROR)
