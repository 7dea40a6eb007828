"""
Custom error classes for Studio Ops Hub.
Structured error handling with error codes across all modules.

Hierarchy:
    HubError
    ├── NotConfiguredError        table / board / mapping not set up yet
    ├── UnauthorizedError         caller lacks the role for a mutation
    ├── IntegrityViolationError   would orphan or duplicate data
    ├── ValidationError           bad input (hours <= 0, unknown field)
    ├── NotFoundError
    └── APIError                  upstream fetch failure
        ├── MondayAPIError
        ├── XeroAPIError
        └── CircuitOpenError

Every error carries a stable ``code`` that the operation boundary copies into
the typed result and the HTTP layer maps onto a status code.
"""


class HubError(Exception):
    """Base exception for all Studio Ops Hub errors."""

    def __init__(self, message: str, code: str = "UNKNOWN", details: dict = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(f"[{code}] {message}")


class NotConfiguredError(HubError):
    """A table, board or mapping has not been set up yet."""

    def __init__(self, message: str, migration: str = None, feature: str = None):
        if migration:
            message = f"{message}. Please run migration {migration}"
        super().__init__(
            message, code="NOT_CONFIGURED",
            details={"migration": migration, "feature": feature},
        )


class UnauthorizedError(HubError):
    """Caller lacks the required role."""

    def __init__(self, message: str = "Admin access required", required_role: str = "admin"):
        super().__init__(
            message, code="UNAUTHORIZED", details={"required_role": required_role},
        )


class IntegrityViolationError(HubError):
    """Operation would orphan recorded hours or duplicate a row."""

    def __init__(self, message: str, entity: str = None, entity_id: str = None):
        super().__init__(
            message, code="INTEGRITY_VIOLATION",
            details={"entity": entity, "entity_id": entity_id},
        )


class ValidationError(HubError):
    """Input failed a business rule."""

    def __init__(self, message: str, field: str = None):
        super().__init__(message, code="VALIDATION_ERROR", details={"field": field})


class NotFoundError(HubError):
    def __init__(self, entity: str, entity_id: str = None):
        super().__init__(
            f"{entity} not found", code="NOT_FOUND",
            details={"entity": entity, "entity_id": entity_id},
        )


# --- Upstream API Errors ---

class APIError(HubError):
    """Base class for external API errors."""

    def __init__(self, message: str, code: str = "UPSTREAM_FETCH_FAILED",
                 status_code: int = None, url: str = None, **kwargs):
        self.status_code = status_code
        self.url = url
        details = {"status_code": status_code, "url": url, **kwargs}
        super().__init__(message, code=code, details=details)


UpstreamFetchError = APIError


class MondayAPIError(APIError):
    """Monday.com GraphQL request failed or returned errors."""

    def __init__(self, message: str, status_code: int = None, errors: list = None):
        super().__init__(
            message, status_code=status_code,
            url="https://api.monday.com/v2", errors=errors or [],
        )


class XeroAPIError(APIError):
    """Xero API or token endpoint failure."""

    def __init__(self, message: str, status_code: int = None, url: str = None):
        super().__init__(message, status_code=status_code, url=url)


class CircuitOpenError(APIError):
    """Circuit breaker is open, requests blocked."""

    def __init__(self, service: str, failures: int, reset_time: float):
        super().__init__(
            f"Circuit open for '{service}' after {failures} failures. "
            f"Resets in {reset_time:.0f}s.",
            service=service,
        )
