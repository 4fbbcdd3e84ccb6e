"""
Custom error classes for the GS Performance Dashboard.
Structured error handling with error codes across all modules.

Hierarchy:
    DashboardError
    ├── APIError
    │   ├── APITimeoutError
    │   ├── APIConnectionError
    │   ├── APIRateLimitError
    │   ├── APIAuthError
    │   ├── APIValidationError
    │   └── CircuitOpenError
    ├── DataError
    │   ├── ConfigError
    │   ├── DataFetchError
    │   └── PersistenceError
    └── PipelineError
"""


class DashboardError(Exception):
    """Base exception for all dashboard errors."""

    def __init__(self, message: str, code: str = "UNKNOWN", details: dict = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(f"[{code}] {message}")


# --- API Errors ---

class APIError(DashboardError):
    """Base class for upstream API errors."""

    def __init__(self, message: str, code: str = "API_ERROR",
                 status_code: int = None, url: str = None, **kwargs):
        self.status_code = status_code
        self.url = url
        details = {"status_code": status_code, "url": url, **kwargs}
        super().__init__(message, code=code, details=details)


class APITimeoutError(APIError):
    """Request timed out."""

    def __init__(self, url: str, timeout: float):
        super().__init__(
            f"Request timed out after {timeout}s: {url}",
            code="API_TIMEOUT", url=url, timeout=timeout,
        )


class APIConnectionError(APIError):
    """Upstream host could not be reached."""

    def __init__(self, url: str, reason: str = ""):
        super().__init__(
            f"Connection failed: {url} {reason}".strip(),
            code="API_CONNECTION_FAILED", url=url,
        )


class APIRateLimitError(APIError):
    """Rate limit exceeded."""

    def __init__(self, url: str, retry_after: int = None):
        msg = f"Rate limit exceeded: {url}"
        if retry_after:
            msg += f" (retry after {retry_after}s)"
        super().__init__(
            msg, code="API_RATE_LIMIT", status_code=429, url=url,
            retry_after=retry_after,
        )


class APIAuthError(APIError):
    """Authentication or authorization failure."""

    def __init__(self, url: str, status_code: int = 401):
        super().__init__(
            f"Authentication failed: {url}. Check GROWTHSTATION_API_KEY",
            code="API_AUTH_FAILED", url=url, status_code=status_code,
        )


class APIValidationError(APIError):
    """Upstream rejected the request parameters."""

    def __init__(self, message: str, url: str = None, status_code: int = 400):
        super().__init__(
            message, code="API_VALIDATION", url=url, status_code=status_code,
        )


class CircuitOpenError(APIError):
    """Circuit breaker is open — requests blocked."""

    def __init__(self, service: str, failures: int, reset_time: float):
        super().__init__(
            f"Circuit open for '{service}' after {failures} failures. "
            f"Resets in {reset_time:.0f}s.",
            code="CIRCUIT_OPEN", service=service,
        )


# --- Data Errors ---

class DataError(DashboardError):
    """Base class for data processing errors."""
    pass


class ConfigError(DataError):
    """Required configuration is missing or invalid."""

    def __init__(self, message: str, variable: str = None):
        super().__init__(
            message, code="CONFIG_ERROR",
            details={"variable": variable},
        )


class DataFetchError(DataError):
    """Failed to fetch or load data from storage."""

    def __init__(self, message: str, source: str = None):
        super().__init__(
            message, code="DATA_FETCH_FAILED", details={"source": source},
        )


class PersistenceError(DataError):
    """Write to the datastore failed."""

    def __init__(self, message: str, table: str = None):
        super().__init__(
            message, code="PERSISTENCE_FAILED", details={"table": table},
        )


# --- Pipeline Errors ---

class PipelineError(DashboardError):
    """Sync pipeline error."""

    def __init__(self, step_name: str, cause: Exception = None):
        msg = f"Sync step '{step_name}' failed"
        if cause:
            msg += f": {cause}"
        super().__init__(
            msg, code="PIPELINE_STEP_FAILED", details={"step": step_name},
        )
