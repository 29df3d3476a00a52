import re
from typing import Optional, Dict, Any


class CloudWiseException(Exception):
    """Base exception for all CloudWise errors."""
    def __init__(
        self,
        message: str,
        code: str = "internal_error",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}


class BadRequestError(CloudWiseException):
    """Raised when a filter, parameter or status value is malformed or missing."""
    def __init__(self, message: str = "Invalid request", code: str = "bad_request", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=400, details=details)


class AuthError(CloudWiseException):
    """Raised when authentication fails."""
    def __init__(self, message: str = "Not authenticated", code: str = "auth_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=401, details=details)


class ForbiddenError(CloudWiseException):
    """Raised when the caller lacks the role for an operation."""
    def __init__(self, message: str = "Access denied", code: str = "forbidden", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=403, details=details)


class ResourceNotFoundError(CloudWiseException):
    """
    Raised when a requested entity is absent or not owned by the caller.
    Both cases share one response so other users' data stays invisible.
    """
    def __init__(self, message: str = "Resource not found", code: str = "not_found", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=404, details=details)


class ConflictError(CloudWiseException):
    """Raised when a conditional write loses against a concurrent change."""
    def __init__(self, message: str, code: str = "conflict", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=409, details=details)


class ConfigurationError(CloudWiseException):
    """Raised when application configuration is invalid or missing."""
    def __init__(self, message: str, code: str = "config_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=500, details=details)


class AdapterError(CloudWiseException):
    """
    Raised when a provider billing API call fails.
    Messages are scrubbed of request ids and secrets before they are stored or returned.
    """
    def __init__(self, message: str, code: str = "adapter_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(self._sanitize(message), code=code, status_code=502, details=details)

    @staticmethod
    def _sanitize(msg: str) -> str:
        msg = re.sub(r'[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}', '[REDACTED_ID]', msg, flags=re.IGNORECASE)
        msg = re.sub(r'(?i)(access_key|secret_key|client_secret|token|password|signature)=[^&\s]+', r'\1=[REDACTED]', msg)
        if "AccessDenied" in msg or "Unauthorized" in msg:
            return "Permission denied: ensure the credentials have read access to billing data."
        if "Throttling" in msg or "RequestLimitExceeded" in msg:
            return "Cloud provider rate limit exceeded. Try the sync again later."
        return msg
