# school_erp/core/exceptions.py
from typing import Any, Dict, Optional


class BaseAppException(Exception):
    """Base exception class for the application"""
    error_code = "INTERNAL_ERROR"
    default_message = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        error = {
            "success": False,
            "error_code": self.error_code,
            "message": self.message,
        }
        if self.details:
            error["details"] = self.details
        return error


class TenantNotFound(BaseAppException):
    """Raised when a school code does not match any registered tenant"""
    error_code = "TENANT_NOT_FOUND"
    default_message = "School not found"


class ValidationError(BaseAppException):
    """Raised when a required field is missing or malformed. Nothing is mutated."""
    error_code = "VALIDATION_ERROR"
    default_message = "Validation error"


class TenantConnectionError(BaseAppException):
    """Raised when a tenant store cannot be reached after the configured retries"""
    error_code = "TENANT_CONNECTION_ERROR"
    default_message = "Tenant database is unreachable"


class TenantStoreConfigurationError(TenantConnectionError):
    """Raised for authentication or configuration failures; these are never retried"""
    error_code = "TENANT_STORE_CONFIG_ERROR"
    default_message = "Tenant database is misconfigured"


class DatabaseOperationError(BaseAppException):
    """Raised when a database operation fails for reasons other than connectivity"""
    error_code = "DATABASE_ERROR"
    default_message = "Database operation failed"


class PartialBatchFailure(BaseAppException):
    """
    Describes a bulk operation where some records failed.
    Carried on BatchResult.error rather than raised.
    """
    error_code = "PARTIAL_BATCH_FAILURE"
    default_message = "Some records in the batch could not be updated"


def error_response(error: Exception, include_details: bool = True) -> Dict[str, Any]:
    """
    Format any exception into the structured failure shape handed to callers.

    Application exceptions keep their own code and message; anything else is
    reported as an internal error without leaking transport details.
    """
    if isinstance(error, BaseAppException):
        response = error.to_dict()
        if not include_details:
            response.pop("details", None)
        return response

    return {
        "success": False,
        "error_code": BaseAppException.error_code,
        "message": BaseAppException.default_message,
    }
