"""
utils/errors.py  –  Error taxonomy for the back-office service

Each failure class carries its own error_type and HTTP status so that an
operator can tell a bad input from an unreachable platform, an edit
conflict or a refused business operation.
"""

from typing import Any, Optional


class DashboardError(Exception):
    error_type = "error"
    status_code = 400

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        content = {
            "success": False,
            "message": self.message,
            "error_type": self.error_type,
        }
        if self.details is not None:
            content["details"] = self.details
        return content


class ValidationError(DashboardError):
    """Malformed or out-of-range input, rejected before any remote call."""
    error_type = "validation"
    status_code = 400


class BusinessRuleError(DashboardError):
    """Valid input the operation is not allowed for (merchant debit, terminal order, ...)."""
    error_type = "business_rule"
    status_code = 422


class ConflictError(DashboardError):
    """Remote state moved away from the baseline held by an edit session."""
    error_type = "conflict"
    status_code = 409


class NotFoundError(DashboardError):
    error_type = "not_found"
    status_code = 404


class RemoteUnavailableError(DashboardError):
    """Network failure, timeout or error status from Tookan / the hosted database."""
    error_type = "remote_unavailable"
    status_code = 503

    def __init__(self, message: str, retryable: bool = False, details: Optional[Any] = None):
        super().__init__(message, details)
        self.retryable = retryable

    def to_dict(self) -> dict:
        content = super().to_dict()
        content["retryable"] = self.retryable
        return content
