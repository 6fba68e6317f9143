from .errors import (
    DashboardError,
    ValidationError,
    BusinessRuleError,
    ConflictError,
    NotFoundError,
    RemoteUnavailableError,
)
from .dependencies import Actor, get_actor, require_permission
from .responses import success_response, error_response

__all__ = [
    "DashboardError",
    "ValidationError",
    "BusinessRuleError",
    "ConflictError",
    "NotFoundError",
    "RemoteUnavailableError",
    "Actor",
    "get_actor",
    "require_permission",
    "success_response",
    "error_response",
]
