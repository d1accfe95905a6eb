"""
Domain exception hierarchy.

Services raise these synchronously; the API boundary maps them to HTTP
status codes via `status_code`.
"""

from typing import Any, Dict, Optional


class TimeMasterError(Exception):
    """
    Base exception for all domain errors.

    Example:
        raise NotFoundError("Goal not found", context={"goal_id": 12})
    """

    status_code = 500

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for API responses"""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
        }


class NotFoundError(TimeMasterError):
    """Referenced entity is absent or not owned by the caller"""
    status_code = 404


class ConflictError(TimeMasterError):
    """Duplicate unique key or an already existing relation"""
    status_code = 409


class ForbiddenError(TimeMasterError):
    """Capability, ownership or subscription check failed"""
    status_code = 403

    def __init__(self, message: str, code: Optional[str] = None, **kwargs):
        self.code = code
        super().__init__(message, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.code:
            data["code"] = self.code
        return data


class CapacityExceededError(ForbiddenError):
    """
    Plan-limit check failed.

    Reported as Forbidden, carrying the plan name and resource type so
    clients can offer an upgrade.
    """

    def __init__(self, plan: str, resource: str, limit: Optional[int] = None):
        self.plan = plan
        self.resource = resource
        self.limit = limit
        super().__init__(
            f"You've reached your {plan} plan limit for {resource}. "
            f"Upgrade to Pro for unlimited access.",
            code="PLAN_LIMIT_REACHED",
            context={"plan": plan, "resource": resource, "limit": limit},
        )


class ValidationError(TimeMasterError):
    """Malformed input"""
    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None):
        self.field = field
        self.value = value
        super().__init__(message, context={"field": field, "value": value})


class EmailDeliveryError(TimeMasterError):
    """Outbound email could not be sent. Never fatal to the triggering operation."""
    status_code = 502
