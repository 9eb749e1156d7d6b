from __future__ import annotations

from typing import Any, Dict, Optional


class CMSException(Exception):
    """
    Base exception for the administration layer.

    Carries everything a router needs to build an error response:
    - attributes: message/code/status_code/details/user_message
    - method: to_dict()
    """

    def __init__(
        self,
        message: str,
        *,
        code: str = "CMS_ERROR",
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
    ) -> None:
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details: Dict[str, Any] = details or {}
        self.user_message = user_message or message
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "user_message": self.user_message,
            "details": self.details,
        }

    def __str__(self) -> str:  # pragma: no cover
        return self.message


class ValidationError(CMSException):
    def __init__(self, message: str, field: Optional[str] = None, **kwargs: Any):
        details: Dict[str, Any] = {"field": field} if field else {}
        details.update(kwargs)
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            status_code=422,
            details=details,
            user_message=f"Validation failed: {message}",
        )


class NotFoundError(CMSException):
    def __init__(self, resource: str, identifier: Any = None, **kwargs: Any):
        message = f"{resource} not found"
        details: Dict[str, Any] = {"resource": resource, "id": identifier}
        details.update(kwargs)
        super().__init__(
            message=message,
            code="NOT_FOUND",
            status_code=404,
            details=details,
            user_message=message,
        )


class PermissionError(CMSException):
    def __init__(self, actions: Any, resource: Optional[str] = None, **kwargs: Any):
        if isinstance(actions, (list, tuple, set, frozenset)):
            action_names = [str(getattr(a, "value", a)) for a in actions]
        else:
            action_names = [str(getattr(actions, "value", actions))]

        message = f"Permission denied for action: {', '.join(action_names)}"
        if resource:
            message += f" on resource: {resource}"

        details: Dict[str, Any] = {"actions": action_names, "resource": resource}
        details.update(kwargs)
        super().__init__(
            message=message,
            code="PERMISSION_DENIED",
            status_code=403,
            details=details,
            user_message="You don't have permission to perform this action",
        )


class ConfigurationError(CMSException):
    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        *,
        code: str = "CONFIGURATION_ERROR",
        **kwargs: Any,
    ):
        details: Dict[str, Any] = {"config_key": config_key} if config_key else {}
        details.update(kwargs)
        super().__init__(
            message=message,
            code=code,
            status_code=500,
            details=details,
            user_message="System configuration error",
        )


class InvalidRuleError(ConfigurationError):
    """An access rule that cannot be applied without guessing its intent."""

    def __init__(self, message: str, rule_id: Optional[Any] = None, **kwargs: Any):
        super().__init__(message, code="INVALID_RULE", rule_id=rule_id, **kwargs)


class RuleStoreUnavailableError(CMSException):
    def __init__(self, message: str, *, source: str = "rule_store", **kwargs: Any):
        details: Dict[str, Any] = {"source": source}
        details.update(kwargs)
        super().__init__(
            message=message,
            code="RULE_STORE_UNAVAILABLE",
            status_code=503,
            details=details,
            user_message="Access rules are temporarily unavailable",
        )
