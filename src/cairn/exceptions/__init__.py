from cairn.exceptions.handlers import (
    CMSException,
    ConfigurationError,
    InvalidRuleError,
    NotFoundError,
    PermissionError,
    RuleStoreUnavailableError,
    ValidationError,
)

__all__ = [
    "CMSException",
    "ValidationError",
    "NotFoundError",
    "PermissionError",
    "ConfigurationError",
    "InvalidRuleError",
    "RuleStoreUnavailableError",
]
