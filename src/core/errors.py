"""Recipe runner error definitions."""

from typing import Optional, Any
from enum import Enum


class ErrorCategory(Enum):
    """Error categories for routing and handling."""
    CONFIGURATION = "configuration"  # Malformed recipe/config - always fatal
    EVALUATION = "evaluation"        # Bad expression or unset variable
    DISPATCH = "dispatch"            # Unknown namespace/command
    PLUGIN = "plugin"                # Raised inside a plugin call
    SESSION = "session"              # Browser open/navigate/close - always fatal


class PuppetchefError(Exception):
    """Base exception for all runner errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.PLUGIN,
        context: Optional[dict[str, Any]] = None,
        ignorable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.context = context or {}
        self.ignorable = ignorable

    def to_dict(self) -> dict[str, Any]:
        """Serialize error for logging."""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "context": self.context,
            "ignorable": self.ignorable,
        }


class ConfigError(PuppetchefError):
    """Configuration, recipe schema or step shape error."""

    def __init__(
        self,
        message: str,
        config_path: Optional[str] = None,
        path: Optional[str] = None,
        **kwargs
    ):
        kwargs.setdefault("category", ErrorCategory.CONFIGURATION)
        kwargs.setdefault("ignorable", False)
        super().__init__(message, **kwargs)
        self.context["config_path"] = config_path
        self.context["path"] = path


class EvaluationError(PuppetchefError):
    """Expression parsing or evaluation error."""

    def __init__(self, message: str, expression: Optional[str] = None, **kwargs):
        kwargs.setdefault("category", ErrorCategory.EVALUATION)
        super().__init__(message, **kwargs)
        self.context["expression"] = expression


class DispatchError(PuppetchefError):
    """No capability registered for namespace.command."""

    def __init__(
        self,
        message: str,
        namespace: Optional[str] = None,
        command: Optional[str] = None,
        **kwargs
    ):
        kwargs.setdefault("category", ErrorCategory.DISPATCH)
        super().__init__(message, **kwargs)
        self.context["namespace"] = namespace
        self.context["command"] = command


class PluginError(PuppetchefError):
    """Failure raised inside a plugin invocation."""

    def __init__(
        self,
        message: str,
        namespace: Optional[str] = None,
        command: Optional[str] = None,
        **kwargs
    ):
        kwargs.setdefault("category", ErrorCategory.PLUGIN)
        super().__init__(message, **kwargs)
        self.context["namespace"] = namespace
        self.context["command"] = command


class SessionError(PuppetchefError):
    """Browser session open/navigate/close failure."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        url: Optional[str] = None,
        **kwargs
    ):
        kwargs.setdefault("category", ErrorCategory.SESSION)
        kwargs.setdefault("ignorable", False)
        super().__init__(message, **kwargs)
        self.context["operation"] = operation
        self.context["url"] = url
