"""Core runner components."""

__version__ = "0.1.0"

from .config import ConfigLoader, RunnerConfig, BrowserConfig, LoggingConfig
from .state import VariableStore
from .recipe import Recipe, Task, Step, StepControl, Operation, parse_recipe, normalize_step
from .errors import (
    PuppetchefError,
    ConfigError,
    EvaluationError,
    DispatchError,
    PluginError,
    SessionError,
)

__all__ = [
    "ConfigLoader",
    "RunnerConfig",
    "BrowserConfig",
    "LoggingConfig",
    "VariableStore",
    "Recipe",
    "Task",
    "Step",
    "StepControl",
    "Operation",
    "parse_recipe",
    "normalize_step",
    "PuppetchefError",
    "ConfigError",
    "EvaluationError",
    "DispatchError",
    "PluginError",
    "SessionError",
]
