"""Expression evaluation and plugin dispatch."""

from .evaluator import ExpressionEvaluator
from .registry import PluginRegistry, load_plugins

__all__ = ["ExpressionEvaluator", "PluginRegistry", "load_plugins"]
