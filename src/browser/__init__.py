"""Browser session and builtin commands using Playwright."""

from .manager import BrowserManager
from . import actions

__all__ = ["BrowserManager", "actions"]
