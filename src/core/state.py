"""Run-scoped variable store."""

import json
from typing import Any, Iterator, Optional
from collections.abc import Mapping

import structlog

from core.errors import EvaluationError


logger = structlog.get_logger()


class VariableStore(Mapping):
    """
    Mutable mapping of variable name to the last value registered under it.

    One store lives for one recipe run and is shared by all of its tasks.
    Values are only ever added or overwritten, never rolled back.
    """

    def __init__(self, initial: Optional[Mapping[str, Any]] = None):
        self._values: dict[str, Any] = dict(initial or {})

    def __getitem__(self, name: str) -> Any:
        return self._values[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def register(self, name: str, value: Any) -> None:
        """Store a step result under name, replacing any earlier value."""
        logger.debug(
            "variable_registered",
            name=name,
            value=_preview(value),
            overwritten=name in self._values,
        )
        self._values[name] = value

    def lookup(self, name: str) -> Any:
        """Return the value for name, or raise if it was never registered."""
        try:
            return self._values[name]
        except KeyError:
            raise EvaluationError(f"Variable '{name}' is not set", expression=name)

    def snapshot(self) -> dict[str, Any]:
        """Shallow copy of the current values."""
        return dict(self._values)


def _preview(value: Any, limit: int = 200) -> str:
    """JSON-ish rendering of a value for log lines."""
    try:
        text = json.dumps(value, default=repr)
    except (TypeError, ValueError):
        text = repr(value)
    if len(text) > limit:
        text = text[:limit] + "..."
    return text
