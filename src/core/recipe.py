"""Recipe schema validation and normalization."""

import copy
from typing import Any, Optional
from dataclasses import dataclass, field
from types import MappingProxyType

import jsonschema

from core.errors import ConfigError


STEP_RESERVED_KEYS = ("register", "ignore_errors", "when")


OPERATION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "command": {"type": "string", "minLength": 1},
    },
    "required": ["command"],
}

STEP_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "register": {"type": "string", "minLength": 1},
        "ignore_errors": {"type": "boolean", "default": False},
        "when": {"type": "string"},
    },
    # Every non-reserved key is an operation key
    "additionalProperties": OPERATION_SCHEMA,
}

TASK_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "steps": {"type": "array", "items": STEP_SCHEMA},
    },
    "required": ["name", "steps"],
}

RECIPE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "url": {"type": "string", "minLength": 1},
        "name": {"type": "string"},
        "tasks": {"type": "array", "items": TASK_SCHEMA},
    },
    "required": ["url", "name", "tasks"],
}


@dataclass(frozen=True)
class StepControl:
    """Reserved control fields of a step."""
    register: Optional[str] = None
    ignore_errors: bool = False
    when: Optional[str] = None


@dataclass(frozen=True)
class Operation:
    """The single operation a step dispatches."""
    namespace: str
    payload: MappingProxyType

    @property
    def command(self) -> str:
        return self.payload["command"]


@dataclass(frozen=True)
class Step:
    """A normalized step: control metadata plus one operation."""
    control: StepControl
    operation: Operation
    path: str = ""


@dataclass(frozen=True)
class Task:
    """A named, ordered group of steps."""
    name: str
    steps: tuple[Step, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Recipe:
    """Validated, immutable recipe."""
    url: str
    name: str
    tasks: tuple[Task, ...] = field(default_factory=tuple)

    @property
    def namespaces(self) -> list[str]:
        """Operation namespaces used by the recipe, in first-use order."""
        seen: dict[str, None] = {}
        for task in self.tasks:
            for step in task.steps:
                seen.setdefault(step.operation.namespace, None)
        return list(seen)


_validator = jsonschema.Draft7Validator(RECIPE_SCHEMA)


def validate_recipe(data: Any, source: Optional[str] = None) -> None:
    """
    Validate raw recipe data against the recipe schema.

    Raises ConfigError listing every offending path and constraint.
    """
    errors = sorted(_validator.iter_errors(data), key=lambda e: list(e.absolute_path))
    if not errors:
        return

    problems = [
        f"{_format_path(error.absolute_path)} {error.message}"
        for error in errors
    ]
    raise ConfigError(
        f"Invalid recipe format: {'; '.join(problems)}",
        config_path=source,
        path=_format_path(errors[0].absolute_path),
    )


def parse_recipe(data: Any, source: Optional[str] = None) -> Recipe:
    """Validate raw recipe data and normalize it into a Recipe."""
    validate_recipe(data, source=source)

    tasks = []
    for task_index, task_data in enumerate(data["tasks"]):
        steps = tuple(
            normalize_step(step_data, path=f"/tasks/{task_index}/steps/{step_index}")
            for step_index, step_data in enumerate(task_data["steps"])
        )
        tasks.append(Task(name=task_data["name"], steps=steps))

    return Recipe(url=data["url"], name=data["name"], tasks=tuple(tasks))


def normalize_step(data: Any, path: str = "") -> Step:
    """
    Turn a raw step mapping into a Step.

    The single key outside STEP_RESERVED_KEYS names the operation namespace.
    Zero or several such keys is a configuration error.
    """
    if isinstance(data, Step):
        return data
    if not isinstance(data, dict):
        raise ConfigError(f"{path or '/'} step must be an object", path=path)

    operation_keys = [key for key in data if key not in STEP_RESERVED_KEYS]
    if len(operation_keys) != 1:
        found = ", ".join(operation_keys) if operation_keys else "none"
        raise ConfigError(
            f"{path or '/'} step must have exactly one operation key (found: {found})",
            path=path,
        )

    namespace = operation_keys[0]
    payload = data[namespace]
    if not isinstance(payload, dict) or not isinstance(payload.get("command"), str):
        raise ConfigError(
            f"{path}/{namespace} operation must be an object with a string 'command'",
            path=f"{path}/{namespace}",
        )

    register = data.get("register")
    if register is not None and (not isinstance(register, str) or not register):
        raise ConfigError(f"{path}/register must be a non-empty string", path=f"{path}/register")
    if register in STEP_RESERVED_KEYS:
        raise ConfigError(
            f"{path}/register '{register}' collides with a reserved key",
            path=f"{path}/register",
        )

    ignore_errors = data.get("ignore_errors", False)
    if not isinstance(ignore_errors, bool):
        raise ConfigError(f"{path}/ignore_errors must be a boolean", path=f"{path}/ignore_errors")

    when = data.get("when")
    if when is not None and not isinstance(when, str):
        raise ConfigError(f"{path}/when must be a string", path=f"{path}/when")

    return Step(
        control=StepControl(register=register, ignore_errors=ignore_errors, when=when),
        operation=Operation(
            namespace=namespace,
            payload=MappingProxyType(copy.deepcopy(payload)),
        ),
        path=path,
    )


def _format_path(path) -> str:
    return "/" + "/".join(str(part) for part in path)
