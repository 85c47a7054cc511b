"""Step execution and per-task step iteration."""

import time
from enum import Enum
from typing import Any, Mapping, Optional, Union
from dataclasses import dataclass, field

import structlog

from core.errors import DispatchError, PuppetchefError, PluginError
from core.recipe import Step, Task, normalize_step
from core.state import VariableStore
from rules.evaluator import ExpressionEvaluator
from rules.registry import PluginRegistry


logger = structlog.get_logger()


MASKED_FIELDS = frozenset({"value", "data", "password", "secret", "token"})
MASK = "*" * 8


class StepStatus(Enum):
    """Step execution status."""
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


class TaskOutcome(Enum):
    """Task execution outcome."""
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass
class StepOutcome:
    """Result of executing one step."""
    status: StepStatus
    error: Optional[PuppetchefError] = None
    ignored: bool = False
    value: Any = None
    duration_ms: float = 0

    @property
    def fatal(self) -> bool:
        """A failure that was not covered by ignore_errors."""
        return self.status is StepStatus.FAILED and not self.ignored


@dataclass
class TaskResult:
    """Result of running one task."""
    name: str
    outcome: TaskOutcome
    steps: list[StepOutcome] = field(default_factory=list)

    @property
    def error(self) -> Optional[PuppetchefError]:
        for step in self.steps:
            if step.fatal:
                return step.error
        return None


class StepExecutor:
    """
    Executes single steps.

    Flow:
    1. Normalize the step (exactly one operation key, else ConfigError)
    2. Evaluate the `when` gate
    3. Resolve {{ }} templates in the payload
    4. Dispatch to registry[namespace][resolved payload command]
    5. Register the result

    Evaluation, dispatch and plugin errors become a FAILED outcome, marked
    ignored when the step sets ignore_errors. A malformed step raises
    ConfigError regardless of ignore_errors.
    """

    def __init__(
        self,
        registry: PluginRegistry,
        evaluator: Optional[ExpressionEvaluator] = None,
    ):
        self.registry = registry
        self.evaluator = evaluator or ExpressionEvaluator()

    async def execute(
        self,
        step: Union[Step, Mapping[str, Any]],
        session: Any,
        store: VariableStore,
    ) -> StepOutcome:
        """
        Execute one step against the session.

        Args:
            step: Normalized Step or raw step mapping
            session: Live page handle passed through to the plugin
            store: Variable store for conditions, templates and register

        Returns:
            StepOutcome with status, error and returned value
        """
        step = normalize_step(step, path=getattr(step, "path", ""))
        start_time = time.monotonic()
        control = step.control
        operation = step.operation

        log = logger.bind(
            step=step.path,
            namespace=operation.namespace,
            command=operation.command,
        )

        try:
            if control.when is not None:
                if not self.evaluator.evaluate_condition(control.when, store):
                    log.debug("step_skipped", reason="condition not met", when=control.when)
                    return StepOutcome(
                        status=StepStatus.SKIPPED,
                        duration_ms=(time.monotonic() - start_time) * 1000,
                    )

            payload = self.evaluator.interpolate(operation.payload, store)
            command = payload.get("command")
            if not isinstance(command, str) or not command:
                raise DispatchError(
                    f"Command must resolve to a non-empty string, got {command!r}",
                    namespace=operation.namespace,
                    command=operation.command,
                )
            capability = self.registry.resolve(operation.namespace, command)

            log.debug("step_executing", resolved_command=command, payload=mask_payload(payload))
            value = await self._invoke(capability, session, payload, operation.namespace, command)

        except PuppetchefError as e:
            e.context.setdefault("step", step.path)
            if control.ignore_errors:
                log.info("step_error_ignored", error=e.message, category=e.category.value)
            else:
                log.error("step_failed", error=e.message, category=e.category.value)
            return StepOutcome(
                status=StepStatus.FAILED,
                error=e,
                ignored=control.ignore_errors,
                duration_ms=(time.monotonic() - start_time) * 1000,
            )

        if control.register:
            store.register(control.register, value)

        return StepOutcome(
            status=StepStatus.COMPLETED,
            value=value,
            duration_ms=(time.monotonic() - start_time) * 1000,
        )

    async def _invoke(
        self,
        capability,
        session: Any,
        payload: dict[str, Any],
        namespace: str,
        command: str,
    ) -> Any:
        """Await the capability, wrapping foreign exceptions as PluginError."""
        try:
            return await capability(session, payload)
        except PluginError:
            raise
        except Exception as e:
            raise PluginError(
                f"Error executing plugin {namespace}.{command}: {e}",
                namespace=namespace,
                command=command,
                context={"exception": type(e).__name__},
            ) from e


class TaskRunner:
    """Runs the steps of one task in order, stopping at the first fatal failure."""

    def __init__(self, step_executor: StepExecutor):
        self.step_executor = step_executor

    async def run(
        self,
        task: Union[Task, Mapping[str, Any]],
        session: Any,
        store: VariableStore,
    ) -> TaskResult:
        name = task.name if isinstance(task, Task) else task.get("name", "")
        steps = task.steps if isinstance(task, Task) else task.get("steps") or []

        logger.debug("task_started", task=name, steps=len(steps))

        if not steps:
            logger.debug("task_skipped", task=name, reason="no steps to perform")
            return TaskResult(name=name, outcome=TaskOutcome.COMPLETED)

        result = TaskResult(name=name, outcome=TaskOutcome.COMPLETED)
        for step in steps:
            outcome = await self.step_executor.execute(step, session, store)
            result.steps.append(outcome)

            if outcome.fatal:
                logger.error("task_aborted", task=name, error=str(outcome.error))
                result.outcome = TaskOutcome.ABORTED
                break

        return result


def mask_payload(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Copy of payload with sensitive fields replaced for logging."""
    return {
        key: MASK if key in MASKED_FIELDS else value
        for key, value in payload.items()
    }
