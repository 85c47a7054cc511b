"""Recipe orchestration: step execution, task iteration, session lifecycle."""

from .executor import StepExecutor, TaskRunner, StepOutcome, StepStatus, TaskOutcome, TaskResult
from .runner import RecipeRunner, RunState, EXIT_SUCCESS, EXIT_FAILURE

__all__ = [
    "StepExecutor",
    "TaskRunner",
    "StepOutcome",
    "StepStatus",
    "TaskOutcome",
    "TaskResult",
    "RecipeRunner",
    "RunState",
    "EXIT_SUCCESS",
    "EXIT_FAILURE",
]
