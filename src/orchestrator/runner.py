"""Recipe runner - owns the session lifecycle and the variable store."""

import time
from enum import Enum
from typing import Any, Mapping, Optional, Protocol, Union

import structlog

from core.errors import ConfigError, PuppetchefError, SessionError
from core.recipe import Recipe, parse_recipe
from core.state import VariableStore
from rules.evaluator import ExpressionEvaluator
from rules.registry import PluginRegistry
from .executor import StepExecutor, TaskRunner, TaskOutcome, TaskResult


logger = structlog.get_logger()


EXIT_SUCCESS = 0
EXIT_FAILURE = 255


class RunState(Enum):
    """Recipe runner states."""
    INIT = "init"
    NAVIGATING = "navigating"
    RUNNING_TASKS = "running_tasks"
    CLOSING_SESSION = "closing_session"
    DONE = "done"


class SessionProvider(Protocol):
    """The three session operations the runner relies on."""

    async def open(self) -> Any:
        ...

    async def navigate(self, url: str) -> Any:
        ...

    async def close(self) -> None:
        ...


class RecipeRunner:
    """
    Runs a recipe against one browser session.

    State machine:
        INIT -> NAVIGATING -> RUNNING_TASKS -> CLOSING_SESSION -> DONE

    The first aborted task stops the whole recipe with 255. The session is
    closed on every path once opening it has been attempted.
    """

    def __init__(
        self,
        session_provider: SessionProvider,
        plugins: Union[PluginRegistry, Mapping[str, Any], None] = None,
        evaluator: Optional[ExpressionEvaluator] = None,
    ):
        self.session_provider = session_provider
        self.registry = plugins if isinstance(plugins, PluginRegistry) else PluginRegistry(plugins)
        self.task_runner = TaskRunner(StepExecutor(self.registry, evaluator))

        self.state = RunState.INIT
        self.store: Optional[VariableStore] = None
        self.task_results: list[TaskResult] = []

    async def run(self, recipe: Union[Recipe, Mapping[str, Any]]) -> int:
        """
        Execute the recipe.

        Returns:
            0 when every task completed, 255 otherwise
        """
        start_time = time.monotonic()
        self._transition(RunState.INIT)
        self.task_results = []

        try:
            if not isinstance(recipe, Recipe):
                recipe = parse_recipe(recipe)
        except ConfigError as e:
            logger.error("recipe_invalid", error=e.message)
            self._transition(RunState.DONE)
            return EXIT_FAILURE

        self.store = VariableStore()
        log = logger.bind(recipe=recipe.name)
        log.info("recipe_started", url=recipe.url, tasks=len(recipe.tasks))

        retcode = EXIT_SUCCESS
        try:
            session = await self._open()

            self._transition(RunState.NAVIGATING)
            await self._navigate(recipe.url)

            self._transition(RunState.RUNNING_TASKS)
            for task in recipe.tasks:
                result = await self.task_runner.run(task, session, self.store)
                self.task_results.append(result)
                if result.outcome is TaskOutcome.ABORTED:
                    retcode = EXIT_FAILURE
                    break

        except PuppetchefError as e:
            # Session and configuration errors are never subject to ignore_errors
            log.error("recipe_aborted", error=e.message, category=e.category.value)
            retcode = EXIT_FAILURE

        finally:
            self._transition(RunState.CLOSING_SESSION)
            try:
                await self._close()
            except SessionError as e:
                log.error("session_close_failed", error=e.message)
                retcode = EXIT_FAILURE

        self._transition(RunState.DONE)
        log.info(
            "recipe_finished",
            retcode=retcode,
            duration_ms=(time.monotonic() - start_time) * 1000,
        )
        return retcode

    def _transition(self, state: RunState) -> None:
        logger.debug("run_state", state=state.value, previous=self.state.value)
        self.state = state

    async def _open(self) -> Any:
        try:
            return await self.session_provider.open()
        except SessionError:
            raise
        except Exception as e:
            raise SessionError(f"Failed to open session: {e}", operation="open") from e

    async def _navigate(self, url: str) -> None:
        try:
            await self.session_provider.navigate(url)
        except SessionError:
            raise
        except Exception as e:
            raise SessionError(f"Failed to navigate to {url}: {e}", operation="navigate", url=url) from e

    async def _close(self) -> None:
        try:
            await self.session_provider.close()
        except SessionError:
            raise
        except Exception as e:
            raise SessionError(f"Failed to close session: {e}", operation="close") from e
