"""
Functional workflow API.

``task`` marks a function as one step of a workflow and ``entrypoint``
turns an async workflow function into a runnable. Workflows use plain
control flow (loops, ``await`` and ``Task.map`` for concurrent calls)
instead of nodes and edges, and share the executor's step limit, events,
checkpoints and error mapping.
"""

from __future__ import annotations

import asyncio
import inspect
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import partial
from typing import Any, Callable, Iterable, List, Optional

from .config import settings
from .errors import (
    CancellationError,
    ConfigurationError,
    ExecutionError,
    GraphError,
    StepLimitExceeded,
)
from .events import EventDispatcher, EventType, GraphObserver
from .executor import RunConfig
from ..memory.checkpoint import BaseCheckpointStore
from ..utils.helpers import call_maybe_async, gather_with_concurrency, is_async_callable, preview
from ..utils.logger import get_logger


logger = get_logger()

# Checkpoints of functional workflows hold the workflow's return value
# under this key.
RETURN_KEY = "return_value"


@dataclass
class _Run:
    """Bookkeeping for one entrypoint invocation."""
    dispatcher: EventDispatcher
    max_steps: int
    steps: int = 0
    last_node: Optional[str] = None
    started: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


_active_run: ContextVar[Optional[_Run]] = ContextVar("stepgraph_active_run", default=None)


# ==================== Tasks ====================

class Task:
    """
    A function that runs as one step of a functional workflow.

    Inside an entrypoint every call counts against the step limit and is
    reported to observers as a node under the task's name. Outside one it
    is an ordinary awaitable call.
    """

    def __init__(self, fn: Callable[..., Any], name: Optional[str] = None):
        if not callable(fn):
            raise ConfigurationError(f"Task '{name or fn!r}' is not callable")
        self.fn = fn
        self.name = name or getattr(fn, "__name__", type(fn).__name__)
        self.__doc__ = getattr(fn, "__doc__", None)

    def __repr__(self) -> str:
        return f"Task({self.name!r})"

    async def __call__(self, *args: Any, **kwargs: Any) -> Any:
        fn = partial(self.fn, **kwargs) if kwargs else self.fn
        run = _active_run.get()
        if run is None:
            return await call_maybe_async(fn, *args)

        if run.steps >= run.max_steps:
            raise StepLimitExceeded(run.max_steps, last_node=run.last_node)
        run.steps += 1
        run.dispatcher.step = run.steps
        run.dispatcher.emit(EventType.NODE_ENTERED, self.name)
        logger.with_component("Executor").debug(f"[step {run.steps}] task {self.name}")

        try:
            result = await call_maybe_async(fn, *args)
        except GraphError as exc:
            if exc.last_node is None:
                exc.last_node = run.last_node
            raise
        except Exception as exc:
            raise ExecutionError(
                f"Task '{self.name}' failed: {type(exc).__name__}: {exc}",
                node=self.name,
                last_node=run.last_node,
            ) from exc

        run.last_node = self.name
        run.dispatcher.emit(EventType.NODE_EXITED, self.name, result=preview(result))
        return result

    async def map(self, items: Iterable[Any], max_concurrency: Optional[int] = None) -> List[Any]:
        """
        Call the task once per item, concurrently.

        Results keep the order of ``items``. The first failure cancels the
        calls still running and is re-raised.
        """
        return await gather_with_concurrency(
            [partial(self, item) for item in items],
            max_concurrent=max_concurrency,
        )


def task(fn: Optional[Callable[..., Any]] = None, *, name: Optional[str] = None):
    """
    Decorator that turns a function into a ``Task``.

    Usable bare (``@task``) or with a name (``@task(name="call_llm")``).
    """
    if fn is None:
        return lambda inner: Task(inner, name=name)
    return Task(fn, name=name)


# ==================== Entrypoints ====================

class Entrypoint:
    """
    A runnable functional workflow.

    The workflow function receives the invocation input. When it also
    declares a ``previous`` parameter and a session id is given, it
    receives the value the session's last run returned (None on the first
    run), and its return value is checkpointed at the end of the run.
    """

    def __init__(
        self,
        fn: Callable[..., Any],
        name: Optional[str] = None,
        checkpointer: Optional[BaseCheckpointStore] = None,
        observers: Optional[Iterable[GraphObserver]] = None,
        max_steps: Optional[int] = None,
    ):
        if not is_async_callable(fn):
            raise ConfigurationError(
                f"Entrypoint '{name or getattr(fn, '__name__', fn)}' must be an async function"
            )
        if max_steps is not None and max_steps < 1:
            raise ConfigurationError("max_steps must be at least 1")
        self.fn = fn
        self.name = name or getattr(fn, "__name__", type(fn).__name__)
        self.checkpointer = checkpointer
        self.observers: List[GraphObserver] = list(observers or [])
        self.max_steps = max_steps
        self.wants_previous = "previous" in inspect.signature(fn).parameters

    def __repr__(self) -> str:
        return f"Entrypoint({self.name!r})"

    async def ainvoke(self, input: Any = None, config: Optional[Any] = None) -> Any:
        """
        Run the workflow once.

        Args:
            input: Value passed to the workflow function
            config: RunConfig or equivalent dict

        Returns:
            The workflow function's return value

        Raises:
            ConfigurationError, ExecutionError, StepLimitExceeded,
            CancellationError
        """
        run_config = RunConfig.coerce(config)
        session_id = run_config.session_id
        run = _Run(
            dispatcher=EventDispatcher([*self.observers, *run_config.observers]),
            max_steps=run_config.max_steps or self.max_steps or settings.max_steps,
        )

        logger.with_component("Executor").info(
            f"Starting {self.name}/{run_config.run_name} "
            f"(max_steps={run.max_steps}, session={session_id})"
        )

        token = _active_run.set(run)
        try:
            kwargs = {}
            if self.wants_previous:
                kwargs["previous"] = await self._load(session_id)
            with run.dispatcher.activate():
                result = await self._call(input, kwargs, run)
            if self.checkpointer is not None and session_id:
                await self._save(session_id, result, run)
        except asyncio.CancelledError as exc:
            logger.with_component("Executor").warning(
                f"{self.name}/{run_config.run_name} cancelled after task {run.last_node}"
            )
            raise CancellationError(
                f"Entrypoint '{self.name}' was cancelled", last_node=run.last_node
            ) from exc
        except GraphError as exc:
            logger.with_component("Executor").error(
                f"{self.name}/{run_config.run_name} failed with {exc.kind}: {exc}"
            )
            raise
        finally:
            _active_run.reset(token)

        elapsed = (datetime.now(timezone.utc) - run.started).total_seconds()
        logger.with_component("Executor").info(
            f"Finished {self.name}/{run_config.run_name} in {run.steps} steps ({elapsed:.2f}s)"
        )
        return result

    def invoke(self, input: Any = None, config: Optional[Any] = None) -> Any:
        """Synchronous wrapper around ``ainvoke`` for callers without a loop."""
        return asyncio.run(self.ainvoke(input, config))

    async def _call(self, input: Any, kwargs: dict, run: _Run) -> Any:
        try:
            return await self.fn(input, **kwargs)
        except GraphError:
            raise
        except Exception as exc:
            raise ExecutionError(
                f"Entrypoint '{self.name}' failed: {type(exc).__name__}: {exc}",
                node=self.name,
                last_node=run.last_node,
            ) from exc

    async def _load(self, session_id: Optional[str]) -> Any:
        if self.checkpointer is None or not session_id:
            return None
        try:
            saved = await self.checkpointer.load(session_id)
        except Exception as exc:
            raise ExecutionError(
                f"Loading checkpoint for session '{session_id}' failed: "
                f"{type(exc).__name__}: {exc}",
                node="__checkpoint__",
            ) from exc
        if not saved:
            return None
        logger.with_component("Memory").debug(f"Resumed session {session_id}")
        return saved.get(RETURN_KEY)

    async def _save(self, session_id: str, result: Any, run: _Run) -> None:
        try:
            await self.checkpointer.save(session_id, {RETURN_KEY: result})
        except Exception as exc:
            raise ExecutionError(
                f"Saving checkpoint for session '{session_id}' failed: {exc}",
                node="__checkpoint__",
                last_node=run.last_node,
            ) from exc


def entrypoint(
    fn: Optional[Callable[..., Any]] = None,
    *,
    name: Optional[str] = None,
    checkpointer: Optional[BaseCheckpointStore] = None,
    observers: Optional[Iterable[GraphObserver]] = None,
    max_steps: Optional[int] = None,
):
    """Decorator that turns an async workflow function into an ``Entrypoint``."""
    options = dict(name=name, checkpointer=checkpointer, observers=observers, max_steps=max_steps)
    if fn is None:
        return lambda inner: Entrypoint(inner, **options)
    return Entrypoint(fn, **options)
