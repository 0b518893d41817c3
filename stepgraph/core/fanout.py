"""
Fan-out/fan-in stage.

A fan-out node runs several independent sub-tasks concurrently against copies
of the same snapshot and returns one combined update. Sub-results are merged in
declaration order, never completion order, so replace-channel collisions
resolve the same way on every run: the later-declared sub-task wins.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence

from .config import settings
from .errors import ConfigurationError, ExecutionError, GraphError
from .state import StateSchema
from ..utils.helpers import call_maybe_async, gather_with_concurrency
from ..utils.logger import get_logger


logger = get_logger()


@dataclass(frozen=True)
class SubTask:
    """One independent unit of a fan-out stage."""
    name: str
    fn: Callable[[Mapping[str, Any]], Any]
    writes: Optional[FrozenSet[str]] = None


class FanOutStage:
    """
    Node callable that dispatches sub-tasks and joins their updates.

    Sub-tasks are either fixed (``subtasks``) or derived from the current
    state (``derive``). Any sub-task failure cancels the rest and fails the
    stage as a whole.
    """

    def __init__(
        self,
        name: str,
        schema: StateSchema,
        subtasks: Optional[Sequence[SubTask]] = None,
        derive: Optional[Callable[[Mapping[str, Any]], Iterable[SubTask]]] = None,
        max_concurrency: Optional[int] = None,
    ):
        if (subtasks is None) == (derive is None):
            raise ConfigurationError(
                f"Fan-out '{name}' needs exactly one of subtasks or derive"
            )
        self.name = name
        self.schema = schema
        self.subtasks: Optional[List[SubTask]] = None
        self.derive = derive
        self.max_concurrency = max_concurrency or settings.fanout_max_concurrency

        if subtasks is not None:
            self.subtasks = [self._coerce(task) for task in subtasks]
            if not self.subtasks:
                raise ConfigurationError(f"Fan-out '{name}' declares no sub-tasks")
            self._check_names(self.subtasks)
            for task in self.subtasks:
                if task.writes is not None:
                    schema.check_keys(task.writes, f"{name}.{task.name}")

    @property
    def writes(self) -> Optional[FrozenSet[str]]:
        """Union of declared sub-task writes, when every sub-task declares them."""
        if self.subtasks is None or any(t.writes is None for t in self.subtasks):
            return None
        return frozenset().union(*(t.writes for t in self.subtasks))

    async def __call__(self, state: Mapping[str, Any]) -> Dict[str, Any]:
        tasks = self.subtasks if self.subtasks is not None else self._derived(state)
        if not tasks:
            logger.with_component("FanOut").info(f"{self.name}: no sub-tasks to run")
            return {}

        logger.with_component("FanOut").info(
            f"{self.name}: dispatching {len(tasks)} sub-tasks "
            f"({', '.join(t.name for t in tasks)})"
        )
        # Each sub-task reads its own copy of the state
        runners = [
            partial(self._run_subtask, task, self.schema.snapshot(state)) for task in tasks
        ]
        results = await gather_with_concurrency(runners, self.max_concurrency)

        combined = self.schema.combine(
            results, owners=[f"{self.name}.{t.name}" for t in tasks]
        )
        logger.with_component("FanOut").info(
            f"{self.name}: joined {len(tasks)} sub-tasks into channels {sorted(combined)}"
        )
        return combined

    async def _run_subtask(self, task: SubTask, state: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
        owner = f"{self.name}.{task.name}"
        try:
            result = await call_maybe_async(task.fn, state)
        except GraphError:
            raise
        except Exception as exc:
            logger.with_component("FanOut").error(f"Sub-task {owner} failed: {exc}")
            raise ExecutionError(
                f"Sub-task '{task.name}' of fan-out '{self.name}' failed: "
                f"{type(exc).__name__}: {exc}",
                node=owner,
            ) from exc

        if result is not None and not isinstance(result, Mapping):
            raise ConfigurationError(
                f"Sub-task '{owner}' returned {type(result).__name__}; expected a mapping"
            )
        if result and task.writes is not None:
            undeclared = sorted(set(result) - task.writes)
            if undeclared:
                raise ConfigurationError(
                    f"Sub-task '{owner}' wrote undeclared channel(s): {', '.join(undeclared)}"
                )
        return result

    def _derived(self, state: Mapping[str, Any]) -> List[SubTask]:
        tasks = [self._coerce(task) for task in self.derive(state)]
        self._check_names(tasks)
        return tasks

    def _coerce(self, task: Any) -> SubTask:
        if isinstance(task, SubTask):
            return task
        if isinstance(task, tuple) and len(task) == 2:
            return SubTask(name=task[0], fn=task[1])
        raise ConfigurationError(
            f"Fan-out '{self.name}' got {task!r}; expected SubTask or (name, fn)"
        )

    def _check_names(self, tasks: Sequence[SubTask]) -> None:
        seen = set()
        for task in tasks:
            if task.name in seen:
                raise ConfigurationError(
                    f"Fan-out '{self.name}' has duplicate sub-task '{task.name}'"
                )
            seen.add(task.name)
