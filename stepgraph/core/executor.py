"""
Graph executor.

Walks a compiled graph one node at a time: run the node against a
read-only snapshot, merge its partial update, resolve the outgoing edge,
and stop at END. The walk fails fast, is bounded by a step limit, and
turns caller cancellation into a CancellationError.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set

from .config import settings
from .descriptor import END, START, GraphDescriptor, NodeSpec, StaticEdge
from .errors import (
    CancellationError,
    ConfigurationError,
    ExecutionError,
    GraphError,
    StepLimitExceeded,
)
from .events import EventDispatcher, EventType, GraphObserver
from ..memory.checkpoint import BaseCheckpointStore
from ..utils.helpers import call_maybe_async, preview
from ..utils.logger import get_logger


logger = get_logger()


@dataclass
class RunConfig:
    """
    Per-walk options.

    Attributes:
        session_id: Key for checkpoint load/save (multi-turn sessions)
        max_steps: Node execution bound; falls back to the graph's, then settings
        observers: Extra observers for this walk only
        keep_snapshot_on_error: Attach the last good state to ExecutionError
        run_name: Label used in log lines
    """
    session_id: Optional[str] = None
    max_steps: Optional[int] = None
    observers: Sequence[GraphObserver] = field(default_factory=list)
    keep_snapshot_on_error: bool = False
    run_name: str = "walk"

    def __post_init__(self):
        if self.max_steps is not None and self.max_steps < 1:
            raise ConfigurationError(f"max_steps must be at least 1, got {self.max_steps}")

    @classmethod
    def coerce(cls, config: Optional[Any]) -> "RunConfig":
        """
        Accept a RunConfig, None, or a plain dict.

        Dicts may carry ``{"configurable": {"thread_id": ...}}`` in addition
        to the RunConfig field names.
        """
        if config is None:
            return cls()
        if isinstance(config, cls):
            return config
        if isinstance(config, Mapping):
            values = dict(config)
            configurable = values.pop("configurable", None) or {}
            session_id = (
                values.pop("session_id", None)
                or values.pop("thread_id", None)
                or configurable.get("session_id")
                or configurable.get("thread_id")
            )
            unknown = set(values) - {"max_steps", "observers", "keep_snapshot_on_error", "run_name"}
            if unknown:
                raise ConfigurationError(f"Unknown run option(s): {', '.join(sorted(unknown))}")
            return cls(session_id=session_id, **values)
        raise ConfigurationError(f"Unsupported run config type {type(config).__name__}")


@dataclass
class _Walk:
    """Mutable bookkeeping for one walk; never shared between walks."""
    state: Dict[str, Any]
    max_steps: int
    steps: int = 0
    current: Optional[str] = None
    last_node: Optional[str] = None
    started: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class CompiledGraph:
    """
    An executable graph.

    Instances are immutable with respect to structure and may be invoked
    many times, concurrently; each walk owns its own state.
    """

    def __init__(
        self,
        descriptor: GraphDescriptor,
        checkpointer: Optional[BaseCheckpointStore] = None,
        observers: Optional[Iterable[GraphObserver]] = None,
        max_steps: Optional[int] = None,
        name: str = "graph",
    ):
        if max_steps is not None and max_steps < 1:
            raise ConfigurationError("max_steps must be at least 1")
        self.descriptor = descriptor
        self.checkpointer = checkpointer
        self.observers: List[GraphObserver] = list(observers or [])
        self.max_steps = max_steps
        self.name = name

    @property
    def schema(self):
        return self.descriptor.schema

    @property
    def node_names(self) -> List[str]:
        return list(self.descriptor.nodes)

    # ==================== Public Interface ====================

    async def ainvoke(
        self,
        input: Optional[Mapping[str, Any]] = None,
        config: Optional[Any] = None,
    ) -> Dict[str, Any]:
        """
        Run one walk from START to END.

        Args:
            input: Partial initial state (merged onto a loaded checkpoint)
            config: RunConfig or equivalent dict

        Returns:
            The final state

        Raises:
            ConfigurationError, ExecutionError, StepLimitExceeded,
            CancellationError
        """
        run = RunConfig.coerce(config)
        max_steps = run.max_steps or self.max_steps or settings.max_steps
        dispatcher = EventDispatcher([*self.observers, *run.observers])
        walk: Optional[_Walk] = None

        logger.with_component("Executor").info(
            f"Starting {self.name}/{run.run_name} "
            f"(max_steps={max_steps}, session={run.session_id})"
        )

        try:
            state = await self._initial_state(input, run.session_id)
            walk = _Walk(state=state, max_steps=max_steps)
            with dispatcher.activate():
                await self._walk(walk, dispatcher, run)
            if self.checkpointer is not None and run.session_id:
                await self._save_checkpoint(run.session_id, walk)
        except asyncio.CancelledError as exc:
            last_node = walk.last_node if walk else None
            logger.with_component("Executor").warning(
                f"{self.name}/{run.run_name} cancelled after node {last_node}"
            )
            raise CancellationError(
                f"Walk '{run.run_name}' was cancelled", last_node=last_node
            ) from exc
        except GraphError as exc:
            logger.with_component("Executor").error(
                f"{self.name}/{run.run_name} failed with {exc.kind}: {exc}"
            )
            raise

        elapsed = (datetime.now(timezone.utc) - walk.started).total_seconds()
        logger.with_component("Executor").info(
            f"Finished {self.name}/{run.run_name} in {walk.steps} steps ({elapsed:.2f}s)"
        )
        return walk.state

    def invoke(
        self,
        input: Optional[Mapping[str, Any]] = None,
        config: Optional[Any] = None,
    ) -> Dict[str, Any]:
        """Synchronous wrapper around ``ainvoke`` for callers without a loop."""
        return asyncio.run(self.ainvoke(input, config))

    # ==================== Walk ====================

    async def _initial_state(
        self,
        input: Optional[Mapping[str, Any]],
        session_id: Optional[str],
    ) -> Dict[str, Any]:
        schema = self.descriptor.schema
        base = schema.defaults()
        if self.checkpointer is not None and session_id:
            try:
                saved = await self.checkpointer.load(session_id)
            except Exception as exc:
                raise ExecutionError(
                    f"Loading checkpoint for session '{session_id}' failed: "
                    f"{type(exc).__name__}: {exc}",
                    node="__checkpoint__",
                ) from exc
            if saved:
                known = {k: v for k, v in saved.items() if k in schema}
                base = schema.merge(base, known, owner="checkpoint")
                logger.with_component("Memory").debug(
                    f"Resumed session {session_id} with channels {sorted(known)}"
                )
        return schema.merge(base, input or {}, owner="input")

    async def _walk(self, walk: _Walk, dispatcher: EventDispatcher, run: RunConfig) -> None:
        descriptor = self.descriptor
        walk.current = descriptor.entry
        dispatcher.emit(EventType.EDGE_TAKEN, START, source=START, target=walk.current)

        while True:
            if walk.steps >= walk.max_steps:
                raise StepLimitExceeded(walk.max_steps, last_node=walk.last_node)

            node = descriptor.nodes[walk.current]
            dispatcher.step = walk.steps + 1
            update = await self._execute_node(node, walk, dispatcher, run)
            walk.steps += 1

            try:
                walk.state = descriptor.schema.merge(walk.state, update, owner=node.name)
            except ConfigurationError as exc:
                exc.last_node = exc.last_node or walk.last_node
                raise
            walk.last_node = node.name
            dispatcher.emit(
                EventType.NODE_EXITED, node.name, updated=sorted(update or {})
            )

            target, label = self._next_node(node.name, walk)
            dispatcher.emit(
                EventType.EDGE_TAKEN, node.name, source=node.name, target=target, label=label
            )
            logger.with_component("Executor").debug(
                f"[step {walk.steps}] {node.name} -> {target}"
                + (f" (label={label!r})" if label is not None else "")
            )
            if target == END:
                return
            walk.current = target

    async def _execute_node(
        self,
        node: NodeSpec,
        walk: _Walk,
        dispatcher: EventDispatcher,
        run: RunConfig,
    ) -> Optional[Mapping[str, Any]]:
        schema = self.descriptor.schema
        dispatcher.emit(EventType.NODE_ENTERED, node.name)
        if settings.log_state_values:
            logger.with_component("Executor").debug(
                f"Entering {node.name} with state {preview(walk.state, 300)}"
            )

        try:
            update = await call_maybe_async(node.fn, schema.snapshot(walk.state))
        except GraphError as exc:
            if exc.last_node is None:
                exc.last_node = walk.last_node
            if isinstance(exc, ExecutionError) and run.keep_snapshot_on_error:
                exc.snapshot = walk.state
            raise
        except Exception as exc:
            raise ExecutionError(
                f"Node '{node.name}' failed: {type(exc).__name__}: {exc}",
                node=node.name,
                last_node=walk.last_node,
                snapshot=walk.state if run.keep_snapshot_on_error else None,
            ) from exc

        if update is None:
            return None
        if not isinstance(update, Mapping):
            raise ConfigurationError(
                f"Node '{node.name}' returned {type(update).__name__}; "
                f"nodes must return a mapping of channel updates or None",
                last_node=walk.last_node,
            )
        if node.writes is not None:
            undeclared = sorted(set(update) - node.writes)
            if undeclared:
                raise ConfigurationError(
                    f"Node '{node.name}' wrote channel(s) it did not declare: "
                    f"{', '.join(undeclared)}",
                    last_node=walk.last_node,
                )
        return update

    def _next_node(self, source: str, walk: _Walk):
        edge = self.descriptor.edges[source]
        if isinstance(edge, StaticEdge):
            return edge.target, None

        snapshot = self.descriptor.schema.snapshot(walk.state)
        try:
            label = edge.router(snapshot)
        except Exception as exc:
            raise ConfigurationError(
                f"Routing function on '{source}' raised {type(exc).__name__}: {exc}",
                last_node=walk.last_node,
            ) from exc
        return edge.resolve(label, last_node=walk.last_node), label

    async def _save_checkpoint(self, session_id: str, walk: _Walk) -> None:
        try:
            await self.checkpointer.save(session_id, walk.state)
        except Exception as exc:
            raise ExecutionError(
                f"Saving checkpoint for session '{session_id}' failed: {exc}",
                node="__checkpoint__",
                last_node=walk.last_node,
            ) from exc

    # ==================== Introspection ====================

    def check_routes(self, samples: Iterable[Mapping[str, Any]]) -> Dict[str, Set[Any]]:
        """
        Run every routing function over sample states.

        Each sample is a partial state merged onto the schema defaults.
        Returns a mapping of source node -> labels that are not declared;
        an empty mapping means every observed label is covered.
        """
        schema = self.descriptor.schema
        states = [schema.initial_state(sample) for sample in samples]
        unmapped: Dict[str, Set[Any]] = {}
        for edge in self.descriptor.conditional_edges:
            for state in states:
                try:
                    label = edge.router(schema.snapshot(state))
                except Exception as exc:
                    raise ConfigurationError(
                        f"Routing function on '{edge.source}' raised "
                        f"{type(exc).__name__}: {exc}"
                    ) from exc
                if label not in edge.path_map:
                    unmapped.setdefault(edge.source, set()).add(label)
        return unmapped

    def draw_mermaid(self) -> str:
        """Render the graph as a Mermaid flowchart."""
        lines = ["graph TD;"]
        lines.append(f"\t{START}([{START}]):::first")
        for name in self.descriptor.nodes:
            lines.append(f"\t{name}({name})")
        lines.append(f"\t{END}([{END}]):::last")

        for source, edge in self.descriptor.edges.items():
            if isinstance(edge, StaticEdge):
                lines.append(f"\t{source} --> {edge.target};")
                continue
            for label, target in edge.path_map.items():
                if str(label) == target:
                    lines.append(f"\t{source} -.-> {target};")
                else:
                    lines.append(f"\t{source} -. &nbsp;{label}&nbsp; .-> {target};")

        lines.append("\tclassDef default fill:#f2f0ff,line-height:1.2")
        lines.append("\tclassDef first fill-opacity:0")
        lines.append("\tclassDef last fill:#bfb6fc")
        return "\n".join(lines)
