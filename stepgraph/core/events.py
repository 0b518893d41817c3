"""
Observability hooks for graph walks.

Observers are notified of node, edge and tool events. Dispatch is
fire-and-forget: an observer that raises is logged and ignored, and nothing
an observer does can change where the walk goes next.
"""

from __future__ import annotations

import asyncio
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional

from ..utils.helpers import preview
from ..utils.logger import get_logger


logger = get_logger()


class EventType(str, Enum):
    """Kinds of events emitted during a walk."""
    NODE_ENTERED = "node_entered"
    NODE_EXITED = "node_exited"
    EDGE_TAKEN = "edge_taken"
    TOOL_INVOKED = "tool_invoked"
    TOOL_RESULT = "tool_result"


@dataclass
class GraphEvent:
    """A single observability event."""
    type: EventType
    node: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    step: int = 0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "node": self.node,
            "data": self.data,
            "step": self.step,
            "timestamp": self.timestamp.isoformat(),
        }


class GraphObserver:
    """
    Base observer. Subclasses override ``on_event``.

    ``on_event`` is called synchronously from the walk and must return
    quickly; slow sinks should buffer (see ``QueueObserver``).
    """

    def on_event(self, event: GraphEvent) -> None:
        pass


class LoggingObserver(GraphObserver):
    """Writes every event to the stepgraph logger at DEBUG level."""

    def __init__(self, component: str = "Executor"):
        self.component = component

    def on_event(self, event: GraphEvent) -> None:
        detail = f" {preview(event.data)}" if event.data else ""
        logger.with_component(self.component).debug(
            f"[step {event.step}] {event.type.value} {event.node or ''}{detail}"
        )


class RecordingObserver(GraphObserver):
    """Keeps every event in memory; handy for tests and post-run reports."""

    def __init__(self):
        self.events: List[GraphEvent] = []

    def on_event(self, event: GraphEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: EventType) -> List[GraphEvent]:
        return [e for e in self.events if e.type == event_type]

    def node_sequence(self) -> List[str]:
        """Names of nodes in the order they were entered."""
        return [e.node for e in self.of_type(EventType.NODE_ENTERED)]


class QueueObserver(GraphObserver):
    """
    Buffers events on an asyncio queue for a consumer task.

    Events are dropped (and counted) when the queue is full so the walk is
    never blocked by a slow consumer.
    """

    def __init__(self, maxsize: int = 1000):
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def on_event(self, event: GraphEvent) -> None:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1


_active_dispatcher: ContextVar[Optional["EventDispatcher"]] = ContextVar(
    "stepgraph_active_dispatcher", default=None
)


def emit_event(event_type: EventType, node: Optional[str] = None, **data: Any) -> None:
    """Emit an event to the walk currently running in this context, if any."""
    dispatcher = _active_dispatcher.get()
    if dispatcher is not None:
        dispatcher.emit(event_type, node, **data)


class EventDispatcher:
    """Fans events out to a set of observers, isolating their failures."""

    def __init__(self, observers: Optional[Iterable[GraphObserver]] = None):
        self.observers: List[GraphObserver] = list(observers or [])
        self.step = 0

    def emit(self, event_type: EventType, node: Optional[str] = None, **data: Any) -> None:
        if not self.observers:
            return
        event = GraphEvent(type=event_type, node=node, data=data, step=self.step)
        for observer in self.observers:
            try:
                observer.on_event(event)
            except Exception as e:
                # Observers must never affect the walk
                logger.with_component("Executor").debug(
                    f"Observer {type(observer).__name__} failed: {e}"
                )

    @contextmanager
    def activate(self) -> Iterator["EventDispatcher"]:
        """Make this dispatcher the target of ``emit_event`` for the block."""
        token = _active_dispatcher.set(self)
        try:
            yield self
        finally:
            _active_dispatcher.reset(token)
