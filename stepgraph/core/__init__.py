"""
Core module containing configuration, state, graph building and execution.
"""

from .config import Config, settings
from .errors import (
    CancellationError,
    ConfigurationError,
    ExecutionError,
    GraphError,
    StepLimitExceeded,
    ValidationError,
)
from .state import Channel, MergePolicy, MessagesState, StateSchema, messages_schema
from .descriptor import END, START, ConditionalEdge, StaticEdge
from .events import EventType, GraphObserver, LoggingObserver, RecordingObserver
from .executor import CompiledGraph, RunConfig
from .fanout import FanOutStage, SubTask
from .functional import Entrypoint, Task, entrypoint, task
from .graph import StateGraph, compile_graph

__all__ = [
    "Config",
    "settings",
    "GraphError",
    "ConfigurationError",
    "ExecutionError",
    "ValidationError",
    "StepLimitExceeded",
    "CancellationError",
    "Channel",
    "MergePolicy",
    "MessagesState",
    "StateSchema",
    "messages_schema",
    "START",
    "END",
    "StaticEdge",
    "ConditionalEdge",
    "EventType",
    "GraphObserver",
    "LoggingObserver",
    "RecordingObserver",
    "CompiledGraph",
    "RunConfig",
    "FanOutStage",
    "SubTask",
    "Entrypoint",
    "Task",
    "entrypoint",
    "task",
    "StateGraph",
    "compile_graph",
]
