"""
stepgraph - A graph-based agent execution engine

Nodes read a typed state snapshot and return partial updates, edges route
between them statically or by routing function, and the executor walks the
graph from START to END. Includes a tool-calling loop, concurrent
fan-out/fan-in stages and a functional task/entrypoint API.
"""

__version__ = "1.0.0"
__author__ = "stepgraph Team"

from .core import (
    END,
    START,
    CancellationError,
    Channel,
    CompiledGraph,
    ConfigurationError,
    Entrypoint,
    ExecutionError,
    GraphError,
    MergePolicy,
    MessagesState,
    RunConfig,
    StateGraph,
    StateSchema,
    StepLimitExceeded,
    SubTask,
    ValidationError,
    compile_graph,
    entrypoint,
    task,
)
from .core.tool_loop import build_tool_calling_graph
from .memory import FileCheckpointStore, InMemoryCheckpointStore
from .tools.registry import ToolRegistry

__all__ = [
    "END",
    "START",
    "CancellationError",
    "Channel",
    "CompiledGraph",
    "ConfigurationError",
    "Entrypoint",
    "ExecutionError",
    "GraphError",
    "MergePolicy",
    "MessagesState",
    "RunConfig",
    "StateGraph",
    "StateSchema",
    "StepLimitExceeded",
    "SubTask",
    "ValidationError",
    "compile_graph",
    "entrypoint",
    "task",
    "build_tool_calling_graph",
    "FileCheckpointStore",
    "InMemoryCheckpointStore",
    "ToolRegistry",
]
