"""
Tool-calling loop.

Two nodes over a messages-only state: ``model_call`` asks the provider for
the next AI message and ``tool_exec`` answers its tool calls. The loop ends
when the model replies without tool calls; the executor's step limit bounds
it otherwise.
"""

from typing import Any, Iterable, Literal, Mapping, Optional, Union

from .descriptor import END, START
from .events import GraphObserver
from .executor import CompiledGraph
from .graph import StateGraph
from .state import MESSAGES, MessagesState, pending_tool_calls
from ..agents.model_call import ModelCallAgent
from ..agents.tool_exec import ToolExecAgent
from ..memory.checkpoint import BaseCheckpointStore
from ..providers.base import ChatModelProvider
from ..tools.registry import ToolRegistry


MODEL_CALL = "model_call"
TOOL_EXEC = "tool_exec"


def route_after_model(state: Mapping[str, Any]) -> Literal["tools", "end"]:
    """
    Route after the model call.

    Returns:
        "tools" while the last AI message carries tool calls, else "end"
    """
    if pending_tool_calls(state):
        return "tools"
    return "end"


def build_tool_calling_graph(
    provider: ChatModelProvider,
    tools: Union[ToolRegistry, Iterable[Any], None] = None,
    system_prompt: Optional[str] = None,
    checkpointer: Optional[BaseCheckpointStore] = None,
    max_steps: Optional[int] = None,
    observers: Optional[Iterable[GraphObserver]] = None,
    max_concurrency: Optional[int] = None,
    name: str = "tool_loop",
) -> CompiledGraph:
    """
    Build the compiled model-call <-> tool-execution loop.

    Args:
        provider: Chat model provider
        tools: ToolRegistry, or tools/functions to register
        system_prompt: Prepended to every model call, never stored
        checkpointer: Store for multi-turn sessions
        max_steps: Node execution bound (defaults to settings.max_steps)
        observers: Graph event observers
        max_concurrency: Cap on concurrent tool calls within one message
        name: Graph name used in logs

    Returns:
        CompiledGraph whose input is ``{"messages": [...]}``
    """
    registry = tools if isinstance(tools, ToolRegistry) else ToolRegistry(tools)

    graph = StateGraph(MessagesState)
    graph.add_node(
        MODEL_CALL,
        ModelCallAgent(provider, registry, system_prompt),
        writes=[MESSAGES],
    )
    graph.add_node(
        TOOL_EXEC,
        ToolExecAgent(registry, max_concurrency=max_concurrency),
        writes=[MESSAGES],
    )
    graph.add_edge(START, MODEL_CALL)
    graph.add_conditional_edges(
        MODEL_CALL,
        route_after_model,
        {"tools": TOOL_EXEC, "end": END},
    )
    graph.add_edge(TOOL_EXEC, MODEL_CALL)

    return graph.compile(
        checkpointer=checkpointer,
        observers=observers,
        max_steps=max_steps,
        name=name,
    )
