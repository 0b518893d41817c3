"""
Graph builder.

``StateGraph`` collects nodes and edges imperatively, then ``compile``
freezes them into a validated descriptor and returns an executable
``CompiledGraph``. ``compile_graph`` does the same from plain tables.
"""

from __future__ import annotations

from typing import (
    Any,
    Callable,
    Dict,
    Hashable,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Type,
    Union,
)

from .descriptor import (
    END,
    START,
    ConditionalEdge,
    Edge,
    NodeFn,
    NodeSpec,
    Router,
    StaticEdge,
    build_descriptor,
    normalize_path_map,
)
from .errors import ConfigurationError
from .events import GraphObserver
from .executor import CompiledGraph
from .fanout import FanOutStage, SubTask
from .state import StateSchema
from ..memory.checkpoint import BaseCheckpointStore


class StateGraph:
    """
    Imperative builder for a graph over a fixed state schema.

    Example:
        >>> graph = StateGraph(MessagesState)
        >>> graph.add_node("model_call", call_model, writes=["messages"])
        >>> graph.add_node("tool_exec", run_tools, writes=["messages"])
        >>> graph.add_edge(START, "model_call")
        >>> graph.add_conditional_edges(
        ...     "model_call", route_after_model, {"tools": "tool_exec", "end": END}
        ... )
        >>> graph.add_edge("tool_exec", "model_call")
        >>> app = graph.compile()
    """

    def __init__(self, schema: Union[StateSchema, Type]):
        if isinstance(schema, StateSchema):
            self.schema = schema
        else:
            self.schema = StateSchema.from_typed_dict(schema)
        self._nodes: Dict[str, NodeSpec] = {}
        self._edges: List[Edge] = []

    # ==================== Nodes ====================

    def add_node(
        self,
        name: str,
        fn: NodeFn,
        writes: Optional[Iterable[str]] = None,
        **metadata: Any,
    ) -> "StateGraph":
        """
        Register a node.

        Args:
            name: Unique node name (not START/END)
            fn: Sync or async callable taking a state snapshot and returning
                a partial update (or None)
            writes: Channels the node may write; checked against the schema now

        Raises:
            ConfigurationError: duplicate or reserved name, undeclared channel
        """
        if name in (START, END):
            raise ConfigurationError(f"Node name '{name}' is reserved")
        if name in self._nodes:
            raise ConfigurationError(f"Node '{name}' already exists in the graph")
        if not callable(fn):
            raise ConfigurationError(f"Node '{name}' must be callable")

        declared = frozenset(writes) if writes is not None else None
        if declared is not None:
            self.schema.check_keys(declared, name)
        self._nodes[name] = NodeSpec(name=name, fn=fn, writes=declared, metadata=metadata)
        return self

    def add_fanout_node(
        self,
        name: str,
        subtasks: Optional[Sequence[Union[SubTask, tuple]]] = None,
        derive: Optional[Callable[[Mapping[str, Any]], Iterable[SubTask]]] = None,
        max_concurrency: Optional[int] = None,
    ) -> "StateGraph":
        """Register a fan-out/fan-in node bound to this graph's schema."""
        stage = FanOutStage(
            name,
            self.schema,
            subtasks=subtasks,
            derive=derive,
            max_concurrency=max_concurrency,
        )
        return self.add_node(name, stage, writes=stage.writes, kind="fanout")

    # ==================== Edges ====================

    def add_edge(self, source: str, target: str) -> "StateGraph":
        """Add an unconditional edge."""
        self._edges.append(StaticEdge(source, target))
        return self

    def add_conditional_edges(
        self,
        source: str,
        router: Router,
        path_map: Optional[Union[Mapping[Hashable, str], Sequence[str]]] = None,
    ) -> "StateGraph":
        """
        Add a routed transition.

        Args:
            source: Node the edge leaves
            router: Pure function state -> label
            path_map: label -> destination mapping, or a list of destination
                names used as their own labels; inferred from a Literal return
                annotation when omitted
        """
        mapping = normalize_path_map(router, path_map)
        self._edges.append(ConditionalEdge(source, router, mapping))
        return self

    def set_entry_point(self, name: str) -> "StateGraph":
        return self.add_edge(START, name)

    def set_finish_point(self, name: str) -> "StateGraph":
        return self.add_edge(name, END)

    # ==================== Compile ====================

    def compile(
        self,
        checkpointer: Optional[BaseCheckpointStore] = None,
        observers: Optional[Iterable[GraphObserver]] = None,
        max_steps: Optional[int] = None,
        name: str = "graph",
    ) -> CompiledGraph:
        """Validate the wiring and return an executable graph."""
        descriptor = build_descriptor(self.schema, self._nodes.values(), self._edges)
        return CompiledGraph(
            descriptor,
            checkpointer=checkpointer,
            observers=observers,
            max_steps=max_steps,
            name=name,
        )


def compile_graph(
    schema: Union[StateSchema, Type],
    nodes: Union[Mapping[str, NodeFn], Iterable[NodeSpec]],
    edges: Iterable[Edge],
    entry: Optional[str] = None,
    **options: Any,
) -> CompiledGraph:
    """
    Compile a graph from plain node and edge tables.

    Args:
        schema: StateSchema or TypedDict
        nodes: name -> callable, or NodeSpec objects
        edges: StaticEdge / ConditionalEdge objects
        entry: Entry node; adds the START edge when given
        **options: Passed to CompiledGraph (checkpointer, observers, max_steps, name)
    """
    builder = StateGraph(schema)
    if isinstance(nodes, Mapping):
        for name, fn in nodes.items():
            builder.add_node(name, fn)
    else:
        for spec in nodes:
            builder.add_node(spec.name, spec.fn, writes=spec.writes, **dict(spec.metadata))
    builder._edges.extend(edges)
    if entry is not None:
        builder.set_entry_point(entry)
    return builder.compile(**options)
