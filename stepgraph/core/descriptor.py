"""
Immutable graph descriptor and compile-time validation.

A descriptor is the frozen form of a graph: node table, one outgoing edge
per node, and the channel schema. Everything that can be checked without
running the graph is checked here, so wiring mistakes never reach a walk.
"""

from __future__ import annotations

import inspect
from collections import deque
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import (
    Any,
    Callable,
    Dict,
    FrozenSet,
    Hashable,
    Iterable,
    List,
    Literal,
    Mapping,
    Optional,
    Sequence,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

from .errors import ConfigurationError
from .state import StateSchema


START = "__start__"
END = "__end__"

RESERVED_NAMES = frozenset({START, END})

NodeFn = Callable[[Mapping[str, Any]], Any]
Router = Callable[[Mapping[str, Any]], Hashable]


# ==================== Nodes ====================

@dataclass(frozen=True)
class NodeSpec:
    """A registered unit of work."""
    name: str
    fn: NodeFn
    writes: Optional[FrozenSet[str]] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)


# ==================== Edges ====================

@dataclass(frozen=True)
class StaticEdge:
    """Unconditional transition, always taken."""
    source: str
    target: str

    @property
    def destinations(self) -> FrozenSet[str]:
        return frozenset({self.target})


@dataclass(frozen=True)
class ConditionalEdge:
    """Transition chosen by ``router(state)`` among a declared label map."""
    source: str
    router: Router
    path_map: Mapping[Hashable, str]

    @property
    def destinations(self) -> FrozenSet[str]:
        return frozenset(self.path_map.values())

    @property
    def labels(self) -> List[Hashable]:
        return list(self.path_map)

    def resolve(self, label: Hashable, last_node: Optional[str] = None) -> str:
        """Map a routing label to its destination or fail loudly."""
        try:
            return self.path_map[label]
        except (KeyError, TypeError):
            raise ConfigurationError(
                f"Routing function '{_callable_name(self.router)}' on node "
                f"'{self.source}' returned unmapped label {label!r}; "
                f"declared labels: {sorted(map(str, self.path_map))}",
                last_node=last_node,
            ) from None


Edge = Union[StaticEdge, ConditionalEdge]


def normalize_path_map(
    router: Router,
    path_map: Optional[Union[Mapping[Hashable, str], Sequence[str]]],
) -> Dict[Hashable, str]:
    """
    Turn the declared destinations into a label -> destination mapping.

    A sequence of node names maps each name to itself. When nothing is
    declared the router's ``Literal[...]`` return annotation supplies the
    labels, each naming its destination node.
    """
    if path_map is None:
        labels = _literal_labels(router)
        if not labels:
            raise ConfigurationError(
                f"Routing function '{_callable_name(router)}' needs a path map "
                f"or a Literal[...] return annotation"
            )
        return {label: label for label in labels}
    if isinstance(path_map, Mapping):
        return dict(path_map)
    if isinstance(path_map, str):
        return {path_map: path_map}
    return {dest: dest for dest in path_map}


def _literal_labels(router: Router) -> List[Hashable]:
    target = router
    if not (inspect.isfunction(router) or inspect.ismethod(router)):
        target = getattr(router, "__call__", router)
    try:
        hints = get_type_hints(target)
    except Exception:
        return []
    returned = hints.get("return")
    if get_origin(returned) is Literal:
        return list(get_args(returned))
    return []


def _callable_name(fn: Callable) -> str:
    return getattr(fn, "__name__", type(fn).__name__)


# ==================== Descriptor ====================

@dataclass(frozen=True)
class GraphDescriptor:
    """
    Validated, immutable graph.

    Attributes:
        schema: Channel schema shared by every node
        nodes: Node name -> NodeSpec
        edges: Source name -> its single outgoing edge (START included)
    """
    schema: StateSchema
    nodes: Mapping[str, NodeSpec]
    edges: Mapping[str, Edge]

    @property
    def entry(self) -> str:
        edge = self.edges[START]
        assert isinstance(edge, StaticEdge)
        return edge.target

    @property
    def conditional_edges(self) -> List[ConditionalEdge]:
        return [e for e in self.edges.values() if isinstance(e, ConditionalEdge)]


def build_descriptor(
    schema: StateSchema,
    nodes: Iterable[NodeSpec],
    edges: Iterable[Edge],
) -> GraphDescriptor:
    """
    Validate a node and edge table and freeze it.

    Raises:
        ConfigurationError: on any wiring problem
    """
    node_table: Dict[str, NodeSpec] = {}
    for node in nodes:
        _check_node(schema, node)
        if node.name in node_table:
            raise ConfigurationError(f"Node '{node.name}' is registered twice")
        node_table[node.name] = node

    if not node_table:
        raise ConfigurationError("A graph needs at least one node")

    edge_table: Dict[str, Edge] = {}
    for edge in edges:
        _check_edge(edge, node_table)
        if edge.source in edge_table:
            raise ConfigurationError(
                f"Node '{edge.source}' has more than one outgoing edge; "
                f"use a single conditional edge to branch"
            )
        edge_table[edge.source] = edge

    if START not in edge_table:
        raise ConfigurationError("No entry point: add an edge from START")
    if not isinstance(edge_table[START], StaticEdge):
        raise ConfigurationError("The edge leaving START must be a static edge")

    missing = sorted(name for name in node_table if name not in edge_table)
    if missing:
        raise ConfigurationError(
            f"Node(s) without an outgoing edge: {', '.join(missing)}"
        )

    reachable = _reachable(edge_table)
    unreachable = sorted(name for name in node_table if name not in reachable)
    if unreachable:
        raise ConfigurationError(
            f"Node(s) unreachable from START: {', '.join(unreachable)}"
        )
    if END not in reachable:
        raise ConfigurationError("END is not reachable from START on any path")

    return GraphDescriptor(
        schema=schema,
        nodes=MappingProxyType(node_table),
        edges=MappingProxyType(edge_table),
    )


def _check_node(schema: StateSchema, node: NodeSpec) -> None:
    if not node.name or not isinstance(node.name, str):
        raise ConfigurationError(f"Invalid node name {node.name!r}")
    if node.name in RESERVED_NAMES:
        raise ConfigurationError(f"Node name '{node.name}' is reserved")
    if not callable(node.fn):
        raise ConfigurationError(f"Node '{node.name}' must be callable")
    if node.writes is not None:
        schema.check_keys(node.writes, node.name)


def _check_edge(edge: Edge, nodes: Mapping[str, NodeSpec]) -> None:
    if edge.source == END:
        raise ConfigurationError("END cannot have outgoing edges")
    if edge.source != START and edge.source not in nodes:
        raise ConfigurationError(f"Edge source '{edge.source}' is not a registered node")

    if isinstance(edge, ConditionalEdge):
        if not callable(edge.router):
            raise ConfigurationError(f"Router on '{edge.source}' must be callable")
        if not edge.path_map:
            raise ConfigurationError(
                f"Conditional edge on '{edge.source}' declares no labels"
            )

    for target in edge.destinations:
        if target == START:
            raise ConfigurationError(f"Edge from '{edge.source}' may not target START")
        if target != END and target not in nodes:
            raise ConfigurationError(
                f"Edge from '{edge.source}' targets unregistered node '{target}'"
            )


def _reachable(edges: Mapping[str, Edge]) -> set:
    seen = {START}
    queue = deque([START])
    while queue:
        current = queue.popleft()
        edge = edges.get(current)
        if edge is None:
            continue
        for target in edge.destinations:
            if target not in seen:
                seen.add(target)
                queue.append(target)
    return seen
