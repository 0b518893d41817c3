"""
State definitions for graph execution.

A graph declares a fixed schema of channels. Each channel has a semantic
type and a merge policy that decides how a node's partial update is folded
into the running state.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import (
    Any,
    Annotated,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    TypedDict,
    get_args,
    get_origin,
    get_type_hints,
)

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from langchain_core.messages.tool import ToolCall
from pydantic import BaseModel

from .errors import ConfigurationError


# ==================== Enums ====================

class MergePolicy(str, Enum):
    """How a channel combines an incoming value with its current value."""
    REPLACE = "replace"  # New value fully overwrites the old one
    APPEND = "append"    # New items are concatenated in arrival order


# ==================== Value Isolation ====================

def detach(value: Any) -> Any:
    """
    Copy a channel value so that neither side can reach the other through it.

    Lists, tuples, sets and dicts are copied recursively and pydantic models
    (LangChain messages included) are deep-copied. Other objects are shared.
    """
    if isinstance(value, BaseModel):
        return value.model_copy(deep=True)
    kind = type(value)
    if kind is list:
        return [detach(item) for item in value]
    if kind is tuple:
        return tuple(detach(item) for item in value)
    if kind is dict:
        return {key: detach(item) for key, item in value.items()}
    if kind in (set, frozenset):
        return kind(value)
    return value


# ==================== Channels ====================

@dataclass(frozen=True)
class Channel:
    """
    One named slot of graph state.

    ``type`` is the value type for replace channels and the item type for
    append channels. It is checked with ``isinstance`` when it is a plain
    class; typing constructs are treated as documentation only.
    """
    name: str
    type: Any = object
    policy: MergePolicy = MergePolicy.REPLACE
    default: Any = None
    default_factory: Optional[Callable[[], Any]] = None

    @property
    def is_append(self) -> bool:
        return self.policy == MergePolicy.APPEND

    def initial_value(self) -> Any:
        if self.default_factory is not None:
            return self.default_factory()
        if self.is_append:
            return list(self.default or [])
        return self.default

    def merge(self, current: Any, update: Any, owner: Optional[str] = None) -> Any:
        """Fold ``update`` into ``current`` according to the policy."""
        if not self.is_append:
            self._check_type(update, owner)
            return detach(update)

        if isinstance(update, (list, tuple)):
            items = list(update)
        else:
            items = [update]
        for item in items:
            self._check_type(item, owner)
        return list(current or []) + [detach(item) for item in items]

    def _check_type(self, value: Any, owner: Optional[str]) -> None:
        if value is None or not isinstance(self.type, type) or self.type is object:
            return
        # int is accepted where float is declared
        if self.type is float and isinstance(value, int) and not isinstance(value, bool):
            return
        if not isinstance(value, self.type):
            raise ConfigurationError(
                f"Node '{owner or '?'}' wrote {type(value).__name__} to channel "
                f"'{self.name}' declared as {self.type.__name__}"
            )


class StateSchema:
    """
    Fixed channel schema for a graph.

    The schema validates which channels a node may write and performs every
    merge. It never mutates the state it is given; each merge returns a new
    mapping.
    """

    def __init__(self, channels: Iterable[Channel]):
        self._channels: Dict[str, Channel] = {}
        for channel in channels:
            if channel.name in self._channels:
                raise ConfigurationError(f"Channel '{channel.name}' declared twice")
            self._channels[channel.name] = channel
        if not self._channels:
            raise ConfigurationError("A state schema needs at least one channel")

    @classmethod
    def from_typed_dict(cls, state_type: type) -> "StateSchema":
        """
        Build a schema from a TypedDict.

        Fields annotated as ``Annotated[List[X], MergePolicy.APPEND]`` become
        append channels; every other field is a replace channel.
        """
        hints = get_type_hints(state_type, include_extras=True)
        channels = []
        for name, hint in hints.items():
            policy = MergePolicy.REPLACE
            value_type = hint
            if get_origin(hint) is Annotated:
                base, *metadata = get_args(hint)
                value_type = base
                if MergePolicy.APPEND in metadata:
                    policy = MergePolicy.APPEND
            if policy == MergePolicy.APPEND:
                item_args = get_args(value_type)
                item_type = item_args[0] if item_args else object
                channels.append(Channel(name, item_type, policy))
            else:
                plain = value_type if isinstance(value_type, type) else object
                channels.append(Channel(name, plain, policy))
        return cls(channels)

    @property
    def names(self) -> List[str]:
        return list(self._channels)

    def __contains__(self, name: object) -> bool:
        return name in self._channels

    def __iter__(self):
        return iter(self._channels.values())

    def channel(self, name: str) -> Channel:
        try:
            return self._channels[name]
        except KeyError:
            raise ConfigurationError(f"Unknown channel '{name}'") from None

    def check_keys(self, keys: Iterable[str], owner: str) -> None:
        """Reject channel names that are not part of the schema."""
        unknown = sorted(set(keys) - set(self._channels))
        if unknown:
            raise ConfigurationError(
                f"'{owner}' writes undeclared channel(s): {', '.join(unknown)}"
            )

    def defaults(self) -> Dict[str, Any]:
        return {name: ch.initial_value() for name, ch in self._channels.items()}

    def initial_state(self, values: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Create a fresh state from the channel defaults plus ``values``."""
        return self.merge(self.defaults(), values or {}, owner="input")

    def merge(
        self,
        state: Mapping[str, Any],
        update: Optional[Mapping[str, Any]],
        owner: str = "?",
    ) -> Dict[str, Any]:
        """Return a new state with ``update`` merged into ``state``."""
        merged = dict(state)
        if not update:
            return merged
        self.check_keys(update.keys(), owner)
        for name, value in update.items():
            channel = self._channels[name]
            merged[name] = channel.merge(merged.get(name), value, owner=owner)
        return merged

    def combine(
        self,
        updates: Sequence[Optional[Mapping[str, Any]]],
        owners: Optional[Sequence[str]] = None,
    ) -> Dict[str, Any]:
        """
        Fold several partial updates into one, in the order given.

        Replace channels keep the value of the last update that wrote them;
        append channels concatenate the items of every update in order.
        """
        combined: Dict[str, Any] = {}
        for index, update in enumerate(updates):
            if not update:
                continue
            owner = owners[index] if owners else f"update[{index}]"
            self.check_keys(update.keys(), owner)
            for name, value in update.items():
                channel = self._channels[name]
                if channel.is_append:
                    combined[name] = channel.merge(combined.get(name), value, owner=owner)
                else:
                    combined[name] = channel.merge(None, value, owner=owner)
        return combined

    def snapshot(self, state: Mapping[str, Any]) -> Mapping[str, Any]:
        """
        Read-only view handed to nodes; append channels become tuples.

        Values are detached from ``state``, so a node that mutates what it
        reads changes only its own copy.
        """
        frozen = {}
        for name, value in state.items():
            if self._channels[name].is_append and value is not None:
                frozen[name] = tuple(detach(item) for item in value)
            else:
                frozen[name] = detach(value)
        return MappingProxyType(frozen)

    def describe(self) -> Dict[str, str]:
        return {
            name: f"{getattr(ch.type, '__name__', str(ch.type))} ({ch.policy.value})"
            for name, ch in self._channels.items()
        }


# ==================== Message State ====================

MESSAGES = "messages"


class MessagesState(TypedDict):
    """
    Transcript-only state used by the tool-calling loop.

    messages: append-only list of LangChain BaseMessage objects; every node
              that produces messages adds to it and nothing is removed.
    """

    messages: Annotated[List[BaseMessage], MergePolicy.APPEND]


def messages_schema(*extra: Channel) -> StateSchema:
    """Schema with an append ``messages`` channel plus any extra channels."""
    return StateSchema([Channel(MESSAGES, BaseMessage, MergePolicy.APPEND), *extra])


def create_initial_state(query: str, **values: Any) -> Dict[str, Any]:
    """
    Create initial input for a tool-calling walk.

    Args:
        query: User's input text
        **values: Extra channel values

    Returns:
        Partial state with the human message
    """
    return {MESSAGES: [HumanMessage(content=query)], **values}


# ==================== State Helper Functions ====================

def last_ai_message(messages: Sequence[BaseMessage]) -> Optional[AIMessage]:
    """Return the most recent AI message in the transcript, if any."""
    for message in reversed(messages):
        if isinstance(message, AIMessage):
            return message
    return None


def pending_tool_calls(state: Mapping[str, Any]) -> List[ToolCall]:
    """
    Tool calls still awaiting execution.

    Only the transcript's final message counts: once tool results follow an
    AI message its calls are considered answered.
    """
    messages = state.get(MESSAGES) or ()
    if not messages:
        return []
    last = messages[-1]
    if isinstance(last, AIMessage):
        return list(last.tool_calls or [])
    return []
