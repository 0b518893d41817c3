"""
Tests for the state container.
"""

import asyncio
from typing import Annotated, List, Optional, TypedDict

import pytest
from langchain_core.messages import AIMessage, HumanMessage, ToolMessage

from stepgraph.core.descriptor import END, START
from stepgraph.core.errors import ConfigurationError
from stepgraph.core.graph import StateGraph
from stepgraph.core.state import (
    MESSAGES,
    Channel,
    MergePolicy,
    MessagesState,
    StateSchema,
    create_initial_state,
    detach,
    last_ai_message,
    messages_schema,
    pending_tool_calls,
)


class TestMergePolicy:
    """Tests for channel merge policies."""

    def test_policy_values(self):
        """Test MergePolicy enum values."""
        assert MergePolicy.REPLACE.value == "replace"
        assert MergePolicy.APPEND.value == "append"

    def test_replace_overwrites(self):
        """Replace channels keep only the new value."""
        channel = Channel("flag", str)
        assert channel.merge("old", "new") == "new"

    def test_append_concatenates_in_order(self):
        """Append channels add new items after the existing ones."""
        channel = Channel("log", str, MergePolicy.APPEND)
        assert channel.merge(["a"], ["b", "c"]) == ["a", "b", "c"]

    def test_append_single_item(self):
        """A bare value on an append channel is one item."""
        channel = Channel("log", str, MergePolicy.APPEND)
        assert channel.merge(["a"], "b") == ["a", "b"]

    def test_append_does_not_mutate_current(self):
        """Merging returns a new list."""
        channel = Channel("log", str, MergePolicy.APPEND)
        current = ["a"]
        channel.merge(current, ["b"])
        assert current == ["a"]

    def test_type_mismatch(self):
        """Writing the wrong type is a configuration error."""
        channel = Channel("count", int)
        with pytest.raises(ConfigurationError, match="count"):
            channel.merge(0, "three", owner="bad_node")

    def test_int_accepted_for_float(self):
        """Integers are valid values of float channels."""
        channel = Channel("confidence", float)
        assert channel.merge(None, 1) == 1


class TestStateSchema:
    """Tests for StateSchema."""

    def test_defaults(self, counter_schema):
        """Defaults come from the channel declarations."""
        assert counter_schema.defaults() == {"count": 0, "log": []}

    def test_merge_returns_new_state(self, counter_schema):
        """Merging never mutates the input state."""
        state = counter_schema.initial_state()
        merged = counter_schema.merge(state, {"count": 5, "log": ["x"]}, owner="n")
        assert merged == {"count": 5, "log": ["x"]}
        assert state == {"count": 0, "log": []}

    def test_unknown_channel(self, counter_schema):
        """Updates to undeclared channels are rejected."""
        with pytest.raises(ConfigurationError, match="undeclared"):
            counter_schema.merge(counter_schema.initial_state(), {"missing": 1}, owner="n")

    def test_combine_declaration_order(self, counter_schema):
        """Replace keeps the last update; append keeps every update in order."""
        combined = counter_schema.combine([
            {"count": 1, "log": ["first"]},
            None,
            {"count": 2, "log": ["second"]},
        ])
        assert combined == {"count": 2, "log": ["first", "second"]}

    def test_snapshot_is_read_only(self, counter_schema):
        """Snapshots cannot be mutated by nodes."""
        snapshot = counter_schema.snapshot({"count": 1, "log": ["a"]})
        assert snapshot["log"] == ("a",)
        with pytest.raises(TypeError):
            snapshot["count"] = 2

    def test_duplicate_channel(self):
        """A channel name may be declared once."""
        with pytest.raises(ConfigurationError):
            StateSchema([Channel("a"), Channel("a")])

    def test_empty_schema(self):
        """A schema needs at least one channel."""
        with pytest.raises(ConfigurationError):
            StateSchema([])

    def test_from_typed_dict(self):
        """Annotated append fields become append channels."""

        class ExampleState(TypedDict):
            topic: str
            score: Optional[float]
            notes: Annotated[List[str], MergePolicy.APPEND]

        schema = StateSchema.from_typed_dict(ExampleState)

        assert schema.names == ["topic", "score", "notes"]
        assert schema.channel("notes").is_append
        assert schema.channel("notes").type is str
        assert schema.channel("topic").type is str
        assert schema.channel("score").type is object
        assert not schema.channel("topic").is_append

    def test_describe(self, counter_schema):
        """Describe lists every channel with its policy."""
        assert counter_schema.describe() == {"count": "int (replace)", "log": "str (append)"}


class TestIsolation:
    """State values are copied in and out; nodes cannot mutate state in place."""

    @pytest.fixture
    def tags_schema(self):
        return StateSchema([
            Channel("tags", list),
            Channel("meta", dict),
            Channel(MESSAGES, object, MergePolicy.APPEND),
        ])

    def test_detach_copies_containers(self):
        """Nested containers are copied; other objects are shared."""
        marker = object()
        value = {"a": [1, {"b": [2]}], "c": (3, [4]), "d": marker}
        copied = detach(value)

        assert copied == value
        assert copied["a"] is not value["a"]
        assert copied["a"][1]["b"] is not value["a"][1]["b"]
        assert copied["c"][1] is not value["c"][1]
        assert copied["d"] is marker

    def test_detach_copies_messages(self):
        """Messages are deep-copied."""
        message = AIMessage(content="hi", additional_kwargs={"k": ["v"]})
        copied = detach(message)
        assert copied == message
        assert copied is not message
        assert copied.additional_kwargs["k"] is not message.additional_kwargs["k"]

    def test_in_place_mutation_does_not_leak(self, tags_schema):
        """A node mutating its snapshot changes neither state nor the caller's input."""

        def meddle(state):
            state["tags"].append("leaked")
            state["meta"]["seen"] = True
            state[MESSAGES][0].content = "rewritten"
            return None

        graph = StateGraph(tags_schema)
        graph.add_node("meddle", meddle)
        graph.add_edge(START, "meddle")
        graph.add_edge("meddle", END)

        tags = ["orig"]
        meta = {}
        messages = [HumanMessage(content="hello")]
        result = graph.compile().invoke({"tags": tags, "meta": meta, MESSAGES: messages})

        assert result["tags"] == ["orig"]
        assert result["meta"] == {}
        assert result[MESSAGES][0].content == "hello"
        assert tags == ["orig"]
        assert meta == {}
        assert messages[0].content == "hello"

    def test_returned_values_are_detached(self, tags_schema):
        """Mutating a value after returning it does not reach the state."""
        written = ["a"]
        seen = []

        def write(state):
            return {"tags": written}

        def mutate_later(state):
            written.append("late")
            return None

        def read(state):
            seen.append(list(state["tags"]))
            return None

        graph = StateGraph(tags_schema)
        graph.add_node("write", write)
        graph.add_node("mutate_later", mutate_later)
        graph.add_node("read", read)
        graph.add_edge(START, "write")
        graph.add_edge("write", "mutate_later")
        graph.add_edge("mutate_later", "read")
        graph.add_edge("read", END)

        result = graph.compile().invoke()

        assert seen == [["a"]]
        assert result["tags"] == ["a"]

    def test_fanout_subtasks_do_not_share_values(self, tags_schema):
        """A sub-task mutating its input is invisible to its siblings."""
        seen = []

        async def mutate(state):
            state["tags"].append("leaked")
            await asyncio.sleep(0.01)
            return None

        async def observe(state):
            await asyncio.sleep(0.02)
            seen.append(list(state["tags"]))
            return None

        graph = StateGraph(tags_schema)
        graph.add_fanout_node("both", subtasks=[("mutate", mutate), ("observe", observe)])
        graph.set_entry_point("both")
        graph.set_finish_point("both")

        result = graph.compile().invoke({"tags": ["orig"]})

        assert seen == [["orig"]]
        assert result["tags"] == ["orig"]


class TestMessageHelpers:
    """Tests for message-state helpers."""

    def test_messages_state_schema(self):
        """MessagesState declares an append transcript."""
        schema = StateSchema.from_typed_dict(MessagesState)
        assert schema.channel(MESSAGES).is_append
        assert messages_schema().channel(MESSAGES).is_append

    def test_create_initial_state(self):
        """Initial input holds a single human message."""
        state = create_initial_state("Add 3 and 4.")
        assert len(state[MESSAGES]) == 1
        assert isinstance(state[MESSAGES][0], HumanMessage)

    def test_pending_tool_calls(self):
        """Only the final AI message's calls are pending."""
        call = {"name": "add", "args": {"a": 1, "b": 2}, "id": "c1", "type": "tool_call"}
        asking = AIMessage(content="", tool_calls=[call])
        answered = ToolMessage(content="3", tool_call_id="c1", name="add")

        assert len(pending_tool_calls({MESSAGES: [HumanMessage("hi"), asking]})) == 1
        assert pending_tool_calls({MESSAGES: [asking, answered]}) == []
        assert pending_tool_calls({MESSAGES: []}) == []

    def test_last_ai_message(self):
        """The most recent AI message is found behind tool results."""
        first = AIMessage(content="one")
        second = AIMessage(content="two")
        messages = [HumanMessage("q"), first, second, ToolMessage("r", tool_call_id="x")]
        assert last_ai_message(messages) is second
        assert last_ai_message([HumanMessage("q")]) is None
