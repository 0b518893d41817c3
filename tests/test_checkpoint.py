"""
Tests for checkpoint stores.
"""

import asyncio
import json

from langchain_core.messages import AIMessage, HumanMessage, ToolMessage

from stepgraph.memory.checkpoint import FileCheckpointStore, InMemoryCheckpointStore


def sample_state():
    return {
        "messages": [
            HumanMessage(content="Add 3 and 4."),
            AIMessage(
                content="",
                tool_calls=[{"name": "add", "args": {"a": 3, "b": 4}, "id": "call_1", "type": "tool_call"}],
            ),
            ToolMessage(content="7", tool_call_id="call_1", name="add"),
            AIMessage(content="7"),
        ],
        "count": 3,
        "label": None,
    }


class TestInMemoryCheckpointStore:
    """Tests for the process-local store."""

    def test_roundtrip_and_isolation(self):
        """Saved states come back equal but not shared."""
        store = InMemoryCheckpointStore()
        state = {"count": 1, "log": ["a"]}

        async def scenario():
            await store.save("s", state)
            state["log"].append("mutated")
            return await store.load("s")

        loaded = asyncio.run(scenario())
        assert loaded == {"count": 1, "log": ["a"]}

    def test_missing_session(self):
        """Unknown sessions load as None."""
        assert asyncio.run(InMemoryCheckpointStore().load("nobody")) is None

    def test_delete_and_list(self):
        """Sessions can be listed and forgotten."""
        store = InMemoryCheckpointStore()

        async def scenario():
            await store.save("b", {"count": 1})
            await store.save("a", {"count": 2})
            listed = await store.list_sessions()
            removed = await store.delete("a")
            missing = await store.delete("a")
            return listed, removed, missing, await store.list_sessions()

        listed, removed, missing, remaining = asyncio.run(scenario())
        assert listed == ["a", "b"]
        assert removed is True
        assert missing is False
        assert remaining == ["b"]


class TestFileCheckpointStore:
    """Tests for the JSON file store."""

    def test_messages_roundtrip(self, tmp_path):
        """Message lists survive a save and load."""
        store = FileCheckpointStore(str(tmp_path))

        async def scenario():
            await store.save("session-1", sample_state())
            return await store.load("session-1")

        loaded = asyncio.run(scenario())
        messages = loaded["messages"]

        assert [m.type for m in messages] == ["human", "ai", "tool", "ai"]
        assert messages[1].tool_calls[0]["args"] == {"a": 3, "b": 4}
        assert messages[2].tool_call_id == "call_1"
        assert loaded["count"] == 3
        assert loaded["label"] is None

    def test_file_layout(self, tmp_path):
        """One JSON file per session, keyed by a filesystem-safe name."""
        store = FileCheckpointStore(str(tmp_path))
        asyncio.run(store.save("user/42", {"count": 1}))

        files = list(tmp_path.glob("*.json"))
        assert len(files) == 1
        assert files[0].name.startswith("user_42-")
        payload = json.loads(files[0].read_text(encoding="utf-8"))
        assert payload["session_id"] == "user/42"
        assert payload["state"] == {"count": 1}

    def test_list_and_delete(self, tmp_path):
        """Sessions are listed by their original ids."""
        store = FileCheckpointStore(str(tmp_path))

        async def scenario():
            await store.save("a", {"count": 1})
            await store.save("b c", {"count": 2})
            listed = await store.list_sessions()
            await store.delete("a")
            return sorted(listed), await store.list_sessions(), await store.load("a")

        listed, remaining, loaded = asyncio.run(scenario())
        assert listed == ["a", "b c"]
        assert remaining == ["b c"]
        assert loaded is None

    def test_missing_directory(self, tmp_path):
        """A store over a directory that does not exist yet is empty."""
        store = FileCheckpointStore(str(tmp_path / "later"))
        assert asyncio.run(store.list_sessions()) == []
        assert asyncio.run(store.load("x")) is None
