"""
Test configuration and fixtures.
"""

import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set test environment variables
os.environ.setdefault("STEPGRAPH_GEMINI_API_KEY", "")
os.environ.setdefault("STEPGRAPH_LOG_LEVEL", "DEBUG")
os.environ.setdefault("STEPGRAPH_MAX_STEPS", "25")
os.environ.setdefault("STEPGRAPH_LLM_MAX_RETRIES", "0")

from stepgraph.core.state import Channel, MergePolicy, StateSchema  # noqa: E402
from stepgraph.demos.tools import ARITHMETIC_TOOLS  # noqa: E402
from stepgraph.providers.scripted import ScriptedChatModel, ai_tool_call  # noqa: E402


@pytest.fixture
def counter_schema():
    """Schema with one replace channel and one append channel."""
    return StateSchema([
        Channel("count", int, MergePolicy.REPLACE, default=0),
        Channel("log", str, MergePolicy.APPEND),
    ])


@pytest.fixture
def increment():
    """Node that increments ``count`` and logs its visit."""
    def node(state: Mapping[str, Any]) -> Dict[str, Any]:
        return {"count": state["count"] + 1, "log": [f"inc:{state['count']}"]}
    return node


@pytest.fixture
def always_again():
    """Router that never leaves the loop."""
    def router(state: Mapping[str, Any]) -> Literal["again", "done"]:
        return "again"
    return router


@pytest.fixture
def arithmetic_tools() -> List:
    return list(ARITHMETIC_TOOLS)


@pytest.fixture
def add_model():
    """Scripted model for the "Add 3 and 4." scenario."""
    return ScriptedChatModel([
        ai_tool_call("add", {"a": 3, "b": 4}),
        "7",
    ])
