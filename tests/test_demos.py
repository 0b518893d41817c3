"""
Tests for the demo graphs, run against the offline model.
"""

import json

import pytest
from langchain_core.messages import AIMessage, ToolMessage

from stepgraph.core.events import EventType, RecordingObserver
from stepgraph.core.state import create_initial_state
from stepgraph.demos.workflows import (
    build_arithmetic_agent,
    build_category_workflow,
    offline_workflow_model,
    parse_classification,
    route_by_category,
)


ENRICH_TRACE = ["enrich.sentiment", "enrich.complexity", "enrich.tags"]


class TestArithmeticAgent:
    """Tests for the arithmetic tool-calling demo."""

    def test_add_offline(self):
        """One tool call, one answer."""
        graph = build_arithmetic_agent(offline_workflow_model())
        messages = graph.invoke(create_initial_state("Add 3 and 4."))["messages"]

        assert len(messages) == 4
        assert isinstance(messages[1], AIMessage)
        assert messages[1].tool_calls[0]["args"] == {"a": 3, "b": 4}
        assert isinstance(messages[2], ToolMessage)
        assert messages[2].content == "7"
        assert messages[3].content == "The result is 7."

    def test_no_tool_needed(self):
        """Requests the offline model cannot map answer directly."""
        graph = build_arithmetic_agent(offline_workflow_model())
        messages = graph.invoke(create_initial_state("Hello there"))["messages"]
        assert len(messages) == 2
        assert not messages[1].tool_calls


class TestCategoryWorkflow:
    """Tests for the classify / route / enrich / summarize workflow."""

    def test_math_path(self):
        """Math input is solved through the calculate tool."""
        graph = build_category_workflow(offline_workflow_model(), seed=1)
        result = graph.invoke({"input": "Calculate 123 × 456 + 789"})

        assert result["category"] == "math"
        assert result["path"] == "math"
        assert result["processed"] is True
        assert result["response"] == "Result: 56877"
        assert result["complexity"] == "high"
        assert result["tags"] == ["processed", "math", "v1"]
        assert result["trace"] == ["classify", "process_math", *ENRICH_TRACE, "summarize"]
        assert "math" in result["summary"]
        assert result["timestamp"]

    def test_text_path(self):
        """Quoted text is transformed by process_text."""
        graph = build_category_workflow(offline_workflow_model(), seed=1)
        result = graph.invoke({"input": 'Convert "hello world" to uppercase'})

        assert result["category"] == "text"
        assert result["response"] == "HELLO WORLD"

    def test_data_path(self):
        """Numbers in the input are analyzed."""
        graph = build_category_workflow(offline_workflow_model(), seed=1)
        result = graph.invoke({"input": "Analyze these numbers: 10, 20, 30, 40, 50"})

        assert result["category"] == "data"
        stats = json.loads(result["response"])
        assert stats["sum"] == 150
        assert stats["count"] == 5

    def test_unknown_goes_straight_to_enrich(self):
        """Unclassified input skips the processing branches."""
        graph = build_category_workflow(offline_workflow_model(), seed=1)
        result = graph.invoke({"input": "Tell me a story"})

        assert result["category"] == "unknown"
        assert result["processed"] is None
        assert result["complexity"] == "low"
        assert result["trace"] == ["classify", *ENRICH_TRACE, "summarize"]

    def test_seeded_sentiment(self):
        """The same seed gives the same sentiment."""
        first = build_category_workflow(offline_workflow_model(), seed=7).invoke({"input": "Tell me"})
        second = build_category_workflow(offline_workflow_model(), seed=7).invoke({"input": "Tell me"})
        assert first["sentiment"] == second["sentiment"]
        assert first["sentiment"] in ("positive", "neutral")

    def test_tool_events(self):
        """Tool calls made inside a branch node are observable."""
        observer = RecordingObserver()
        graph = build_category_workflow(offline_workflow_model(), observers=[observer], seed=1)
        graph.invoke({"input": "Calculate 2 * 21"})

        invoked = observer.of_type(EventType.TOOL_INVOKED)
        results = observer.of_type(EventType.TOOL_RESULT)
        assert [e.data["tool"] for e in invoked] == ["calculate"]
        assert invoked[0].node == "process_math"
        assert results[0].data["status"] == "success"
        assert results[0].data["result"] == "Result: 42"

    def test_draw_mermaid(self):
        """The rendered diagram lists nodes and labelled routes."""
        diagram = build_category_workflow(offline_workflow_model()).draw_mermaid()
        assert diagram.startswith("graph TD;")
        assert "classify -. &nbsp;math&nbsp; .-> process_math;" in diagram
        assert "enrich --> summarize;" in diagram


class TestClassificationParsing:
    """Tests for reading the classifier's reply."""

    @pytest.mark.parametrize(
        "content, expected",
        [
            ('{"category": "math", "confidence": 0.9}', ("math", 0.9)),
            ('Sure! {"category": "data"}', ("data", 0.5)),
            ('{"category": "poetry", "confidence": 0.8}', ("unknown", 0.8)),
            ('{"category": "text", "confidence": 7}', ("text", 1.0)),
            ('{"category": "text", "confidence": "high"}', ("text", 0.5)),
            ("no json here", ("unknown", 0.5)),
            ("{broken", ("unknown", 0.5)),
            ("", ("unknown", 0.5)),
        ],
    )
    def test_parse(self, content, expected):
        """Fallbacks keep the workflow routable."""
        assert parse_classification(content) == expected

    def test_route_by_category(self):
        """Unexpected categories route to unknown."""
        assert route_by_category({"category": "math"}) == "math"
        assert route_by_category({"category": None}) == "unknown"
        assert route_by_category({}) == "unknown"
