"""
Tests for the tool registry, demo tools and model providers.
"""

import asyncio

import pytest
from google.genai import types
from langchain_core.language_models.fake_chat_models import FakeMessagesListChatModel
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage

from stepgraph.agents.tool_exec import render_tool_result
from stepgraph.core.config import settings
from stepgraph.core.errors import ConfigurationError, ExecutionError, ValidationError
from stepgraph.demos.tools import (
    ARITHMETIC_TOOLS,
    analyze_data,
    calculate,
    evaluate_expression,
    process_text,
)
from stepgraph.providers.gemini import RAW_CONTENT_KEY, GeminiChatModel
from stepgraph.providers.langchain_model import LangChainChatModel
from stepgraph.providers.scripted import ScriptedChatModel, ai_tool_call
from stepgraph.tools.registry import ToolRegistry


def greet(name: str) -> str:
    """Greet someone by name."""
    return f"Hello, {name}!"


class TestToolRegistry:
    """Tests for ToolRegistry."""

    def test_register_plain_function(self):
        """Plain functions are wrapped as structured tools."""
        registry = ToolRegistry([greet])
        schema = registry.schemas()[0]

        assert registry.names == ["greet"]
        assert schema["name"] == "greet"
        assert schema["description"] == "Greet someone by name."
        assert schema["parameters"]["properties"]["name"]["type"] == "string"

    def test_duplicate_tool(self):
        """Tool names are unique."""
        with pytest.raises(ConfigurationError, match="already registered"):
            ToolRegistry([greet, greet])

    def test_unknown_tool(self):
        """Looking up an unregistered tool is a validation error."""
        registry = ToolRegistry(ARITHMETIC_TOOLS)
        with pytest.raises(ValidationError) as exc_info:
            registry.validate("subtract", {"a": 1, "b": 2})
        assert exc_info.value.tool_name == "subtract"

    def test_validate_arguments(self):
        """Valid arguments pass through."""
        registry = ToolRegistry(ARITHMETIC_TOOLS)
        assert registry.validate("add", {"a": 3, "b": 4}) == {"a": 3, "b": 4}

    @pytest.mark.parametrize("args", [{"a": 3}, {"a": "three", "b": 4}, ["a", "b"]])
    def test_invalid_arguments(self, args):
        """Missing, mistyped or non-object arguments are rejected."""
        registry = ToolRegistry(ARITHMETIC_TOOLS)
        with pytest.raises(ValidationError, match="add"):
            registry.validate("add", args)

    def test_ainvoke_failure(self):
        """A raising tool body becomes an ExecutionError."""
        registry = ToolRegistry(ARITHMETIC_TOOLS)
        with pytest.raises(ExecutionError) as exc_info:
            asyncio.run(registry.ainvoke("divide", {"a": 1, "b": 0}))
        assert exc_info.value.node == "divide"

    def test_contains_and_len(self):
        """Registries behave like small collections."""
        registry = ToolRegistry(ARITHMETIC_TOOLS)
        assert "multiply" in registry
        assert "subtract" not in registry
        assert len(registry) == 3


class TestDemoTools:
    """Tests for the sample tools."""

    def test_render_tool_result(self):
        """Scalars render as text, containers as JSON."""
        assert render_tool_result(7) == "7"
        assert render_tool_result("done") == "done"
        assert render_tool_result({"sum": 3}) == '{"sum": 3}'

    def test_analyze_data(self):
        """Statistics over a list of numbers."""
        stats = analyze_data.invoke({"data": [10, 20, 30, 40, 50]})
        assert stats == {"sum": 150, "avg": 30, "max": 50, "min": 10, "count": 5}

    def test_analyze_data_rejects_empty(self):
        """An empty list fails validation rather than the tool body."""
        registry = ToolRegistry([analyze_data])
        with pytest.raises(ValidationError):
            registry.validate("analyze_data", {"data": []})

    @pytest.mark.parametrize(
        "operation, expected",
        [
            ("uppercase", "HELLO WORLD"),
            ("lowercase", "hello world"),
            ("reverse", "dlroW olleH"),
            ("length", "Length: 11"),
        ],
    )
    def test_process_text(self, operation, expected):
        """Each text operation."""
        assert process_text.invoke({"text": "Hello World", "operation": operation}) == expected

    def test_evaluate_expression(self):
        """Plain arithmetic is evaluated without eval."""
        assert evaluate_expression("123 × 456 + 789") == 56877
        assert evaluate_expression("(1 + 2) * -3") == -9
        assert evaluate_expression("7 ÷ 2") == 3.5

    @pytest.mark.parametrize("expression", ["__import__('os')", "a + 1", "2 ** 100000", "1 +"])
    def test_evaluate_expression_rejects(self, expression):
        """Names, calls, huge powers and syntax errors are refused."""
        with pytest.raises(ValueError):
            evaluate_expression(expression)

    def test_calculate_reports_errors(self):
        """The calculate tool answers with an error string."""
        assert calculate.invoke({"expression": "2 * 21"}) == "Result: 42"
        assert calculate.invoke({"expression": "1 / 0"}).startswith("Error:")


class TestScriptedChatModel:
    """Tests for the scripted provider."""

    def test_replays_in_order(self):
        """Responses come back in script order with generated call ids."""
        model = ScriptedChatModel([ai_tool_call("add", {"a": 1, "b": 2}), "3"])

        async def scenario():
            first = await model.complete([HumanMessage("q")])
            second = await model.complete([HumanMessage("q")])
            return first, second

        first, second = asyncio.run(scenario())
        assert first.tool_calls[0]["id"] == "call_1"
        assert second.content == "3"
        assert model.remaining == 0

    def test_exhausted(self):
        """Running past the script is an error."""
        model = ScriptedChatModel(["only"])
        asyncio.run(model.complete([]))
        with pytest.raises(RuntimeError, match="exhausted"):
            asyncio.run(model.complete([]))

    def test_callable_steps_and_reset(self):
        """Callable steps see the transcript; reset rewinds."""
        model = ScriptedChatModel([lambda messages: f"saw {len(messages)}"], cycle=True)
        assert asyncio.run(model.complete([HumanMessage("a"), HumanMessage("b")])).content == "saw 2"
        model.reset()
        assert model.calls == []


class TestGeminiConversion:
    """Tests for the Gemini adapter's message mapping (no network)."""

    def test_to_contents(self):
        """System text is split out; tool results share one user turn."""
        call_message = AIMessage(
            content="",
            tool_calls=[
                {"name": "add", "args": {"a": 1, "b": 2}, "id": "c1", "type": "tool_call"},
                {"name": "add", "args": {"a": 3, "b": 4}, "id": "c2", "type": "tool_call"},
            ],
        )
        system, contents = GeminiChatModel.to_contents([
            SystemMessage(content="Be brief."),
            HumanMessage(content="Two sums please"),
            call_message,
            ToolMessage(content="3", tool_call_id="c1", name="add"),
            ToolMessage(content="bad", tool_call_id="c2", name="add", status="error"),
        ])

        assert system == "Be brief."
        assert [c.role for c in contents] == ["user", "model", "user"]
        assert [p.function_call.name for p in contents[1].parts] == ["add", "add"]
        responses = [p.function_response for p in contents[2].parts]
        assert responses[0].response == {"result": "3"}
        assert responses[1].response == {"error": "bad"}

    def test_to_ai_message(self):
        """Function-call parts become tool calls with ids."""
        model = GeminiChatModel(api_key="test", model="gemini-test")
        response = types.GenerateContentResponse(
            candidates=[
                types.Candidate(
                    content=types.Content(
                        role="model",
                        parts=[
                            types.Part(text="Let me add."),
                            types.Part(function_call=types.FunctionCall(name="add", args={"a": 3, "b": 4})),
                        ],
                    ),
                )
            ]
        )

        message = model.to_ai_message(response)

        assert message.content == "Let me add."
        assert message.tool_calls[0]["name"] == "add"
        assert message.tool_calls[0]["args"] == {"a": 3, "b": 4}
        assert message.tool_calls[0]["id"].startswith("call_")
        assert RAW_CONTENT_KEY in message.additional_kwargs

        replayed = GeminiChatModel._ai_content(message)
        assert replayed.role == "model"
        assert replayed.parts[1].function_call.name == "add"

    def test_to_tools(self):
        """Tool schemas become function declarations."""
        schemas = ToolRegistry(ARITHMETIC_TOOLS).schemas()
        tools = GeminiChatModel.to_tools(schemas)
        assert [d.name for d in tools[0].function_declarations] == ["add", "multiply", "divide"]

    def test_missing_api_key(self):
        """The client cannot be created without a key."""
        model = GeminiChatModel(api_key="")
        model.api_key = ""
        with pytest.raises(RuntimeError, match="API key"):
            model.client

    def test_defaults_from_model_config(self):
        """Unset options fall back to the configured model settings."""
        defaults = settings.get_model_config()
        model = GeminiChatModel(api_key="test")

        assert model.model == defaults["model"]
        assert model.temperature == defaults["temperature"]
        assert model.max_tokens == defaults["max_tokens"]
        assert GeminiChatModel(api_key="test", temperature=0.0).temperature == 0.0

    def test_aclose_closes_client(self):
        """Leaving the context closes both SDK transports once."""
        closed = []

        class FakeAsyncClient:
            async def aclose(self):
                closed.append("aio")

        class FakeClient:
            aio = FakeAsyncClient()

            def close(self):
                closed.append("sync")

        async def scenario():
            model = GeminiChatModel(api_key="test", client=FakeClient())
            async with model:
                pass
            await model.aclose()
            return model

        model = asyncio.run(scenario())

        assert closed == ["aio", "sync"]
        assert model._client is None


class TestLangChainChatModel:
    """Tests for the LangChain chat model adapter."""

    def test_complete_without_tools(self):
        """Messages pass straight through to the wrapped model."""
        reply = AIMessage(content="7")
        model = LangChainChatModel(FakeMessagesListChatModel(responses=[reply]))

        async def scenario():
            async with model as provider:
                return await provider.complete([HumanMessage(content="Add 3 and 4.")])

        response = asyncio.run(scenario())
        assert isinstance(response, AIMessage)
        assert response.content == "7"
