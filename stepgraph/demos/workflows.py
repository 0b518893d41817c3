"""
Demo graphs.

- ``build_arithmetic_agent``: the tool-calling loop over add/multiply/divide.
- ``build_functional_arithmetic_agent``: the same agent as a functional
  workflow of ``task`` calls in a loop.
- ``build_category_workflow``: classify the input, route to a math, text or
  data branch, enrich it with a three-way fan-out and summarize.

``offline_workflow_model`` returns a keyword-driven scripted model so both
demos run without network access.
"""

import json
import random
import re
from datetime import datetime, timezone
from typing import (
    Annotated,
    Any,
    Dict,
    Iterable,
    List,
    Literal,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    TypedDict,
)

from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolCall,
    ToolMessage,
)

from .tools import ARITHMETIC_TOOLS, WORKFLOW_TOOLS
from ..agents.model_call import ModelCallAgent
from ..agents.tool_exec import ToolExecAgent, render_tool_result
from ..core.descriptor import END, START
from ..core.errors import ValidationError
from ..core.events import EventType, GraphObserver, emit_event
from ..core.executor import CompiledGraph
from ..core.fanout import SubTask
from ..core.functional import Entrypoint, entrypoint, task
from ..core.graph import StateGraph
from ..core.state import MESSAGES, MergePolicy
from ..core.tool_loop import build_tool_calling_graph
from ..memory.checkpoint import BaseCheckpointStore
from ..providers.base import ChatModelProvider
from ..providers.scripted import ScriptedChatModel, ai_tool_call
from ..tools.registry import ToolRegistry
from ..utils.logger import get_logger


logger = get_logger()


ARITHMETIC_PROMPT = (
    "You are a helpful assistant tasked with performing arithmetic on a set of inputs."
)

CLASSIFY_PROMPT = (
    'Classify the user input into one of these categories: "math", "text", '
    '"data" or "unknown". Respond with a JSON object only: '
    '{"category": "...", "confidence": 0.0-1.0}'
)
MATH_PROMPT = "You are a math expert. Solve the problem using the calculate tool."
TEXT_PROMPT = "You are a text processing expert. Use the process_text tool to transform the text."
DATA_PROMPT = (
    "You are a data analyst. Extract the numbers from the input and analyze "
    "them with the analyze_data tool."
)
SUMMARY_PROMPT = "Briefly summarize the following processing result."

CATEGORIES = ("math", "text", "data", "unknown")


def build_arithmetic_agent(
    provider: ChatModelProvider,
    checkpointer: Optional[BaseCheckpointStore] = None,
    observers: Optional[Iterable[GraphObserver]] = None,
    max_steps: Optional[int] = None,
) -> CompiledGraph:
    """Tool-calling loop with the arithmetic tools."""
    return build_tool_calling_graph(
        provider,
        ARITHMETIC_TOOLS,
        system_prompt=ARITHMETIC_PROMPT,
        checkpointer=checkpointer,
        observers=observers,
        max_steps=max_steps,
        name="arithmetic_agent",
    )


def build_functional_arithmetic_agent(
    provider: ChatModelProvider,
    checkpointer: Optional[BaseCheckpointStore] = None,
    observers: Optional[Iterable[GraphObserver]] = None,
    max_steps: Optional[int] = None,
) -> Entrypoint:
    """
    The arithmetic agent written as a functional workflow.

    Takes the new messages of a turn and returns the full transcript. With
    a checkpointer and a session id, later turns continue the transcript.
    """
    registry = ToolRegistry(ARITHMETIC_TOOLS)
    model_call = ModelCallAgent(provider, registry, ARITHMETIC_PROMPT)
    tool_exec = ToolExecAgent(registry)

    @task(name="call_llm")
    async def call_llm(messages: List[BaseMessage]) -> AIMessage:
        update = await model_call.process({MESSAGES: messages})
        return update[MESSAGES][0]

    @task(name="call_tool")
    async def call_tool(call: ToolCall) -> ToolMessage:
        return await tool_exec.run_call(call)

    @entrypoint(
        name="functional_arithmetic_agent",
        checkpointer=checkpointer,
        observers=observers,
        max_steps=max_steps,
    )
    async def agent(
        messages: Sequence[BaseMessage],
        previous: Optional[List[BaseMessage]] = None,
    ) -> List[BaseMessage]:
        transcript = [*(previous or []), *messages]
        response = await call_llm(transcript)
        while response.tool_calls:
            results = await call_tool.map(response.tool_calls)
            transcript = [*transcript, response, *results]
            response = await call_llm(transcript)
        return [*transcript, response]

    return agent


# ==================== Category Workflow ====================

class WorkflowState(TypedDict):
    """
    State for the category-routing workflow.

    trace: append-only list of the nodes (and fan-out sub-tasks) that ran.
    """

    input: str
    category: str
    confidence: float
    processed: bool
    path: str
    response: str
    sentiment: str
    complexity: str
    tags: List[str]
    summary: str
    timestamp: str
    trace: Annotated[List[str], MergePolicy.APPEND]


def route_by_category(state: Mapping[str, Any]) -> Literal["math", "text", "data", "unknown"]:
    category = state.get("category")
    return category if category in CATEGORIES else "unknown"


class CategoryWorkflow:
    """Node implementations for the category-routing workflow."""

    def __init__(self, provider: ChatModelProvider, seed: Optional[int] = None):
        self.provider = provider
        self.registry = ToolRegistry(WORKFLOW_TOOLS)
        self._rng = random.Random(seed)

    # ==================== Nodes ====================

    async def classify(self, state: Mapping[str, Any]) -> Dict[str, Any]:
        response = await self.provider.complete(
            [SystemMessage(content=CLASSIFY_PROMPT), HumanMessage(content=state["input"])]
        )
        category, confidence = parse_classification(response.text())
        logger.with_component("Executor").info(
            f"Classified input as {category} (confidence {confidence:.2f})"
        )
        return {"category": category, "confidence": confidence, "trace": ["classify"]}

    async def process_math(self, state: Mapping[str, Any]) -> Dict[str, Any]:
        return await self._solve("math", MATH_PROMPT, state["input"])

    async def process_text(self, state: Mapping[str, Any]) -> Dict[str, Any]:
        return await self._solve("text", TEXT_PROMPT, state["input"])

    async def process_data(self, state: Mapping[str, Any]) -> Dict[str, Any]:
        return await self._solve("data", DATA_PROMPT, state["input"])

    def sentiment(self, state: Mapping[str, Any]) -> Dict[str, Any]:
        sentiment = "positive" if self._rng.random() > 0.5 else "neutral"
        return {"sentiment": sentiment, "trace": ["enrich.sentiment"]}

    def complexity(self, state: Mapping[str, Any]) -> Dict[str, Any]:
        complexity = "high" if len(state.get("input") or "") > 20 else "low"
        return {"complexity": complexity, "trace": ["enrich.complexity"]}

    def tags(self, state: Mapping[str, Any]) -> Dict[str, Any]:
        return {
            "tags": ["processed", state.get("category") or "unknown", "v1"],
            "trace": ["enrich.tags"],
        }

    async def summarize(self, state: Mapping[str, Any]) -> Dict[str, Any]:
        digest = {
            key: state.get(key)
            for key in (
                "input", "category", "confidence", "processed", "path",
                "response", "sentiment", "complexity", "tags",
            )
        }
        response = await self.provider.complete(
            [
                SystemMessage(content=SUMMARY_PROMPT),
                HumanMessage(content=json.dumps(digest, indent=2, default=str)),
            ]
        )
        return {
            "summary": response.text(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "trace": ["summarize"],
        }

    # ==================== Helpers ====================

    async def _solve(self, path: str, system_prompt: str, text: str) -> Dict[str, Any]:
        """One model call with tools; the last tool result becomes the response."""
        response = await self.provider.complete(
            [SystemMessage(content=system_prompt), HumanMessage(content=text)],
            self.registry.schemas(),
        )
        node = f"process_{path}"
        answer = response.text()
        for call in response.tool_calls:
            emit_event(EventType.TOOL_INVOKED, node, tool=call["name"], call_id=call.get("id"), args=call["args"])
            try:
                args = self.registry.validate(call["name"], call["args"])
            except ValidationError as e:
                answer = f"Error: {e}"
                emit_event(EventType.TOOL_RESULT, node, tool=call["name"], status="error", error=str(e))
                continue
            result = await self.registry.ainvoke(call["name"], args, node=f"{node}.{call['name']}")
            answer = render_tool_result(result)
            emit_event(EventType.TOOL_RESULT, node, tool=call["name"], status="success", result=answer)

        return {"processed": True, "path": path, "response": answer, "trace": [node]}


def parse_classification(content: str) -> Tuple[str, float]:
    """
    Read ``{"category": ..., "confidence": ...}`` from a model reply.

    Falls back to ("unknown", 0.5) when the reply is not that JSON object.
    """
    match = re.search(r"\{.*\}", content or "", re.DOTALL)
    if not match:
        return "unknown", 0.5
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError:
        return "unknown", 0.5
    if not isinstance(parsed, dict):
        return "unknown", 0.5

    category = parsed.get("category")
    if category not in CATEGORIES:
        category = "unknown"
    try:
        confidence = float(parsed.get("confidence", 0.5))
    except (TypeError, ValueError):
        confidence = 0.5
    return category, min(max(confidence, 0.0), 1.0)


def build_category_workflow(
    provider: ChatModelProvider,
    checkpointer: Optional[BaseCheckpointStore] = None,
    observers: Optional[Iterable[GraphObserver]] = None,
    max_steps: Optional[int] = None,
    seed: Optional[int] = None,
) -> CompiledGraph:
    """
    classify -> process_math | process_text | process_data | enrich
             -> enrich (sentiment, complexity, tags in parallel) -> summarize
    """
    nodes = CategoryWorkflow(provider, seed=seed)

    graph = StateGraph(WorkflowState)
    graph.add_node("classify", nodes.classify, writes=["category", "confidence", "trace"])
    for path in ("math", "text", "data"):
        graph.add_node(
            f"process_{path}",
            getattr(nodes, f"process_{path}"),
            writes=["processed", "path", "response", "trace"],
        )
    graph.add_fanout_node(
        "enrich",
        subtasks=[
            SubTask("sentiment", nodes.sentiment, frozenset({"sentiment", "trace"})),
            SubTask("complexity", nodes.complexity, frozenset({"complexity", "trace"})),
            SubTask("tags", nodes.tags, frozenset({"tags", "trace"})),
        ],
    )
    graph.add_node("summarize", nodes.summarize, writes=["summary", "timestamp", "trace"])

    graph.add_edge(START, "classify")
    graph.add_conditional_edges(
        "classify",
        route_by_category,
        {
            "math": "process_math",
            "text": "process_text",
            "data": "process_data",
            "unknown": "enrich",
        },
    )
    for path in ("math", "text", "data"):
        graph.add_edge(f"process_{path}", "enrich")
    graph.add_edge("enrich", "summarize")
    graph.add_edge("summarize", END)

    return graph.compile(
        checkpointer=checkpointer,
        observers=observers,
        max_steps=max_steps,
        name="category_workflow",
    )


# ==================== Offline Model ====================

_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")
_QUOTED = re.compile(r"[\"'“「]([^\"'”」]+)[\"'”」]")
_TEXT_OPERATIONS = ("uppercase", "lowercase", "reverse", "length")


def offline_workflow_model() -> ScriptedChatModel:
    """Scripted model that answers both demos from simple keyword rules."""
    return ScriptedChatModel([_offline_reply], cycle=True)


def _offline_reply(messages: Sequence[BaseMessage]) -> Any:
    system = messages[0].text() if messages and isinstance(messages[0], SystemMessage) else ""
    user = next(
        (m.text() for m in reversed(messages) if isinstance(m, HumanMessage)), ""
    )

    if system == CLASSIFY_PROMPT:
        category = _guess_category(user)
        confidence = 0.3 if category == "unknown" else 0.9
        return json.dumps({"category": category, "confidence": confidence})
    if system == MATH_PROMPT:
        expression = re.sub(r"[^0-9+\-*/().×÷ ]", "", user).strip()
        return ai_tool_call("calculate", {"expression": expression})
    if system == TEXT_PROMPT:
        quoted = _QUOTED.search(user)
        operation = next((op for op in _TEXT_OPERATIONS if op in user.lower()), "uppercase")
        return ai_tool_call(
            "process_text",
            {"text": quoted.group(1) if quoted else user, "operation": operation},
        )
    if system == DATA_PROMPT:
        return ai_tool_call("analyze_data", {"data": [float(n) for n in _NUMBER.findall(user)]})
    if system == SUMMARY_PROMPT:
        digest = json.loads(user)
        return (
            f"Handled a {digest['category']} request via the "
            f"{digest['path'] or 'enrich'} path: {digest['response'] or 'no tool output'}"
        )
    return _offline_arithmetic(messages)


def _guess_category(text: str) -> str:
    lowered = text.lower()
    if any(word in lowered for word in ("analy", "statistic", "average")):
        return "data"
    if _QUOTED.search(text) or any(op in lowered for op in _TEXT_OPERATIONS):
        return "text"
    if re.search(r"\d\s*[-+*/×÷]\s*\d", text):
        return "math"
    return "unknown"


def _offline_arithmetic(messages: Sequence[BaseMessage]) -> Any:
    """Answer "Add 3 and 4." style requests with one tool call, then the result."""
    last = messages[-1] if messages else None
    if last is not None and last.type == "tool":
        return AIMessage(content=f"The result is {last.text()}.")

    text = last.text() if last is not None else ""
    numbers = [float(n) if "." in n else int(n) for n in _NUMBER.findall(text)]
    lowered = text.lower()
    operation = next(
        (op for op in ("multiply", "divide", "add") if op in lowered), None
    )
    if operation is None or len(numbers) < 2:
        return "I can add, multiply or divide two numbers."
    return ai_tool_call(operation, {"a": numbers[0], "b": numbers[1]})
