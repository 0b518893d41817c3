"""
Tool-execution node.

Runs every pending tool call on the most recent AI message and appends one
tool message per call. Calls of one message run concurrently; results are
appended in the order the model issued them.
"""

import json
from functools import partial
from typing import Any, Dict, Mapping, Optional

from langchain_core.messages import ToolCall, ToolMessage

from .base import BaseAgent
from ..core.errors import ValidationError
from ..core.events import EventType, emit_event
from ..core.state import MESSAGES, pending_tool_calls
from ..tools.registry import ToolRegistry
from ..utils.helpers import gather_with_concurrency, preview


def render_tool_result(result: Any) -> str:
    """Text form of a tool result as stored in the transcript."""
    if isinstance(result, str):
        return result
    if isinstance(result, (dict, list, tuple)):
        return json.dumps(result, default=str)
    return str(result)


class ToolExecAgent(BaseAgent):
    """
    The tool-execution half of the tool-calling loop.

    Unknown tools and arguments that fail validation are reported back to
    the model as error tool messages and the loop continues. A tool that
    raises while running fails the walk with an ExecutionError.
    """

    name = "tool_exec"
    component = "ToolLoop"

    def __init__(self, registry: ToolRegistry, max_concurrency: Optional[int] = None):
        self.registry = registry
        self.max_concurrency = max_concurrency

    async def process(self, state: Mapping[str, Any]) -> Dict[str, Any]:
        calls = pending_tool_calls(state)
        if not calls:
            self.log.debug("No pending tool calls")
            return {}

        self.log.info(f"Executing {len(calls)} tool call(s)")
        results = await gather_with_concurrency(
            [partial(self.run_call, call) for call in calls],
            max_concurrent=self.max_concurrency,
        )
        return {MESSAGES: results}

    async def run_call(self, call: ToolCall) -> ToolMessage:
        """Execute one tool call and wrap its outcome in a ToolMessage."""
        name = call["name"]
        call_id = call.get("id") or ""
        emit_event(EventType.TOOL_INVOKED, self.name, tool=name, call_id=call_id, args=call.get("args"))

        try:
            args = self.registry.validate(name, call.get("args"))
        except ValidationError as e:
            self.log.warning(f"Rejected call to '{name}': {e}")
            emit_event(
                EventType.TOOL_RESULT, self.name,
                tool=name, call_id=call_id, status="error", error=str(e),
            )
            return ToolMessage(
                content=f"Error: {e}",
                tool_call_id=call_id,
                name=name,
                status="error",
            )

        result = await self.registry.ainvoke(name, args, node=f"{self.name}.{name}")
        self.log.debug(f"{name}({preview(args, 60)}) -> {preview(result, 60)}")
        emit_event(
            EventType.TOOL_RESULT, self.name,
            tool=name, call_id=call_id, status="success", result=preview(result),
        )
        return ToolMessage(
            content=render_tool_result(result),
            artifact=result,
            tool_call_id=call_id,
            name=name,
        )
