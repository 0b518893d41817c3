"""
Scripted provider.

Replays a fixed list of responses in order. Used for offline demos and as
the deterministic model stub in tests.
"""

from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from langchain_core.messages import AIMessage, BaseMessage

from .base import ChatModelProvider
from ..tools.registry import ToolSchema


ScriptStep = Union[AIMessage, str, Callable[[Sequence[BaseMessage]], AIMessage]]


def ai_tool_call(
    name: str,
    args: Dict[str, Any],
    call_id: Optional[str] = None,
    content: str = "",
) -> AIMessage:
    """Build an AI message carrying a single tool call."""
    return ai_tool_calls([(name, args, call_id)], content=content)


def ai_tool_calls(
    calls: Sequence[Tuple[str, Dict[str, Any], Optional[str]]],
    content: str = "",
) -> AIMessage:
    """Build an AI message carrying several tool calls, in order."""
    return AIMessage(
        content=content,
        tool_calls=[
            {"name": name, "args": dict(args), "id": call_id, "type": "tool_call"}
            for name, args, call_id in calls
        ],
    )


class ScriptedChatModel(ChatModelProvider):
    """
    Deterministic provider returning scripted responses.

    Each step is an AIMessage, a plain string (an answer with no tool calls)
    or a callable receiving the transcript. Tool calls without ids get
    stable ids ``call_<n>``. Every call is recorded in ``calls``.
    """

    name = "scripted"

    def __init__(self, responses: Sequence[ScriptStep], cycle: bool = False):
        self.responses: List[ScriptStep] = list(responses)
        self.cycle = cycle
        self.calls: List[Dict[str, Any]] = []
        self._position = 0
        self._call_counter = 0

    def reset(self) -> None:
        """Rewind the script so the same conversation can be replayed."""
        self.calls.clear()
        self._position = 0
        self._call_counter = 0

    @property
    def remaining(self) -> int:
        return len(self.responses) - self._position

    async def complete(
        self,
        messages: Sequence[BaseMessage],
        tools: Optional[Sequence[ToolSchema]] = None,
    ) -> AIMessage:
        self.calls.append({"messages": list(messages), "tools": list(tools or [])})

        if self._position >= len(self.responses):
            if not self.cycle or not self.responses:
                raise RuntimeError(
                    f"Scripted model exhausted after {len(self.responses)} responses"
                )
            self._position = 0

        step = self.responses[self._position]
        self._position += 1

        if callable(step) and not isinstance(step, BaseMessage):
            step = step(messages)
        if isinstance(step, str):
            return AIMessage(content=step)
        if not isinstance(step, AIMessage):
            raise TypeError(f"Scripted step produced {type(step).__name__}, expected AIMessage")
        return self._with_ids(step)

    def _with_ids(self, message: AIMessage) -> AIMessage:
        if not message.tool_calls:
            return message.model_copy()
        tool_calls = []
        for call in message.tool_calls:
            self._call_counter += 1
            tool_calls.append({**call, "id": call.get("id") or f"call_{self._call_counter}"})
        return message.model_copy(update={"tool_calls": tool_calls})
