"""
Model-call node.

Sends the system prompt, the transcript and the tool schemas to the chat
model provider and appends exactly one AI message per invocation.
"""

from typing import Any, Dict, List, Mapping, Optional

from langchain_core.messages import AIMessage, BaseMessage, SystemMessage

from .base import BaseAgent
from ..core.state import MESSAGES
from ..providers.base import ChatModelProvider
from ..tools.registry import ToolRegistry
from ..utils.helpers import truncate_text


class ModelCallAgent(BaseAgent):
    """
    The model-call half of the tool-calling loop.

    The system prompt is prepended for every call but never stored in the
    transcript, so resumed sessions do not accumulate copies of it.
    """

    name = "model_call"
    component = "ToolLoop"

    def __init__(
        self,
        provider: ChatModelProvider,
        registry: Optional[ToolRegistry] = None,
        system_prompt: Optional[str] = None,
    ):
        self.provider = provider
        self.registry = registry
        self.system_prompt = system_prompt

    def build_prompt(self, state: Mapping[str, Any]) -> List[BaseMessage]:
        transcript = list(state.get(MESSAGES) or ())
        if self.system_prompt:
            return [SystemMessage(content=self.system_prompt), *transcript]
        return transcript

    async def process(self, state: Mapping[str, Any]) -> Dict[str, Any]:
        prompt = self.build_prompt(state)
        tools = self.registry.schemas() if self.registry else None

        self.log.debug(
            f"Calling {self.provider.name} with {len(prompt)} messages "
            f"and {len(tools or [])} tools"
        )
        response = await self.provider.complete(prompt, tools or None)
        if not isinstance(response, AIMessage):
            raise TypeError(
                f"Provider {self.provider.name} returned {type(response).__name__}, "
                "expected AIMessage"
            )

        if response.tool_calls:
            names = ", ".join(call["name"] for call in response.tool_calls)
            self.log.info(f"Model requested {len(response.tool_calls)} tool call(s): {names}")
        else:
            self.log.info(f"Model answered: {truncate_text(response.text(), 80)}")

        return {MESSAGES: [response]}
