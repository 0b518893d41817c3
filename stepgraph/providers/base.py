"""
Model-provider interface.

The model-call node talks to a language model only through this port.
Adapters own their network clients and any retry policy; the engine itself
never retries a provider call.
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence

from langchain_core.messages import AIMessage, BaseMessage

from ..tools.registry import ToolSchema


class ChatModelProvider(ABC):
    """Port (interface) for chat completion providers."""

    name: str = "provider"

    @abstractmethod
    async def complete(
        self,
        messages: Sequence[BaseMessage],
        tools: Optional[Sequence[ToolSchema]] = None,
    ) -> AIMessage:
        """
        Produce the next AI message for a transcript.

        Args:
            messages: Ordered transcript, system prompt first when present
            tools: Schemas of the tools the model may call

        Returns:
            An AIMessage, possibly carrying tool calls
        """

    async def aclose(self) -> None:
        """Release any network client held by the adapter."""

    async def __aenter__(self) -> "ChatModelProvider":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
