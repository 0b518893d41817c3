"""
Adapter for any LangChain chat model (OpenAI, Azure, Anthropic, ...).
"""

from typing import Optional, Sequence

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage

from .base import ChatModelProvider
from ..tools.registry import ToolSchema


class LangChainChatModel(ChatModelProvider):
    """
    Wraps a ``BaseChatModel``; tool schemas are bound per call.

    The wrapped model keeps ownership of its client; ``aclose`` is a no-op.
    """

    name = "langchain"

    def __init__(self, model: BaseChatModel):
        self.model = model

    async def complete(
        self,
        messages: Sequence[BaseMessage],
        tools: Optional[Sequence[ToolSchema]] = None,
    ) -> AIMessage:
        runnable = self.model
        if tools:
            runnable = self.model.bind_tools(
                [{"type": "function", "function": dict(schema)} for schema in tools]
            )
        response = await runnable.ainvoke(list(messages))
        if not isinstance(response, AIMessage):
            raise TypeError(f"Chat model returned {type(response).__name__}, expected AIMessage")
        return response
