"""
Chat model providers used by the model-call node.
"""

from .base import ChatModelProvider
from .gemini import GeminiChatModel
from .langchain_model import LangChainChatModel
from .scripted import ScriptedChatModel, ai_tool_call, ai_tool_calls

__all__ = [
    "ChatModelProvider",
    "GeminiChatModel",
    "LangChainChatModel",
    "ScriptedChatModel",
    "ai_tool_call",
    "ai_tool_calls",
]
