"""
Node implementations for the tool-calling loop.
"""

from .base import BaseAgent
from .model_call import ModelCallAgent
from .tool_exec import ToolExecAgent, render_tool_result

__all__ = [
    "BaseAgent",
    "ModelCallAgent",
    "ToolExecAgent",
    "render_tool_result",
]
