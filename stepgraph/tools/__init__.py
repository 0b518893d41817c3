"""
Tool registry shared by the tool-calling nodes.
"""

from .registry import ToolRegistry, ToolSchema

__all__ = ["ToolRegistry", "ToolSchema"]
