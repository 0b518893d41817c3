"""
Sample tools for the demo graphs.
"""

import ast
import operator
from typing import Any, Dict, List, Literal, Union

from langchain_core.tools import tool
from pydantic import BaseModel, Field


Number = Union[int, float]


# ==================== Arithmetic ====================

@tool
def add(a: Number, b: Number) -> Number:
    """Add two numbers."""
    return a + b


@tool
def multiply(a: Number, b: Number) -> Number:
    """Multiply two numbers."""
    return a * b


@tool
def divide(a: Number, b: Number) -> float:
    """Divide two numbers."""
    return a / b


ARITHMETIC_TOOLS = [add, multiply, divide]


# ==================== Data & Text ====================

class AnalyzeDataInput(BaseModel):
    data: List[float] = Field(min_length=1, description="Array of numbers to analyze")


@tool(args_schema=AnalyzeDataInput)
def analyze_data(data: List[float]) -> Dict[str, Any]:
    """Analyze an array of numbers and return statistics."""
    total = sum(data)
    return {
        "sum": total,
        "avg": total / len(data),
        "max": max(data),
        "min": min(data),
        "count": len(data),
    }


class ProcessTextInput(BaseModel):
    text: str = Field(description="Text to process")
    operation: Literal["uppercase", "lowercase", "reverse", "length"] = Field(
        description="Operation to perform"
    )


@tool(args_schema=ProcessTextInput)
def process_text(text: str, operation: str) -> str:
    """Process text with various operations."""
    if operation == "uppercase":
        return text.upper()
    if operation == "lowercase":
        return text.lower()
    if operation == "reverse":
        return text[::-1]
    return f"Length: {len(text)}"


_BINARY_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

# Keeps "2 ** 10 ** 10" from hanging the worker thread
MAX_EXPONENT = 1000


def evaluate_expression(expression: str) -> Number:
    """
    Evaluate an arithmetic expression without ``eval``.

    Supports numbers, parentheses, + - * / // % ** and unary signs.
    The symbols x-times and divide-sign are accepted as * and /.

    Raises:
        ValueError: anything other than plain arithmetic
    """
    normalized = expression.replace("×", "*").replace("÷", "/")
    try:
        tree = ast.parse(normalized, mode="eval")
    except SyntaxError as e:
        raise ValueError(f"Invalid expression: {expression!r}") from e
    return _eval_node(tree.body)


def _eval_node(node: ast.AST) -> Number:
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
        return node.value
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        left = _eval_node(node.left)
        right = _eval_node(node.right)
        if isinstance(node.op, ast.Pow) and abs(right) > MAX_EXPONENT:
            raise ValueError(f"Exponent {right} is too large")
        return _BINARY_OPS[type(node.op)](left, right)
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_eval_node(node.operand))
    raise ValueError(f"Unsupported expression element: {type(node).__name__}")


@tool
def calculate(expression: str) -> str:
    """Calculate a mathematical expression."""
    try:
        return f"Result: {evaluate_expression(expression)}"
    except (ValueError, ArithmeticError) as e:
        return f"Error: {e}"


WORKFLOW_TOOLS = [analyze_data, process_text, calculate]
