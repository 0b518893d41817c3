"""
Demo tools and graphs.
"""

from .tools import (
    ARITHMETIC_TOOLS,
    WORKFLOW_TOOLS,
    add,
    analyze_data,
    calculate,
    divide,
    evaluate_expression,
    multiply,
    process_text,
)
from .workflows import (
    WorkflowState,
    build_arithmetic_agent,
    build_category_workflow,
    build_functional_arithmetic_agent,
    offline_workflow_model,
    parse_classification,
    route_by_category,
)

__all__ = [
    "ARITHMETIC_TOOLS",
    "WORKFLOW_TOOLS",
    "add",
    "analyze_data",
    "calculate",
    "divide",
    "evaluate_expression",
    "multiply",
    "process_text",
    "WorkflowState",
    "build_arithmetic_agent",
    "build_category_workflow",
    "build_functional_arithmetic_agent",
    "offline_workflow_model",
    "parse_classification",
    "route_by_category",
]
