"""
Error taxonomy for graph compilation and execution.

Every fatal error records the last node that completed successfully so the
caller can tell exactly where a walk stopped.
"""

from typing import Any, Mapping, Optional


class GraphError(Exception):
    """Base class for all stepgraph errors."""

    kind = "graph_error"

    def __init__(self, message: str, last_node: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.last_node = last_node

    def __str__(self) -> str:
        if self.last_node:
            return f"{self.message} (last completed node: {self.last_node})"
        return self.message


class ConfigurationError(GraphError):
    """Bad graph wiring: unknown node, unmapped routing label, bad channel."""

    kind = "configuration_error"


class ExecutionError(GraphError):
    """A node, fan-out sub-task, or tool failed while the walk was running."""

    kind = "execution_error"

    def __init__(
        self,
        message: str,
        node: Optional[str] = None,
        last_node: Optional[str] = None,
        snapshot: Optional[Mapping[str, Any]] = None,
    ):
        super().__init__(message, last_node=last_node)
        self.node = node
        # Populated only when the caller asks for the last good state
        self.snapshot = snapshot


class ValidationError(GraphError):
    """Tool arguments did not satisfy the tool's input schema."""

    kind = "validation_error"

    def __init__(self, message: str, tool_name: Optional[str] = None):
        super().__init__(message)
        self.tool_name = tool_name


class StepLimitExceeded(GraphError):
    """The walk needed more node executions than the configured bound."""

    kind = "step_limit_exceeded"

    def __init__(self, max_steps: int, last_node: Optional[str] = None):
        super().__init__(
            f"Step limit of {max_steps} node executions exceeded; "
            f"the routing is probably cyclic",
            last_node=last_node,
        )
        self.max_steps = max_steps


class CancellationError(GraphError):
    """The caller cancelled an in-flight walk."""

    kind = "cancelled"
