"""
Tool registry.

Wraps LangChain tools so the tool-execution node can validate arguments
against each tool's pydantic schema before invoking it. Validation failures
are recoverable; failures inside a tool body are not.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional, TypedDict, Union

from langchain_core.tools import BaseTool, StructuredTool
from langchain_core.utils.function_calling import convert_to_openai_tool
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..core.errors import ConfigurationError, ExecutionError, ValidationError
from ..utils.logger import get_logger


logger = get_logger()


class ToolSchema(TypedDict):
    """Provider-facing description of one tool."""
    name: str
    description: str
    parameters: Dict[str, Any]


class ToolRegistry:
    """
    Name -> tool table shared by the model-call and tool-execution nodes.

    Accepts ``BaseTool`` instances (e.g. from ``@tool``) or plain functions
    with type hints and a docstring, which are wrapped as structured tools.
    """

    def __init__(self, tools: Optional[Iterable[Union[BaseTool, Callable]]] = None):
        self._tools: Dict[str, BaseTool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Union[BaseTool, Callable]) -> BaseTool:
        """Add a tool; names must be unique."""
        if not isinstance(tool, BaseTool):
            if not callable(tool):
                raise ConfigurationError(f"Cannot register {tool!r} as a tool")
            tool = StructuredTool.from_function(tool)
        if tool.name in self._tools:
            raise ConfigurationError(f"Tool '{tool.name}' is already registered")
        self._tools[tool.name] = tool
        return tool

    @property
    def names(self) -> List[str]:
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def get(self, name: str) -> BaseTool:
        try:
            return self._tools[name]
        except KeyError:
            raise ValidationError(
                f"Unknown tool '{name}'. Available tools: {', '.join(self.names) or 'none'}",
                tool_name=name,
            ) from None

    def schemas(self) -> List[ToolSchema]:
        """Name, description and JSON schema of every registered tool."""
        result = []
        for tool in self._tools.values():
            function = convert_to_openai_tool(tool)["function"]
            result.append(
                ToolSchema(
                    name=function["name"],
                    description=function.get("description", ""),
                    parameters=function.get("parameters", {"type": "object", "properties": {}}),
                )
            )
        return result

    def validate(self, name: str, args: Any) -> Dict[str, Any]:
        """
        Check arguments against the tool's input schema.

        Returns:
            The validated (and type-coerced) arguments

        Raises:
            ValidationError: unknown tool or arguments that fail the schema
        """
        tool = self.get(name)
        if args is None:
            args = {}
        if not isinstance(args, dict):
            raise ValidationError(
                f"Arguments for tool '{name}' must be an object, got {type(args).__name__}",
                tool_name=name,
            )

        schema = tool.args_schema
        if not (isinstance(schema, type) and issubclass(schema, BaseModel)):
            return dict(args)

        try:
            validated = schema.model_validate(args)
        except PydanticValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'args'}: {err['msg']}"
                for err in e.errors()
            )
            raise ValidationError(
                f"Invalid arguments for tool '{name}': {problems}", tool_name=name
            ) from e
        return {key: getattr(validated, key) for key in validated.model_fields_set}

    async def ainvoke(
        self, name: str, args: Dict[str, Any], node: Optional[str] = None
    ) -> Any:
        """
        Run a tool with already-validated arguments.

        Args:
            name: Tool name
            args: Validated arguments
            node: Node name reported on failure (defaults to the tool name)

        Raises:
            ExecutionError: the tool body raised
        """
        tool = self.get(name)
        try:
            return await tool.ainvoke(args)
        except Exception as e:
            logger.with_component("ToolLoop").error(f"Tool '{name}' raised: {e}")
            raise ExecutionError(
                f"Tool '{name}' failed: {type(e).__name__}: {e}", node=node or name
            ) from e
