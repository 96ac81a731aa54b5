"""
Tool definitions and local dispatch of tool calls
"""

import inspect
import json
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Type, Union, get_type_hints

import jsonschema
from pydantic import BaseModel

from .exceptions import ToolError
from .types import Tool, ToolResultContent, ToolUseContent

logger = logging.getLogger(__name__)

ToolHandler = Callable[..., Any]


def tool_from_model(name: str, description: str, model_cls: Type[BaseModel]) -> Tool:
    """Build a tool whose input schema is the JSON schema of a pydantic model"""
    return Tool(name=name, description=description, input_schema=model_cls.model_json_schema())


def function_to_tool(
    func: Callable,
    name: Optional[str] = None,
    description: Optional[str] = None,
    parameter_descriptions: Optional[Dict[str, str]] = None,
) -> Tool:
    """
    Convert a Python function to a tool definition

    Args:
        func: The function to convert
        name: Tool name (falls back to the function name)
        description: Tool description (falls back to the docstring)
        parameter_descriptions: Optional descriptions for parameters

    Returns:
        Tool whose input schema mirrors the function signature

    Raises:
        ToolError: If the function cannot be converted
    """
    tool_name = name or func.__name__
    if description is None:
        description = inspect.getdoc(func) or f"Function {tool_name}"

    try:
        signature = inspect.signature(func)
        type_hints = get_type_hints(func)
    except (TypeError, ValueError, NameError) as e:
        raise ToolError(f"Failed to convert function to tool: {e}") from e

    properties: Dict[str, Any] = {}
    required: List[str] = []

    for param_name, param in signature.parameters.items():
        if param_name == "self" or param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue

        param_schema = _type_to_json_schema(type_hints.get(param_name, Any))
        if parameter_descriptions and parameter_descriptions.get(param_name):
            param_schema["description"] = parameter_descriptions[param_name]
        properties[param_name] = param_schema

        if param.default is inspect.Parameter.empty:
            required.append(param_name)

    input_schema: Dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        input_schema["required"] = required

    return Tool(name=tool_name, description=description, input_schema=input_schema)


def _type_to_json_schema(type_hint: Any) -> Dict[str, Any]:
    if type_hint is str:
        return {"type": "string"}
    elif type_hint is bool:
        return {"type": "boolean"}
    elif type_hint is int:
        return {"type": "integer"}
    elif type_hint is float:
        return {"type": "number"}
    elif type_hint is list or type_hint is List:
        return {"type": "array", "items": {}}
    elif type_hint is dict or type_hint is Dict:
        return {"type": "object"}
    elif type_hint is Any:
        return {}

    origin = getattr(type_hint, "__origin__", None)
    args = getattr(type_hint, "__args__", ())

    # Optional[X]
    if origin is Union and len(args) == 2 and type(None) in args:
        inner = args[0] if args[1] is type(None) else args[1]
        return _type_to_json_schema(inner)

    if origin is list and args:
        return {"type": "array", "items": _type_to_json_schema(args[0])}
    if origin is dict and len(args) == 2 and args[0] is str:
        return {"type": "object", "additionalProperties": _type_to_json_schema(args[1])}

    if isinstance(type_hint, type) and issubclass(type_hint, BaseModel):
        return type_hint.model_json_schema()

    return {"type": "string"}


class ToolExecutor:
    """
    Registry of local tool handlers

    Handlers receive the tool input as keyword arguments. A string return
    value is sent back as-is; anything else is JSON encoded.

    Example::

        executor = ToolExecutor()

        @executor.tool(description="Current UTC time")
        def get_time() -> str:
            return datetime.now(timezone.utc).isoformat()

        conversation = Conversation(config, tools=executor.tools)
    """

    def __init__(self, validate_input: bool = True):
        self.validate_input = validate_input
        self._tools: Dict[str, Tool] = {}
        self._handlers: Dict[str, ToolHandler] = {}

    @property
    def tools(self) -> List[Tool]:
        """Registered tools, in registration order"""
        return list(self._tools.values())

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def register(self, tool: Tool, handler: ToolHandler) -> None:
        if tool.name in self._tools:
            raise ToolError(f"Tool '{tool.name}' is already registered")
        self._tools[tool.name] = tool
        self._handlers[tool.name] = handler

    def tool(
        self,
        name: Optional[str] = None,
        description: Optional[str] = None,
        parameter_descriptions: Optional[Dict[str, str]] = None,
    ) -> Callable[[ToolHandler], ToolHandler]:
        """Decorator registering a function, with a schema derived from its signature"""

        def decorator(func: ToolHandler) -> ToolHandler:
            definition = function_to_tool(func, name, description, parameter_descriptions)
            self.register(definition, func)
            return func

        return decorator

    def execute(self, tool_use: ToolUseContent) -> ToolResultContent:
        """
        Run the handler for one tool call

        Never raises for handler or input problems; those are reported to the
        model as error results carrying the same ``tool_use_id``.
        """
        tool = self._tools.get(tool_use.name)
        if tool is None:
            logger.warning(f"Model requested unknown tool '{tool_use.name}'")
            return ToolResultContent.unknown_tool(tool_use.id, tool_use.name)

        if self.validate_input:
            try:
                jsonschema.validate(instance=tool_use.input, schema=tool.input_schema)
            except jsonschema.ValidationError as e:
                logger.info(f"Invalid input for tool '{tool.name}': {e.message}")
                return ToolResultContent.error(tool_use.id, f"Invalid input: {e.message}")

        try:
            output = self._handlers[tool.name](**tool_use.input)
        except Exception as e:
            logger.warning(f"Tool '{tool.name}' failed: {type(e).__name__}: {e}")
            return ToolResultContent.error(tool_use.id, f"{type(e).__name__}: {e}")

        if not isinstance(output, str):
            output = json.dumps(output, default=str)
        return ToolResultContent.success(tool_use.id, output)

    def execute_all(self, tool_uses: Iterable[ToolUseContent]) -> List[ToolResultContent]:
        """Run every tool call in order, returning one result per call"""
        return [self.execute(tool_use) for tool_use in tool_uses]
