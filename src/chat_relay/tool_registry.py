"""
Simple tool registry for automatic schema generation and tool execution.

Maps plain callables (functions or plugin methods) to Chat Completions
function schemas, validates model-supplied arguments against those schemas,
and executes the matching callable.
"""

import inspect
import json
import logging
from typing import (
    Annotated,
    Any,
    Callable,
    Dict,
    List,
    Optional,
    get_args,
    get_origin,
    get_type_hints,
)

import jsonschema

from .errors import ToolArgumentError

logger = logging.getLogger(__name__)

_JSON_TYPES = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    dict: "object",
    list: "array",
}


def tool(name: Optional[str] = None, description: Optional[str] = None):
    """Mark a callable as a tool, optionally overriding its public name.

    Works on plain functions and on methods; bound methods forward attribute
    lookups to the underlying function.
    """

    def decorator(func: Callable) -> Callable:
        func.__tool_name__ = name or func.__name__
        func.__tool_description__ = description
        return func

    return decorator


def _json_type(annotation: Any) -> str:
    return _JSON_TYPES.get(annotation, "string")


def callable_to_tool_schema(
    callable_func: Callable, name: str, description: Optional[str] = None
) -> Dict[str, Any]:
    """
    Convert a Python callable (function or method) to a Chat Completions tool schema.

    Args:
        callable_func: The callable to convert
        name: Tool name
        description: Optional description (falls back to the docstring)

    Returns:
        Tool schema dictionary
    """
    sig = inspect.signature(callable_func)
    type_hints = get_type_hints(callable_func, include_extras=True)

    if description is None:
        doc = inspect.getdoc(callable_func)
        description = doc.strip().splitlines()[0] if doc else f"Execute {name}"

    parameters: Dict[str, Any] = {
        "type": "object",
        "properties": {},
        "required": [],
        "additionalProperties": False,
    }

    for param_name, param in sig.parameters.items():
        if param_name == "self":
            continue

        param_type = type_hints.get(param_name, str)
        param_description = f"The {param_name} parameter"

        # Annotated[str, "description"] carries the human-readable description
        if get_origin(param_type) is Annotated:
            base, *extras = get_args(param_type)
            param_type = base
            text_extras = [e for e in extras if isinstance(e, str)]
            if text_extras:
                param_description = text_extras[0]

        parameters["properties"][param_name] = {
            "type": _json_type(param_type),
            "description": param_description,
        }

        if param.default is inspect.Parameter.empty:
            parameters["required"].append(param_name)

    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": parameters,
        },
    }


class ToolRegistry:
    """Registry for managing tools and their schemas."""

    def __init__(self):
        self.tools: Dict[str, Callable] = {}  # name -> callable
        self.schemas: Dict[str, Dict[str, Any]] = {}  # name -> schema

    @classmethod
    def from_plugins(cls, plugins: list) -> "ToolRegistry":
        """Build a registry from every plugin's ``hook_provide_tools``."""
        registry = cls()
        for plugin in plugins:
            if hasattr(plugin, "hook_provide_tools"):
                for method in plugin.hook_provide_tools():
                    registry.register_callable(method)
        return registry

    def register_callable(
        self,
        callable_func: Callable,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> None:
        """
        Register a callable and auto-generate its tool schema.

        Args:
            callable_func: The callable to register
            name: Optional name override (defaults to the @tool name, then the callable name)
            description: Optional description
        """
        tool_name = (
            name
            or getattr(callable_func, "__tool_name__", None)
            or callable_func.__name__
        )
        if description is None:
            description = getattr(callable_func, "__tool_description__", None)
        schema = callable_to_tool_schema(callable_func, tool_name, description)

        self.tools[tool_name] = callable_func
        self.schemas[tool_name] = schema

    def get_schemas(self) -> List[Dict[str, Any]]:
        """Get all tool schemas for the completion API."""
        return list(self.schemas.values())

    def get_tool_names(self) -> List[str]:
        """Get list of registered tool names."""
        return list(self.tools.keys())

    def has_tool(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self.tools

    def validate_arguments(self, name: str, args: Any) -> None:
        """
        Check tool arguments against the declared parameters schema.

        Raises:
            ToolArgumentError: If the arguments do not satisfy the schema
        """
        parameters = self.schemas[name]["function"]["parameters"]
        try:
            jsonschema.validate(instance=args, schema=parameters)
        except jsonschema.ValidationError as e:
            raise ToolArgumentError(name, e.message) from e

    async def execute_tool(self, name: str, args: Dict[str, Any]) -> Any:
        """
        Execute a registered tool by name.

        Args:
            name: Tool name
            args: Tool arguments (validated against the schema first)

        Returns:
            Tool execution result

        Raises:
            KeyError: If tool is not registered
            ToolArgumentError: If the arguments do not match the schema
        """
        if name not in self.tools:
            raise KeyError(f"Tool '{name}' not found in registry")

        self.validate_arguments(name, args)
        callable_func = self.tools[name]

        if inspect.iscoroutinefunction(callable_func):
            return await callable_func(**args)
        else:
            return callable_func(**args)

    async def execute_tool_call(
        self, call_id: str, name: str, arguments: str
    ) -> Dict[str, Any]:
        """
        Execute a tool call assembled from a streamed completion.

        Args:
            call_id: The id the model assigned to the call
            name: Tool name
            arguments: Raw JSON argument string produced by the model

        Returns:
            ``{"call_id", "name", "arguments", "result", "output"}`` where
            ``output`` is the text fed back to the model. Failures are reported
            in ``output`` rather than raised.
        """
        args: Any = {}
        result: Any = None
        try:
            args = json.loads(arguments) if arguments else {}
            result = await self.execute_tool(name, args)
            output = json.dumps(result, ensure_ascii=False, default=str)
        except json.JSONDecodeError as e:
            logger.info(f"TOOL JSON ERROR: {name} - {str(e)}")
            output = f"Error parsing arguments: {str(e)}"
        except ToolArgumentError as e:
            logger.info(f"TOOL ARGUMENT ERROR: {e.message}")
            output = f"Error: {e.message}"
        except Exception as e:
            logger.info(f"TOOL ERROR: {name} - {str(e)}")
            output = f"Error: {str(e)}"

        return {
            "call_id": call_id,
            "name": name,
            "arguments": args,
            "result": result,
            "output": output,
        }

    def clear(self) -> None:
        """Clear all registered tools."""
        self.tools.clear()
        self.schemas.clear()

    def __len__(self) -> int:
        """Get number of registered tools."""
        return len(self.tools)
