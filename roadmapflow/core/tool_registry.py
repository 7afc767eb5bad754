"""Tool Registry for functions callable from TOOL nodes."""

import asyncio
import inspect
from typing import Any, Callable, Dict, List, Optional

from .exceptions import ToolRegistryError
from .logging import get_logger

logger = get_logger(__name__)


class ToolRegistry:
    """In-memory registry of named tools.

    A tool is called as ``tool(text, context=..., **parameters)`` where
    ``text`` is the node's rendered input template and ``context`` a copy
    of the variable context. It may be a plain or a coroutine function and
    returns a string or a mapping.
    """

    def __init__(self):
        self._tools: Dict[str, Callable] = {}
        self._descriptions: Dict[str, str] = {}

    def register_tool(self, name: str, function: Callable, description: str = "") -> None:
        """Register a function as a reusable tool.

        Args:
            name: Unique identifier for the tool
            function: Function to register
            description: Optional description of the tool's purpose

        Raises:
            ToolRegistryError: If the name is empty or taken, or the function is invalid
        """
        if not name or not name.strip():
            raise ToolRegistryError("Tool name cannot be empty")
        name = name.strip()

        if not callable(function):
            raise ToolRegistryError(f"Tool '{name}' must be a callable function", tool_name=name)
        if name in self._tools:
            raise ToolRegistryError(f"Tool '{name}' is already registered", tool_name=name)

        try:
            signature = inspect.signature(function)
        except (ValueError, TypeError) as e:
            raise ToolRegistryError(f"Cannot inspect function signature for tool '{name}': {e}", tool_name=name)
        if not signature.parameters:
            raise ToolRegistryError(f"Tool '{name}' must accept the rendered input text", tool_name=name)

        self._tools[name] = function
        self._descriptions[name] = (description or inspect.getdoc(function) or "").strip()
        logger.info(f"Registered tool '{name}' from {function.__module__}.{function.__name__}")

    def get_tool(self, name: str) -> Callable:
        """Retrieve a registered tool by name.

        Raises:
            ToolRegistryError: If the tool is not registered
        """
        if not name or not name.strip():
            raise ToolRegistryError("Tool name cannot be empty")
        name = name.strip()
        if name not in self._tools:
            raise ToolRegistryError(f"Tool '{name}' is not registered", tool_name=name)
        return self._tools[name]

    def tool_exists(self, name: str) -> bool:
        return bool(name) and name.strip() in self._tools

    def list_tools(self) -> List[Dict[str, str]]:
        return [
            {"name": name, "description": self._descriptions.get(name, "")}
            for name in sorted(self._tools)
        ]

    def unregister_tool(self, name: str) -> bool:
        if name in self._tools:
            del self._tools[name]
            self._descriptions.pop(name, None)
            logger.info(f"Unregistered tool '{name}'")
            return True
        return False

    async def call_tool(
        self,
        name: str,
        text: str,
        context: Optional[Dict[str, Any]] = None,
        **parameters
    ) -> Any:
        """Call a tool with the rendered input text.

        Raises:
            ToolRegistryError: If the tool is not registered or raises
        """
        function = self.get_tool(name)
        logger.debug(f"Calling tool '{name}' with {len(text)} chars of input")

        try:
            result = function(text, context=context or {}, **parameters)
            if asyncio.iscoroutine(result):
                result = await result
        except ToolRegistryError:
            raise
        except Exception as e:
            raise ToolRegistryError(
                f"Tool '{name}' failed: {e}",
                tool_name=name,
                details={"error_type": type(e).__name__},
            ) from e

        return result
