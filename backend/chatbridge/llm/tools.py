"""
Tool registry.

WHAT: A ToolExecutor that maps tool names to Python callables
WHY: Non-streaming sends may be answered with a tool call that must run locally
HOW: Register (definition, handler) pairs; handlers may be sync or async and return text
"""

import asyncio
import json
from typing import Any, Awaitable, Callable

from .types import ProviderUnknownError, ToolDefinition
from ..utils.logger import get_logger

logger = get_logger(__name__)

ToolHandler = Callable[..., "str | Awaitable[str]"]


class ToolRegistry:
    """Named tools advertised to the model and executed on request."""

    def __init__(self):
        self._tools: dict[str, tuple[ToolDefinition, ToolHandler]] = {}

    def register(self, definition: ToolDefinition, handler: ToolHandler) -> None:
        """
        Add a tool.

        Args:
            definition: Name, description and JSON-schema parameters sent to the model
            handler: Called with the model's arguments as keyword arguments
        """
        self._tools[definition.name] = (definition, handler)

    def definitions(self) -> list[ToolDefinition]:
        return [definition for definition, _ in self._tools.values()]

    async def execute(self, name: str, arguments: dict[str, Any]) -> str:
        """
        Run a tool and return its result as text.

        Raises:
            ProviderUnknownError: Unknown tool or the handler failed
        """
        if name not in self._tools:
            raise ProviderUnknownError(f"Model requested unknown tool '{name}'")

        _, handler = self._tools[name]
        logger.info(f"Executing tool {name}")
        try:
            result = handler(**arguments)
            if asyncio.iscoroutine(result):
                result = await result
        except TypeError as e:
            raise ProviderUnknownError(f"Invalid arguments for tool '{name}': {e}") from e
        except Exception as e:
            logger.error(f"Tool {name} failed: {e}")
            raise ProviderUnknownError(f"Tool '{name}' failed: {e}") from e

        if isinstance(result, str):
            return result
        return json.dumps(result)
