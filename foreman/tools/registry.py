"""
Tool Registry — the catalog of operations exposed to a protocol transport.

Every tool is registered here with its JSON Schema definition, description,
and execution handler. The registry serves two purposes:

1. DISCOVERY: a transport lists the registered definitions to advertise them
   to its client.

2. DISPATCH: when a call arrives, the registry maps the tool name to the
   handler that executes it (see ToolExecutor).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

import structlog

logger = structlog.get_logger(__name__)


@dataclass
class ToolDefinition:
    """
    A registered tool with its schema, description, and handler.

    The JSON schema is exactly what a client sees as the tool's input schema.
    The handler is the coroutine (or plain function) that runs the call.
    """
    name: str
    description: str
    input_schema: dict[str, Any]          # JSON Schema for tool parameters
    handler: Optional[Callable] = None    # The function to call
    category: str = "general"             # For organizing in listings/logs
    enabled: bool = True                  # Can be disabled without removal
    timeout: Optional[float] = None       # Per-tool timeout in seconds (None = use default)

    def to_api_format(self) -> dict[str, Any]:
        """Shape advertised to protocol clients."""
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }


class ToolRegistry:
    """
    Central registry for all tools.

    Supports registering tools with schemas and handlers, listing their
    definitions, looking up handlers, and enabling/disabling tools at runtime.
    """

    def __init__(self):
        self._tools: dict[str, ToolDefinition] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def register(self, tool: ToolDefinition, *, allow_override: bool = False) -> None:
        """Register a tool, blocking accidental name collisions by default."""
        existing = self._tools.get(tool.name)
        if existing is not None and not allow_override:
            logger.warning(
                "tool_registry.name_collision",
                name=tool.name,
                existing_category=existing.category,
                new_category=tool.category,
            )
            raise ValueError(
                f"Tool '{tool.name}' is already registered. "
                "Use allow_override=True for an explicit replacement."
            )

        self._tools[tool.name] = tool
        logger.info("tool_registry.registered", name=tool.name, category=tool.category)

    def unregister(self, name: str) -> bool:
        """Remove a tool from the registry."""
        if name in self._tools:
            del self._tools[name]
            logger.info("tool_registry.unregistered", name=name)
            return True
        return False

    def get(self, name: str) -> Optional[ToolDefinition]:
        """Look up a tool by name."""
        return self._tools.get(name)

    def get_api_tools(self, categories: Optional[list[str]] = None) -> list[dict[str, Any]]:
        """Definitions of every enabled tool, optionally filtered by category."""
        return [
            tool.to_api_format()
            for tool in self._tools.values()
            if tool.enabled and (not categories or tool.category in categories)
        ]

    def get_handler(self, tool_name: str) -> Optional[Callable]:
        """Get the execution handler for a tool."""
        tool = self._tools.get(tool_name)
        if tool and tool.handler:
            return tool.handler
        return None

    def set_enabled(self, name: str, enabled: bool) -> bool:
        tool = self._tools.get(name)
        if tool is None:
            return False
        tool.enabled = enabled
        return True

    @property
    def count(self) -> int:
        return len(self._tools)
