"""
Tool registration utilities.

Each module in this package exposes a `register_tools(registry, ...)` function
that adds its tools to the central registry used by the MCP server.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from mcp import types

logger = logging.getLogger(__name__)


ToolHandler = Callable[[Dict[str, Any]], Awaitable[Any]]


class ToolError(Exception):
    """A tool rejected its input or its upstream call failed; shown to the caller."""


@dataclass
class RegisteredTool:
    spec: types.Tool
    handler: ToolHandler


def text_result(value: Any) -> types.CallToolResult:
    text = value if isinstance(value, str) else json.dumps(value, indent=2)
    return types.CallToolResult(content=[types.TextContent(type="text", text=text)])


def error_result(message: str) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=f"Error: {message}")],
        isError=True,
    )


class ToolRegistry:
    """
    In-memory registry mapping MCP tool names to their specifications and handlers.
    """

    def __init__(self) -> None:
        self._tools: Dict[str, RegisteredTool] = {}

    def add_tool(self, tool: types.Tool, handler: ToolHandler) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' already registered")
        self._tools[tool.name] = RegisteredTool(spec=tool, handler=handler)

    def list_tools(self) -> List[types.Tool]:
        return [rt.spec for rt in self._tools.values()]

    def get_handler(self, name: str) -> ToolHandler:
        if name not in self._tools:
            raise KeyError(f"Unknown tool '{name}'")
        return self._tools[name].handler

    async def call(self, name: str, arguments: Optional[Dict[str, Any]]) -> types.CallToolResult:
        """
        Invoke a tool and wrap its outcome as MCP content.

        Failures never propagate; they come back as a single `Error: ...` text part.
        """
        try:
            handler = self.get_handler(name)
        except KeyError:
            return error_result(f"Unknown tool: {name}")

        try:
            result = await handler(arguments or {})
        except ToolError as e:
            return error_result(str(e))
        except Exception as e:
            logger.exception(f"Error executing tool {name}")
            return error_result(str(e) or e.__class__.__name__)
        return text_result(result)
