from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

import anyio
from mcp import types
from mcp.server import Server
from mcp.server.stdio import stdio_server

from .config import Settings, get_settings
from .runtime import RuntimeContext, build_runtime
from .tools import ToolRegistry
from .tools import medcast_tools, ndc_tools, pill_tools, sig_tools

SERVER_NAME = "scriptability-mcp"
SERVER_VERSION = "0.1.0"

logger = logging.getLogger(__name__)


def build_registry(runtime: RuntimeContext) -> ToolRegistry:
    registry = ToolRegistry()

    # Register tool groups
    sig_tools.register_tools(registry, settings=runtime.settings, client=runtime.client)
    ndc_tools.register_tools(registry, client=runtime.client)
    medcast_tools.register_tools(
        registry,
        jobs=runtime.jobs,
        auto_wait_ms=runtime.settings.auto_wait_ms,
    )
    pill_tools.register_tools(registry, client=runtime.client)
    return registry


def create_server_with_registry(
    runtime: Optional[RuntimeContext] = None,
) -> Tuple[Server, ToolRegistry, RuntimeContext]:
    """
    Create and configure the MCP server with all registered tools.
    """
    runtime = runtime or build_runtime(get_settings())
    registry = build_registry(runtime)

    server = Server(SERVER_NAME, version=SERVER_VERSION)

    @server.list_tools()
    async def list_tools() -> List[types.Tool]:
        return registry.list_tools()

    # Tools check their own arguments and report failures as `isError` results.
    @server.call_tool(validate_input=False)
    async def call_tool(name: str, arguments: Dict[str, Any]) -> types.CallToolResult:
        return await registry.call(name, arguments or {})

    return server, registry, runtime


def create_server(runtime: Optional[RuntimeContext] = None) -> Server:
    server, _, _ = create_server_with_registry(runtime)
    return server


async def run_stdio_server(settings: Settings) -> None:
    server, _, runtime = create_server_with_registry(build_runtime(settings))
    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())
    finally:
        await runtime.aclose()


def configure_logging(settings: Settings) -> None:
    # stdout carries the stdio transport, so logs go to stderr.
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def main() -> None:
    """
    Entrypoint for running the MCP server.

    Supports two transport modes:
    - stdio: For direct process-to-process communication (default)
    - http: JSON-RPC over HTTP plus the podcast download route
    """
    settings = get_settings()
    configure_logging(settings)

    if settings.transport == "http":
        from .http_server import run_http_server

        anyio.run(run_http_server, settings)
    else:
        anyio.run(run_stdio_server, settings)


if __name__ == "__main__":
    main()
