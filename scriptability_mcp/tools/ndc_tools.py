from __future__ import annotations

import re
from typing import Any, Dict

from mcp import types

from ..scriptability_client import ScriptAbilityClient, UpstreamHTTPError
from . import ToolError, ToolRegistry

_NON_NDC_CHARS = re.compile(r"[^0-9-]")


async def _handle_analysis(client: ScriptAbilityClient, arguments: Dict[str, Any]) -> Any:
    ndc = str(arguments.get("ndc") or "").strip()
    if not ndc:
        raise ToolError("Missing 'ndc'.")
    try:
        return await client.describe_ndc(_NON_NDC_CHARS.sub("", ndc))
    except UpstreamHTTPError as e:
        raise ToolError(str(e)) from None


def register_tools(registry: ToolRegistry, client: ScriptAbilityClient) -> None:
    registry.add_tool(
        types.Tool(
            name="ndc_analysis",
            description="Look up NDC descriptor details for a given NDC (digits and hyphens allowed).",
            inputSchema={
                "type": "object",
                "properties": {
                    "ndc": {"type": "string", "description": "NDC number (digits and hyphens)"},
                },
                "required": ["ndc"],
            },
        ),
        lambda args: _handle_analysis(client, args),
    )
