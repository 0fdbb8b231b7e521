from __future__ import annotations

import json
import re
from typing import Any, Dict

from mcp import types

from ..config import Settings
from ..scriptability_client import ScriptAbilityClient, UpstreamHTTPError
from . import ToolError, ToolRegistry

MAX_SIG_LENGTH = 200

_JSON_WORD = re.compile(r"json", re.IGNORECASE)


def extract_response_text(data: Any) -> str:
    """Pull the first output text out of a Responses-API style payload."""
    if not isinstance(data, dict):
        return ""
    output_text = data.get("output_text")
    if isinstance(output_text, str) and output_text.strip():
        return output_text
    for item in data.get("output") or []:
        if not isinstance(item, dict) or item.get("type") != "message":
            continue
        for part in item.get("content") or []:
            if isinstance(part, dict) and part.get("type") == "output_text" and isinstance(part.get("text"), str):
                return part["text"]
    return ""


def _pretty_if_json(text: str) -> str:
    trimmed = text.strip()
    if (trimmed.startswith("{") and trimmed.endswith("}")) or (
        trimmed.startswith("[") and trimmed.endswith("]")
    ):
        try:
            return json.dumps(json.loads(trimmed), indent=2)
        except ValueError:
            pass
    return text


def build_sig_request(settings: Settings, arguments: Dict[str, Any]) -> Dict[str, Any]:
    sig = str(arguments.get("sig") or "").strip()
    if not sig:
        raise ToolError("Missing 'sig'.")
    sig = sig[:MAX_SIG_LENGTH]
    model = str(arguments.get("model") or "") or settings.sig_model
    # The prompt needs the word "json" somewhere for json_object output.
    needs_json_tag = arguments.get("includeJsonSuffix") is True or not _JSON_WORD.search(sig)

    return {
        "model": model,
        "prompt": {"id": settings.sig_prompt_id, "version": settings.sig_prompt_version},
        "input": f"SIG: {sig}{' json' if needs_json_tag else ''}",
        "text": {"format": {"type": "json_object"}},
        "temperature": 0.25,
        "max_output_tokens": 2048,
        "top_p": 1,
        "store": True,
    }


async def _handle_normalize(
    settings: Settings,
    client: ScriptAbilityClient,
    arguments: Dict[str, Any],
) -> Any:
    payload = build_sig_request(settings, arguments)
    try:
        data = await client.normalize_sig(payload)
    except UpstreamHTTPError as e:
        raise ToolError(str(e)) from None

    text = extract_response_text(data)
    if text:
        return _pretty_if_json(text)
    return data


def register_tools(registry: ToolRegistry, settings: Settings, client: ScriptAbilityClient) -> None:
    normalize_schema: Dict[str, Any] = {
        "type": "object",
        "properties": {
            "sig": {"type": "string", "description": "Free-text SIG, max ~200 characters"},
            "model": {"type": "string", "description": "OpenAI model ID override"},
            "includeJsonSuffix": {"type": "boolean", "description": "Force 'json' suffix in prompt"},
        },
        "required": ["sig"],
    }

    registry.add_tool(
        types.Tool(
            name="sig_normalize",
            description="Normalize pharmacy SIG instructions into a structured JSON using ScriptAbility pipeline.",
            inputSchema=normalize_schema,
        ),
        lambda args: _handle_normalize(settings, client, args),
    )
