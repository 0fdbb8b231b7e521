from __future__ import annotations

import mimetypes
import os
import re
from typing import Any, Dict

import anyio
from mcp import types

from ..scriptability_client import ScriptAbilityClient, UploadFile, UpstreamHTTPError
from . import ToolError, ToolRegistry

MAX_IMAGE_BYTES = 5 * 1024 * 1024
ALLOWED_IMAGE_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp")

_NON_DIGITS = re.compile(r"[^0-9]")

mimetypes.add_type("image/webp", ".webp")


async def _read_image(image_path: str) -> UploadFile:
    path = anyio.Path(os.path.abspath(image_path))
    try:
        stats = await path.stat()
    except FileNotFoundError:
        raise ToolError(f"Image not found: {image_path}") from None
    if stats.st_size > MAX_IMAGE_BYTES:
        raise ToolError("Image is too large. Max size is 5MB.")

    content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    if content_type not in ALLOWED_IMAGE_TYPES:
        raise ToolError("Unsupported image format. Use JPG, PNG, GIF, or WebP.")
    return UploadFile(filename=path.name, content=await path.read_bytes(), content_type=content_type)


async def _handle_identify(client: ScriptAbilityClient, arguments: Dict[str, Any]) -> Any:
    """
    Check a medication photo against the expected drug.

    The NDC is sent as bare digits and must be exactly 11 long.
    """
    name = str(arguments.get("name") or "").strip()
    ndc11 = _NON_DIGITS.sub("", str(arguments.get("ndc11") or ""))
    image_path = str(arguments.get("imagePath") or "").strip()

    if not name:
        raise ToolError("Missing 'name'.")
    if not ndc11:
        raise ToolError("Missing 'ndc11'.")
    if len(ndc11) != 11:
        raise ToolError("NDC must contain exactly 11 digits.")
    if not image_path:
        raise ToolError("Missing 'imagePath'.")

    image = await _read_image(image_path)
    fields = {
        "medications[0][name]": name,
        "medications[0][ndc]": ndc11,
    }
    if arguments.get("description"):
        fields["medications[0][physical_description]"] = str(arguments["description"])

    try:
        return await client.analyze_pill(fields, image)
    except UpstreamHTTPError as e:
        raise ToolError(str(e)) from None


def register_tools(registry: ToolRegistry, client: ScriptAbilityClient) -> None:
    identify_schema: Dict[str, Any] = {
        "type": "object",
        "properties": {
            "name": {"type": "string", "description": "Medication name"},
            "ndc11": {"type": "string", "description": "Exactly 11 digits (hyphens removed automatically)"},
            "imagePath": {
                "type": "string",
                "description": "Local path to medication image (jpg, png, gif, webp). <=5MB",
            },
            "description": {"type": "string", "description": "Optional physical description"},
        },
        "required": ["name", "ndc11", "imagePath"],
    }

    registry.add_tool(
        types.Tool(
            name="pill_identifier",
            description="Analyze a medication image against expected medication details (name + 11-digit NDC).",
            inputSchema=identify_schema,
        ),
        lambda args: _handle_identify(client, args),
    )
