from __future__ import annotations

from typing import Any, Dict, List, Optional

from mcp import types

from ..jobs import JobCoordinator, SourceValidationError
from ..jobs.runner import ALLOWED_EXTENSIONS, MAX_SOURCE_FILES, check_source_paths
from ..models import PodcastRequest
from . import ToolError, ToolRegistry


def _parse_wait_ms(arguments: Dict[str, Any], default: int) -> float:
    raw = arguments.get("waitMs")
    if raw is None:
        return float(default)
    if isinstance(raw, bool):
        raise ToolError("'waitMs' must be a number.")
    try:
        wait_ms = float(raw)
    except (TypeError, ValueError):
        raise ToolError("'waitMs' must be a number.") from None
    return max(wait_ms, 0.0)


def parse_podcast_request(arguments: Dict[str, Any]) -> PodcastRequest:
    """
    Validate `medcast_generate_podcast` arguments without touching the disk.

    File sizes are checked later by the job itself.
    """
    raw_files = arguments.get("files")
    files: List[str] = [str(f) for f in raw_files] if isinstance(raw_files, list) else []
    text = str(arguments.get("text") or "")
    ndc = str(arguments.get("ndc") or "").strip()
    output_dir: Optional[str] = str(arguments["outputDir"]) if arguments.get("outputDir") else None

    request = PodcastRequest(files=files, text=text, ndc=ndc, output_dir=output_dir)
    if request.is_empty:
        raise ToolError("Provide at least one of: files, text, or ndc.")
    try:
        check_source_paths(files)
    except SourceValidationError as e:
        raise ToolError(str(e)) from None
    return request


async def _handle_generate(
    jobs: JobCoordinator,
    auto_wait_ms: int,
    arguments: Dict[str, Any],
) -> Dict[str, Any]:
    """
    Start a podcast generation job.

    Returns `{jobId, status}` straight away, or the full job descriptor once
    the job finishes or the wait runs out.
    """
    request = parse_podcast_request(arguments)
    wait_ms = _parse_wait_ms(arguments, auto_wait_ms)

    job = jobs.submit(request)
    if wait_ms <= 0:
        return {"jobId": job.id, "status": job.status.value}

    job = await jobs.wait_for(job.id, wait_ms) or job
    return job.to_descriptor()


async def _handle_status(jobs: JobCoordinator, arguments: Dict[str, Any]) -> Dict[str, Any]:
    job_id = str(arguments.get("jobId") or "").strip()
    if not job_id:
        raise ToolError("Missing 'jobId'.")

    job = jobs.registry.get(job_id)
    if job is None:
        raise ToolError(f"Unknown job: {job_id}")

    wait_ms = _parse_wait_ms(arguments, 0)
    if wait_ms > 0 and not job.status.is_terminal:
        job = await jobs.wait_for(job_id, wait_ms) or job
    return job.to_descriptor()


def register_tools(registry: ToolRegistry, jobs: JobCoordinator, auto_wait_ms: int = 0) -> None:
    extensions = ", ".join(ALLOWED_EXTENSIONS)

    generate_schema: Dict[str, Any] = {
        "type": "object",
        "properties": {
            "files": {
                "type": "array",
                "items": {"type": "string"},
                "description": (
                    f"Local file paths ({extensions}). "
                    f"Max {MAX_SOURCE_FILES}, each <=5MB, total <=10MB"
                ),
            },
            "text": {"type": "string", "description": "Free text source"},
            "ndc": {"type": "string", "description": "NDC number (optional)"},
            "outputDir": {
                "type": "string",
                "description": "Directory to save output WAV when storing locally.",
            },
            "waitMs": {
                "type": "number",
                "description": "Wait up to this many milliseconds for the job to finish.",
            },
        },
    }

    status_schema: Dict[str, Any] = {
        "type": "object",
        "properties": {
            "jobId": {"type": "string", "description": "Job id returned by medcast_generate_podcast."},
            "waitMs": {
                "type": "number",
                "description": "Wait up to this many milliseconds while the job is still running.",
            },
        },
        "required": ["jobId"],
    }

    registry.add_tool(
        types.Tool(
            name="medcast_generate_podcast",
            description=(
                "Generate a medication podcast from files, text, and/or NDC. "
                "Runs in the background and returns a job id; poll medcast_job_status."
            ),
            inputSchema=generate_schema,
        ),
        lambda args: _handle_generate(jobs, auto_wait_ms, args),
    )

    registry.add_tool(
        types.Tool(
            name="medcast_job_status",
            description="Get the status, output location and download URLs of a podcast job.",
            inputSchema=status_schema,
        ),
        lambda args: _handle_status(jobs, args),
    )
