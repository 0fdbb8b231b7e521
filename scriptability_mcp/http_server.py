from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional, Union

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from .artifact_store import AUDIO_CONTENT_TYPE, ArtifactNotFound
from .config import Settings, get_settings
from .downloads import JobNotCompleted
from .main import SERVER_NAME, SERVER_VERSION, build_registry
from .runtime import RuntimeContext, build_runtime
from .tools import ToolRegistry

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"


def _rpc_error(message_id: Any, code: int, message: str) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": message_id, "error": {"code": code, "message": message}}


def _rpc_result(message_id: Any, result: Dict[str, Any]) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": message_id, "result": result}


async def _read_message(request: Request) -> Union[Dict[str, Any], JSONResponse]:
    """Parse and validate a JSON-RPC 2.0 message, or return the error response."""
    body = await request.body()
    if not body:
        return JSONResponse(_rpc_error(None, -32600, "Invalid Request: empty body"), status_code=400)
    try:
        message = json.loads(body)
    except json.JSONDecodeError as e:
        return JSONResponse(_rpc_error(None, -32700, f"Parse error: {str(e)}"), status_code=400)

    if not isinstance(message, dict):
        return JSONResponse(
            _rpc_error(None, -32600, "Invalid Request: batch messages are not supported"),
            status_code=400,
        )
    if message.get("jsonrpc") != "2.0":
        return JSONResponse(
            _rpc_error(message.get("id"), -32600, "Invalid Request: jsonrpc must be '2.0'"),
            status_code=400,
        )
    if not message.get("method"):
        return JSONResponse(
            _rpc_error(message.get("id"), -32600, "Invalid Request: method is required"),
            status_code=400,
        )
    return message


def _content_disposition(filename: str, attachment: bool) -> str:
    kind = "attachment" if attachment else "inline"
    return f'{kind}; filename="{filename}"'


def create_http_app(runtime: Optional[RuntimeContext] = None, settings: Optional[Settings] = None) -> FastAPI:
    """
    Create the FastAPI app serving MCP over HTTP and the podcast download route.

    MCP over HTTP:
    - Client sends POST requests with JSON-RPC messages in body
    - `/mcp` answers with a JSON body, `/mcp/stream` with one SSE event
    - Notifications (no `id`) are acknowledged with 202 and no body
    """
    if runtime is None:
        runtime = build_runtime(settings or get_settings())
    registry = build_registry(runtime)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await runtime.aclose()

    app = FastAPI(
        title="ScriptAbility MCP",
        version=SERVER_VERSION,
        description="MCP tools for ScriptAbility SIG, NDC, Medcast and pill analysis services",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Mcp-Session-Id"],
    )
    app.state.runtime = runtime
    app.state.registry = registry

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "ok", "service": SERVER_NAME}

    @app.get("/")
    async def root():
        """Root endpoint with service info."""
        return {
            "service": SERVER_NAME,
            "version": SERVER_VERSION,
            "protocol": "mcp",
            "transport": "http",
            "endpoints": {
                "health": "/health",
                "mcp": "/mcp",
                "mcp_stream": "/mcp/stream",
                "medcast_download": "/files/medcast/{job_id}",
            },
        }

    @app.post("/mcp")
    async def mcp_json(request: Request):
        message = await _read_message(request)
        if isinstance(message, JSONResponse):
            return message
        logger.info("POST /mcp method=%s", message["method"])
        if "id" not in message:
            return Response(status_code=202)

        response = await handle_mcp_request(
            registry, message["method"], message.get("params") or {}, message["id"]
        )
        return JSONResponse(response)

    @app.post("/mcp/stream")
    async def mcp_stream(request: Request):
        """
        MCP SSE stream endpoint.

        Same JSON-RPC handling as `/mcp`, framed as a single
        "data: <json-rpc-response>\\n\\n" event.
        """
        message = await _read_message(request)
        if isinstance(message, JSONResponse):
            return message
        if "id" not in message:
            return Response(status_code=202)

        method = message["method"]
        message_id = message["id"]
        params = message.get("params") or {}

        async def generate_sse() -> AsyncIterator[str]:
            response = await handle_mcp_request(registry, method, params, message_id)
            yield f"data: {json.dumps(response)}\n\n"

        return StreamingResponse(
            generate_sse(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",  # Disable nginx buffering
            },
        )

    @app.get("/files/medcast/{job_id}")
    async def download_medcast(job_id: str, download: bool = False):
        """
        Stream a finished podcast's audio.

        404 when nothing is stored for the id, 409 while the job is unfinished.
        """
        try:
            artifact = await runtime.downloads.open(job_id)
        except JobNotCompleted as e:
            raise HTTPException(status_code=409, detail=f"Job not completed: {e.status.value}")
        except ArtifactNotFound:
            raise HTTPException(status_code=404, detail="Not found")

        # Pull the first chunk before any header goes out, so storage errors
        # can still become a 500. Later failures abort the connection.
        chunks = artifact.chunks()
        try:
            first = await chunks.__anext__()
        except StopAsyncIteration:
            first = b""
        except Exception:
            logger.exception("Failed to read artifact for job %s", job_id)
            raise HTTPException(status_code=500, detail="Failed to read artifact")

        async def body() -> AsyncIterator[bytes]:
            if first:
                yield first
                async for chunk in chunks:
                    yield chunk

        attachment = download or runtime.settings.download_force_attachment
        return StreamingResponse(
            body(),
            media_type=AUDIO_CONTENT_TYPE,
            headers={"Content-Disposition": _content_disposition(artifact.filename, attachment)},
        )

    return app


async def handle_mcp_request(
    registry: ToolRegistry,
    method: str,
    params: Dict[str, Any],
    message_id: Any,
) -> Dict[str, Any]:
    """
    Handle one MCP protocol request.

    Tool failures come back as `isError` results, not JSON-RPC errors;
    JSON-RPC errors are reserved for protocol problems.
    """
    try:
        if method == "initialize":
            return _rpc_result(
                message_id,
                {
                    "protocolVersion": params.get("protocolVersion") or PROTOCOL_VERSION,
                    "capabilities": {"tools": {"listChanged": False}},
                    "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
                },
            )

        elif method == "ping":
            return _rpc_result(message_id, {})

        elif method == "tools/list":
            tools = registry.list_tools()
            return _rpc_result(
                message_id,
                {"tools": [tool.model_dump(by_alias=True, exclude_none=True) for tool in tools]},
            )

        elif method == "tools/call":
            tool_name = params.get("name")
            if not tool_name:
                return _rpc_error(message_id, -32602, "Invalid params: 'name' is required")

            result = await registry.call(tool_name, params.get("arguments") or {})
            return _rpc_result(message_id, result.model_dump(by_alias=True, exclude_none=True))

        else:
            return _rpc_error(message_id, -32601, f"Method not found: {method}")

    except Exception as e:
        logger.exception(f"Error handling MCP method {method}")
        return _rpc_error(message_id, -32603, f"Internal error: {str(e)}")


async def run_http_server(settings: Settings) -> None:
    """Run the HTTP server using uvicorn."""
    import uvicorn

    app = create_http_app(settings=settings)
    config = uvicorn.Config(
        app,
        host=settings.server_host,
        port=settings.server_port,
        log_level=settings.log_level.lower(),
        access_log=True,
    )
    server = uvicorn.Server(config)
    logger.info("HTTP MCP listening on http://%s:%s/mcp", settings.server_host, settings.server_port)
    await server.serve()
