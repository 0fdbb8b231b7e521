import json

import httpx
import pytest
from fastapi.testclient import TestClient

from scriptability_mcp.artifact_store import ArtifactDownload, ArtifactStore
from scriptability_mcp.http_server import create_http_app
from scriptability_mcp.models import JobStatus
from scriptability_mcp.runtime import build_runtime

from .conftest import WAV_BYTES


def _rpc(client, method, params=None, message_id=1, path="/mcp"):
    return client.post(
        path,
        json={"jsonrpc": "2.0", "id": message_id, "method": method, "params": params or {}},
    )


def _call_tool(client, name, arguments):
    response = _rpc(client, "tools/call", {"name": name, "arguments": arguments})
    assert response.status_code == 200
    return response.json()["result"]


@pytest.fixture
def app(runtime):
    return create_http_app(runtime)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def test_health(client):
    assert client.get("/health").json() == {"status": "ok", "service": "scriptability-mcp"}


def test_initialize(client):
    result = _rpc(client, "initialize", {"protocolVersion": "2025-03-26"}).json()["result"]

    assert result["serverInfo"]["name"] == "scriptability-mcp"
    assert result["protocolVersion"] == "2025-03-26"
    assert "tools" in result["capabilities"]


def test_notifications_are_acknowledged(client):
    response = client.post("/mcp", json={"jsonrpc": "2.0", "method": "notifications/initialized"})
    assert response.status_code == 202


def test_rejects_non_jsonrpc(client):
    response = client.post("/mcp", json={"jsonrpc": "1.0", "id": 3, "method": "tools/list"})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == -32600


def test_parse_error(client):
    response = client.post("/mcp", content=b"{not json", headers={"Content-Type": "application/json"})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == -32700


def test_unknown_method(client):
    body = _rpc(client, "resources/list").json()
    assert body["error"]["code"] == -32601


def test_tools_list(client):
    tools = _rpc(client, "tools/list").json()["result"]["tools"]

    names = [tool["name"] for tool in tools]
    assert "medcast_generate_podcast" in names
    assert "medcast_job_status" in names
    for tool in tools:
        assert tool["description"]
        assert tool["inputSchema"]["type"] == "object"


def test_unknown_tool_is_an_error_result(client):
    result = _call_tool(client, "bogus", {})

    assert result["isError"] is True
    assert result["content"][0]["text"] == "Error: Unknown tool: bogus"


def test_stream_endpoint_frames_sse(client):
    response = _rpc(client, "tools/list", path="/mcp/stream")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.text.startswith("data: ")
    payload = json.loads(response.text[len("data: "):].strip())
    assert payload["id"] == 1
    assert payload["result"]["tools"]


def test_generate_then_download(client):
    result = _call_tool(client, "medcast_generate_podcast", {"text": "hello", "waitMs": 5000})
    descriptor = json.loads(result["content"][0]["text"])
    assert descriptor["status"] == "succeeded"

    response = client.get(f"/files/medcast/{descriptor['id']}")

    assert response.status_code == 200
    assert response.headers["content-type"] == "audio/wav"
    assert response.headers["content-disposition"].startswith("inline; filename=\"output-")
    assert response.content == WAV_BYTES


def test_download_as_attachment(client):
    result = _call_tool(client, "medcast_generate_podcast", {"text": "hello", "waitMs": 5000})
    job_id = json.loads(result["content"][0]["text"])["id"]

    response = client.get(f"/files/medcast/{job_id}", params={"download": "1"})

    assert response.headers["content-disposition"].startswith("attachment;")


def test_forced_attachment_setting(settings, upstream):
    settings.download_force_attachment = True
    runtime = build_runtime(settings, transport=httpx.MockTransport(upstream))

    with TestClient(create_http_app(runtime)) as client:
        result = _call_tool(client, "medcast_generate_podcast", {"text": "hello", "waitMs": 5000})
        job_id = json.loads(result["content"][0]["text"])["id"]
        response = client.get(f"/files/medcast/{job_id}")

    assert response.status_code == 200
    assert response.headers["content-disposition"].startswith("attachment;")


@pytest.mark.parametrize("status", [JobStatus.PENDING, JobStatus.RUNNING, JobStatus.FAILED])
def test_download_of_unfinished_job_is_conflict(client, runtime, status):
    job = runtime.registry.create("podcast-generation")
    if status != JobStatus.PENDING:
        runtime.registry.update(job.id, status=JobStatus.RUNNING)
    if status == JobStatus.FAILED:
        runtime.registry.update(job.id, status=JobStatus.FAILED, error="boom")

    response = client.get(f"/files/medcast/{job.id}")

    assert response.status_code == 409


def test_download_unknown_job_is_not_found(client):
    assert client.get("/files/medcast/does-not-exist").status_code == 404


class FallbackStore(ArtifactStore):
    """Knows one artifact by job id only, like a bucket after a restart."""

    def __init__(self, job_id, payload):
        super().__init__()
        self._job_id = job_id
        self._payload = payload

    async def find(self, job_id):
        if job_id != self._job_id:
            return None

        async def chunks():
            yield self._payload

        return ArtifactDownload(filename="output-20250101-000000.wav", chunks=chunks)


def test_unknown_job_falls_back_to_store_lookup(settings, upstream):
    store = FallbackStore("old-job", WAV_BYTES)
    runtime = build_runtime(settings, transport=httpx.MockTransport(upstream), store=store)

    with TestClient(create_http_app(runtime)) as client:
        found = client.get("/files/medcast/old-job")
        missing = client.get("/files/medcast/other-job")

    assert found.status_code == 200
    assert found.content == WAV_BYTES
    assert found.headers["content-type"] == "audio/wav"
    assert missing.status_code == 404


class BrokenReadStore(FallbackStore):
    async def find(self, job_id):
        async def chunks():
            raise IOError("bucket unreachable")
            yield b""  # pragma: no cover

        return ArtifactDownload(filename="output.wav", chunks=chunks)


def test_read_failure_before_headers_is_server_error(settings, upstream):
    runtime = build_runtime(
        settings,
        transport=httpx.MockTransport(upstream),
        store=BrokenReadStore("any", b""),
    )

    with TestClient(create_http_app(runtime)) as client:
        response = client.get("/files/medcast/any")

    assert response.status_code == 500


class TruncatingStore(FallbackStore):
    async def find(self, job_id):
        async def chunks():
            yield self._payload
            raise OSError("connection to bucket reset")

        return ArtifactDownload(filename="output.wav", chunks=chunks)


def test_read_failure_after_first_chunk_aborts_response(settings, upstream):
    runtime = build_runtime(
        settings,
        transport=httpx.MockTransport(upstream),
        store=TruncatingStore("any", WAV_BYTES),
    )

    with TestClient(create_http_app(runtime)) as client:
        with pytest.raises(OSError, match="connection to bucket reset"):
            client.get("/files/medcast/any")
