"""
Shared test fixtures.

Provides: settings pointed at fake upstream hosts, a recording fake upstream
served through `httpx.MockTransport`, and a runtime wired to both.
"""

import inspect
from typing import Any, Callable, Dict, List

import httpx
import pytest

from scriptability_mcp.config import Settings
from scriptability_mcp.runtime import build_runtime

WAV_BYTES = b"RIFF\x24\x00\x00\x00WAVEfmt " + bytes(range(32))

SIG_HOST = "sig.test"
NDC_HOST = "ndc.test"
MEDCAST_HOST = "medcast.test"
PIC_HOST = "pic.test"


class FakeUpstream:
    """Routes requests by host to responders and records every request."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.routes: Dict[str, Callable[[httpx.Request], Any]] = {}

    def route(self, host: str, responder: Callable[[httpx.Request], Any]) -> None:
        self.routes[host] = responder

    def calls_to(self, host: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.host == host]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        responder = self.routes.get(request.url.host)
        if responder is None:
            return httpx.Response(404, text="no route")
        result = responder(request)
        if inspect.isawaitable(result):
            result = await result
        return result


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        output_dir=str(tmp_path / "out"),
        sig_endpoint=f"https://{SIG_HOST}/",
        ndc_endpoint=f"https://{NDC_HOST}/ndc_descriptor.php",
        medcast_base_url=f"https://{MEDCAST_HOST}",
        picanalysis_endpoint=f"https://{PIC_HOST}/analyze",
        output_bucket=None,
        public_base_url=None,
        auto_wait_ms=0,
    )


@pytest.fixture
def upstream():
    fake = FakeUpstream()
    fake.route(MEDCAST_HOST, lambda request: httpx.Response(200, content=WAV_BYTES))
    return fake


@pytest.fixture
def runtime(settings, upstream):
    return build_runtime(settings, transport=httpx.MockTransport(upstream))


@pytest.fixture
def write_file(tmp_path):
    """Create a file of `size` bytes under tmp_path and return its path."""

    def _write(name: str, size: int = 16) -> str:
        path = tmp_path / name
        path.write_bytes(b"x" * size)
        return str(path)

    return _write
