from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import httpx

from .config import Settings

logger = logging.getLogger(__name__)


@dataclass
class UploadFile:
    """An in-memory file ready to be sent as one multipart part."""

    filename: str
    content: bytes
    content_type: str


class UpstreamHTTPError(RuntimeError):
    """Non-2xx response from a ScriptAbility service."""

    def __init__(self, url: str, status_code: int, body: str) -> None:
        self.url = url
        self.status_code = status_code
        self.body = body
        super().__init__(f"HTTP {status_code}: {body}")

    def describe(self) -> str:
        return f"URL: {self.url}\nStatus: {self.status_code}\nResponse: {self.body}"


class UpstreamTimeout(RuntimeError):
    """The upstream call did not complete within its timeout."""


def pretty_body(text: str) -> str:
    """Pretty-print a JSON response body; return anything else unchanged."""
    try:
        return json.dumps(json.loads(text), indent=2)
    except ValueError:
        return text


class ScriptAbilityClient:
    """
    Async wrapper around the external ScriptAbility HTTP services.

    One `httpx.AsyncClient` is shared by all calls. Pass `transport` to route
    requests somewhere other than the network (e.g. `httpx.MockTransport`).
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings
        self._http = httpx.AsyncClient(transport=transport, timeout=httpx.Timeout(60.0))

    async def aclose(self) -> None:
        await self._http.aclose()

    @property
    def podcast_endpoint(self) -> str:
        return f"{self._settings.medcast_base_url.rstrip('/')}/generate_podcast"

    def _raise_for_status(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        raise UpstreamHTTPError(
            url=str(response.request.url),
            status_code=response.status_code,
            body=pretty_body(response.text),
        )

    async def normalize_sig(self, payload: Dict[str, Any]) -> Any:
        response = await self._http.post(
            self._settings.sig_endpoint,
            json=payload,
            # The backend restricts origins; present a permitted one.
            headers={"Origin": self._settings.sig_origin},
        )
        self._raise_for_status(response)
        return response.json()

    async def describe_ndc(self, ndc: str) -> Any:
        response = await self._http.get(
            self._settings.ndc_endpoint,
            params={"ndc": ndc},
            headers={"Accept": "application/json"},
        )
        self._raise_for_status(response)
        return response.json()

    async def analyze_pill(self, fields: Dict[str, str], image: UploadFile) -> Any:
        response = await self._http.post(
            self._settings.picanalysis_endpoint,
            data=fields,
            files=[("image[]", (image.filename, image.content, image.content_type))],
        )
        self._raise_for_status(response)
        return response.json()

    async def generate_podcast(
        self,
        files: List[UploadFile],
        text: str = "",
        ndc: str = "",
    ) -> bytes:
        """
        Post source materials to Medcast and return the generated WAV bytes.

        Raises `UpstreamTimeout` when the call exceeds `medcast_timeout_seconds`
        and `UpstreamHTTPError` on a non-2xx response.
        """
        # Plain fields go in as filename-less parts so the body is always multipart.
        parts: List[Tuple[str, Tuple[Any, ...]]] = [
            ("source_files", (f.filename, f.content, f.content_type)) for f in files
        ]
        if text:
            parts.append(("source_text", (None, text.encode("utf-8"))))
        if ndc:
            parts.append(("ndc_number", (None, ndc.encode("utf-8"))))

        timeout = self._settings.medcast_timeout_seconds
        logger.info(
            "POST %s (%d file(s), text=%s, ndc=%s)",
            self.podcast_endpoint,
            len(files),
            bool(text),
            bool(ndc),
        )
        try:
            response = await self._http.post(
                self.podcast_endpoint,
                files=parts,
                timeout=httpx.Timeout(timeout),
            )
        except httpx.TimeoutException as exc:
            raise UpstreamTimeout(f"Request timed out ({timeout:g}s).") from exc

        self._raise_for_status(response)
        return response.content
