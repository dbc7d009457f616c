"""HTTP client for the deployed solve, transcribe and summarize functions."""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from ..media import sniff_mime_from_bytes
from .collaborators import SessionProvider
from .sse_parser import ParseResult, parse_stream

logger = logging.getLogger(__name__)

SOLVE_STREAM_PATH = "solve-math-stream"
TRANSCRIBE_PATH = "transcribe-audio"
SUMMARIZE_PATH = "summarize-text"


class FunctionsError(Exception):
    """A function call failed; ``context`` keeps the raw body for diagnostics."""

    def __init__(self, message: str, *, status_code: int | None = None, context: str = ""):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.context = context


@dataclass(frozen=True)
class ClientConfig:
    functions_url: str
    anon_key: str = ""
    timeout_seconds: float = 60.0


@dataclass
class StreamReply:
    """Buffered solve stream plus its decoded form."""

    status_code: int
    body: str
    parsed: ParseResult


def _error_message(body: str, fallback: str) -> str:
    try:
        payload = json.loads(body)
    except ValueError:
        return body.strip() or fallback
    if isinstance(payload, dict):
        error = payload.get("error") or payload.get("message")
        if isinstance(error, str) and error:
            return error
    return fallback


def _extract_text(payload: Any, key: str) -> str:
    """Read ``key``, then ``text``, then ``result.<key>`` from a reply."""

    if not isinstance(payload, dict):
        return ""
    result = payload.get("result")
    nested = result.get(key) if isinstance(result, dict) else None
    for candidate in (payload.get(key), payload.get("text"), nested):
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
    return ""


class FunctionsClient:
    """Thin async wrapper over the function endpoints."""

    def __init__(
        self,
        config: ClientConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
        auth: SessionProvider | None = None,
    ):
        self._config = config
        self._http_client = http_client
        self._owns_client = http_client is None
        self._auth = auth

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._config.timeout_seconds, connect=10.0),
                follow_redirects=True,
            )
        return self._http_client

    def _url(self, path: str) -> str:
        return f"{self._config.functions_url.rstrip('/')}/{path}"

    async def _headers(self, accept: str = "application/json") -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": accept}
        if self._config.anon_key:
            headers["apikey"] = self._config.anon_key
        token = await self._auth.get_access_token() if self._auth else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def solve_stream(self, body: dict[str, Any]) -> StreamReply:
        """POST to the solve stream, read it to the end and decode it."""

        client = await self._get_http_client()
        headers = await self._headers("text/event-stream, application/json")
        try:
            response = await client.post(
                self._url(SOLVE_STREAM_PATH), headers=headers, json=body
            )
        except httpx.HTTPError as exc:
            raise FunctionsError(f"solve request failed: {exc}") from exc

        text = response.text
        if response.status_code >= 400:
            raise FunctionsError(
                f"stream call failed: {response.status_code}",
                status_code=response.status_code,
                context=text,
            )
        parsed = parse_stream(text)
        logger.debug(
            "Solve stream decoded: events=%d text=%d chars",
            parsed.sse_events,
            len(parsed.combined_text),
        )
        return StreamReply(status_code=response.status_code, body=text, parsed=parsed)

    async def transcribe(
        self, audio_url: str, *, mime_type: str | None = None, locale: str = "ja"
    ) -> str:
        body: dict[str, Any] = {"audioUrl": audio_url, "locale": locale}
        if mime_type:
            body["mimeType"] = mime_type
        payload = await self._post_json(TRANSCRIBE_PATH, body, "transcription")
        transcript = _extract_text(payload, "transcript")
        if not transcript:
            raise FunctionsError("transcript was empty", context=json.dumps(payload))
        return transcript

    async def summarize(
        self, transcript: str, *, locale: str = "ja", max_sentences: int = 3
    ) -> str:
        body = {
            "transcript": transcript,
            "locale": locale,
            "maxSentences": max_sentences,
        }
        payload = await self._post_json(SUMMARIZE_PATH, body, "summary")
        summary = _extract_text(payload, "summary")
        if not summary:
            raise FunctionsError("summary was empty", context=json.dumps(payload))
        return summary

    async def fetch_image_base64(self, url: str) -> tuple[str, str | None]:
        """Download an image and return it base64 encoded with its MIME type."""

        client = await self._get_http_client()
        try:
            response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise FunctionsError(f"image download failed: {exc}") from exc
        data = response.content
        if not data:
            raise FunctionsError("image download was empty")
        content_type = response.headers.get("content-type", "").split(";")[0].strip()
        mime = content_type or sniff_mime_from_bytes(data)
        return base64.b64encode(data).decode("ascii"), mime

    async def _post_json(self, path: str, body: dict[str, Any], label: str) -> Any:
        client = await self._get_http_client()
        headers = await self._headers()
        try:
            response = await client.post(self._url(path), headers=headers, json=body)
        except httpx.HTTPError as exc:
            raise FunctionsError(f"{label} request failed: {exc}") from exc

        text = response.text
        if response.status_code >= 400:
            raise FunctionsError(
                _error_message(text, f"{label} request failed ({response.status_code})"),
                status_code=response.status_code,
                context=text,
            )
        try:
            return json.loads(text)
        except ValueError:
            # plain-text replies carry the result itself
            return {"text": text}

    async def aclose(self) -> None:
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None


__all__ = [
    "ClientConfig",
    "FunctionsClient",
    "FunctionsError",
    "StreamReply",
]
