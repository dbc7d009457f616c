"""Resolve request media into base64 payloads for Gemini ``inlineData``."""

from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass
from urllib.parse import urlparse, urlunparse

import httpx
from fastapi import status

logger = logging.getLogger(__name__)

_IMAGE_MIME = re.compile(r"^image/", re.IGNORECASE)
GENERIC_IMAGE_MIME = "image/*"
DEFAULT_AUDIO_MIME = "audio/mpeg"


class MediaError(Exception):
    """Raised when request media cannot be loaded."""

    def __init__(self, message: str, status_code: int = status.HTTP_400_BAD_REQUEST):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class InlineMedia:
    """Base64 media ready to embed as an ``inlineData`` part."""

    mime_type: str
    data: str
    size_bytes: int

    def as_part(self) -> dict[str, dict[str, str]]:
        return {"inlineData": {"mimeType": self.mime_type, "data": self.data}}


def redact_url(url: str) -> str:
    try:
        parsed = urlparse(url)
        return urlunparse(parsed._replace(query="", fragment=""))
    except ValueError:
        return url


def image_mime_or_generic(value: str | None) -> str:
    if value and _IMAGE_MIME.match(value):
        return value
    return GENERIC_IMAGE_MIME


def sniff_mime_from_bytes(data: bytes) -> str | None:
    """Guess image mime type from magic bytes for common formats."""

    if not data or len(data) < 12:
        return None
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data[:3] == b"\xff\xd8\xff":
        return "image/jpeg"
    if data.startswith(b"GIF87a") or data.startswith(b"GIF89a"):
        return "image/gif"
    if data.startswith(b"RIFF") and data[8:12] == b"WEBP":
        return "image/webp"
    if b"ftypheic" in data[:64] or b"ftypheif" in data[:64]:
        return "image/heic"
    return None


def inline_image(image_base64: str, mime_type: str | None) -> InlineMedia:
    """Wrap client-provided base64, validating that it decodes."""

    payload = image_base64.strip()
    if payload.startswith("data:") and "," in payload:
        header, payload = payload.split(",", 1)
        mime_type = mime_type or header[5:].split(";", 1)[0]
    try:
        size = len(base64.b64decode(payload, validate=False))
    except (binascii.Error, ValueError) as exc:
        raise MediaError("imageBase64 is not valid base64") from exc
    if size == 0:
        raise MediaError("imageBase64 is empty")
    return InlineMedia(image_mime_or_generic(mime_type), payload, size)


async def download(
    client: httpx.AsyncClient,
    url: str,
    *,
    timeout_seconds: float,
    max_bytes: int,
    kind: str,
) -> tuple[bytes, str]:
    """Fetch ``url`` with a size limit; return the bytes and content type."""

    timeout = httpx.Timeout(timeout_seconds, connect=min(timeout_seconds, 10.0))
    try:
        async with client.stream("GET", url, timeout=timeout) as resp:
            if resp.status_code >= 400:
                raise MediaError(
                    f"failed to fetch {kind}: {resp.status_code}",
                    status.HTTP_502_BAD_GATEWAY,
                )
            content_type = resp.headers.get("Content-Type", "").split(";")[0].strip()

            chunks: list[bytes] = []
            total = 0
            async for chunk in resp.aiter_bytes():
                if not chunk:
                    continue
                total += len(chunk)
                if total > max_bytes:
                    raise MediaError(
                        f"{kind} too large (> {max_bytes / 1_000_000:.1f} MB). "
                        f"please try a smaller {kind}.",
                        413,
                    )
                chunks.append(chunk)
    except httpx.TimeoutException as exc:
        raise MediaError(
            f"timeout after {int(timeout_seconds * 1000)}ms fetching {kind}",
            status.HTTP_504_GATEWAY_TIMEOUT,
        ) from exc
    except httpx.HTTPError as exc:
        raise MediaError(
            f"failed to fetch {kind}: {exc}", status.HTTP_502_BAD_GATEWAY
        ) from exc

    data = b"".join(chunks)
    logger.debug("Fetched %s (%d bytes) from %s", kind, len(data), redact_url(url))
    return data, content_type


async def fetch_image(
    client: httpx.AsyncClient,
    url: str,
    *,
    timeout_seconds: float,
    max_bytes: int,
) -> InlineMedia:
    data, content_type = await download(
        client, url, timeout_seconds=timeout_seconds, max_bytes=max_bytes, kind="image"
    )
    if not data:
        raise MediaError("image payload is empty", status.HTTP_502_BAD_GATEWAY)
    mime = content_type if _IMAGE_MIME.match(content_type or "") else None
    mime = mime or sniff_mime_from_bytes(data)
    return InlineMedia(
        image_mime_or_generic(mime), base64.b64encode(data).decode("ascii"), len(data)
    )


async def fetch_audio(
    client: httpx.AsyncClient,
    url: str,
    *,
    mime_hint: str | None,
    timeout_seconds: float,
    max_bytes: int,
) -> InlineMedia:
    data, content_type = await download(
        client, url, timeout_seconds=timeout_seconds, max_bytes=max_bytes, kind="audio"
    )
    if not data:
        raise MediaError("audio payload is empty", status.HTTP_502_BAD_GATEWAY)
    mime = content_type or mime_hint or DEFAULT_AUDIO_MIME
    return InlineMedia(mime, base64.b64encode(data).decode("ascii"), len(data))


def scaled_timeout(deadline_seconds: float, *, low: float, high: float) -> float:
    """A fetch timeout of 35% of the deadline, clamped to ``[low, high]``."""

    return min(high, max(low, deadline_seconds * 0.35))


__all__ = [
    "InlineMedia",
    "MediaError",
    "download",
    "fetch_audio",
    "fetch_image",
    "image_mime_or_generic",
    "inline_image",
    "redact_url",
    "scaled_timeout",
    "sniff_mime_from_bytes",
]
