"""Gemini ``generateContent`` client with fallback and retry policies."""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Optional

import httpx
from fastapi import status

from .config import Settings

logger = logging.getLogger(__name__)

_FALLBACK_HINT = re.compile(r"not\s+found|unsupported", re.IGNORECASE)
_TIMEOUT_HINT = re.compile(r"timeout|deadline", re.IGNORECASE)


class ConfigurationError(RuntimeError):
    """Raised when a required server setting is missing."""


class GeminiError(Exception):
    """Wrap transport or API failures when communicating with Gemini."""

    def __init__(self, status_code: int, detail: Any, *, raw: str = ""):
        super().__init__(str(detail))
        self.status_code = status_code
        self.detail = detail
        self.raw = raw

    @property
    def is_retriable(self) -> bool:
        return self.status_code == 429 or self.status_code >= 500

    @property
    def is_timeout(self) -> bool:
        return self.status_code == status.HTTP_504_GATEWAY_TIMEOUT or bool(
            _TIMEOUT_HINT.search(str(self))
        )

    @property
    def suggests_fallback(self) -> bool:
        """True when the model identifier itself looks unavailable."""

        if self.status_code == status.HTTP_404_NOT_FOUND:
            return True
        return bool(_FALLBACK_HINT.search(self.raw or str(self.detail)))


class DeadlineExceeded(GeminiError):
    """The remaining request budget is too small to start another call."""

    def __init__(self, detail: str):
        super().__init__(status.HTTP_504_GATEWAY_TIMEOUT, detail)


@dataclass
class GenerationResult:
    """Raw upstream payload plus the model that produced it."""

    payload: dict[str, Any]
    model: str


class Deadline:
    """Fixed overall budget measured from construction."""

    def __init__(self, seconds: float, *, clock=time.monotonic):
        self._clock = clock
        self._started = clock()
        self.seconds = seconds

    @property
    def elapsed(self) -> float:
        return self._clock() - self._started

    def remaining(self, reserve: float = 0.0) -> float:
        return self.seconds - self.elapsed - reserve

    def budget(self, *, reserve: float, minimum: float, floor: float = 0.0) -> float:
        """Return the timeout for the next call or raise if it cannot start.

        ``floor`` guarantees a minimum timeout regardless of the elapsed time.
        """

        remain = max(floor, self.remaining(reserve))
        if remain < minimum:
            raise DeadlineExceeded(f"deadline too short (remain {remain * 1000:.0f}ms)")
        return remain


def require_api_key(settings: Settings) -> str:
    """Return the Gemini API key or raise ``ConfigurationError``."""

    key = settings.gemini_api_key
    if key is None or not key.get_secret_value():
        raise ConfigurationError("GEMINI_API_KEY is not set")
    return key.get_secret_value()


def resolve_model_name(model: str | None) -> str:
    """Prefix bare model names with ``models/``."""

    if not model:
        return ""
    return model if model.startswith("models/") else f"models/{model}"


def extract_text(payload: Any) -> str:
    """Join the text parts of the first candidate."""

    if not isinstance(payload, dict):
        return ""
    candidates = payload.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return ""
    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        return ""
    texts = [part.get("text") or "" for part in parts if isinstance(part, dict)]
    return "\n".join(texts).strip()


class GeminiClient:
    """Client responsible for one-shot ``generateContent`` calls."""

    _client_lock: asyncio.Lock = asyncio.Lock()
    _client_pool: dict[str, httpx.AsyncClient] = {}

    def __init__(
        self,
        settings: Settings,
        *,
        http_client: httpx.AsyncClient | None = None,
        sleep=asyncio.sleep,
    ):
        self._settings = settings
        self._http_client = http_client
        self._sleep = sleep

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is not None:
            return self._http_client

        key = self._base_url
        client = self.__class__._client_pool.get(key)
        if client is not None:
            return client

        async with self.__class__._client_lock:
            client = self.__class__._client_pool.get(key)
            if client is None:
                limits = httpx.Limits(
                    max_connections=50,
                    max_keepalive_connections=20,
                )
                client = httpx.AsyncClient(
                    timeout=httpx.Timeout(
                        self._settings.solve_deadline_seconds, connect=10.0
                    ),
                    limits=limits,
                    http2=True,
                )
                self.__class__._client_pool[key] = client
        return client

    @property
    def _base_url(self) -> str:
        return str(self._settings.gemini_base_url).rstrip("/")

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-goog-api-key": require_api_key(self._settings),
        }

    def _endpoint(self, model: str) -> str:
        target = resolve_model_name(model)
        if not target:
            raise GeminiError(status.HTTP_400_BAD_REQUEST, "model name is empty")
        version = self._settings.gemini_api_version.strip("/")
        return f"{self._base_url}/{version}/{target}:generateContent"

    async def generate(
        self,
        model: str,
        payload: dict[str, Any],
        *,
        timeout: Optional[float] = None,
    ) -> dict[str, Any]:
        """Call ``generateContent`` once and return the decoded body.

        A body that is not JSON comes back as ``{"raw": text}`` so that callers
        can still report what the upstream sent.
        """

        url = self._endpoint(model)
        headers = self._headers
        client = await self._get_http_client()
        request_timeout = (
            httpx.Timeout(timeout, connect=min(timeout, 10.0))
            if timeout is not None
            else httpx.USE_CLIENT_DEFAULT
        )
        try:
            response = await client.post(
                url, headers=headers, json=payload, timeout=request_timeout
            )
        except httpx.TimeoutException as exc:
            raise GeminiError(
                status.HTTP_504_GATEWAY_TIMEOUT,
                f"timeout after {int((timeout or 0) * 1000)}ms",
            ) from exc
        except httpx.HTTPError as exc:
            raise GeminiError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

        raw = response.text
        if response.status_code >= 400:
            detail = self._extract_error_detail(response.content)
            logger.warning(
                "Gemini %s returned %s: %s",
                resolve_model_name(model),
                response.status_code,
                detail,
            )
            raise GeminiError(
                response.status_code,
                f"gemini error: {response.status_code} {raw}".strip(),
                raw=raw,
            )

        if not raw:
            return {}
        try:
            body = json.loads(raw)
        except json.JSONDecodeError:
            return {"raw": raw}
        return body if isinstance(body, dict) else {"raw": body}

    async def generate_with_fallback(
        self,
        payload: dict[str, Any],
        *,
        deadline: Deadline | None = None,
    ) -> GenerationResult:
        """Call the primary model, switching to the fallback once if it is unavailable."""

        primary = self._settings.gemini_model
        fallback = self._settings.gemini_fallback_model
        timeout = deadline.budget(reserve=0.5, minimum=1.0) if deadline else None
        try:
            body = await self.generate(primary, payload, timeout=timeout)
            return GenerationResult(payload=body, model=primary)
        except GeminiError as exc:
            if not exc.suggests_fallback or not fallback or fallback == primary:
                raise
            logger.warning(
                "Model %s unavailable (%s); retrying with %s",
                primary,
                exc.status_code,
                fallback,
            )

        timeout = deadline.budget(reserve=0.3, minimum=1.0, floor=1.0) if deadline else None
        body = await self.generate(fallback, payload, timeout=timeout)
        return GenerationResult(payload=body, model=fallback)

    async def generate_with_retry(
        self,
        payload: dict[str, Any],
        *,
        deadline: Deadline,
        max_attempts: int | None = None,
        empty_message: str = "response was empty",
    ) -> str:
        """Return the first candidate's text, retrying transient failures.

        429/5xx responses and timeout-classified errors are retried with a
        linear backoff; anything else is surfaced immediately.
        """

        attempts = max_attempts or self._settings.upstream_max_attempts
        model = self._settings.gemini_model
        last_error: GeminiError | None = None

        for attempt in range(1, attempts + 1):
            reserve = 0.35 if attempt == attempts else 0.5
            timeout = deadline.budget(reserve=reserve, minimum=1.2)
            try:
                body = await self.generate(model, payload, timeout=timeout)
            except GeminiError as exc:
                last_error = exc
                retriable = exc.is_retriable or exc.is_timeout
                if not retriable or attempt == attempts:
                    raise
                logger.info(
                    "Gemini attempt %d/%d failed with %s; retrying",
                    attempt,
                    attempts,
                    exc.status_code,
                )
                await self._sleep(self._settings.retry_backoff_seconds * attempt)
                continue

            text = extract_text(body)
            if not text:
                raise GeminiError(status.HTTP_502_BAD_GATEWAY, empty_message)
            return text

        raise last_error or GeminiError(  # pragma: no cover - loop always returns
            status.HTTP_502_BAD_GATEWAY, "gemini error: unknown error"
        )

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            return
        await self.__class__.aclose_shared()

    @classmethod
    async def aclose_shared(cls) -> None:
        async with cls._client_lock:
            clients = list(cls._client_pool.values())
            cls._client_pool.clear()
        for client in clients:
            try:
                await client.aclose()
            except Exception:  # pragma: no cover - best effort cleanup
                pass

    @staticmethod
    def _extract_error_detail(raw: bytes) -> Any:
        if not raw:
            return "Gemini returned an empty error response."
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError:
            text = raw.decode("utf-8", errors="ignore")
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            return text
        if isinstance(payload, dict):
            return payload.get("error") or payload
        return payload


__all__ = [
    "ConfigurationError",
    "Deadline",
    "DeadlineExceeded",
    "GeminiClient",
    "GeminiError",
    "GenerationResult",
    "extract_text",
    "require_api_key",
    "resolve_model_name",
]
