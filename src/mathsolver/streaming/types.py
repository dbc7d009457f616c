"""Type definitions for the streaming subsystem."""

from __future__ import annotations

# Keys understood by sse-starlette: event, data, id, retry, comment.
SseEvent = dict[str, str | None]

__all__ = ["SseEvent"]
