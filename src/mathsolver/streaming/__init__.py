"""Server-Sent Events emission for the solve stream."""

from .emitter import ANNOTATION_KEY, StreamEmitter
from .heartbeat import Heartbeat
from .types import SseEvent

__all__ = ["ANNOTATION_KEY", "Heartbeat", "SseEvent", "StreamEmitter"]
