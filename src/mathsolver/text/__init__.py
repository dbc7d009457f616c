"""Text cleanup and response decoding helpers."""

from .normalizer import normalize_response
from .sanitize import sanitize_math_text

__all__ = ["normalize_response", "sanitize_math_text"]
