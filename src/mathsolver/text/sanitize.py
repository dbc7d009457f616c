"""Reduce Markdown/LaTeX model output to readable plain text."""

from __future__ import annotations

import re
from typing import Any, Callable

_Rule = tuple[re.Pattern[str], str | Callable[[re.Match[str]], str]]

_CODE_RULES: tuple[_Rule, ...] = (
    (re.compile(r"```.*?```", re.DOTALL), " "),
    (re.compile(r"`([^`]+)`"), r"\1"),
)

_MATH_DELIMITER_RULES: tuple[_Rule, ...] = (
    (re.compile(r"\$+"), ""),
    (re.compile(r"\\\(|\\\)|\\\[|\\\]"), ""),
)

_BLOCK_RULES: tuple[_Rule, ...] = (
    (re.compile(r"^[ \t]{0,3}#{1,6}[ \t]+", re.MULTILINE), ""),
    # "- 3" is a negative number, not a bullet; glue the sign to the digit first
    (re.compile(r"^[ \t]*-[ \t]+(?=\d)", re.MULTILINE), "-"),
    (re.compile(r"^[ \t]*\+[ \t]+(?=\d)", re.MULTILINE), "+"),
    (re.compile(r"^[ \t]{0,3}(?:[-*+]|\d+\.)[ \t]+", re.MULTILINE), ""),
    (re.compile(r"^[ \t]*>[ \t]?", re.MULTILINE), ""),
)

_EMPHASIS_RULES: tuple[_Rule, ...] = (
    (re.compile(r"\*\*([^*]+)\*\*"), r"\1"),
    (re.compile(r"\*([^*]+)\*"), r"\1"),
    (re.compile(r"__([^_]+)__"), r"\1"),
    (re.compile(r"_([^_]+)_"), r"\1"),
)

_LATEX_RULES: tuple[_Rule, ...] = (
    (re.compile(r"\\frac\s*\{([^{}]*)\}\s*\{([^{}]*)\}"), r"(\1)/(\2)"),
    (re.compile(r"\\sqrt\s*\{([^{}]*)\}"), r"sqrt(\1)"),
    (re.compile(r"\^\{\\circ\}"), "°"),
    (re.compile(r"\^\\circ"), "°"),
    (re.compile(r"\\circ"), "°"),
)

_LEFTOVER_RULES: tuple[_Rule, ...] = (
    (re.compile(r"\\([A-Za-z]+)"), r"\1"),
    (re.compile(r"[{}]"), ""),
    # unpaired markup that survived unwrapping
    (re.compile(r"\*\*"), "^"),
    (re.compile(r"[`#]"), ""),
)

_WHITESPACE_RULES: tuple[_Rule, ...] = (
    (re.compile(r"\r\n?"), "\n"),
    (re.compile(r"\n{3,}"), "\n\n"),
    (re.compile(r"[ \t]{2,}"), " "),
)

_MARKUP_RULES: tuple[_Rule, ...] = (
    *_CODE_RULES,
    *_MATH_DELIMITER_RULES,
    *_BLOCK_RULES,
    *_EMPHASIS_RULES,
)

_CLEANUP_RULES: tuple[_Rule, ...] = (
    *_LEFTOVER_RULES,
    *_WHITESPACE_RULES,
)


def _apply_rules(rules: tuple[_Rule, ...], text: str) -> str:
    for pattern, replacement in rules:
        text = pattern.sub(replacement, text)
    return text


def _rewrite_latex(text: str) -> str:
    # nested commands flatten from the inside out
    while True:
        rewritten = _apply_rules(_LATEX_RULES, text)
        if rewritten == text:
            return text
        text = rewritten


def _apply_pipeline(text: str) -> str:
    text = _apply_rules(_MARKUP_RULES, text)
    text = _rewrite_latex(text)
    return _apply_rules(_CLEANUP_RULES, text).strip()


def sanitize_math_text(value: Any) -> str:
    """Strip Markdown and LaTeX markup while keeping the mathematical content.

    ``None`` and empty input yield ``""``. Non-string values are converted with
    ``str()`` first. The result is a fixpoint of the rule pipeline, so calling
    this function on its own output returns the same string.
    """

    if value is None:
        return ""
    text = value if isinstance(value, str) else str(value)
    if not text:
        return ""

    # Each pass shortens the text or drops a carriage return, so this terminates.
    while True:
        cleaned = _apply_pipeline(text)
        if cleaned == text:
            return cleaned
        text = cleaned


__all__ = ["sanitize_math_text"]
