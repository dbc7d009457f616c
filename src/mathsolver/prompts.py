"""Prompt builders and ``generateContent`` payloads."""

from __future__ import annotations

from typing import Any

from .media import InlineMedia

# The solver asks for JSON-only plain text so that display code does not have
# to undo Markdown or LaTeX after the fact.
SOLVE_PROMPT_JA = """あなたは優秀な数学解説者です。画像に写っている数学の問題を読み取り、必ず次のJSON形式“のみ”で日本語で返してください。

出力JSONスキーマ:
{
  "answer": "最終的な答え（数値や式。可能なら=で完結させる）",
  "explanation": "要点を押さえた分かりやすい解説（2〜6文。結論→根拠の順）",
  "steps": ["解法ステップを順番に（最大8個）"]
}

重要な制約:
- Markdown記法を使わない（#, *, -, >, コードブロック などを出力しない）
- LaTeX/TeX記法を使わない（$, \\frac, \\sqrt, \\circ, ^{...} などを出力しない）
- 数式はプレーンテキストで書く（例: x^2, (a+b)/c, 30° など。必要ならUnicode記号はOK）
- JSON以外の文章・前置き・挨拶・コードブロックは一切書かない
"""

SOLVE_PROMPT_EN = """You are an excellent math tutor. Read the math problem in the image and reply ONLY with JSON in this shape:

{
  "answer": "the final answer (a number or expression, ideally ending with =)",
  "explanation": "a clear explanation in 2-6 sentences, conclusion first",
  "steps": ["solution steps in order (at most 8)"]
}

Constraints:
- Do not use Markdown (#, *, -, >, code blocks).
- Do not use LaTeX/TeX ($, \\frac, \\sqrt, \\circ, ^{...}).
- Write math as plain text (x^2, (a+b)/c, 30°). Unicode symbols are fine.
- Output nothing except the JSON object.
"""

TRANSCRIBE_PROMPT_JA = (
    "以下の音声を丁寧に文字起こししてください。雑音や意味の曖昧な部分は「(聞き取り困難)」と注記してください。"
    "改行は文や段落の区切りで適切に挿入してください。"
)
TRANSCRIBE_PROMPT_EN = (
    'Please transcribe the following audio accurately. Use "(inaudible)" for '
    "unintelligible parts and insert line breaks at natural boundaries."
)

TRIMMED_MARKER = "\n... (trimmed)"


def _is_japanese(locale: str | None) -> bool:
    return (locale or "ja").lower().startswith("ja")


def build_solve_prompt(locale: str | None) -> str:
    return SOLVE_PROMPT_JA if _is_japanese(locale) else SOLVE_PROMPT_EN


def build_transcribe_prompt(locale: str | None) -> str:
    return TRANSCRIBE_PROMPT_JA if _is_japanese(locale) else TRANSCRIBE_PROMPT_EN


def build_summary_prompt(locale: str | None, max_sentences: int) -> str:
    if _is_japanese(locale):
        return (
            f"以下の文章を {max_sentences} 文以内で要約してください。"
            "重要なポイントは保ち、自然な日本語で書いてください。"
        )
    return (
        f"Summarize the following text in at most {max_sentences} sentences. "
        "Keep key points and use natural language."
    )


def clamp_sentences(value: int | None, default: int = 3) -> int:
    if value is None:
        return default
    return max(1, min(10, int(value)))


def trim_transcript(transcript: str, limit: int) -> str:
    if len(transcript) <= limit:
        return transcript
    return transcript[:limit] + TRIMMED_MARKER


def solve_payload(
    media: InlineMedia, locale: str | None, *, json_output: bool = True
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "contents": [
            {
                "role": "user",
                "parts": [{"text": build_solve_prompt(locale)}, media.as_part()],
            }
        ]
    }
    if json_output:
        # Older models ignore this; the normalizer tolerates free text.
        payload["generationConfig"] = {
            "responseMimeType": "application/json",
            "temperature": 0.2,
        }
    return payload


def transcribe_payload(media: InlineMedia, locale: str | None) -> dict[str, Any]:
    return {
        "contents": [
            {
                "role": "user",
                "parts": [{"text": build_transcribe_prompt(locale)}, media.as_part()],
            }
        ]
    }


def summarize_payload(
    transcript: str, locale: str | None, max_sentences: int, *, max_chars: int
) -> dict[str, Any]:
    prompt = build_summary_prompt(locale, max_sentences)
    text = trim_transcript(transcript, max_chars)
    return {"contents": [{"role": "user", "parts": [{"text": f"{prompt}\n\n{text}"}]}]}


__all__ = [
    "build_solve_prompt",
    "build_summary_prompt",
    "build_transcribe_prompt",
    "clamp_sentences",
    "solve_payload",
    "summarize_payload",
    "transcribe_payload",
    "trim_transcript",
]
