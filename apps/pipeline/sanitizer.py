"""
sanitizer.py — Jarvis Voice Engine · Answer Sanitizer & Voice Limiter
=====================================================================
Turns free-form model output into text a speech synthesizer can read:

  sanitize()         strip markdown, list markers and line breaks
  limit_for_voice()  bound the length, preferring sentence or word cuts

Both are pure; `bot.py` applies them in that order to every answer.
"""

from __future__ import annotations

import re

# ~2000 chars ≈ 45-60 s of speech
MAX_VOICE_CHARS = 2000

# Truncation fallbacks, as fractions of max_chars
SENTENCE_CUT_RATIO = 0.7
WORD_CUT_RATIO = 0.8

CONTINUATION_PROMPT = "Shall I continue?"
ELLIPSIS = "..."

_SENTENCE_END_CHARS = ".?!"

_MARKDOWN_CHARS_RE = re.compile(r"[*_#`~]")
_LINK_RE = re.compile(r"!?\[([^\[\]]*)\]\([^()]*\)")
_LINE_LIST_MARKER_RE = re.compile(r"^[ \t]*(?:(?:\d+[.)]|[-+•])[ \t]+)+", re.MULTILINE)
_LEADING_LIST_MARKER_RE = re.compile(r"^(?:(?:\d+[.)]|[-+•])(?:\s+|$))+")
_WHITESPACE_RE = re.compile(r"\s+")


def sanitize(text: str) -> str:
    """Strip markdown syntax and line structure from *text*.

    Link and image syntax keeps its visible text.  List markers are
    removed from the start of every line before the lines are joined,
    so the result is a single line with single spaces.

    Idempotent: ``sanitize(sanitize(x)) == sanitize(x)``.
    """
    if not text:
        return ""

    cleaned = _MARKDOWN_CHARS_RE.sub("", text)

    # Nested brackets unwrap one level per pass
    while True:
        cleaned, count = _LINK_RE.subn(r"\1", cleaned)
        if count == 0:
            break

    cleaned = _LINE_LIST_MARKER_RE.sub("", cleaned)
    cleaned = _WHITESPACE_RE.sub(" ", cleaned).strip()

    # A marker can surface at the front once blank leading lines are gone
    return _LEADING_LIST_MARKER_RE.sub("", cleaned).strip()


def limit_for_voice(
    text: str,
    max_chars: int = MAX_VOICE_CHARS,
    *,
    sentence_ratio: float = SENTENCE_CUT_RATIO,
    word_ratio: float = WORD_CUT_RATIO,
    continuation: str = CONTINUATION_PROMPT,
) -> str:
    """Bound *text* to roughly *max_chars* for speech output.

    Fallback tiers (strict priority):
        Tier 1: last ``.?!`` at or after sentence_ratio × max_chars
                 → cut after it, append " " + continuation
        Tier 2: last space at or after word_ratio × max_chars
                 → cut there, append "... " + continuation
        Tier 3: hard cut at max_chars, append "..."

    Text already within the limit is returned unchanged.
    """
    if max_chars <= 0:
        raise ValueError(f"max_chars must be positive, got {max_chars}")

    if len(text) <= max_chars:
        return text

    truncated = text[:max_chars]

    last_punctuation = max(truncated.rfind(ch) for ch in _SENTENCE_END_CHARS)
    if last_punctuation >= 0 and last_punctuation >= max_chars * sentence_ratio:
        return f"{truncated[:last_punctuation + 1]} {continuation}"

    last_space = truncated.rfind(" ")
    if last_space >= 0 and last_space >= max_chars * word_ratio:
        return f"{truncated[:last_space]}{ELLIPSIS} {continuation}"

    return truncated + ELLIPSIS
