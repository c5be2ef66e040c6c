"""
response_mode.py — Jarvis Voice Engine · Response-Mode Classifier & Prompt Composer
===================================================================================
Decides how verbose an answer should be from keyword cues in the
(normalized) question, then builds the system prompt and token budget
sent to the model.

  classify()        question → ResponseMode
  compose_prompt()  ResponseMode → PromptSpec

Cue matching is case-sensitive on word boundaries; callers pass text that
`normalize()` has already lower-cased.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from config import DEFAULT_SYSTEM_PROMPT


class ResponseMode(str, Enum):
    SHORT     = "short"       # one sentence
    DEFAULT   = "default"     # two sentences at most
    TECHNICAL = "technical"   # explicitly asked for depth


# --------------------------------------------------------------------------
# Keyword cues (English + Spanish)
# --------------------------------------------------------------------------

BREVITY_CUES: frozenset[str] = frozenset({
    "in one sentence", "one sentence", "quick", "quickly", "summary",
    "summarize", "in short", "brief", "briefly", "short answer", "tl;dr",
    "en una frase", "una frase", "rápido", "resumen", "breve", "corto",
    "súper breve", "solo", "sólo",
})

DEPTH_CUES: frozenset[str] = frozenset({
    "technical", "technically", "in depth", "in-depth", "deep dive",
    "detailed", "in detail", "step by step", "from scratch", "full explanation",
    "explain everything", "structure", "complete", "teach me", "research",
    "analyze", "analyse", "analysis", "architecture", "how it works",
    "how does it work", "implementation", "internals",
    "técnico", "técnica", "profundo", "profunda", "detallado", "detallada",
    "detalladamente", "paso a paso", "explicación completa", "desde cero",
    "estructura", "completo", "completa", "enséñame", "enseñame", "investiga",
    "analiza", "análisis", "arquitectura", "cómo funciona", "como funciona",
    "funcionamiento", "implementación", "implementacion",
})


def _cue_pattern(cues: Iterable[str]) -> re.Pattern[str]:
    # Longest first so multi-word cues win over their prefixes
    alternatives = sorted((re.escape(c) for c in cues), key=len, reverse=True)
    return re.compile(r"(?<!\w)(?:" + "|".join(alternatives) + r")(?!\w)")


_BREVITY_RE = _cue_pattern(BREVITY_CUES)
_DEPTH_RE   = _cue_pattern(DEPTH_CUES)


def classify(normalized_question: str) -> ResponseMode:
    """Pick the response mode for *normalized_question*.

    Brevity cues are checked before depth cues, so a question carrying
    both ("quick technical summary") is answered in SHORT mode.
    """
    if _BREVITY_RE.search(normalized_question):
        return ResponseMode.SHORT
    if _DEPTH_RE.search(normalized_question):
        return ResponseMode.TECHNICAL
    return ResponseMode.DEFAULT


# --------------------------------------------------------------------------
# Prompt composition
# --------------------------------------------------------------------------

@dataclass(frozen=True)
class PromptSpec:
    system_prompt: str
    token_budget:  int


TOKEN_BUDGETS: dict[ResponseMode, int] = {
    ResponseMode.SHORT:     100,
    ResponseMode.DEFAULT:   250,
    ResponseMode.TECHNICAL: 1024,
}

MODE_INSTRUCTIONS: dict[ResponseMode, str] = {
    ResponseMode.SHORT: (
        "RESPONSE MODE: Answer in ONE clear, direct and concise sentence. "
        "Maximum 20 words. No additional explanation."
    ),
    ResponseMode.DEFAULT: (
        "RESPONSE MODE: Answer in AT MOST 2 clear, direct sentences. "
        "Be concise but complete. No long lists or lengthy explanations."
    ),
    ResponseMode.TECHNICAL: (
        "RESPONSE MODE: Answer in a technical, structured and detailed way. "
        "Use examples where possible and organize the information logically. "
        "You may cover concepts, architecture, implementation and best practices, "
        "but keep it suitable for listening rather than reading."
    ),
}


def compose_prompt(mode: ResponseMode, persona: str = DEFAULT_SYSTEM_PROMPT) -> PromptSpec:
    """Append the instruction for *mode* to *persona* and pick its token budget."""
    return PromptSpec(
        system_prompt=f"{persona.rstrip()}\n\n{MODE_INSTRUCTIONS[mode]}\n",
        token_budget=TOKEN_BUDGETS[mode],
    )
