"""
normalizer.py — Jarvis Voice Engine · Spoken Question Normalizer
================================================================
Alexa transcribes technology names the way they are pronounced
("node dot j s", "c plus plus").  `normalize` rewrites them into their
written form so the model and the mode classifier see ordinary text.
Spanish "punto" is accepted wherever English "dot" is.
"""

from __future__ import annotations

import logging
import re

log = logging.getLogger("jarvis.normalizer")

_DOT = r"(?:dot|punto)"

# Tabs, newlines and other non-space whitespace
_CONTROL_WHITESPACE_RE = re.compile(r"[^\S ]+")

# Spoken names that are written "<name>.js"
_JS_FRAMEWORKS = ("node", "react", "vue", "angular", "next", "nuxt", "express", "three")

# Right-hand sides accepted in "<word> dot <suffix>"
_DOTTED_SUFFIXES = (
    "js", "ts", "py", "json", "yaml", "md", "html", "css",
    "com", "org", "net", "io", "ai", "dev",
)

# Ordered (pattern, replacement) rules, re-applied until the text is stable.
# No rule lengthens its match.
_REWRITES: tuple[tuple[re.Pattern[str], str], ...] = (
    (
        re.compile(rf"\b({'|'.join(_JS_FRAMEWORKS)})(?:\s+{_DOT})?\s+(?:j\s+s|js)\b"),
        r"\1.js",
    ),
    (re.compile(rf"\b{_DOT}\s+j\s+s\b"), "js"),
    (re.compile(r"\bj\s+s\b"), "js"),
    (re.compile(r"\bt\s+s\b"), "ts"),
    (re.compile(rf"\b{_DOT}\s+net\b"), ".net"),
    (re.compile(r"\bc\s+sharp\b"), "c#"),
    (re.compile(r"\bc\s+plus\s+plus\b"), "c++"),
    (
        re.compile(rf"\b(\w+)\s+{_DOT}\s+({'|'.join(_DOTTED_SUFFIXES)})\b"),
        r"\1.\2",
    ),
    (re.compile(r"\s{2,}"), " "),
)


def _rewrite_once(text: str) -> str:
    text = text.lower().strip()
    for pattern, replacement in _REWRITES:
        text = pattern.sub(replacement, text)
    return text.strip()


def normalize(raw: str) -> str:
    """Lower-case, trim and rewrite spoken technology names in *raw*.

    Idempotent: ``normalize(normalize(x)) == normalize(x)``.

    >>> normalize("What is  Node dot J S")
    'what is node.js'
    """
    text = _CONTROL_WHITESPACE_RE.sub(" ", raw or "")
    while True:
        rewritten = _rewrite_once(text)
        if rewritten == text:
            break
        text = rewritten
    if text != (raw or ""):
        log.debug("event=question_normalized before=%.50r after=%.50r", raw, text)
    return text
