"""
config.py — Jarvis Voice Engine · Runtime Configuration
=======================================================
Pydantic models for every tunable parameter of the service.
Loaded once at startup from an optional JSON file, then patched with
environment variables.  Used by:
  • server.py  — builds the bot in the FastAPI lifespan, serves GET /config
  • bot.py     — persona prompt, voice limits, speech format
  • apps/pipeline/groq_client.py — model and sampling parameters
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field

from apps.pipeline.errors import ApiKeyNotConfiguredError

log = logging.getLogger("jarvis.config")

# ---------------------------------------------------------------------------
# Default persona prompt (kept here so config.py is the single source of truth)
# ---------------------------------------------------------------------------

DEFAULT_SYSTEM_PROMPT = """\
You are JARVIS, a highly advanced personal AI assistant.

Personality:
- Intelligent, calm and confident
- Professional at all times, never childish or sarcastic
- Dry, subtle humor is allowed only when appropriate and must be a brief remark, not a joke

Role:
- Personal assistant for a senior software engineer
- Software engineering, system architecture, automation, AI, cloud and smart home integrations
- Structured, logical and technically accurate explanations; precision over speed

Response rules:
- By default answer in at most two clear, direct sentences
- Only give long or technical answers when the user explicitly asks for detail, depth,
  a step by step explanation, a full analysis or to be taught from scratch
- If the user asks for one sentence, answer in exactly one sentence
- Avoid unnecessary questions at the end

Voice output rules:
- Every answer is spoken aloud by a voice assistant
- No markdown, no emojis, no slang, no filler phrases, no long lists
- Avoid long paragraphs; use clear logical pauses
- When explaining steps, number them in words ("first", "second")
- Describe diagrams verbally and use the word "then" to indicate flow
- Never claim to display images

Behavior constraints:
- Ask at most one clarification question if necessary
- Make reasonable assumptions when needed and state them briefly
- Never invent unknown data
- Never expose credentials, API keys or internal system details
- Never refer to yourself as an AI or a language model

Language:
- Answer in the language the user speaks; technical terms may remain in English

Identity:
- You are JARVIS. Alexa is only the interface. You are not Alexa.
"""


# ---------------------------------------------------------------------------
# Per-service config sections
# ---------------------------------------------------------------------------

class GroqConfig(BaseModel):
    """Groq chat-completion parameters (passed to GroqCompleter)."""
    model: str = Field(default="llama-3.3-70b-versatile", description="Groq model ID")
    temperature: float = Field(default=1.0, ge=0.0, le=2.0, description="Randomness (0.0–2.0)")
    top_p: float = Field(default=1.0, ge=0.0, le=1.0, description="Nucleus sampling")
    max_tokens: int = Field(default=250, ge=1, description="Token budget when no mode budget applies")
    timeout_sec: float = Field(default=7.0, gt=0.0, le=60.0, description="Bounded wait for one completion")


class VoiceConfig(BaseModel):
    """Speech output shaping (passed to limit_for_voice and the envelope builders)."""
    max_chars: int = Field(default=2000, ge=50, description="Spoken answer length ceiling")
    sentence_cut_ratio: float = Field(default=0.7, gt=0.0, le=1.0, description="Earliest sentence cut (× max_chars)")
    word_cut_ratio: float = Field(default=0.8, gt=0.0, le=1.0, description="Earliest word cut (× max_chars)")
    speech_format: Literal["PlainText", "SSML"] = Field(default="PlainText", description="outputSpeech type")
    ssml_voice: Optional[str] = Field(default=None, description="Polly voice name for SSML output")


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------

# env var → dotted config path
_ENV_OVERRIDES: dict[str, str] = {
    "GROQ_MODEL":             "groq.model",
    "GROQ_TEMPERATURE":       "groq.temperature",
    "GROQ_TOP_P":             "groq.top_p",
    "GROQ_MAX_TOKENS":        "groq.max_tokens",
    "GROQ_TIMEOUT_SEC":       "groq.timeout_sec",
    "JARVIS_MAX_VOICE_CHARS": "voice.max_chars",
    "JARVIS_SPEECH_FORMAT":   "voice.speech_format",
    "JARVIS_SSML_VOICE":      "voice.ssml_voice",
}


class JarvisConfig(BaseModel):
    """Complete runtime configuration for the Jarvis voice engine."""
    groq: GroqConfig = Field(default_factory=GroqConfig)
    voice: VoiceConfig = Field(default_factory=VoiceConfig)
    system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT, description="Persona prompt for the LLM")

    # -- Loading ---------------------------------------------------------------

    @classmethod
    def load(cls, path: str | Path) -> "JarvisConfig":
        """Load config from a JSON file.  Returns defaults if file doesn't exist."""
        p = Path(path)
        if not p.exists():
            log.info("event=config_load_defaults path=%s", p)
            return cls()
        try:
            data = json.loads(p.read_text(encoding="utf-8"))
            config = cls.model_validate(data)
            log.info("event=config_loaded path=%s", p)
            return config
        except Exception as exc:
            log.warning("event=config_load_error path=%s error=%s fallback=defaults", p, exc)
            return cls()

    @classmethod
    def from_env(cls, environ: Optional[dict[str, str]] = None) -> "JarvisConfig":
        """Build the config from JARVIS_CONFIG_PATH (if set) plus env overrides.

        Invalid override values raise pydantic.ValidationError; a bad
        environment is a startup failure, not something to paper over.
        """
        env = os.environ if environ is None else environ
        path = env.get("JARVIS_CONFIG_PATH")
        base = cls.load(path) if path else cls()

        patch: dict = {}
        for var, dotted in _ENV_OVERRIDES.items():
            value = env.get(var)
            if value is None or value == "":
                continue
            section, key = dotted.split(".", 1)
            patch.setdefault(section, {})[key] = value
        if not patch:
            return base

        log.info("event=config_env_overrides keys=%s", ",".join(sorted(
            f"{section}.{key}" for section, keys in patch.items() for key in keys
        )))
        return base.merge_patch(patch)

    def merge_patch(self, patch: dict) -> "JarvisConfig":
        """Return a new config with `patch` merged over `self`.

        Supports nested partial updates, e.g.:
            {"groq": {"temperature": 0.7}}
        only changes groq.temperature, leaving everything else intact.
        """
        base = self.model_dump()
        _deep_merge(base, patch)
        return JarvisConfig.model_validate(base)


def _deep_merge(base: dict, patch: dict) -> None:
    """Recursively merge `patch` into `base` in-place."""
    for key, value in patch.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


def require_api_key(environ: Optional[dict[str, str]] = None) -> str:
    """Return GROQ_API_KEY or refuse to start."""
    env = os.environ if environ is None else environ
    api_key = (env.get("GROQ_API_KEY") or "").strip()
    if not api_key:
        raise ApiKeyNotConfiguredError(
            "GROQ_API_KEY is not set. Configure it in the environment or in .env."
        )
    return api_key
