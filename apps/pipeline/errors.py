"""
errors.py — Jarvis Voice Engine · Exception Taxonomy
====================================================
Startup errors (ConfigurationError) stop the server in the lifespan hook.
Every other member is raised inside the pipeline and caught by
JarvisBot.handle_event, which maps it to a fixed spoken sentence.
"""

from __future__ import annotations

from typing import Optional


class JarvisError(Exception):
    """Base exception for Jarvis."""


class ConfigurationError(JarvisError):
    """Base exception for configuration and startup validation errors."""


class ApiKeyNotConfiguredError(ConfigurationError):
    """Raised at startup when the Groq API key is missing."""


class MissingEventError(JarvisError):
    """Raised when the webhook body carries no request object."""


class MissingIntentError(JarvisError):
    """Raised when an IntentRequest arrives without an intent."""


class MissingOrEmptySlotError(JarvisError):
    """Raised when the slot a question is built from is absent or blank."""

    def __init__(self, slot: str) -> None:
        super().__init__(f"slot '{slot}' is missing or empty")
        self.slot = slot


class UpstreamError(JarvisError):
    """Raised when the completion provider fails, times out or returns nothing."""


class UnrecognizedIntentError(JarvisError):
    """Raised when the intent name has no handler."""

    def __init__(self, name: str) -> None:
        super().__init__(f"unrecognized intent '{name}'")
        self.name = name


class UnrecognizedEventTypeError(JarvisError):
    """Raised when the request type is unknown or the body is malformed."""

    def __init__(self, request_type: Optional[str]) -> None:
        super().__init__(f"unrecognized request type '{request_type}'")
        self.request_type = request_type
