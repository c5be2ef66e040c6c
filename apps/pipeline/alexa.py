"""
alexa.py — Jarvis Voice Engine · Alexa Request Parsing & Response Envelopes
===========================================================================
The Alexa skill request/response JSON is a fixed external contract.  This
module reads the parts of it Jarvis cares about and writes well-formed
replies; nothing here decides *what* to say.

Inbound
-------
  AlexaRequestBody.model_validate(payload).to_event() → InboundEvent
  parse_event(payload) also maps absent or malformed bodies to an event.

Outbound
--------
  plain_text_response / ssml_response / speech_response
  session_ended_response  — minimal envelope, no outputSpeech
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

log = logging.getLogger("jarvis.alexa")

ENVELOPE_VERSION = "1.0"

FALLBACK_SPEECH = "I could not generate a response."


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class _AlexaModel(BaseModel):
    # The platform adds fields over time; keep whatever we don't model
    model_config = ConfigDict(extra="allow")


class AlexaSlotValue(_AlexaModel):
    type: Optional[str] = None
    value: Optional[str] = None


class AlexaSlot(_AlexaModel):
    name: Optional[str] = None
    value: Optional[str] = None
    slotValue: Optional[AlexaSlotValue] = None
    confirmationStatus: Optional[str] = None

    def resolved_value(self) -> Optional[str]:
        """Flat `value` or nested `slotValue.value`; blank counts as absent."""
        for raw in (self.value, self.slotValue.value if self.slotValue else None):
            if raw is not None and raw.strip():
                return raw.strip()
        return None


class AlexaIntent(_AlexaModel):
    name: Optional[str] = None
    confirmationStatus: Optional[str] = None
    slots: Optional[dict[str, Optional[AlexaSlot]]] = None

    def slot_values(self) -> dict[str, Optional[str]]:
        return {
            name: slot.resolved_value() if slot is not None else None
            for name, slot in (self.slots or {}).items()
        }


class AlexaRequest(_AlexaModel):
    type: Optional[str] = None
    requestId: Optional[str] = None
    timestamp: Optional[str] = None
    locale: Optional[str] = None
    intent: Optional[AlexaIntent] = None
    reason: Optional[str] = None


class AlexaSession(_AlexaModel):
    sessionId: Optional[str] = None
    new: Optional[bool] = None
    attributes: Optional[dict[str, Any]] = None


class AlexaRequestBody(_AlexaModel):
    version: Optional[str] = None
    session: Optional[AlexaSession] = None
    request: Optional[AlexaRequest] = None

    def session_attributes(self) -> dict[str, Any]:
        if self.session is None or self.session.attributes is None:
            return {}
        return dict(self.session.attributes)

    def to_event(self) -> "InboundEvent":
        """Classify the body into an InboundEvent."""
        attributes = self.session_attributes()
        req = self.request
        if req is None:
            return InboundEvent(kind=EventKind.MISSING, session_attributes=attributes)

        kind = _REQUEST_KINDS.get(req.type or "", EventKind.MALFORMED)
        event = InboundEvent(
            kind=kind,
            session_attributes=attributes,
            request_type=req.type,
            locale=req.locale,
        )
        if kind is EventKind.INTENT and req.intent is not None:
            event.has_intent = True
            event.intent_name = req.intent.name
            event.slots = req.intent.slot_values()
        return event


# ---------------------------------------------------------------------------
# Inbound event
# ---------------------------------------------------------------------------

class EventKind(str, Enum):
    LAUNCH        = "Launch"
    INTENT        = "Intent"
    SESSION_ENDED = "SessionEnded"
    MALFORMED     = "Malformed"
    MISSING       = "Missing"


_REQUEST_KINDS: dict[str, EventKind] = {
    "LaunchRequest":       EventKind.LAUNCH,
    "IntentRequest":       EventKind.INTENT,
    "SessionEndedRequest": EventKind.SESSION_ENDED,
}


@dataclass
class InboundEvent:
    kind:               EventKind
    session_attributes: dict[str, Any] = field(default_factory=dict)
    request_type:       Optional[str] = None
    locale:             Optional[str] = None
    has_intent:         bool = False
    intent_name:        Optional[str] = None
    slots:              dict[str, Optional[str]] = field(default_factory=dict)

    def slot(self, name: str) -> Optional[str]:
        return self.slots.get(name)


def parse_event(payload: Any) -> InboundEvent:
    """Build an InboundEvent from a decoded JSON body of any shape."""
    if not isinstance(payload, dict) or payload.get("request") is None:
        return InboundEvent(kind=EventKind.MISSING)
    try:
        body = AlexaRequestBody.model_validate(payload)
    except ValidationError as exc:
        log.warning("event=alexa_body_invalid error_count=%d", exc.error_count())
        log.debug("event=alexa_body_invalid_detail errors=%s", exc.errors())
        session = payload.get("session")
        attributes = session.get("attributes") if isinstance(session, dict) else None
        return InboundEvent(
            kind=EventKind.MALFORMED,
            session_attributes=dict(attributes) if isinstance(attributes, dict) else {},
        )
    return body.to_event()


# ---------------------------------------------------------------------------
# Response envelopes
# ---------------------------------------------------------------------------

_SSML_ESCAPES = str.maketrans({
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&apos;",
})


def escape_ssml(text: str) -> str:
    return text.translate(_SSML_ESCAPES)


def _plain_speech(text: str) -> dict[str, str]:
    return {"type": "PlainText", "text": text}


def _ssml_speech(text: str, voice: Optional[str]) -> dict[str, str]:
    body = escape_ssml(text)
    if voice:
        body = f'<voice name="{escape_ssml(voice)}">{body}</voice>'
    return {"type": "SSML", "ssml": f"<speak>{body}</speak>"}


def _envelope(
    output_speech: dict[str, str],
    should_end_session: bool,
    reprompt_speech: Optional[dict[str, str]],
    session_attributes: Optional[dict[str, Any]],
) -> dict[str, Any]:
    response: dict[str, Any] = {
        "outputSpeech": output_speech,
        "shouldEndSession": should_end_session,
    }
    # A reprompt only makes sense while the session stays open
    if reprompt_speech is not None and not should_end_session:
        response["reprompt"] = {"outputSpeech": reprompt_speech}
    return {
        "version": ENVELOPE_VERSION,
        "sessionAttributes": dict(session_attributes or {}),
        "response": response,
    }


def plain_text_response(
    text: str,
    should_end_session: bool = False,
    reprompt: Optional[str] = None,
    session_attributes: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """PlainText envelope.  Blank *text* is replaced by FALLBACK_SPEECH."""
    final_text = (text or "").strip() or FALLBACK_SPEECH
    return _envelope(
        _plain_speech(final_text),
        should_end_session,
        _plain_speech(reprompt) if reprompt else None,
        session_attributes,
    )


def ssml_response(
    text: str,
    should_end_session: bool = False,
    reprompt: Optional[str] = None,
    session_attributes: Optional[dict[str, Any]] = None,
    voice: Optional[str] = None,
) -> dict[str, Any]:
    """SSML envelope with `& < > " '` escaped inside <speak>."""
    final_text = (text or "").strip() or FALLBACK_SPEECH
    return _envelope(
        _ssml_speech(final_text, voice),
        should_end_session,
        _ssml_speech(reprompt, voice) if reprompt else None,
        session_attributes,
    )


def speech_response(
    text: str,
    should_end_session: bool = False,
    reprompt: Optional[str] = None,
    session_attributes: Optional[dict[str, Any]] = None,
    *,
    speech_format: str = "PlainText",
    voice: Optional[str] = None,
) -> dict[str, Any]:
    """Dispatch to the PlainText or SSML builder."""
    if speech_format == "SSML":
        return ssml_response(text, should_end_session, reprompt, session_attributes, voice=voice)
    return plain_text_response(text, should_end_session, reprompt, session_attributes)


def session_ended_response() -> dict[str, Any]:
    """SessionEndedRequest reply: no speech may be sent."""
    return {
        "version": ENVELOPE_VERSION,
        "response": {"shouldEndSession": True},
    }
