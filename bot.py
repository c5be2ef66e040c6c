"""
bot.py — Jarvis Voice Engine · Intent Dispatcher & Question Pipeline
====================================================================
One `JarvisBot` per process, built by server.py at startup.  Each webhook
call is handled independently; the bot holds configuration and the
completer, never per-call state.

Pipeline
--------
Alexa event
    → parse_event()          (apps/pipeline/alexa.py)
    → resolve_turn()         tagged Turn variant per (request type, intent)
    → dispatch()             one handler per Turn variant
        → normalize()        spoken tech names → written form
        → classify()         SHORT / DEFAULT / TECHNICAL
        → compose_prompt()   persona + mode instruction, token budget
        → Completer          Groq chat completion (the only await)
        → sanitize()         no markdown, no newlines
        → limit_for_voice()  bounded spoken length
    → Alexa envelope

Failure contract
----------------
Handlers raise the apps/pipeline/errors.py taxonomy; handle_event maps
each member to its fixed reply (see _REJECTIONS):
UpstreamError            → apology, session stays open, attributes unchanged
MissingOrEmptySlotError,
MissingIntentError       → clarification question, session stays open
UnrecognizedIntentError  → "can't process", session stays open
UnrecognizedEventTypeError → "didn't understand", shouldEndSession=true
MissingEventError, anything else → generic apology, shouldEndSession=true
The platform always receives a well-formed envelope.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Union

from apps.pipeline.alexa import (
    EventKind,
    InboundEvent,
    parse_event,
    session_ended_response,
    speech_response,
)
from apps.pipeline.errors import (
    JarvisError,
    MissingEventError,
    MissingIntentError,
    MissingOrEmptySlotError,
    UnrecognizedEventTypeError,
    UnrecognizedIntentError,
    UpstreamError,
)
from apps.pipeline.groq_client import Completer, FragmentSink
from apps.pipeline.normalizer import normalize
from apps.pipeline.response_mode import PromptSpec, ResponseMode, classify, compose_prompt
from apps.pipeline.sanitizer import limit_for_voice, sanitize
from config import JarvisConfig

log = logging.getLogger("jarvis.bot")

# ---------------------------------------------------------------------------
# Spoken replies
# ---------------------------------------------------------------------------

GREETING       = "Hello, I am Jarvis. What would you like to ask?"
CLARIFICATION  = "What topic would you like to ask about?"
HELP_TEXT      = (
    "You can ask me anything, for example: ask Jarvis how a load balancer works. "
    "I can also compare technologies, teach you a topic step by step, research "
    "something in detail, or give you my professional opinion. What would you like to know?"
)
FAREWELL       = "Goodbye. I will be here when you need me."
CANT_PROCESS   = "Sorry, I can't process that request. Try asking me a question instead."
NOT_UNDERSTOOD = "I didn't understand the request. Please try again."
UPSTREAM_APOLOGY = "Sorry, an error occurred while processing your question. Please try again."
GENERIC_APOLOGY  = "Sorry, something went wrong on my side. Please try again later."
ANSWER_REPROMPT  = "Would you like me to explain in more detail, give you an example, or ask another question?"

# Session attribute keys written by the bot; all others round-trip untouched
LAST_QUESTION_KEY  = "lastQuestion"
LAST_ANSWER_KEY    = "lastAnswer"
LAST_TIMESTAMP_KEY = "lastTimestamp"

ASK_INTENT    = "AskJarvisIntent"
HELP_INTENT   = "AMAZON.HelpIntent"
STOP_INTENTS  = frozenset({"AMAZON.StopIntent", "AMAZON.CancelIntent"})

# intent name → (slot name, question template)
QUESTION_TEMPLATES: dict[str, tuple[str, str]] = {
    "CompareIntent":  ("comparison", "Compare and explain the differences between: {}"),
    "TeachIntent":    ("topic",      "Teach me step by step: {}"),
    "ResearchIntent": ("topic",      "Research and analyze in detail: {}"),
    "OpinionIntent":  ("topic",      "Give me your professional opinion on: {}"),
}

# error type → (spoken reply, shouldEndSession); first isinstance match wins
_REJECTIONS: tuple[tuple[type, tuple[str, bool]], ...] = (
    (UpstreamError,              (UPSTREAM_APOLOGY, False)),
    (MissingOrEmptySlotError,    (CLARIFICATION,    False)),
    (MissingIntentError,         (CLARIFICATION,    False)),
    (UnrecognizedIntentError,    (CANT_PROCESS,     False)),
    (UnrecognizedEventTypeError, (NOT_UNDERSTOOD,   True)),
    (MissingEventError,          (GENERIC_APOLOGY,  True)),
)


# ---------------------------------------------------------------------------
# Turn variants
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MissingEvent:
    pass


@dataclass(frozen=True)
class Launch:
    pass


@dataclass(frozen=True)
class MissingIntent:
    pass


@dataclass(frozen=True)
class AskQuestion:
    question: Optional[str]


@dataclass(frozen=True)
class SynthesizedQuestion:
    intent_name: str
    slot_name:   str
    template:    str
    slot_value:  Optional[str]

    def question(self) -> Optional[str]:
        if not self.slot_value:
            return None
        return self.template.format(self.slot_value)


@dataclass(frozen=True)
class Help:
    pass


@dataclass(frozen=True)
class Farewell:
    pass


@dataclass(frozen=True)
class UnknownIntent:
    name: Optional[str]


@dataclass(frozen=True)
class SessionEnded:
    pass


@dataclass(frozen=True)
class UnknownEventType:
    request_type: Optional[str]


Turn = Union[
    MissingEvent, Launch, MissingIntent, AskQuestion, SynthesizedQuestion,
    Help, Farewell, UnknownIntent, SessionEnded, UnknownEventType,
]


def resolve_turn(event: InboundEvent) -> Turn:
    """Map an inbound event onto the Turn variant that handles it."""
    if event.kind is EventKind.MISSING:
        return MissingEvent()
    if event.kind is EventKind.LAUNCH:
        return Launch()
    if event.kind is EventKind.SESSION_ENDED:
        return SessionEnded()
    if event.kind is not EventKind.INTENT:
        return UnknownEventType(event.request_type)

    if not event.has_intent:
        return MissingIntent()
    name = event.intent_name
    if name == ASK_INTENT:
        return AskQuestion(event.slot("question"))
    if name in QUESTION_TEMPLATES:
        slot_name, template = QUESTION_TEMPLATES[name]
        return SynthesizedQuestion(name, slot_name, template, event.slot(slot_name))
    if name == HELP_INTENT:
        return Help()
    if name in STOP_INTENTS:
        return Farewell()
    return UnknownIntent(name)


# ---------------------------------------------------------------------------
# Answer record
# ---------------------------------------------------------------------------

@dataclass
class JarvisAnswer:
    answer:          str
    question:        str           # normalized question sent to the model
    mode:            ResponseMode
    model:           str
    timestamp:       str
    conversation_id: Optional[str] = None


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Bot
# ---------------------------------------------------------------------------

class JarvisBot:
    """Intent dispatcher plus the question → voice answer pipeline."""

    def __init__(self, completer: Completer, config: Optional[JarvisConfig] = None) -> None:
        self._completer = completer
        self._config    = config or JarvisConfig()
        self._handlers: dict[type, Callable[[Any, InboundEvent], Awaitable[dict[str, Any]]]] = {
            MissingEvent:        self._on_missing_event,
            Launch:              self._on_launch,
            MissingIntent:       self._on_missing_intent,
            AskQuestion:         self._on_ask_question,
            SynthesizedQuestion: self._on_synthesized_question,
            Help:                self._on_help,
            Farewell:            self._on_farewell,
            UnknownIntent:       self._on_unknown_intent,
            SessionEnded:        self._on_session_ended,
            UnknownEventType:    self._on_unknown_event_type,
        }

    @property
    def config(self) -> JarvisConfig:
        return self._config

    @property
    def model(self) -> str:
        return self._completer.model

    # -----------------------------------------------------------------------
    # Webhook entrypoint
    # -----------------------------------------------------------------------

    async def handle_event(self, payload: Any) -> dict[str, Any]:
        """Turn one decoded webhook body into an Alexa response envelope."""
        event: Optional[InboundEvent] = None
        try:
            event = parse_event(payload)
            return await self.dispatch(event)
        except JarvisError as exc:
            return self._reject(exc, event)
        except Exception as exc:
            log.error("event=dispatch_failed error=%s", exc, exc_info=True)
            return self._speak(GENERIC_APOLOGY, should_end_session=True)

    async def dispatch(self, event: InboundEvent) -> dict[str, Any]:
        """Run the handler for *event*.

        Raises:
            MissingEventError, MissingIntentError, MissingOrEmptySlotError,
            UnrecognizedIntentError, UnrecognizedEventTypeError: the event
                cannot be answered as sent.
            UpstreamError: the completion failed.
        """
        turn = resolve_turn(event)
        log.info("event=turn_resolved kind=%s turn=%s", event.kind.value, type(turn).__name__)
        return await self._handlers[type(turn)](turn, event)

    def _reject(self, exc: JarvisError, event: Optional[InboundEvent]) -> dict[str, Any]:
        """Map a taxonomy error onto its fixed spoken reply."""
        attributes = event.session_attributes if event is not None else None
        if isinstance(exc, UpstreamError):
            log.error("event=answer_failed error=%s", exc)
        else:
            log.warning("event=request_rejected reason=%s error=%s", type(exc).__name__, exc)

        for error_type, (text, should_end_session) in _REJECTIONS:
            if isinstance(exc, error_type):
                if should_end_session:
                    return self._speak(text, should_end_session=True, attributes=attributes)
                return self._speak(text, reprompt=CLARIFICATION, attributes=attributes)
        return self._speak(GENERIC_APOLOGY, should_end_session=True)

    # -----------------------------------------------------------------------
    # Handlers
    # -----------------------------------------------------------------------

    async def _on_missing_event(self, turn: MissingEvent, event: InboundEvent) -> dict[str, Any]:
        raise MissingEventError("webhook body carries no request")

    async def _on_launch(self, turn: Launch, event: InboundEvent) -> dict[str, Any]:
        return self._speak(GREETING, reprompt=CLARIFICATION, attributes=event.session_attributes)

    async def _on_missing_intent(self, turn: MissingIntent, event: InboundEvent) -> dict[str, Any]:
        raise MissingIntentError("IntentRequest without an intent")

    async def _on_ask_question(self, turn: AskQuestion, event: InboundEvent) -> dict[str, Any]:
        if not turn.question:
            raise MissingOrEmptySlotError("question")
        return await self._answer(turn.question, event)

    async def _on_synthesized_question(self, turn: SynthesizedQuestion, event: InboundEvent) -> dict[str, Any]:
        question = turn.question()
        if question is None:
            raise MissingOrEmptySlotError(turn.slot_name)
        log.info("event=question_synthesized intent=%s slot=%s", turn.intent_name, turn.slot_name)
        return await self._answer(question, event)

    async def _on_help(self, turn: Help, event: InboundEvent) -> dict[str, Any]:
        return self._speak(HELP_TEXT, reprompt=CLARIFICATION, attributes=event.session_attributes)

    async def _on_farewell(self, turn: Farewell, event: InboundEvent) -> dict[str, Any]:
        return self._speak(FAREWELL, should_end_session=True, attributes=event.session_attributes)

    async def _on_unknown_intent(self, turn: UnknownIntent, event: InboundEvent) -> dict[str, Any]:
        raise UnrecognizedIntentError(turn.name or "")

    async def _on_session_ended(self, turn: SessionEnded, event: InboundEvent) -> dict[str, Any]:
        log.info("event=session_ended")
        return session_ended_response()

    async def _on_unknown_event_type(self, turn: UnknownEventType, event: InboundEvent) -> dict[str, Any]:
        raise UnrecognizedEventTypeError(turn.request_type)

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------

    def _speak(
        self,
        text: str,
        should_end_session: bool = False,
        reprompt: Optional[str] = None,
        attributes: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        voice = self._config.voice
        return speech_response(
            text,
            should_end_session,
            reprompt,
            attributes,
            speech_format=voice.speech_format,
            voice=voice.ssml_voice,
        )

    async def _answer(self, question: str, event: InboundEvent) -> dict[str, Any]:
        reply = await self.ask(question)

        # Copy, then overwrite only the keys the bot owns
        attributes = dict(event.session_attributes)
        attributes[LAST_QUESTION_KEY]  = question
        attributes[LAST_ANSWER_KEY]    = reply.answer
        attributes[LAST_TIMESTAMP_KEY] = reply.timestamp
        return self._speak(reply.answer, reprompt=ANSWER_REPROMPT, attributes=attributes)

    def _shape_answer(self, raw: str) -> str:
        voice = self._config.voice
        answer = limit_for_voice(
            sanitize(raw),
            voice.max_chars,
            sentence_ratio=voice.sentence_cut_ratio,
            word_ratio=voice.word_cut_ratio,
        )
        if not answer:
            raise UpstreamError("answer was empty after sanitizing")
        return answer

    def _prepare(self, question: str) -> tuple[str, ResponseMode, PromptSpec]:
        normalized = normalize(question)
        if not normalized:
            raise MissingOrEmptySlotError("question")
        mode = classify(normalized)
        return normalized, mode, compose_prompt(mode, self._config.system_prompt)

    # -----------------------------------------------------------------------
    # Question pipeline
    # -----------------------------------------------------------------------

    async def ask(self, question: str, conversation_id: Optional[str] = None) -> JarvisAnswer:
        """Run one question through the full pipeline.

        Raises:
            MissingOrEmptySlotError: if *question* normalizes to nothing.
            UpstreamError: if the completion fails or yields no usable text.
        """
        normalized, mode, prompt = self._prepare(question)
        log.info(
            "event=question_received mode=%s token_budget=%d question=%.50r",
            mode.value, prompt.token_budget, normalized,
        )

        try:
            raw = await self._completer.complete(prompt.system_prompt, normalized, prompt.token_budget)
        except UpstreamError:
            raise
        except Exception as exc:
            raise UpstreamError(f"completer failed: {exc}") from exc
        raw = raw or ""
        answer = self._shape_answer(raw)
        log.info("event=answer_ready mode=%s raw_chars=%d spoken_chars=%d", mode.value, len(raw), len(answer))

        return JarvisAnswer(
            answer=answer,
            question=normalized,
            mode=mode,
            model=self.model,
            timestamp=_utc_timestamp(),
            conversation_id=conversation_id,
        )

    async def ask_stream(
        self,
        question: str,
        sink: FragmentSink,
        conversation_id: Optional[str] = None,
    ) -> JarvisAnswer:
        """Stream raw fragments to *sink*; return the shaped full answer.

        Fragments are forwarded as the model produces them.  The returned
        JarvisAnswer carries the sanitized, length-limited text.  Failures
        are reported the same way as in `ask`.
        """
        normalized, mode, prompt = self._prepare(question)
        log.info(
            "event=question_stream_received mode=%s token_budget=%d question=%.50r",
            mode.value, prompt.token_budget, normalized,
        )

        try:
            raw = await self._completer.stream(prompt.system_prompt, normalized, sink, prompt.token_budget)
        except UpstreamError:
            raise
        except Exception as exc:
            raise UpstreamError(f"completer stream failed: {exc}") from exc
        return JarvisAnswer(
            answer=self._shape_answer(raw or ""),
            question=normalized,
            mode=mode,
            model=self.model,
            timestamp=_utc_timestamp(),
            conversation_id=conversation_id,
        )
