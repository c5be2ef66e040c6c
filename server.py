"""
server.py — Jarvis Voice Engine · FastAPI Webhook Server
========================================================
HTTP front door for Jarvis.  Receives Alexa skill webhooks, runs them
through the `JarvisBot` pipeline and returns Alexa response envelopes.

Endpoints
---------
  POST /alexa/webhook   Alexa skill request → response envelope (always 200)
  POST /ask             JSON question → JSON answer
  POST /ask/stream      JSON question → streamed plain-text fragments
  GET  /health          Service liveness
  GET  /config          Effective configuration (no credentials)

Startup
-------
Configuration is read once in the lifespan hook.  A missing GROQ_API_KEY
raises ApiKeyNotConfiguredError there, so the server refuses to start
instead of failing every request.

Concurrency model
-----------------
Requests share only the immutable bot (config + Groq client).  Each
webhook is processed independently; the one suspension point is the
Groq call inside the completer.
"""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from apps.pipeline.errors import MissingOrEmptySlotError, UpstreamError
from apps.pipeline.groq_client import GroqCompleter
from bot import GENERIC_APOLOGY, UPSTREAM_APOLOGY, JarvisBot
from config import JarvisConfig, require_api_key

load_dotenv()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.DEBUG if os.getenv("JARVIS_DEBUG") else logging.INFO,
    format="%(asctime)s.%(msecs)03d [%(levelname)s] %(name)s – %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger("jarvis.server")

_SENTINEL = object()  # end-of-stream marker for /ask/stream


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------

class AskRequest(BaseModel):
    """Direct question, outside the Alexa envelope."""
    question: str
    conversationId: Optional[str] = None


class AskResponse(BaseModel):
    answer:         str
    conversationId: Optional[str] = None
    timestamp:      str
    model:          str
    mode:           str


# ---------------------------------------------------------------------------
# Bot construction
# ---------------------------------------------------------------------------

def build_bot() -> JarvisBot:
    """Read configuration once and wire the Groq completer into a bot."""
    config = JarvisConfig.from_env()
    api_key = require_api_key()
    completer = GroqCompleter.from_config(api_key, config.groq)
    log.info(
        "event=bot_configured model=%s temperature=%.2f top_p=%.2f speech_format=%s max_chars=%d",
        config.groq.model, config.groq.temperature, config.groq.top_p,
        config.voice.speech_format, config.voice.max_chars,
    )
    return JarvisBot(completer, config)


def _bot(request: Request) -> JarvisBot:
    return request.app.state.bot


def _require_question(body: AskRequest) -> str:
    question = body.question.strip()
    if not question:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="question must not be empty.")
    return question


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------

def create_app(bot: Optional[JarvisBot] = None) -> FastAPI:
    """Build the app.  Pass *bot* to skip environment-based construction."""

    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        if getattr(app.state, "bot", None) is None:
            app.state.bot = build_bot()
        log.info("event=server_start model=%s", app.state.bot.model)
        yield
        log.info("event=server_stopped")

    app = FastAPI(
        title="Jarvis Voice Engine",
        version="1.0.0",
        description="Alexa webhook → Groq → voice-safe answers",
        lifespan=_lifespan,
    )
    app.state.bot = bot

    # -----------------------------------------------------------------------
    # Endpoints
    # -----------------------------------------------------------------------

    @app.post("/alexa/webhook")
    async def alexa_webhook(request: Request) -> JSONResponse:
        """
        Alexa skill webhook.

        Always answers 200 with a well-formed envelope: invalid JSON is
        handled like a request without an event, and every pipeline
        failure is turned into a spoken apology by the bot.
        """
        try:
            payload = await request.json()
        except Exception as exc:
            log.warning("event=alexa_invalid_json error=%s", exc)
            payload = None

        envelope = await _bot(request).handle_event(payload)
        return JSONResponse(envelope)

    @app.post("/ask", response_model=AskResponse)
    async def ask(body: AskRequest, request: Request) -> AskResponse:
        """Ask Jarvis directly; returns the voice-shaped answer."""
        question = _require_question(body)
        try:
            reply = await _bot(request).ask(question, conversation_id=body.conversationId)
        except MissingOrEmptySlotError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="question must not be empty.") from exc
        except UpstreamError as exc:
            log.error("event=ask_failed error=%s", exc)
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=UPSTREAM_APOLOGY) from exc

        return AskResponse(
            answer=reply.answer,
            conversationId=reply.conversation_id,
            timestamp=reply.timestamp,
            model=reply.model,
            mode=reply.mode.value,
        )

    @app.post("/ask/stream")
    async def ask_stream(body: AskRequest, request: Request) -> StreamingResponse:
        """
        Stream raw answer fragments as the model produces them.

        Once streaming has begun the status code is fixed, so a failure
        mid-stream ends the body with a spoken apology instead.
        """
        question = _require_question(body)
        bot = _bot(request)
        queue: asyncio.Queue[str | object] = asyncio.Queue()

        async def _produce() -> None:
            try:
                await bot.ask_stream(question, queue.put_nowait, conversation_id=body.conversationId)
            except UpstreamError as exc:
                log.error("event=ask_stream_failed error=%s", exc)
                queue.put_nowait(UPSTREAM_APOLOGY)
            except Exception as exc:
                log.error("event=ask_stream_crashed error=%s", exc, exc_info=True)
                queue.put_nowait(GENERIC_APOLOGY)
            finally:
                queue.put_nowait(_SENTINEL)

        async def _relay():
            task = asyncio.create_task(_produce(), name="ask_stream_producer")
            try:
                while True:
                    item = await queue.get()
                    if item is _SENTINEL:
                        break
                    yield item
            finally:
                if not task.done():
                    task.cancel()

        return StreamingResponse(_relay(), media_type="text/plain; charset=utf-8")

    @app.get("/health")
    async def health(request: Request) -> JSONResponse:
        """Liveness probe."""
        return JSONResponse({
            "status": "ok",
            "model":  _bot(request).model,
        })

    @app.get("/config")
    async def get_config(request: Request) -> JSONResponse:
        """Effective runtime configuration.  The API key is not part of it."""
        return JSONResponse(_bot(request).config.model_dump())

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "server:app",
        host=os.getenv("JARVIS_HOST", "0.0.0.0"),
        port=int(os.getenv("JARVIS_PORT", "8000")),
    )
