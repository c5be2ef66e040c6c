"""
groq_client.py — Jarvis Voice Engine · Completion Invoker
=========================================================
Narrow seam between the Jarvis pipeline and the Groq chat-completions API.

  GroqCompleter.complete()  one non-streaming call → answer text
  GroqCompleter.stream()    streaming call, fragments pushed to a sink

Every failure mode (timeout, provider error, no choices, empty content)
surfaces as UpstreamError.  There is no retry: one voice turn has one
shot at the model before the platform's response deadline.

Anything with the same two coroutine methods satisfies `Completer`; tests
swap in a deterministic stub.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Any, Awaitable, Callable, Optional, Protocol, Union

from groq import AsyncGroq

from apps.pipeline.errors import UpstreamError

log = logging.getLogger("jarvis.groq")

FragmentSink = Callable[[str], Union[Awaitable[None], None]]


class Completer(Protocol):
    model: str

    async def complete(
        self,
        system_prompt: str,
        question: str,
        token_budget: Optional[int] = None,
    ) -> str: ...

    async def stream(
        self,
        system_prompt: str,
        question: str,
        sink: FragmentSink,
        token_budget: Optional[int] = None,
    ) -> str: ...


def build_messages(system_prompt: str, question: str) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user",   "content": question},
    ]


class GroqCompleter:
    """Completion Invoker backed by `groq.AsyncGroq`."""

    def __init__(
        self,
        api_key: str,
        model: str = "llama-3.3-70b-versatile",
        temperature: float = 1.0,
        top_p: float = 1.0,
        max_tokens: int = 250,
        timeout_sec: float = 7.0,
        client: Any = None,
    ) -> None:
        self.model       = model
        self.temperature = temperature
        self.top_p       = top_p
        self.max_tokens  = max_tokens
        self.timeout_sec = timeout_sec
        self._client     = client if client is not None else AsyncGroq(api_key=api_key, max_retries=0)

    @classmethod
    def from_config(cls, api_key: str, groq_config: Any) -> "GroqCompleter":
        return cls(
            api_key=api_key,
            model=groq_config.model,
            temperature=groq_config.temperature,
            top_p=groq_config.top_p,
            max_tokens=groq_config.max_tokens,
            timeout_sec=groq_config.timeout_sec,
        )

    def _request_kwargs(self, system_prompt: str, question: str, token_budget: Optional[int], stream: bool) -> dict:
        return {
            "messages":    build_messages(system_prompt, question),
            "model":       self.model,
            "temperature": self.temperature,
            "top_p":       self.top_p,
            "max_tokens":  token_budget if token_budget is not None else self.max_tokens,
            "stream":      stream,
        }

    # -----------------------------------------------------------------------
    # Non-streaming
    # -----------------------------------------------------------------------

    async def complete(
        self,
        system_prompt: str,
        question: str,
        token_budget: Optional[int] = None,
    ) -> str:
        kwargs = self._request_kwargs(system_prompt, question, token_budget, stream=False)
        log.info("event=groq_request model=%s max_tokens=%d", self.model, kwargs["max_tokens"])
        start = time.perf_counter()

        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(**kwargs),
                timeout=self.timeout_sec,
            )
        except asyncio.TimeoutError as exc:
            log.warning("event=groq_timeout timeout_sec=%.1f", self.timeout_sec)
            raise UpstreamError(f"completion timed out after {self.timeout_sec:.1f}s") from exc
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            log.error("event=groq_error error=%s", exc)
            raise UpstreamError(f"completion failed: {exc}") from exc

        choices = getattr(response, "choices", None) or []
        message = getattr(choices[0], "message", None) if choices else None
        content = (getattr(message, "content", None) or "").strip()
        if not content:
            log.warning("event=groq_empty_content choices=%d", len(choices))
            raise UpstreamError("completion returned no content")

        log.info(
            "event=groq_response chars=%d latency_ms=%.1f",
            len(content), (time.perf_counter() - start) * 1000,
        )
        return content

    # -----------------------------------------------------------------------
    # Streaming
    # -----------------------------------------------------------------------

    async def stream(
        self,
        system_prompt: str,
        question: str,
        sink: FragmentSink,
        token_budget: Optional[int] = None,
    ) -> str:
        """Deliver each non-empty delta to *sink* in arrival order.

        Returns the joined text once the stream ends, or raises
        UpstreamError once if it fails, times out or yields nothing.
        Exceptions raised by *sink* itself propagate unchanged.
        """
        kwargs = self._request_kwargs(system_prompt, question, token_budget, stream=True)
        log.info("event=groq_stream_start model=%s max_tokens=%d", self.model, kwargs["max_tokens"])
        fragments: list[str] = []
        sink_errors: list[BaseException] = []

        async def _consume() -> None:
            stream = await self._client.chat.completions.create(**kwargs)
            async for chunk in stream:
                choices = getattr(chunk, "choices", None) or []
                delta = getattr(choices[0], "delta", None) if choices else None
                content = getattr(delta, "content", None) or ""
                if not content:
                    continue
                fragments.append(content)
                try:
                    result = sink(content)
                    if inspect.isawaitable(result):
                        await result
                except Exception as exc:
                    sink_errors.append(exc)
                    raise

        start = time.perf_counter()
        try:
            await asyncio.wait_for(_consume(), timeout=self.timeout_sec)
        except asyncio.TimeoutError as exc:
            log.warning("event=groq_stream_timeout timeout_sec=%.1f fragments=%d", self.timeout_sec, len(fragments))
            raise UpstreamError(f"stream timed out after {self.timeout_sec:.1f}s") from exc
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if sink_errors and exc is sink_errors[0]:
                raise
            log.error("event=groq_stream_error error=%s fragments=%d", exc, len(fragments))
            raise UpstreamError(f"stream failed: {exc}") from exc

        full_text = "".join(fragments)
        if not full_text.strip():
            log.warning("event=groq_stream_empty")
            raise UpstreamError("stream returned no content")

        log.info(
            "event=groq_stream_end fragments=%d chars=%d latency_ms=%.1f",
            len(fragments), len(full_text), (time.perf_counter() - start) * 1000,
        )
        return full_text
