from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class StubCompleter:
    """Deterministic stand-in for GroqCompleter."""

    answer: str = "Stub answer."
    fragments: list[str] = field(default_factory=list)
    error: Optional[BaseException] = None
    model: str = "stub-model"
    calls: list[dict[str, Any]] = field(default_factory=list)

    async def complete(self, system_prompt: str, question: str, token_budget: Optional[int] = None) -> str:
        self.calls.append({"system_prompt": system_prompt, "question": question, "token_budget": token_budget})
        if self.error is not None:
            raise self.error
        return self.answer

    async def stream(self, system_prompt: str, question: str, sink, token_budget: Optional[int] = None) -> str:
        self.calls.append({"system_prompt": system_prompt, "question": question, "token_budget": token_budget})
        if self.error is not None:
            raise self.error
        for fragment in self.fragments:
            result = sink(fragment)
            if inspect.isawaitable(result):
                await result
        return "".join(self.fragments)


def intent_event(name: str, slots: Optional[dict[str, Any]] = None, attributes: Optional[dict[str, Any]] = None) -> dict:
    body: dict[str, Any] = {
        "version": "1.0",
        "request": {
            "type": "IntentRequest",
            "requestId": "amzn1.echo-api.request.test",
            "locale": "en-US",
            "intent": {"name": name, "slots": slots or {}},
        },
    }
    if attributes is not None:
        body["session"] = {"sessionId": "amzn1.echo-api.session.test", "attributes": attributes}
    return body


def slot(value: Optional[str]) -> dict[str, Any]:
    return {"name": "slot", "value": value}
