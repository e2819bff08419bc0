from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any

import pytest

from app.services.conversation import ConversationStore
from app.services.settings import Settings

TEST_SYSTEM_PROMPT = "You are a test assistant."


class FakeResponses:
    """Stands in for ``AsyncOpenAI().responses``; replays scripted outcomes in order."""

    def __init__(self, outcomes: tuple[Any, ...]) -> None:
        self._outcomes = list(outcomes)
        self.calls: list[dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        # Suspend like a network call so concurrent turns can interleave.
        await asyncio.sleep(0)
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FakeOpenAI:
    def __init__(self, *outcomes: Any) -> None:
        self.responses = FakeResponses(outcomes)
        self.closed = False

    async def close(self) -> None:
        self.closed = True


class FakeStream:
    def __init__(self, events: list[Any], error: BaseException | None = None) -> None:
        self._events = events
        self._error = error
        self.closed = False

    async def __aenter__(self) -> FakeStream:
        return self

    async def __aexit__(self, *exc_info: Any) -> bool:
        self.closed = True
        return False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for event in self._events:
            yield event
        if self._error is not None:
            raise self._error


class FakeOracle:
    def __init__(self, valid: bool = False) -> None:
        self.valid = valid
        self.tokens: list[str] = []

    async def validate(self, token: str) -> bool:
        self.tokens.append(token)
        return self.valid


def text_response(text: str, response_id: str | None = "resp_1") -> SimpleNamespace:
    return SimpleNamespace(
        id=response_id,
        output_text=text,
        output=[
            {
                "type": "message",
                "role": "assistant",
                "status": "completed",
                "content": [{"type": "output_text", "text": text, "annotations": []}],
            }
        ],
    )


def stream_events(*chunks: str, response_id: str = "resp_stream") -> list[SimpleNamespace]:
    events = [
        SimpleNamespace(type="response.created", response=SimpleNamespace(id=response_id))
    ]
    events.extend(
        SimpleNamespace(type="response.output_text.delta", delta=chunk) for chunk in chunks
    )
    events.append(
        SimpleNamespace(type="response.completed", response=SimpleNamespace(id=response_id))
    )
    return events


@pytest.fixture()
def config() -> Settings:
    return Settings(
        openai_api_key="test-key",
        openai_model="gpt-4o-mini",
        max_tokens=None,
        llm_temperature=None,
        top_p=None,
        presence_penalty=None,
        frequency_penalty=None,
        reasoning_effort=None,
        system_prompt=TEST_SYSTEM_PROMPT,
        supabase_url=None,
        supabase_anon_key=None,
        supabase_project_ref=None,
    )


@pytest.fixture()
def store() -> ConversationStore:
    return ConversationStore()


@pytest.fixture()
def fakes() -> SimpleNamespace:
    return SimpleNamespace(
        client=FakeOpenAI,
        stream=FakeStream,
        oracle=FakeOracle,
        response=text_response,
        events=stream_events,
    )
