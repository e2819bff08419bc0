from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, List, Sequence

from openai import AsyncOpenAI, OpenAIError

from app.models.chat import FunctionTool, ToolOutput
from app.services.conversation import ConversationStore
from app.services.errors import ChatProcessingError, is_missing_tool_output_error
from app.services.payload import ResponsePayload, build_payload, build_recovery_payload
from app.services.settings import Settings, settings

TEXT_DELTA_EVENT = "response.output_text.delta"
# The SDK only raises for payloads with a top-level "error" key; these arrive as events.
FAILURE_EVENTS = frozenset({"response.failed", "error"})


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def _dump(item: Any) -> dict[str, Any]:
    if hasattr(item, "model_dump"):
        return item.model_dump(exclude_none=True)
    return dict(item)


def extract_output_text(response: Any) -> str:
    """Prefer the flattened ``output_text``; otherwise join the text parts of each block."""
    text = _field(response, "output_text")
    if text:
        return text
    fragments: list[str] = []
    for block in _field(response, "output") or []:
        for part in _field(block, "content") or []:
            fragment = _field(part, "text")
            if isinstance(fragment, str):
                fragments.append(fragment)
    return "".join(fragments)


@dataclass
class ChatReply:
    output_text: str
    output: List[dict[str, Any]] = field(default_factory=list)
    id: str | None = None

    @classmethod
    def from_response(cls, response: Any) -> ChatReply:
        return cls(
            output_text=extract_output_text(response),
            output=[_dump(block) for block in _field(response, "output") or []],
            id=_field(response, "id"),
        )


class ModelGateway:
    """Runs Responses API calls and records each completed turn in the store."""

    def __init__(
        self,
        store: ConversationStore,
        client: AsyncOpenAI | None = None,
        api_key: str | None = None,
    ) -> None:
        self._logger = logging.getLogger(__name__)
        self._store = store
        self._client = client
        self._api_key = api_key

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            api_key = self._api_key or settings.openai_api_key
            if not api_key:
                raise ValueError(
                    "OPENAI_API_KEY is not configured. Set it in the environment before starting the service."
                )
            self._client = AsyncOpenAI(api_key=api_key)
        return self._client

    async def process_non_streaming(
        self,
        prompt: str,
        user_id: str,
        config: Settings,
        tools: Sequence[FunctionTool] | None = None,
        tool_outputs: Sequence[ToolOutput] | None = None,
    ) -> ChatReply:
        async with self._store.lock_for(user_id):
            payload = build_payload(
                prompt, user_id, config, self._store, False, tools, tool_outputs
            )
            response = await self._create_with_recovery(payload, user_id, config)
            reply = ChatReply.from_response(response)
            self._log_function_calls(user_id, reply.output)
            self._commit_turn(
                user_id, prompt, config, bool(tool_outputs), reply.id, reply.output_text
            )
            self._logger.info(
                "Completed turn for user '%s' (response_id=%s, %d chars)",
                user_id,
                reply.id,
                len(reply.output_text),
            )
            return reply

    async def process_streaming(
        self,
        prompt: str,
        user_id: str,
        config: Settings,
        tools: Sequence[FunctionTool] | None = None,
        tool_outputs: Sequence[ToolOutput] | None = None,
        is_disconnected: Callable[[], Awaitable[bool]] | None = None,
    ) -> AsyncIterator[bytes]:
        """Yield ``{"response": <delta>}`` fragments as the upstream produces them.

        The turn is committed to the store only when the upstream stream ends
        normally. A client disconnect or an upstream failure closes the
        channel and discards the partial reply.
        """
        async with self._store.lock_for(user_id):
            payload = build_payload(
                prompt, user_id, config, self._store, True, tools, tool_outputs
            )
            fragments: list[str] = []
            response_id: str | None = None
            try:
                stream = await self._create_with_recovery(payload, user_id, config)
                async with stream:
                    async for event in stream:
                        if is_disconnected is not None and await is_disconnected():
                            self._logger.info(
                                "Client for user '%s' disconnected; discarding partial reply",
                                user_id,
                            )
                            return
                        event_type = _field(event, "type")
                        if event_type in FAILURE_EVENTS:
                            self._logger.error(
                                "Upstream stream for user '%s' reported %s (%s); "
                                "discarding %d buffered chunk(s)",
                                user_id,
                                event_type,
                                _field(event, "message")
                                or _field(_field(event, "response"), "error"),
                                len(fragments),
                            )
                            return
                        if response_id is None:
                            response_id = _field(_field(event, "response"), "id")
                        if event_type == TEXT_DELTA_EVENT:
                            delta = _field(event, "delta")
                            if delta:
                                fragments.append(delta)
                                yield json.dumps({"response": delta}).encode("utf-8")
                        else:
                            item = _field(event, "item")
                            if _field(item, "type") == "function_call":
                                self._log_function_calls(user_id, [item])
            except Exception:
                # Headers are already on the wire; the channel is closed without an error body.
                self._logger.exception(
                    "Streaming turn failed for user '%s'; discarding %d buffered chunk(s)",
                    user_id,
                    len(fragments),
                )
                return

            full_text = "".join(fragments)
            self._commit_turn(
                user_id, prompt, config, bool(tool_outputs), response_id, full_text
            )
            self._logger.info(
                "Completed streamed turn for user '%s' (response_id=%s, %d chars)",
                user_id,
                response_id,
                len(full_text),
            )

    async def _create(self, payload: ResponsePayload) -> Any:
        request = payload.to_request()
        self._logger.debug("OpenAI request payload: %s", json.dumps(request, indent=2))
        return await self._get_client().responses.create(**request)

    async def _create_with_recovery(
        self, payload: ResponsePayload, user_id: str, config: Settings
    ) -> Any:
        try:
            return await self._create(payload)
        except OpenAIError as exc:
            if not is_missing_tool_output_error(exc):
                self._logger.exception("OpenAI request failed for user '%s'", user_id)
                raise ChatProcessingError(f"Failed to process chat request: {exc}") from exc
            self._logger.warning(
                "OpenAI reports an unanswered function call for user '%s'; "
                "retrying once without the continuation token",
                user_id,
            )

        try:
            return await self._create(build_recovery_payload(payload, config))
        except OpenAIError as exc:
            self._logger.exception("Recovery retry failed for user '%s'", user_id)
            raise ChatProcessingError(f"Failed to process chat request: {exc}") from exc

    def _commit_turn(
        self,
        user_id: str,
        prompt: str,
        config: Settings,
        tool_output_turn: bool,
        response_id: str | None,
        reply_text: str,
    ) -> None:
        if response_id:
            self._store.set_continuation_token(user_id, response_id)
        if tool_output_turn:
            return

        history = self._store.get_history(user_id)
        if not history:
            history.append({"role": "system", "content": config.system_prompt})
        history.append({"role": "user", "content": prompt})
        if reply_text:
            history.append({"role": "assistant", "content": reply_text})
        self._store.update_history(user_id, history)

    def _log_function_calls(self, user_id: str, blocks: Sequence[Any]) -> None:
        for block in blocks:
            if _field(block, "type") == "function_call":
                self._logger.info(
                    "Model requested function '%s' (call_id=%s) for user '%s'",
                    _field(block, "name"),
                    _field(block, "call_id"),
                    user_id,
                )
