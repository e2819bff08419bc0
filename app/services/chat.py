from __future__ import annotations

import logging
from typing import Awaitable, Callable, List

from fastapi import HTTPException
from fastapi.responses import JSONResponse, Response, StreamingResponse

from app.models.chat import ChatMessage, ChatRequest, ChatResponse, HistoryEntry
from app.services.conversation import ConversationStore
from app.services.identity import IdentityOracle, SupabaseIdentityOracle, resolve_user_id
from app.services.llm import ModelGateway
from app.services.settings import Settings, settings


class ChatService:
    def __init__(
        self,
        store: ConversationStore | None = None,
        gateway: ModelGateway | None = None,
        oracle: IdentityOracle | None = None,
        config: Settings | None = None,
    ) -> None:
        self._logger = logging.getLogger(__name__)
        self._store = store or ConversationStore()
        self._gateway = gateway or ModelGateway(self._store)
        self._oracle = oracle or SupabaseIdentityOracle()
        self._config = config or settings

    async def aclose(self) -> None:
        await self._gateway.aclose()

    async def chat(
        self,
        request: ChatRequest,
        token: str | None,
        is_disconnected: Callable[[], Awaitable[bool]] | None = None,
    ) -> Response:
        prompt = request.text or ""
        if not prompt or not token:
            return self._json(
                ChatResponse.failure(
                    "Missing required fields: text and an identity token are required"
                ),
                status_code=400,
            )

        user_id = token
        try:
            user_id = await resolve_user_id(token, self._oracle)
            config = self._config.with_temperature(request.temperature)
            if request.stream:
                return StreamingResponse(
                    self._gateway.process_streaming(
                        prompt,
                        user_id,
                        config,
                        request.tools,
                        request.tool_outputs,
                        is_disconnected=is_disconnected,
                    ),
                    media_type="application/json",
                )
            reply = await self._gateway.process_non_streaming(
                prompt, user_id, config, request.tools, request.tool_outputs
            )
        except Exception as exc:
            self._logger.exception("Chat request failed for user '%s'", user_id)
            return self._json(ChatResponse.failure(str(exc)), status_code=500)

        return self._json(
            ChatResponse(output_text=reply.output_text, output=reply.output, id=reply.id)
        )

    async def history(self, token: str | None) -> List[HistoryEntry]:
        user_id = await self._require_user_id(token)
        return self._to_entries(self._store.get_history(user_id))

    async def clear_history(self, token: str | None) -> List[HistoryEntry]:
        user_id = await self._require_user_id(token)
        self._logger.info("Clearing conversation for user '%s'", user_id)
        return self._to_entries(self._store.clear(user_id))

    async def _require_user_id(self, token: str | None) -> str:
        if not token:
            raise HTTPException(
                status_code=400,
                detail="Missing required query parameter: t (token) is required",
            )
        return await resolve_user_id(token, self._oracle)

    @staticmethod
    def _to_entries(history: List[dict[str, str]]) -> List[HistoryEntry]:
        messages = [ChatMessage(**message) for message in history]
        return [
            HistoryEntry(
                text=message.content,
                direction="out" if message.role == "assistant" else "in",
            )
            for message in messages
        ]

    @staticmethod
    def _json(response: ChatResponse, status_code: int = 200) -> JSONResponse:
        return JSONResponse(
            status_code=status_code, content=response.model_dump(exclude_none=True)
        )
