from __future__ import annotations

import asyncio
from typing import Dict, List, MutableMapping


class ConversationStore:
    """Ephemeral in-memory storage for per-user conversation state.

    Holds the replayable message history and the upstream continuation token
    (``previous_response_id``) for every user identifier. Nothing is evicted;
    state lives until ``clear``/``clear_all`` or process exit.
    """

    def __init__(
        self,
        histories: MutableMapping[str, List[dict[str, str]]] | None = None,
        tokens: MutableMapping[str, str] | None = None,
    ) -> None:
        self._histories = histories if histories is not None else {}
        self._tokens = tokens if tokens is not None else {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def get_history(self, user_id: str) -> List[dict[str, str]]:
        return [dict(message) for message in self._histories.get(user_id, [])]

    def update_history(self, user_id: str, history: List[dict[str, str]]) -> None:
        self._histories[user_id] = [dict(message) for message in history]

    def get_continuation_token(self, user_id: str) -> str | None:
        return self._tokens.get(user_id)

    def set_continuation_token(self, user_id: str, token: str) -> None:
        self._tokens[user_id] = token

    def clear(self, user_id: str) -> List[dict[str, str]]:
        self._histories.pop(user_id, None)
        self._tokens.pop(user_id, None)
        return self.get_history(user_id)

    def clear_all(self) -> None:
        self._histories.clear()
        self._tokens.clear()

    def lock_for(self, user_id: str) -> asyncio.Lock:
        # Serializes read-modify-write turns for one identifier.
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        return lock
