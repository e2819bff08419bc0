from __future__ import annotations

import logging
from typing import Protocol

import jwt
from fastapi.concurrency import run_in_threadpool
from supabase import Client, create_client

from app.services.settings import settings

logger = logging.getLogger(__name__)


class IdentityOracle(Protocol):
    async def validate(self, token: str) -> bool: ...


class SupabaseIdentityOracle:
    """Asks Supabase Auth whether a token belongs to a live session."""

    def __init__(
        self,
        client: Client | None = None,
        url: str | None = None,
        anon_key: str | None = None,
    ) -> None:
        self._logger = logging.getLogger(__name__)
        self._client = client
        self._url = url or settings.supabase_url
        self._anon_key = anon_key or settings.supabase_anon_key

    async def validate(self, token: str) -> bool:
        client = self._get_client()
        if client is None:
            return False
        try:
            response = await run_in_threadpool(client.auth.get_user, token)
        except Exception as exc:
            # Supabase raises for expired, malformed and revoked tokens alike.
            self._logger.warning("Supabase token validation failed: %s", exc)
            return False
        return getattr(response, "user", None) is not None

    def _get_client(self) -> Client | None:
        if self._client is None:
            if not self._url or not self._anon_key:
                self._logger.warning(
                    "SUPABASE_URL/SUPABASE_ANON_KEY are not configured; "
                    "all callers are treated as anonymous"
                )
                return None
            self._client = create_client(self._url, self._anon_key)
        return self._client


def decode_email(token: str) -> str | None:
    """Read the email claim without verifying the signature (the oracle already did)."""
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError as exc:
        logger.warning("Unable to decode validated token: %s", exc)
        return None
    email = claims.get("email")
    return email if isinstance(email, str) and email else None


async def resolve_user_id(token: str, oracle: IdentityOracle) -> str:
    """Map an identity token to the key used by the conversation store.

    A token that fails validation is used verbatim as the identifier, so
    anonymous callers still keep a (token-scoped) conversation.
    """
    if await oracle.validate(token):
        email = decode_email(token)
        if email:
            return email
    else:
        logger.info("Token failed validation; using anonymous identifier")
    return token
