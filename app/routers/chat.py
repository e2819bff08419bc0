from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response

from app.models.chat import ChatRequest, HistoryEntry
from app.services.chat import ChatService

router = APIRouter(tags=["chat"])


@lru_cache(maxsize=1)
def get_service() -> ChatService:
    return ChatService()


@router.post("/chat", response_model=None)
async def chat(
    payload: ChatRequest,
    request: Request,
    t: Optional[str] = Query(default=None, description="Identity token"),
    service: ChatService = Depends(get_service),
) -> Response:
    return await service.chat(
        payload, payload.supabase_jwt or t, is_disconnected=request.is_disconnected
    )


@router.get("/history", response_model=List[HistoryEntry])
async def get_history(
    t: Optional[str] = Query(default=None, description="Identity token"),
    service: ChatService = Depends(get_service),
) -> List[HistoryEntry]:
    return await service.history(t)


@router.delete("/history", response_model=List[HistoryEntry])
async def clear_history(
    t: Optional[str] = Query(default=None, description="Identity token"),
    service: ChatService = Depends(get_service),
) -> List[HistoryEntry]:
    return await service.clear_history(t)
