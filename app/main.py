from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import uvicorn
from fastapi import FastAPI

from app.routers import chat
from app.services.settings import settings

logging.basicConfig(
    level=settings.log_level,
    format="[%(asctime)s] %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger("app")


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    logger.info("Chat relay starting (model=%s)", settings.openai_model)
    yield
    logger.info("Starting graceful shutdown...")
    if chat.get_service.cache_info().currsize:
        await chat.get_service().aclose()
    logger.info("Shutdown complete")


app = FastAPI(title="Chat Relay Service", lifespan=lifespan)
app.include_router(chat.router)


@app.get("/health", tags=["health"])
def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


def run() -> None:
    uvicorn.run(app, host=settings.http_host, port=settings.http_port)
