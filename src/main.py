"""Entry point for the realtime voice agent relay service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from api.routes import router as api_router
from config.settings import get_settings, require_openai_api_key


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Refuse to serve calls without gateway credentials.
    require_openai_api_key(get_settings())
    yield


settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = FastAPI(
    title="Realtime Voice Agent Relay",
    description="Bridges Twilio Media Streams to the OpenAI Realtime API.",
    lifespan=lifespan,
)
app.include_router(api_router, prefix="/api")


@app.get("/")
async def root() -> dict[str, str]:
    return {"message": "Twilio Media Stream Server is running!"}


def main() -> None:
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
