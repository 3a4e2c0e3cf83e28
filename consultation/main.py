from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles

from .auth import AuthenticatedUser, TokenGuard, TokenVerifier
from .llm import ChatCompletionClient, ChatCompletionError
from .prompts import ConsultationRequest, build_messages
from .relay import STREAM_HEADERS, relay_events
from .settings import SettingsManager


settings_manager = SettingsManager()
settings = settings_manager.settings

DATA_DIR = Path(settings["server"]["data_dir"])
DATA_DIR.mkdir(parents=True, exist_ok=True)
LOG_FILE = DATA_DIR / "server.log"
STATIC_DIR = Path(settings["server"]["static_dir"])


def _configure_logging() -> logging.Logger:
    logger = logging.getLogger("consultation")
    if logger.handlers:
        return logger
    logger.setLevel(settings["server"]["log_level"])
    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    file_handler = RotatingFileHandler(
        LOG_FILE, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    logger.addHandler(file_handler)
    logger.addHandler(stream_handler)
    logger.propagate = False
    logger.debug("Logging initialised, writing to %s", LOG_FILE)
    return logger


logger = _configure_logging()

app = FastAPI(title="Consultation Relay")

if settings["server"]["cors_origins"]:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings["server"]["cors_origins"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

token_verifier = TokenVerifier.from_settings(settings["auth"])
require_user = TokenGuard(token_verifier)


def _completion_client() -> ChatCompletionClient:
    openai_settings = settings["openai"]
    if not openai_settings["api_key"]:
        logger.error("OPENAI_API_KEY is not set; refusing consultation request.")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Missing OPENAI_API_KEY in environment or .env",
        )
    return ChatCompletionClient(
        openai_settings["base_url"],
        api_key=openai_settings["api_key"],
        timeout=openai_settings["timeout"],
    )


@app.on_event("startup")
async def on_startup() -> None:
    missing = settings_manager.missing_secrets()
    if missing:
        logger.warning("Missing secrets: %s", ", ".join(missing))
    if not STATIC_DIR.is_dir():
        logger.warning("Static bundle directory %s not found; serving API only.", STATIC_DIR)
    logger.info(
        "Application startup complete (model=%s base_url=%s).",
        settings["openai"]["model"],
        settings["openai"]["base_url"],
    )


@app.on_event("shutdown")
async def on_shutdown() -> None:
    logger.info("Application shutdown complete.")


@app.get("/health", response_class=JSONResponse)
async def health() -> Dict[str, str]:
    return {"status": "healthy"}


@app.post("/api/consultation")
def consultation(
    payload: ConsultationRequest,
    user: AuthenticatedUser = Depends(require_user),
) -> StreamingResponse:
    client = _completion_client()
    model = settings["openai"]["model"]
    messages = build_messages(payload)
    try:
        fragments = client.stream_chat(model=model, messages=messages)
    except ChatCompletionError as exc:
        logger.warning("Completion request failed for user=%s: %s", user.subject, exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Completion provider request failed.",
        ) from exc
    logger.info("Streaming consultation for user=%s model=%s", user.subject, model)
    return StreamingResponse(
        relay_events(fragments),
        media_type="text/event-stream",
        headers=STREAM_HEADERS,
    )


# Static bundle is mounted last so API routes take precedence.
if STATIC_DIR.is_dir():
    app.mount("/", StaticFiles(directory=STATIC_DIR, html=True), name="static")
else:

    @app.get("/", response_class=JSONResponse)
    async def root() -> Dict[str, str]:
        return {"status": "ok", "detail": f"No static bundle at {STATIC_DIR}"}


def run() -> None:
    import uvicorn

    uvicorn.run(
        app,
        host=settings["server"]["host"],
        port=settings["server"]["port"],
        log_level=settings["server"]["log_level"].lower(),
    )


# Convenience include for uvicorn.
__all__ = ["app", "run"]


if __name__ == "__main__":
    run()
