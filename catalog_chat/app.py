from __future__ import annotations

import logging
import os
from datetime import timezone
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.staticfiles import StaticFiles

from .catalog import Catalog, load_catalog
from .config import Settings, load_settings
from .errors import BackendError, InvalidRequestError
from .gemini_client import GeminiClient, TextGenerator
from .models import ChatRequest, ChatResponse, ClearRequest, ClearResponse, SessionTranscript, TurnView
from .pipeline import ChatPipeline
from .prompt_builder import PromptBuilder, load_system_instruction
from .session_store import SessionStore

BASE_DIR = Path(__file__).resolve().parent

ENV_PATH = BASE_DIR / ".env"
if ENV_PATH.exists():
    load_dotenv(ENV_PATH, override=True)
else:
    load_dotenv()

log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
log_level = getattr(logging, log_level_name, logging.INFO)
if not logging.getLogger().handlers:
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

logging.getLogger("catalog_chat").setLevel(log_level)
logger = logging.getLogger("catalog_chat.api")


def create_app(
    settings: Optional[Settings] = None,
    generator: Optional[TextGenerator] = None,
    catalog: Optional[Catalog] = None,
) -> FastAPI:
    """Purpose: Build the FastAPI app with its catalog, session store, and pipeline.
    Inputs/Outputs: Optional settings, generator, and catalog overrides; returns FastAPI.
    Side Effects / State: Loads the catalog and prompt file; stores services on app.state.
    Dependencies: load_catalog, SessionStore, PromptBuilder, GeminiClient, ChatPipeline.
    Failure Modes: A broken catalog degrades to empty; invalid numeric env raises ValueError.
    If Removed: No HTTP surface exists for the chat pipeline.
    Testing Notes: Inject a stub generator and a tmp catalog, then use TestClient.
    """
    settings = settings or load_settings()
    catalog = catalog if catalog is not None else load_catalog(settings.catalog_path)
    gemini_client = GeminiClient(settings)
    sessions = SessionStore(ttl_seconds=settings.session_ttl_sec, max_sessions=settings.max_sessions)
    prompt_builder = PromptBuilder(load_system_instruction(settings.prompts_dir))
    pipeline = ChatPipeline(
        catalog=catalog,
        sessions=sessions,
        generator=generator or gemini_client,
        prompt_builder=prompt_builder,
        max_history_tokens=settings.max_history_tokens,
    )

    app = FastAPI(title="Catalog Chat Assistant")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    if settings.static_dir and settings.static_dir.is_dir():
        app.mount("/static", StaticFiles(directory=settings.static_dir), name="static")

    app.state.settings = settings
    app.state.catalog = catalog
    app.state.sessions = sessions
    app.state.pipeline = pipeline

    @app.exception_handler(InvalidRequestError)
    async def invalid_request_handler(request, exc: InvalidRequestError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_handler(request, exc: RequestValidationError) -> JSONResponse:
        logger.info("path=%s invalid body: %s", request.url.path, exc.errors())
        return JSONResponse(status_code=400, content={"error": "Invalid request body"})

    @app.get("/", response_class=PlainTextResponse)
    def status() -> str:
        """Purpose: Report liveness, credential presence, and catalog size.
        Inputs/Outputs: No inputs; returns a plain-text status line.
        Side Effects / State: None.
        Dependencies: Settings and the loaded Catalog.
        Failure Modes: None.
        If Removed: Operators lose the quick startup check.
        Testing Notes: Request "/" with and without an API key configured.
        """
        key_state = "Ya" if gemini_client.is_configured else "Tidak"
        return f"API Key ditemukan: {key_state}. Database Produk: {len(catalog)} item dimuat."

    @app.post("/chat", response_model=ChatResponse)
    @app.post("/api/chat", response_model=ChatResponse)
    def chat(payload: Optional[ChatRequest] = None):
        """Purpose: Handle one chat message and return the grounded reply.
        Inputs/Outputs: Input is ChatRequest; output is ChatResponse or an error body.
        Side Effects / State: Appends user and assistant turns to the session history.
        Dependencies: ChatPipeline.handle_message.
        Failure Modes: Missing message -> 400; any generation failure -> 500 with details.
        If Removed: Core chat functionality is unavailable.
        Testing Notes: Post {} for 400, and a stubbed failing generator for 500.
        """
        payload = payload or ChatRequest()
        try:
            context = pipeline.handle_message(payload.session_id, payload.message)
        except BackendError as exc:
            logger.exception("session=%s generation failed code=%s", payload.session_id, exc.code)
            return JSONResponse(
                status_code=500,
                content={"error": "Internal Server Error", "details": exc.message},
            )
        except Exception as exc:  # noqa: BLE001
            logger.exception("session=%s generation failed unexpectedly", payload.session_id)
            return JSONResponse(
                status_code=500,
                content={"error": "Internal Server Error", "details": str(exc)},
            )
        timestamp = context.reply_timestamp
        return ChatResponse(
            reply=context.reply,
            timestamp=_isoformat(timestamp) if timestamp else "",
        )

    @app.post("/clear", response_model=ClearResponse)
    @app.post("/api/clear", response_model=ClearResponse)
    def clear(payload: Optional[ClearRequest] = None):
        """Purpose: Drop the server-side history for a session (idempotent).
        Inputs/Outputs: Input is ClearRequest; output is {"ok": true}.
        Side Effects / State: Removes the session from the store when present.
        Dependencies: ChatPipeline.clear_session.
        Failure Modes: Unexpected errors -> 500 {"ok": false, "error"}.
        If Removed: Users cannot reset a conversation.
        Testing Notes: Clear an unknown session and expect ok=true.
        """
        payload = payload or ClearRequest()
        try:
            pipeline.clear_session(payload.session_id)
        except Exception as exc:  # noqa: BLE001
            logger.exception("session=%s clear failed", payload.session_id)
            return JSONResponse(status_code=500, content={"ok": False, "error": str(exc)})
        return ClearResponse(ok=True)

    @app.get("/api/sessions/{session_id}", response_model=SessionTranscript)
    def get_session(session_id: str) -> SessionTranscript:
        """Return the stored turns for a session; unknown ids yield an empty list."""
        session = sessions.peek(session_id)
        turns = session.history.turns if session else []
        return SessionTranscript(
            session_id=session_id,
            turns=[
                TurnView(role=turn.role.value, content=turn.content, timestamp=_isoformat(turn.timestamp))
                for turn in turns
            ],
        )

    logger.info(
        "app ready catalog_entries=%s model=%s api_key_set=%s",
        len(catalog),
        settings.gemini_model,
        bool(settings.gemini_api_key),
    )
    return app


def _isoformat(value) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


app = create_app()
