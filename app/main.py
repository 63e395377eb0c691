from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
import logging
from pydantic import BaseModel, ConfigDict, Field
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn

from config.settings import Settings, get_settings
from relay.composer import RequestComposer
from relay.core.session_store import SessionLocks, SessionStore, build_session_store
from relay.errors import RelayError, ValidationError
from relay.gateway import GeminiGateway
from relay.models import Attachment, Turn


logging.basicConfig(
    level=get_settings().log_level,
    format="[%(asctime)s] %(levelname)s - %(message)s",
)
logger = logging.getLogger("geminirelay")

DEFAULT_SESSION_ID = "default"

router = APIRouter()


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: Optional[str] = Field(None, description="User's latest message")
    session_id: Optional[str] = Field(
        None, alias="sessionId", description="Client-generated conversation identifier"
    )


class ClearChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: Optional[str] = Field(None, alias="sessionId")


def get_store(request: Request) -> SessionStore:
    return request.app.state.session_store


def get_locks(request: Request) -> SessionLocks:
    return request.app.state.session_locks


def get_composer(request: Request) -> RequestComposer:
    return request.app.state.composer


def get_gateway(request: Request) -> GeminiGateway:
    return request.app.state.gateway


async def read_upload_form(request: Request) -> Tuple[List[Attachment], Optional[str], Optional[str]]:
    form = await request.form()
    attachments: List[Attachment] = []
    for _, value in form.multi_items():
        if isinstance(value, UploadFile) and value.filename:
            attachments.append(
                Attachment(
                    filename=value.filename,
                    content=await value.read(),
                    content_type=value.content_type,
                )
            )
    instruction = form.get("instruction")
    session_id = form.get("sessionId")
    return (
        attachments,
        instruction if isinstance(instruction, str) and instruction.strip() else None,
        session_id if isinstance(session_id, str) and session_id else None,
    )


async def describe_attachment(
    attachment: Attachment,
    history: List[Turn],
    instruction: Optional[str],
    composer: RequestComposer,
    gateway: GeminiGateway,
) -> Tuple[Dict[str, Any], Optional[List[Turn]]]:
    """Describe one file; returns its result entry and the turns to record, if any."""
    composed = composer.compose(history, attachments=[attachment], instruction=instruction)
    logger.info(
        "Describing file=%s size=%s model=%s",
        attachment.filename,
        len(attachment.content),
        composed.model_id,
    )
    try:
        description = await gateway.generate(composed.model_id, composed.contents)
    except RelayError as e:
        logger.warning("File %s failed: %s", attachment.filename, e.message)
        return {"file": attachment.filename, "error": e.message}, None
    return (
        {"file": attachment.filename, "description": description},
        [composed.user_turn, Turn.model_text(description)],
    )


@router.post("/chat")
async def chat(
    req: ChatRequest,
    composer: RequestComposer = Depends(get_composer),
    gateway: GeminiGateway = Depends(get_gateway),
) -> Dict[str, Any]:
    if not req.message:
        raise ValidationError("Message is required")
    composed = composer.compose([], req.message)
    reply = await gateway.generate(composed.model_id, composed.contents)
    return {"reply": reply}


@router.post("/upload-describe")
async def upload_describe(
    request: Request,
    composer: RequestComposer = Depends(get_composer),
    gateway: GeminiGateway = Depends(get_gateway),
) -> Dict[str, Any]:
    attachments, instruction, _ = await read_upload_form(request)
    if not attachments:
        raise ValidationError("At least one file is required")

    results = []
    for attachment in attachments:
        result, _ = await describe_attachment(attachment, [], instruction, composer, gateway)
        results.append(result)
    return {"results": results}


@router.post("/api/chat")
async def session_chat(
    req: ChatRequest,
    store: SessionStore = Depends(get_store),
    locks: SessionLocks = Depends(get_locks),
    composer: RequestComposer = Depends(get_composer),
    gateway: GeminiGateway = Depends(get_gateway),
) -> Dict[str, Any]:
    if not req.message:
        raise ValidationError("Message is required")
    session_id = req.session_id or DEFAULT_SESSION_ID

    async with locks.hold(session_id):
        session = await store.get_or_create(session_id)
        logger.info(
            "Incoming chat: session=%s history_turns=%s message_len=%s",
            session_id,
            len(session.turns),
            len(req.message),
        )
        composed = composer.compose(session.turns, req.message)
        reply = await gateway.generate(composed.model_id, composed.contents)
        await store.append(session_id, [composed.user_turn, Turn.model_text(reply)])

    logger.info("Model responded for session=%s: %s chars", session_id, len(reply))
    return {"reply": reply, "sessionId": session_id}


@router.post("/api/upload")
async def session_upload(
    request: Request,
    store: SessionStore = Depends(get_store),
    locks: SessionLocks = Depends(get_locks),
    composer: RequestComposer = Depends(get_composer),
    gateway: GeminiGateway = Depends(get_gateway),
) -> Dict[str, Any]:
    attachments, instruction, session_id = await read_upload_form(request)
    if not attachments:
        raise ValidationError("At least one file is required")
    session_id = session_id or DEFAULT_SESSION_ID

    results = []
    async with locks.hold(session_id):
        for attachment in attachments:
            session = await store.get_or_create(session_id)
            result, turns = await describe_attachment(
                attachment, session.turns, instruction, composer, gateway
            )
            if turns:
                await store.append(session_id, turns)
            results.append(result)

    return {"results": results, "sessionId": session_id}


@router.post("/api/clear-chat")
async def clear_chat(
    req: Optional[ClearChatRequest] = None,
    store: SessionStore = Depends(get_store),
    locks: SessionLocks = Depends(get_locks),
) -> Dict[str, Any]:
    session_id = (req.session_id if req else None) or DEFAULT_SESSION_ID
    async with locks.hold(session_id):
        await store.clear(session_id)
    logger.info("Cleared chat history for session=%s", session_id)
    return {"message": "Chat history cleared", "sessionId": session_id}


@router.get("/health")
def health(request: Request) -> Dict[str, Any]:
    settings = request.app.state.settings
    return {
        "status": "ok",
        "backend": settings.session_backend,
        "models": {"default": settings.default_model, "video": settings.video_model},
    }


async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Request to %s failed: %s", request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    detail = "; ".join(
        f"{'.'.join(str(loc) for loc in err.get('loc', ()))}: {err.get('msg')}" for err in errors
    )
    return JSONResponse(status_code=400, content={"error": detail or "Invalid request"})


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[SessionStore] = None,
    gateway: Optional[GeminiGateway] = None,
) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title="Gemini Relay", version="1.0.0")

    app.state.settings = settings
    app.state.session_store = store if store is not None else build_session_store(settings)
    app.state.session_locks = SessionLocks()
    app.state.composer = RequestComposer(settings.default_model, settings.video_model)
    app.state.gateway = gateway if gateway is not None else GeminiGateway(settings)

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=False,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_exception_handler(RelayError, relay_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.include_router(router)

    # Mounted last so the API routes above take precedence.
    if settings.static_dir.is_dir():
        app.mount("/", StaticFiles(directory=settings.static_dir, html=True), name="public")
    else:
        logger.warning("Static directory %s not found; chat UI disabled", settings.static_dir)

    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    logger.info("API running on http://localhost:%s", settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
