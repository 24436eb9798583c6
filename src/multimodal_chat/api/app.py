"""
FastAPI Application Module

Backend for the multimodal chat client: forwards text, image and audio turns
to Google Gemini, returns the reply split into text/math segments, and keeps
per-user chats behind bearer-token authentication.

Key Features:
- Multipart chat endpoint with input validation before any upstream call
- Register/login issuing JWT access tokens
- Chat CRUD scoped to the authenticated user
- Structured logging, Prometheus metrics and OpenTelemetry tracing
"""

import time
from contextlib import asynccontextmanager
from typing import List, Optional
from uuid import UUID

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from prometheus_client import CollectorRegistry, Counter, generate_latest
from pydantic import BaseModel, Field
from structlog import get_logger

from ..config import Settings, get_settings
from ..domain.models import AuthResult, Chat, Message, UserRecord
from ..repositories.base import Repository
from ..repositories.memory import InMemoryRepository
from ..services.auth import AuthError, create_access_token, decode_access_token, hash_password, verify_password
from ..services.llm import Attachment, GeminiService, UpstreamAPIError
from ..services.segmenter import to_legacy_payload

# Registry for isolated metric collection
CUSTOM_REGISTRY = CollectorRegistry()

REQUESTS = Counter("requests_total", "Total requests", registry=CUSTOM_REGISTRY)
ERRORS = Counter("errors_total", "Total failed requests", registry=CUSTOM_REGISTRY)
UPSTREAM_ERRORS = Counter("upstream_errors_total", "Total Gemini API failures", registry=CUSTOM_REGISTRY)
PROCESSING_TIME = Counter("processing_time_seconds", "Total request processing time", registry=CUSTOM_REGISTRY)

logger = get_logger()


class RegisterRequest(BaseModel):
    """Body of the registration request"""
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    password: str = Field(min_length=6)


class LoginRequest(BaseModel):
    """Body of the login request"""
    email: str
    password: str


class ChatCreate(BaseModel):
    """Body of the chat creation request"""
    name: str = Field(min_length=1)
    messages: List[Message] = []


class ChatUpdate(BaseModel):
    """Body of the chat update request; omitted fields are left unchanged"""
    name: Optional[str] = None
    messages: Optional[List[Message]] = None


# Core service instances
repository = InMemoryRepository()
_gemini_service: Optional[GeminiService] = None
bearer_scheme = HTTPBearer(auto_error=False)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handles app startup/shutdown"""
    settings = get_settings()
    logger.info(
        "application_startup_complete",
        model=settings.gemini_model,
        response_format=settings.response_format,
    )
    yield
    logger.info("application_shutdown_complete")


def get_repository() -> Repository:
    """Returns the user and chat storage instance"""
    return repository


def get_gemini_service() -> GeminiService:
    """Returns the Gemini service, created on first use"""
    global _gemini_service
    if _gemini_service is None:
        _gemini_service = GeminiService(get_settings())
    return _gemini_service


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> UUID:
    """Resolves the bearer token to a user id"""
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Access token required")
    try:
        return UUID(decode_access_token(credentials.credentials, settings))
    except (AuthError, ValueError):
        raise HTTPException(status_code=403, detail="Invalid or expired token")


app = FastAPI(
    title="Multimodal Chat API",
    description="Gemini-backed chat with text, image and audio input",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Set up request tracing
FastAPIInstrumentor.instrument_app(app)


@app.middleware("http")
async def logging_middleware(request: Request, call_next):
    """Logs and counts every request"""
    REQUESTS.inc()
    started = time.perf_counter()
    logger.info("request_started", path=request.url.path, method=request.method)
    try:
        response = await call_next(request)
    except Exception as e:
        ERRORS.inc()
        logger.error("request_failed", path=request.url.path, error=str(e))
        raise
    finally:
        PROCESSING_TIME.inc(time.perf_counter() - started)
    if response.status_code >= 400:
        ERRORS.inc()
    return response


def _chat_error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


@app.post("/api/chat")
async def chat(
    text: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    gemini: GeminiService = Depends(get_gemini_service),
    settings: Settings = Depends(get_settings),
):
    """Sends one text/image/audio turn to Gemini and returns the segmented reply"""
    input_text = (text or "").strip()
    if not input_text and file is None:
        return _chat_error(400, "Please provide text, image, or audio input.")

    attachment = None
    if file is not None:
        mime_type = file.content_type or ""
        if not mime_type.startswith(("image/", "audio/")):
            logger.warning("unsupported_upload", mime_type=mime_type, filename=file.filename)
            return _chat_error(400, "Unsupported file type. Only image or audio allowed.")
        data = await file.read()
        if not data:
            return _chat_error(400, "Invalid file data received.")
        attachment = Attachment(data=data, mime_type=mime_type, filename=file.filename)

    try:
        reply = await gemini.reply(input_text or None, attachment)
    except UpstreamAPIError as e:
        UPSTREAM_ERRORS.inc()
        logger.error("chat_upstream_error", error=str(e))
        return _chat_error(500, str(e))
    except Exception as e:
        logger.error("chat_error", error=str(e))
        return _chat_error(500, str(e) or "Internal Server Error")

    if settings.response_format == "legacy":
        response = to_legacy_payload(reply.segments, reply.logo)
    else:
        response = [s.model_dump() for s in reply.segments]

    logger.info(
        "chat_processed",
        has_text=bool(input_text),
        has_file=attachment is not None,
        segments=len(reply.segments),
    )
    return {
        "success": True,
        "input": input_text or (attachment.filename if attachment else "No input"),
        "response": response,
    }


@app.get("/health")
async def health():
    """Liveness probe"""
    return {"status": "ok", "provider": "google-gemini"}


@app.post("/api/auth/register", response_model=AuthResult, status_code=201)
async def register(
    body: RegisterRequest,
    repository: Repository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> AuthResult:
    """Creates an account and returns an access token"""
    user = UserRecord(
        name=body.name.strip(),
        email=body.email.strip().lower(),
        password_hash=hash_password(body.password),
    )
    try:
        await repository.create_user(user)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    token = create_access_token(str(user.id), settings)
    logger.info("user_registered", user_id=str(user.id))
    return AuthResult(token=token, user=user.public())


@app.post("/api/auth/login", response_model=AuthResult)
async def login(
    body: LoginRequest,
    repository: Repository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> AuthResult:
    """Exchanges credentials for an access token"""
    user = await repository.get_user_by_email(body.email.strip())
    if user is None or not verify_password(body.password, user.password_hash):
        logger.warning("login_failed", email=body.email)
        raise HTTPException(status_code=401, detail="Invalid email or password")
    token = create_access_token(str(user.id), settings)
    logger.info("user_logged_in", user_id=str(user.id))
    return AuthResult(token=token, user=user.public())


@app.get("/api/chats", response_model=List[Chat])
async def list_chats(
    user_id: UUID = Depends(get_current_user_id),
    repository: Repository = Depends(get_repository),
) -> List[Chat]:
    """Lists the user's chats, most recently modified first"""
    try:
        return await repository.list_chats(user_id)
    except Exception as e:
        logger.error("list_chats_error", error=str(e))
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/chats", response_model=Chat, status_code=201)
async def create_chat(
    body: ChatCreate,
    user_id: UUID = Depends(get_current_user_id),
    repository: Repository = Depends(get_repository),
) -> Chat:
    """Stores a new chat for the user"""
    try:
        return await repository.create_chat(user_id, body.name, body.messages)
    except Exception as e:
        logger.error("create_chat_error", error=str(e))
        raise HTTPException(status_code=500, detail="Server error")


@app.put("/api/chats/{chat_id}", response_model=Chat)
async def update_chat(
    chat_id: str,
    body: ChatUpdate,
    user_id: UUID = Depends(get_current_user_id),
    repository: Repository = Depends(get_repository),
) -> Chat:
    """Renames a chat and/or replaces its messages"""
    try:
        chat = await repository.update_chat(user_id, chat_id, name=body.name, messages=body.messages)
    except Exception as e:
        logger.error("update_chat_error", chat_id=chat_id, error=str(e))
        raise HTTPException(status_code=500, detail="Server error")
    if chat is None:
        raise HTTPException(status_code=404, detail="Chat not found")
    return chat


@app.delete("/api/chats/{chat_id}")
async def delete_chat(
    chat_id: str,
    user_id: UUID = Depends(get_current_user_id),
    repository: Repository = Depends(get_repository),
):
    """Deletes one of the user's chats"""
    try:
        deleted = await repository.delete_chat(user_id, chat_id)
    except Exception as e:
        logger.error("delete_chat_error", chat_id=chat_id, error=str(e))
        raise HTTPException(status_code=500, detail="Server error")
    if not deleted:
        raise HTTPException(status_code=404, detail="Chat not found")
    return {"message": "Chat deleted successfully"}


@app.get("/metrics")
async def metrics():
    """Provides Prometheus metrics for system monitoring"""
    return Response(generate_latest(CUSTOM_REGISTRY), media_type="text/plain")
