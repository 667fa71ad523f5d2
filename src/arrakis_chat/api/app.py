"""
FastAPI view bridge.

Exposes the chat session to a local view layer: connection status, the loaded
conversation with a render tree per message, and the user intents (send, fork,
load, new conversation, system prompt, model selection).

The session owns the websocket to the backend; this app only reads its state
and forwards intents, so every route answers immediately and streamed replies
show up on the next ``GET /conversation``.
"""

from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from prometheus_client import generate_latest
from pydantic import BaseModel
from structlog import get_logger

from ..config import ClientConfig
from ..domain.models import API, Conversation
from ..domain.titles import format_title, is_placeholder_name
from ..services.session import SessionController
from .connection import CUSTOM_REGISTRY

logger = get_logger()


class MessageCreate(BaseModel):
    """Defines the structure for message submissions"""
    content: str


class ForkCreate(BaseModel):
    sequence: int


class SystemPromptUpdate(BaseModel):
    content: str


class ApiSelection(BaseModel):
    api: API


_session: Optional[SessionController] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Starts the backend session on startup and tears it down on shutdown"""
    global _session
    config = ClientConfig.from_env()
    _session = SessionController.from_config(config)
    _session.start()
    logger.info("application_startup_complete", url=config.url)

    yield

    await _session.close()
    _session = None
    logger.info("application_shutdown_complete")


def get_session() -> SessionController:
    """Returns the running chat session"""
    if _session is None:
        raise HTTPException(status_code=503, detail="Session not started")
    return _session


app = FastAPI(
    title="Arrakis Chat Client",
    description="Local bridge between the chat view and the Arrakis backend",
    version="0.1.0",
    lifespan=lifespan
)

# Enable cross-origin requests
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Set up request tracing
FastAPIInstrumentor.instrument_app(app)


@app.middleware("http")
async def logging_middleware(request: Request, call_next):
    """Tracks requests"""
    logger.info("request_started", path=request.url.path)
    try:
        return await call_next(request)
    except Exception as e:
        logger.error("request_failed", path=request.url.path, error=str(e))
        raise


def _conversation_view(session: SessionController) -> Dict[str, Any]:
    conversation = session.conversation
    name = conversation.name
    return {
        "id": conversation.id,
        "name": name,
        "title": "" if is_placeholder_name(name) else format_title(name),
        "messages": [
            {
                "message": message.model_dump(mode="json"),
                "render": rendered.to_dict(),
            }
            for message, rendered in session.rendered_messages()
        ],
    }


@app.get("/status")
async def status(session: SessionController = Depends(get_session)) -> Dict[str, Any]:
    """Connection indicator and last transport error"""
    connection = session.connection
    return {
        "state": connection.state.value,
        "retry_count": connection.retry_count,
        "last_error": str(connection.last_error) if connection.last_error else None,
    }


@app.get("/conversation")
async def get_conversation(session: SessionController = Depends(get_session)) -> Dict[str, Any]:
    """Loaded conversation with a render tree per message"""
    return _conversation_view(session)


@app.post("/conversation")
async def create_conversation(session: SessionController = Depends(get_session)) -> Dict[str, Any]:
    """Starts a new, unsaved conversation"""
    session.new_conversation()
    return _conversation_view(session)


@app.post("/conversation/messages")
async def send_message(
    message: MessageCreate,
    session: SessionController = Depends(get_session)
) -> Dict[str, Any]:
    """Appends the prompt and requests a completion"""
    if not message.content:
        raise HTTPException(status_code=422, detail="Message content is empty")
    await session.send(message.content)
    return _conversation_view(session)


@app.post("/conversation/fork")
async def fork_conversation(
    fork: ForkCreate,
    session: SessionController = Depends(get_session)
) -> Dict[str, Any]:
    """Branches the loaded conversation at a message; the reply is regenerated in the branch"""
    if await session.fork(fork.sequence) is None:
        raise HTTPException(status_code=409, detail="Conversation cannot be forked at that message")
    return _conversation_view(session)


@app.get("/conversations", response_model=List[Conversation])
async def list_conversations(session: SessionController = Depends(get_session)) -> List[Conversation]:
    """Last received listing; a refresh is requested from the backend"""
    await session.list_conversations()
    return session.store.list_conversations()


@app.post("/conversations/{conversation_id}/load")
async def load_conversation(
    conversation_id: int,
    session: SessionController = Depends(get_session)
) -> Dict[str, Any]:
    """Requests a stored conversation; it replaces the loaded one when it arrives"""
    sent = await session.load(conversation_id)
    if not sent:
        raise HTTPException(status_code=503, detail="Not connected")
    return {"requested": conversation_id}


@app.get("/system-prompt")
async def get_system_prompt(session: SessionController = Depends(get_session)) -> Dict[str, str]:
    return {"content": session.store.get_system_prompt()}


@app.put("/system-prompt")
async def update_system_prompt(
    update: SystemPromptUpdate,
    session: SessionController = Depends(get_session)
) -> Dict[str, str]:
    """Stores the system prompt on the backend"""
    await session.set_system_prompt(update.content)
    return {"content": session.store.get_system_prompt()}


@app.put("/api")
async def select_api(
    selection: ApiSelection,
    session: SessionController = Depends(get_session)
) -> Dict[str, str]:
    """Chooses the provider/model for subsequent messages"""
    session.select_api(selection.api)
    api = session.store.get_api()
    return {"provider": api.provider, "model": api.model.value}


@app.get("/metrics")
async def metrics():
    """Provides Prometheus metrics for connection monitoring"""
    return Response(generate_latest(CUSTOM_REGISTRY), media_type="text/plain")
