"""
FastAPI Application Module

HTTP and realtime surface of the NextHire chat service: job seekers and
employers exchange direct messages with live delivery, typing indicators and
read receipts.

Key Features:
- REST gateway for conversations, history, offline send and unread counts
- WebSocket transport with per-user and per-pair rooms
- Structured logging and Prometheus metrics
- CORS and OpenTelemetry support

Both transports share one message store and one send path, so a message is
persisted once however it was sent and a missing live session never loses it.
"""

from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, Response, WebSocket, WebSocketDisconnect, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from prometheus_client import generate_latest
from structlog import get_logger

from ..config import Settings, configure_logging
from ..domain.errors import AuthError, ChatError
from ..metrics import CUSTOM_REGISTRY, ERRORS, REQUESTS
from ..realtime.coordinator import DeliveryCoordinator
from ..realtime.sessions import SessionManager
from ..repositories.base import MessageRepository, UserDirectory
from ..repositories.memory import InMemoryMessageRepository, InMemoryUserDirectory
from ..services.auth import TokenAuthenticator, bearer_token
from ..services.chat import ChatService
from ..services.message_store import MessageStore
from .routes import router

logger = get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handles app startup/shutdown"""
    logger.info("application_startup_complete")
    yield
    logger.info("application_shutdown_complete")


def create_app(
    settings: Optional[Settings] = None,
    users: Optional[UserDirectory] = None,
    repository: Optional[MessageRepository] = None,
) -> FastAPI:
    """Builds the app and wires its collaborators.

    The session manager is the notifier handed to the chat service, so REST
    sends reach live sessions without any process-wide socket handle.
    """
    settings = settings or Settings()
    configure_logging(settings.log_level)

    users = users or InMemoryUserDirectory(settings.seed_users)
    repository = repository or InMemoryMessageRepository()
    authenticator = TokenAuthenticator(settings, users)
    sessions = SessionManager(authenticator)
    store = MessageStore(repository, users, settings)
    chat = ChatService(store, sessions)

    app = FastAPI(
        title="NextHire Chat API",
        description="Direct messaging between job seekers and employers",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.users = users
    app.state.authenticator = authenticator
    app.state.sessions = sessions
    app.state.chat = chat
    app.state.coordinator = DeliveryCoordinator(sessions, chat)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.client_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Set up request tracing
    FastAPIInstrumentor.instrument_app(app)

    @app.middleware("http")
    async def logging_middleware(request: Request, call_next):
        """Tracks requests"""
        REQUESTS.inc()
        logger.info("request_started", method=request.method, path=request.url.path)
        try:
            return await call_next(request)
        except Exception as e:
            logger.error("request_failed", path=request.url.path, error=str(e))
            raise

    @app.exception_handler(ChatError)
    async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
        if exc.status_code >= 500:
            ERRORS.labels(operation=request.url.path).inc()
            logger.error("chat_request_error", path=request.url.path, error=str(exc))
            detail = "Internal server error"
        else:
            logger.warning(
                "chat_request_rejected",
                path=request.url.path,
                status_code=exc.status_code,
                error=str(exc),
            )
            detail = str(exc)
        return JSONResponse(
            status_code=exc.status_code, content={"success": False, "message": detail}
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'][1:]) or 'body'}: {error['msg']}"
            for error in exc.errors()
        )
        logger.warning("request_validation_failed", path=request.url.path, errors=problems)
        return JSONResponse(
            status_code=400, content={"success": False, "message": f"Invalid request: {problems}"}
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        ERRORS.labels(operation=request.url.path).inc()
        logger.error("unhandled_request_error", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=500, content={"success": False, "message": "Internal server error"}
        )

    app.include_router(router, prefix=settings.api_prefix)

    @app.websocket("/ws")
    async def realtime(websocket: WebSocket, token: Optional[str] = None):
        """Realtime transport; the token must validate before the socket is accepted"""
        token = token or bearer_token(websocket.headers.get("authorization"))
        try:
            user = await sessions.authenticate(token)
        except AuthError as e:
            logger.warning("handshake_rejected", error=str(e))
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

        await websocket.accept()
        session = sessions.open(websocket, user)
        coordinator: DeliveryCoordinator = app.state.coordinator
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                frame = message.get("text") or message.get("bytes")
                if frame:
                    await coordinator.dispatch(session, frame)
        except WebSocketDisconnect:
            pass
        finally:
            sessions.close(session)

    @app.get("/health")
    async def health():
        """Liveness probe"""
        return {"status": "ok"}

    @app.get("/metrics")
    async def metrics():
        """Provides Prometheus metrics for system monitoring"""
        return Response(generate_latest(CUSTOM_REGISTRY), media_type="text/plain")

    return app


app = create_app()


if __name__ == "__main__":
    settings = app.state.settings
    uvicorn.run(app, host=settings.host, port=settings.port)
