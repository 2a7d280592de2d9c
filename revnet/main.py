from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from revnet.api.health import router as health_router
from revnet.api.websocket import router as websocket_router
from revnet.core.config import settings
from revnet.core.logging import setup_logging
from revnet.database import AsyncSessionLocal, close_db, init_db
from revnet.services import DMService, FriendshipService, MembershipService, MessageService
from revnet.utils.auth import JWTAuthVerifier
from revnet.websockets.connection_manager import ConnectionManager
from revnet.websockets.handlers import WebSocketMessageHandler


def build_gateway(session_factory=AsyncSessionLocal):
    """Connection manager and handler wired to the SQL-backed services"""
    membership = MembershipService(session_factory)
    manager = ConnectionManager(
        auth_verifier=JWTAuthVerifier(),
        membership_store=membership,
        authorization=membership,
    )
    handler = WebSocketMessageHandler(
        manager,
        channels=membership,
        messages=MessageService(session_factory),
        friends=FriendshipService(session_factory),
        dms=DMService(session_factory),
    )
    return manager, handler


def create_app(
    connection_manager: Optional[ConnectionManager] = None,
    message_handler: Optional[WebSocketMessageHandler] = None,
    manage_database: bool = True,
    configure_logging: bool = True
) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        if configure_logging:
            setup_logging()
        if manage_database:
            await init_db()
        yield
        # Shutdown
        if manage_database:
            await close_db()

    if connection_manager is None or message_handler is None:
        connection_manager, message_handler = build_gateway()

    app = FastAPI(title="RevNet Gateway", lifespan=lifespan)
    app.state.connection_manager = connection_manager
    app.state.message_handler = message_handler

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(websocket_router)
    return app


app = create_app()
