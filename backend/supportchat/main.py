"""Support Chat Backend Application.

This is the main entry point for the support chat service: customers
chat in real time with the single support admin.

Modules:
    - chat: WebSocket event surface, message lifecycle, broadcast router
    - store: DuckDB persistence for users and messages
    - users: Customer login and chat context
    - admin: Dashboard summary and customer management
    - uploads: Image uploads referenced by image messages
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from supportchat import __version__
from supportchat.admin.router import router as admin_router
from supportchat.chat.broadcast import BroadcastRouter
from supportchat.chat.router import router as chat_router
from supportchat.chat.service import ChatService, set_chat_service
from supportchat.config import get_config
from supportchat.store.service import MessageStore
from supportchat.uploads.router import router as uploads_router
from supportchat.uploads.service import ImageStorageService
from supportchat.users.router import router as users_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# uvicorn access logs every upload and page hit
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    store = MessageStore.get_instance(db_path=config.store.db_path)
    admin = store.ensure_admin(config.chat.admin_username)
    logger.info(f"Message store ready at {config.store.db_path} (admin={admin.id})")

    ImageStorageService.get_instance(
        upload_dir=config.uploads.directory,
        url_prefix=config.uploads.url_prefix,
        max_size_bytes=config.uploads.max_file_size_bytes,
    )

    broadcast_router = BroadcastRouter()
    broadcast_router.start()
    set_chat_service(ChatService(
        store,
        broadcast_router,
        lock_edit_after_delete=config.chat.lock_edit_after_delete,
        history_limit=config.chat.history_limit,
    ))

    yield  # Application runs here

    # Shutdown
    broadcast_router.close()
    set_chat_service(None)
    ImageStorageService.reset_instance()
    MessageStore.reset_instance()
    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    """Build the FastAPI application from the current settings."""
    config = get_config()

    app = FastAPI(
        title="Support Chat API",
        description="Real-time customer support chat backend",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register all routers
    app.include_router(chat_router)
    app.include_router(users_router)
    app.include_router(admin_router)
    app.include_router(uploads_router)

    app.mount(
        config.uploads.url_prefix,
        StaticFiles(directory=config.uploads.directory, check_dir=False),
        name="uploads",
    )

    @app.get("/health")
    async def health() -> dict:
        """Health check endpoint.

        Returns:
            dict: Status object indicating the server is running.
        """
        return {"status": "ok"}

    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    config = get_config()
    uvicorn.run(
        "supportchat.main:app",
        host=config.server.host,
        port=config.server.port,
        log_level=config.logging.level,
    )
