"""ZeroLink Relay Application.

This is the main entry point for the ZeroLink backend service: a real-time
messaging relay where authenticated clients chat in a shared global room or
in one-to-one threads.

Modules:
    - chat: WebSocket relay (sessions, rooms, dispatch) and read-only REST views
    - auth: Token verification (JWT or remote identity endpoint)
    - store: DuckDB persistence for users, conversations and messages
    - files: Media uploads
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from zerolink.auth.router import router as auth_router
from zerolink.chat.relay import get_relay, set_relay
from zerolink.chat.router import router as chat_router
from zerolink.config import get_config
from zerolink.files.router import router as files_router
from zerolink.files.service import BlobStorageService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# httpx/httpcore log every connection made by the remote verifier.
for _noisy in (
    "httpx",
    "httpcore",
    "httpcore.http11",
    "httpcore.connection",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    # Apply configured log level to root logger so that
    # `logging.level: "debug"` in zerolink.settings.yaml activates DEBUG output.
    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    relay = get_relay()
    BlobStorageService.get_instance(config.uploads)
    logger.info(
        f"Relay ready on http://{config.server.host}:{config.server.port} "
        f"(verifier={config.auth.verifier})"
    )

    yield  # Application runs here

    # Shutdown
    await relay.aclose()
    set_relay(None)
    logger.info("Application shutdown complete")


# Create FastAPI application with metadata
app = FastAPI(
    title="ZeroLink Relay",
    description="Real-time messaging relay with global and direct rooms",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().server.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register all routers
app.include_router(chat_router)
app.include_router(auth_router)
app.include_router(files_router)


@app.get("/")
async def root() -> str:
    return "ZeroLink Server Running"


@app.get("/api/health")
async def health() -> dict:
    """Health check endpoint.

    Returns:
        dict: Status object indicating the server is running.
    """
    return {"status": "ok"}
