"""FastAPI application for asset-vault."""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from asset_vault.backup import BackupManager
from asset_vault.backup.models import Identity
from asset_vault.config import VaultConfig
from asset_vault._storage import StorageFactory
from asset_vault._storage.entity_json import JsonEntityStore
from .config import settings
from .routers import backup

# Configure asset-vault logger with app-managed pattern
# This ensures INFO logs are visible regardless of uvicorn's logging config
import sys
import os

vault_logger = logging.getLogger("asset-vault")
vault_logger.setLevel(logging.INFO)

# App-managed pattern: attach our own handler and don't propagate
vault_logger.propagate = False

# Clear any existing handlers to avoid duplicates
vault_logger.handlers.clear()

console_handler = logging.StreamHandler(sys.stdout)
console_handler.setLevel(logging.INFO)

formatter = logging.Formatter(
    '%(asctime)s - [%(name)s] - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
console_handler.setFormatter(formatter)
vault_logger.addHandler(console_handler)

# Optional: Allow disabling app-managed logging via env var for production
if os.getenv("DISABLE_APP_LOGGING", "false").lower() == "true":
    vault_logger.handlers.clear()
    vault_logger.propagate = True  # Fall back to server-managed pattern

logger = logging.getLogger(__name__)


def build_backup_manager(config: VaultConfig) -> BackupManager:
    """Wire stores and the manager from configuration.

    Raises:
        ConfigurationError: A required storage setting is missing
    """
    path_store = StorageFactory.create_path_store(config.storage)
    http_fetcher = StorageFactory.create_http_fetcher(config.storage, chunk_size=config.downloader.chunk_size)
    entity_store = JsonEntityStore(config.entity_dir)
    return BackupManager(entity_store, path_store, http_fetcher, config)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage BackupManager lifecycle."""
    logger.info("Initializing asset-vault...")

    config = VaultConfig.from_env()

    # Misconfigured storage must stop startup rather than degrade silently
    try:
        app.state.backup_manager = build_backup_manager(config)
        logger.info(
            f"asset-vault initialized (path backend: {config.storage.path_backend}, "
            f"archive folder: {config.archive.folder}, keep {config.archive.retention_count})"
        )
    except Exception as e:
        logger.error(f"Failed to initialize asset-vault: {e}")
        raise

    yield

    logger.info("Shutting down asset-vault...")
    await app.state.backup_manager.close()


async def identity_from_headers(request: Request, call_next):
    """Populate request.state.identity from headers set by a trusted proxy."""
    user_id = request.headers.get("x-user-id")
    if user_id:
        request.state.identity = Identity(
            id=user_id,
            email=request.headers.get("x-user-email"),
            name=request.headers.get("x-user-name"),
            role=request.headers.get("x-user-role"),
        )
    return await call_next(request)


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
        docs_url=f"{settings.api_prefix}/docs",
        openapi_url=f"{settings.api_prefix}/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if settings.trust_identity_headers:
        app.middleware("http")(identity_from_headers)

    app.include_router(backup.router, prefix=settings.api_prefix)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": settings.api_title,
            "version": settings.api_version,
            "docs": f"{settings.api_prefix}/docs"
        }

    return app


# Create default app instance
app = create_app()
