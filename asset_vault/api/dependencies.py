"""Dependency injection for FastAPI."""

from typing import TYPE_CHECKING

from fastapi import Depends, Request

from asset_vault.backup.models import Identity
from .config import settings
from .exceptions import ForbiddenError, UnauthorizedError

if TYPE_CHECKING:
    from asset_vault.backup import BackupManager


async def get_backup_manager(request: Request) -> "BackupManager":
    """Get BackupManager instance from app state."""
    return request.app.state.backup_manager


async def get_caller_identity(request: Request) -> Identity:
    """Identity established by the upstream auth layer."""
    identity = getattr(request.state, "identity", None)
    if identity is None:
        raise UnauthorizedError("Authentication required")
    if isinstance(identity, dict):
        identity = Identity(**identity)
    return identity


async def require_restore_role(identity: Identity = Depends(get_caller_identity)) -> Identity:
    """Only allowed roles may overwrite data."""
    if identity.role not in settings.restore_roles:
        raise ForbiddenError(f"Restore requires one of the roles: {', '.join(settings.restore_roles)}")
    return identity
