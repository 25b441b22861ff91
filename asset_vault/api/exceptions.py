"""Custom exceptions for FastAPI application."""

from fastapi import HTTPException
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_503_SERVICE_UNAVAILABLE,
)


class VaultAPIError(HTTPException):
    """Base exception for asset-vault API errors."""
    pass


class BackupNotFoundError(VaultAPIError):
    def __init__(self, name: str):
        super().__init__(HTTP_404_NOT_FOUND, f"Backup not found: {name}")


class InvalidBackupError(VaultAPIError):
    def __init__(self, detail: str):
        super().__init__(HTTP_400_BAD_REQUEST, detail)


class UnauthorizedError(VaultAPIError):
    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(HTTP_401_UNAUTHORIZED, detail)


class ForbiddenError(VaultAPIError):
    def __init__(self, detail: str):
        super().__init__(HTTP_403_FORBIDDEN, detail)


class StorageUnavailableError(VaultAPIError):
    def __init__(self, detail: str):
        super().__init__(HTTP_503_SERVICE_UNAVAILABLE, detail)
