"""Pydantic models for API requests and responses."""

from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime

from asset_vault.backup.models import RestoreReport, VerificationSummary


class RestoreRequest(BaseModel):
    backup_data: Optional[Dict[str, Any]] = Field(None, description="Backup document as produced by the export endpoint")
    confirm_restore: bool = False
    restore_files: bool = True


class RestoreResponse(BaseModel):
    success: bool
    message: str
    restored_from: Optional[str] = None
    report: RestoreReport


class ArchiveResponse(BaseModel):
    success: bool = True
    name: str
    path: str
    size_bytes: int
    checksum: str
    summary: VerificationSummary
    deleted: List[str] = Field(default_factory=list)


class BackupInfo(BaseModel):
    name: str
    created_at: datetime
    size_bytes: Optional[int] = None


class MessageResponse(BaseModel):
    message: str
