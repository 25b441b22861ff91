"""Backup and restore API endpoints."""

import hmac
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, File, Header, HTTPException, Query, UploadFile
from fastapi.responses import JSONResponse, Response, StreamingResponse

from ..config import settings
from ..dependencies import get_backup_manager, get_caller_identity, require_restore_role
from ..exceptions import BackupNotFoundError, InvalidBackupError, StorageUnavailableError, UnauthorizedError
from ..models import ArchiveResponse, BackupInfo, MessageResponse, RestoreRequest, RestoreResponse
from asset_vault.backup import BackupManager
from asset_vault.backup.codec import EncodeMode, artifact_from_document, decode, iter_encode
from asset_vault.backup.exceptions import CollectionReadFailure, CorruptArtifactError, RestoreOrderError
from asset_vault.backup.models import BackupArtifact, Identity, VerificationSummary
from asset_vault._utils import logger

router = APIRouter(prefix="/backup", tags=["backup"])


def summary_headers(summary: VerificationSummary) -> Dict[str, str]:
    return {
        "X-Backup-Total-Files": str(summary.total_assets),
        "X-Backup-Success-Files": str(summary.success_count),
        "X-Backup-Failed-Files": str(summary.failed_count),
        "X-Backup-Skipped-Files": str(summary.skipped_count),
    }


def _check_cron_secret(secret: Optional[str], authorization: Optional[str]) -> None:
    expected = settings.cron_secret
    if not expected:
        raise UnauthorizedError("Cron secret not configured")

    provided = secret
    if provided is None and authorization and authorization.startswith("Bearer "):
        provided = authorization[len("Bearer "):]

    if provided is None or not hmac.compare_digest(provided.encode(), expected.encode()):
        raise UnauthorizedError()


@router.post("/cron", response_model=ArchiveResponse)
async def cron_backup(
    secret: Optional[str] = Query(None),
    authorization: Optional[str] = Header(None),
    backup_manager: BackupManager = Depends(get_backup_manager),
) -> JSONResponse:
    """Scheduled backup: archive a compressed artifact and apply retention."""
    _check_cron_secret(secret, authorization)

    try:
        result = await backup_manager.archive_backup(created_by=Identity(id="cron", name="Scheduled backup"))
    except CollectionReadFailure as e:
        logger.error(f"Scheduled backup failed: {e}")
        raise StorageUnavailableError(str(e))

    body = ArchiveResponse(
        name=result.name,
        path=result.path,
        size_bytes=result.size_bytes,
        checksum=result.checksum,
        summary=result.summary,
        deleted=result.deleted,
    )
    return JSONResponse(content=body.model_dump(mode="json"), headers=summary_headers(result.summary))


@router.get("/export")
async def export_backup(
    compressed: bool = Query(False, description="gzip the document"),
    identity: Identity = Depends(get_caller_identity),
    backup_manager: BackupManager = Depends(get_backup_manager),
) -> StreamingResponse:
    """Download a complete backup with every file embedded."""
    try:
        artifact = await backup_manager.create_backup(created_by=identity, mode="manual")
    except CollectionReadFailure as e:
        logger.error(f"Export failed: {e}")
        raise StorageUnavailableError(str(e))

    mode = EncodeMode.COMPRESSED if compressed else EncodeMode.PLAIN
    filename = f"{artifact.backup_id}.json" + (".gz" if compressed else "")
    headers = summary_headers(artifact.summary)
    headers["Content-Disposition"] = f"attachment; filename={filename}"

    return StreamingResponse(
        iter_encode(artifact, mode),
        media_type="application/gzip" if compressed else "application/json",
        headers=headers,
    )


async def _restore(
    artifact: BackupArtifact,
    restore_files: bool,
    backup_manager: BackupManager,
) -> RestoreResponse:
    try:
        report = await backup_manager.restore_backup(artifact, restore_files=restore_files)
    except RestoreOrderError as e:
        raise HTTPException(status_code=500, detail=str(e))

    return RestoreResponse(
        success=report.complete,
        message="Backup restored" if report.complete else "Backup restored with failures",
        restored_from=artifact.created_at.isoformat(),
        report=report,
    )


@router.post("/restore", response_model=RestoreResponse)
async def restore_backup(
    request: RestoreRequest,
    identity: Identity = Depends(require_restore_role),
    backup_manager: BackupManager = Depends(get_backup_manager),
) -> RestoreResponse:
    """Restore from a backup document posted as JSON."""
    if not request.confirm_restore:
        raise InvalidBackupError("Confirmation required - set confirm_restore: true")

    try:
        artifact = artifact_from_document(request.backup_data)
    except CorruptArtifactError as e:
        raise InvalidBackupError(str(e))

    logger.info(f"Restore of {artifact.backup_id} requested by {identity.email or identity.id}")
    return await _restore(artifact, request.restore_files, backup_manager)


@router.post("/restore/upload", response_model=RestoreResponse)
async def restore_backup_upload(
    file: UploadFile = File(...),
    confirm_restore: bool = Query(False),
    restore_files: bool = Query(True),
    identity: Identity = Depends(require_restore_role),
    backup_manager: BackupManager = Depends(get_backup_manager),
) -> RestoreResponse:
    """Restore from an uploaded backup file, compressed or plain."""
    if not confirm_restore:
        raise InvalidBackupError("Confirmation required - set confirm_restore=true")

    content = await file.read()
    logger.info(f"Uploaded backup file: {file.filename} ({len(content):,} bytes)")

    try:
        artifact = decode(content)
    except CorruptArtifactError as e:
        raise InvalidBackupError(str(e))

    logger.info(f"Restore of {artifact.backup_id} requested by {identity.email or identity.id}")
    return await _restore(artifact, restore_files, backup_manager)


@router.get("", response_model=List[BackupInfo])
async def list_backups(
    identity: Identity = Depends(get_caller_identity),
    backup_manager: BackupManager = Depends(get_backup_manager),
) -> List[BackupInfo]:
    """List archived backups, newest first."""
    backups = await backup_manager.list_backups()
    return [BackupInfo(name=b.name, created_at=b.created_at, size_bytes=b.size_bytes) for b in backups]


@router.get("/{name}/download")
async def download_backup(
    name: str,
    identity: Identity = Depends(get_caller_identity),
    backup_manager: BackupManager = Depends(get_backup_manager),
) -> Response:
    """Download an archived backup."""
    try:
        content = await backup_manager.download_backup(name)
    except (FileNotFoundError, ValueError):
        raise BackupNotFoundError(name)

    return Response(
        content=content,
        media_type="application/gzip",
        headers={"Content-Disposition": f"attachment; filename={name}"},
    )


@router.delete("/{name}", response_model=MessageResponse)
async def delete_backup(
    name: str,
    identity: Identity = Depends(get_caller_identity),
    backup_manager: BackupManager = Depends(get_backup_manager),
) -> MessageResponse:
    """Delete an archived backup."""
    try:
        deleted = await backup_manager.delete_backup(name)
    except ValueError:
        raise BackupNotFoundError(name)

    if not deleted:
        raise BackupNotFoundError(name)

    return MessageResponse(message=f"Backup deleted: {name}")
