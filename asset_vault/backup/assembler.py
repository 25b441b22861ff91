"""Assemble entity snapshots and their files into a backup artifact."""

import asyncio
import time
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .._utils import logger, utc_now, human_size
from ..base import BaseEntityStore, CollectionSchema
from .classifier import DEFAULT_DOMAIN_MARKERS, classify
from .downloader import CANCELLED_ERROR, BoundedDownloader
from .exceptions import CollectionReadFailure
from .models import (
    AssetReference,
    BackendHint,
    BackupArtifact,
    DownloadOutcome,
    DownloadStatus,
    EntityCollectionSnapshot,
    FailedFile,
    Identity,
    SkippedFile,
    VerificationSummary,
)
from .utils import generate_backup_id, record_path_key

KEYLESS_ROW_MARKER = "#"


class BackupAssembler:
    """Walk every collection, download referenced files, build the artifact."""

    def __init__(
        self,
        entity_store: Optional[BaseEntityStore],
        downloader: BoundedDownloader,
        domain_markers: Iterable[str] = DEFAULT_DOMAIN_MARKERS,
    ):
        self.entity_store = entity_store
        self.downloader = downloader
        self.domain_markers = tuple(domain_markers)

    async def build_backup(
        self,
        created_by: Optional[Identity] = None,
        mode: str = "manual",
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BackupArtifact:
        """Read the whole dataset and assemble a backup.

        Raises:
            CollectionReadFailure: A collection could not be read. No artifact
                is produced.
        """
        snapshots = await self.read_collections()
        return await self.assemble(
            snapshots,
            created_by=created_by,
            mode=mode,
            schemas=self.entity_store.schemas(),
            cancel_event=cancel_event,
        )

    async def read_collections(self) -> List[EntityCollectionSnapshot]:
        """Read every row of every collection, untouched."""
        if self.entity_store is None:
            raise CollectionReadFailure("*", RuntimeError("no entity store configured"))

        try:
            names = await self.entity_store.collection_names()
        except Exception as e:
            raise CollectionReadFailure("*", e) from e

        snapshots = []
        for name in names:
            try:
                rows = await self.entity_store.read_all(name)
            except Exception as e:
                logger.error(f"Could not read collection {name}: {e}")
                raise CollectionReadFailure(name, e) from e
            snapshots.append(EntityCollectionSnapshot(name=name, rows=list(rows)))
            logger.info(f"Exported {name}: {len(rows)} records")

        return snapshots

    async def assemble(
        self,
        snapshots: Sequence[EntityCollectionSnapshot],
        created_by: Optional[Identity] = None,
        mode: str = "manual",
        schemas: Optional[Dict[str, CollectionSchema]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BackupArtifact:
        """Build an artifact from already-read snapshots.

        Args:
            snapshots: Collections to include verbatim
            created_by: Identity of whoever triggered the backup
            mode: Trigger mode recorded in the artifact (cron, manual, ...)
            schemas: Per-collection asset reference fields
            cancel_event: Aborts outstanding downloads when set

        Returns:
            BackupArtifact whose ``files`` covers every discovered reference
        """
        backup_id = generate_backup_id()
        started_at = utc_now()
        started = time.monotonic()
        schemas = schemas or {}

        collections: Dict[str, EntityCollectionSnapshot] = {snapshot.name: snapshot for snapshot in snapshots}

        references, keys_by_locator = self._discover_references(collections, schemas)
        logger.info(
            f"[{backup_id}] Found {len(references)} distinct assets "
            f"across {len(collections)} collections"
        )
        self.downloader.hooks.emit(
            "on_start", total_assets=len(references), total_collections=len(collections)
        )

        outcomes = await self.downloader.download_all(references, cancel_event=cancel_event)

        files: Dict[str, DownloadOutcome] = {}
        for outcome in outcomes:
            for key in keys_by_locator[outcome.locator]:
                files[key] = outcome

        finished_at = utc_now()
        summary = build_summary(
            outcomes,
            started_at=started_at,
            finished_at=finished_at,
            duration_ms=int((time.monotonic() - started) * 1000),
            aborted=cancel_event is not None and cancel_event.is_set(),
        )
        self.downloader.hooks.emit("on_complete", summary=summary)

        logger.info(
            f"[{backup_id}] Backup completed: {summary.success_count}/{summary.total_assets} files "
            f"({summary.failed_count} failed, {summary.skipped_count} skipped, "
            f"{human_size(summary.total_bytes)}, {summary.duration_ms / 1000:.1f}s)"
        )

        return BackupArtifact(
            backup_id=backup_id,
            created_at=started_at,
            created_by=created_by or Identity(),
            mode=mode,
            collections=collections,
            files=files,
            summary=summary,
        )

    def _discover_references(
        self,
        collections: Dict[str, EntityCollectionSnapshot],
        schemas: Dict[str, CollectionSchema],
    ) -> Tuple[List[AssetReference], Dict[str, List[str]]]:
        references: Dict[str, AssetReference] = {}
        keys_by_locator: Dict[str, List[str]] = {}

        for name, snapshot in collections.items():
            schema = schemas.get(name)
            if schema is None or not schema.asset_fields:
                continue
            for index, row in enumerate(snapshot.rows):
                row_key = row.get(schema.primary_key)
                if row_key is None:
                    # Positional keys are marked so they never match a real primary key
                    row_key = f"{KEYLESS_ROW_MARKER}{index}"
                for field_name in schema.asset_fields:
                    locator = row.get(field_name)
                    if locator is None or locator == "":
                        continue
                    locator = str(locator)
                    if locator not in references:
                        references[locator] = classify(locator, self.domain_markers)
                    keys_by_locator.setdefault(locator, []).append(
                        record_path_key(name, row_key, field_name)
                    )

        return list(references.values()), keys_by_locator


def build_summary(
    outcomes: Iterable[DownloadOutcome],
    started_at=None,
    finished_at=None,
    duration_ms: int = 0,
    aborted: bool = False,
) -> VerificationSummary:
    """Fold download outcomes into a verification summary."""
    success_count = 0
    total_bytes = 0
    failed: List[FailedFile] = []
    skipped: List[SkippedFile] = []

    for outcome in outcomes:
        if outcome.status == DownloadStatus.OK:
            success_count += 1
            total_bytes += outcome.size_bytes or 0
        elif outcome.status == DownloadStatus.TOO_LARGE:
            skipped.append(SkippedFile(locator=outcome.locator, size_bytes=outcome.size_bytes))
        else:
            failed.append(FailedFile(
                locator=outcome.locator,
                reason=failure_reason(outcome),
                attempts=outcome.attempts,
                error=outcome.error,
            ))

    if aborted:
        status = "aborted"
    elif not failed:
        status = "success"
    elif success_count > 0:
        status = "degraded"
    else:
        status = "failed"

    return VerificationSummary(
        total_assets=success_count + len(failed) + len(skipped),
        success_count=success_count,
        failed_files=failed,
        skipped_files=skipped,
        total_bytes=total_bytes,
        status=status,
        started_at=started_at,
        finished_at=finished_at,
        duration_ms=duration_ms,
    )


def failure_reason(outcome: DownloadOutcome) -> str:
    if outcome.status == DownloadStatus.TIMEOUT:
        return "timeout"
    if outcome.status == DownloadStatus.NOT_FOUND:
        return "not_found"
    if outcome.error == CANCELLED_ERROR:
        return "cancelled"
    if outcome.reference.backend_hint == BackendHint.UNKNOWN:
        return "unclassified"
    return "backend_error"
