"""Restore an artifact into the entity store and the path store."""

import asyncio
from typing import Dict, Iterable, List, Optional

import networkx as nx

from .._utils import guess_mime_type, logger
from ..base import BaseEntityStore, BasePathStore, CollectionSchema
from .exceptions import RestoreOrderError, RowConflict, UploadFailure
from .models import (
    AssetReference,
    BackendHint,
    BackupArtifact,
    DownloadOutcome,
    DownloadStatus,
    RestoreFailure,
    RestoreReport,
)
from .utils import http_restore_path, split_record_path_key


def creation_order(collection_names: Iterable[str], schemas: Dict[str, CollectionSchema]) -> List[str]:
    """Order collections so every dependency is created before its dependents.

    Collections with a schema are sorted topologically (ties broken by name);
    collections without one follow in their given order. Dependencies on
    collections that are not being restored are ignored.

    Raises:
        RestoreOrderError: The declared dependencies contain a cycle
    """
    names = list(collection_names)
    known = [name for name in names if name in schemas]

    graph = nx.DiGraph()
    graph.add_nodes_from(known)
    for name in known:
        for dependency in schemas[name].depends_on:
            if dependency in graph and dependency != name:
                graph.add_edge(dependency, name)

    try:
        ordered = list(nx.lexicographical_topological_sort(graph))
    except nx.NetworkXUnfeasible as e:
        cycle = [edge[0] for edge in nx.find_cycle(graph)]
        raise RestoreOrderError(f"Dependency cycle between collections: {' -> '.join(cycle)}") from e

    return ordered + [name for name in names if name not in schemas]


class RestoreEngine:
    """Recreate records and re-upload embedded files.

    Rows are inserted in dependency order. A row that already exists counts
    as restored, so running the same restore twice is harmless. Files are
    uploaded to the path store; when a file ends up with a different locator
    than it had before, every record that referenced it is rewritten.
    """

    def __init__(
        self,
        entity_store: BaseEntityStore,
        path_store: Optional[BasePathStore],
        restore_prefix: str = "/restored",
    ):
        self.entity_store = entity_store
        self.path_store = path_store
        self.restore_prefix = restore_prefix

    async def restore(
        self,
        artifact: BackupArtifact,
        restore_files: bool = True,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> RestoreReport:
        """Restore an artifact.

        Args:
            artifact: Decoded artifact; it is never modified
            restore_files: Re-upload embedded files and fix references
            cancel_event: Stops the restore at the next row or file

        Returns:
            RestoreReport with per-collection counts and every failure

        Raises:
            RestoreOrderError: Before any write, when dependencies are cyclic
        """
        order = creation_order(artifact.collections.keys(), self.entity_store.schemas())
        report = RestoreReport()
        logger.info(f"[{artifact.backup_id}] Restoring {len(order)} collections: {', '.join(order)}")

        for name in order:
            if not await self._restore_collection(name, artifact.collections[name].rows, report, cancel_event):
                return self._aborted(artifact, report)

        if restore_files:
            if self.path_store is None:
                logger.warning("No path store configured, skipping file restore")
            else:
                for outcome in artifact.outcomes_by_locator().values():
                    if _is_set(cancel_event):
                        return self._aborted(artifact, report)
                    await self._restore_file(outcome, artifact, report)

        logger.info(
            f"[{artifact.backup_id}] Restore complete: "
            f"{sum(report.records_restored.values())} records, {report.files_restored} files restored, "
            f"{report.files_failed} files failed, {report.files_skipped} skipped"
        )
        return report

    async def _restore_collection(
        self,
        name: str,
        rows: List[dict],
        report: RestoreReport,
        cancel_event: Optional[asyncio.Event],
    ) -> bool:
        report.records_restored.setdefault(name, 0)
        report.records_failed.setdefault(name, 0)
        primary_key = self._primary_key(name)

        for row in rows:
            if _is_set(cancel_event):
                return False
            try:
                await self.entity_store.insert(name, row)
            except RowConflict:
                logger.debug(f"{name} row {row.get(primary_key)} already exists")
            except Exception as e:
                report.records_failed[name] += 1
                report.failures.append(RestoreFailure(
                    kind="row",
                    collection=name,
                    key=_key_str(row.get(primary_key)),
                    error=str(e) or type(e).__name__,
                ))
                logger.warning(f"Failed to restore {name} row {row.get(primary_key)}: {e}")
                continue
            report.records_restored[name] += 1

        logger.info(f"Restored {name}: {report.records_restored[name]}/{len(rows)} records")
        return True

    async def _restore_file(self, outcome: DownloadOutcome, artifact: BackupArtifact, report: RestoreReport) -> None:
        locator = outcome.locator
        if outcome.status != DownloadStatus.OK:
            report.files_skipped += 1
            return

        target = self.target_path(outcome.reference)
        if target is None:
            report.files_skipped += 1
            return

        try:
            result = await self.path_store.upload(
                target, outcome.data, outcome.mime_type or guess_mime_type(target)
            )
        except Exception as e:
            failure = e if isinstance(e, UploadFailure) else UploadFailure(target, e)
            report.files_failed += 1
            report.failures.append(RestoreFailure(kind="upload", locator=locator, error=str(failure)))
            logger.warning(f"Failed to restore file {locator}: {failure}")
            return

        new_locator = result.locator
        if new_locator != locator and not await self._rewrite_references(locator, new_locator, artifact, report):
            report.files_failed += 1
            return

        report.files_restored += 1
        logger.debug(f"Restored file {locator} -> {new_locator}")

    async def _rewrite_references(
        self,
        old_locator: str,
        new_locator: str,
        artifact: BackupArtifact,
        report: RestoreReport,
    ) -> bool:
        ok = True
        for key, outcome in artifact.files.items():
            if outcome.locator != old_locator:
                continue
            collection, row_key, field_name = split_record_path_key(key)
            try:
                await self.entity_store.update_field(collection, row_key, field_name, new_locator)
            except Exception as e:
                ok = False
                report.failures.append(RestoreFailure(
                    kind="reference",
                    collection=collection,
                    key=row_key,
                    locator=old_locator,
                    error=str(e) or type(e).__name__,
                ))
                logger.warning(f"Failed to point {key} at {new_locator}: {e}")
        return ok

    def target_path(self, reference: AssetReference) -> Optional[str]:
        """Where a file is uploaded on restore."""
        if reference.backend_hint == BackendHint.PATH_STORE:
            return reference.path
        if reference.backend_hint == BackendHint.HTTP_STORE:
            return http_restore_path(reference.path, self.restore_prefix)
        return None

    def _primary_key(self, name: str) -> str:
        schema = self.entity_store.schemas().get(name)
        return schema.primary_key if schema else "id"

    def _aborted(self, artifact: BackupArtifact, report: RestoreReport) -> RestoreReport:
        report.aborted = True
        logger.warning(f"[{artifact.backup_id}] Restore cancelled")
        return report


def _is_set(event: Optional[asyncio.Event]) -> bool:
    return event is not None and event.is_set()


def _key_str(value) -> Optional[str]:
    return None if value is None else str(value)
