"""Serialize backup artifacts to a single self-describing JSON document.

Wire format (version 3.0):

    {
      "timestamp": "...", "type": "complete", "version": "3.0",
      "backup_id": "...", "mode": "cron", "created_by": {...},
      "data": {
        "<collection>": [rows...],
        "assets": [{"locator", "backend", "path", "status", "mime_type",
                    "size_bytes", "attempts", "error", "content", "records"}]
      },
      "summary": {...}
    }

``content`` is base64 for downloaded files and null otherwise. ``records``
lists every record path key that references the locator.

A collection named ``assets`` is written under an escaped key, and the
header's ``renamed_collections`` maps that key back to the real name.
"""

import base64
import binascii
import gzip
import json
import zlib
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional

from pydantic import ValidationError

from .._utils import logger
from .assembler import build_summary
from .classifier import classify
from .exceptions import CorruptArtifactError
from .models import (
    AssetReference,
    BackupArtifact,
    DownloadOutcome,
    DownloadStatus,
    EntityCollectionSnapshot,
    VerificationSummary,
)
from .utils import record_path_key

FORMAT_VERSION = "3.0"
SUPPORTED_VERSIONS = ("2.0", "3.0")
ARTIFACT_TYPE = "complete"
GZIP_MAGIC = b"\x1f\x8b"

# Key under "data" that holds embedded files
ASSETS_KEY = "assets"
# Legacy documents link files to the url field of their Asset rows
LEGACY_ASSET_FIELD = "url"


class EncodeMode(str, Enum):
    COMPRESSED = "compressed"
    PLAIN = "plain"


def _dumps(value: Any) -> str:
    return json.dumps(value, default=str, ensure_ascii=False)


def _asset_entry(outcome: DownloadOutcome, records: List[str]) -> Dict[str, Any]:
    content = None
    if outcome.status == DownloadStatus.OK:
        content = base64.b64encode(outcome.data).decode("ascii")
    return {
        "locator": outcome.locator,
        "backend": outcome.reference.backend_hint.value,
        "path": outcome.reference.path,
        "status": outcome.status.value,
        "mime_type": outcome.mime_type,
        "size_bytes": outcome.size_bytes,
        "attempts": outcome.attempts,
        "error": outcome.error,
        "content": content,
        "records": records,
    }


def _collection_keys(names: Iterable[str]) -> Dict[str, str]:
    """Wire key for every collection name.

    A collection that shares its name with ``ASSETS_KEY`` is written under an
    underscore-prefixed key that no other collection uses.
    """
    names = list(names)
    keys = {name: name for name in names}
    if ASSETS_KEY in keys:
        escaped = f"_{ASSETS_KEY}"
        while escaped in keys:
            escaped = f"_{escaped}"
        keys[ASSETS_KEY] = escaped
    return keys


def _header(artifact: BackupArtifact, renamed: Dict[str, str]) -> Dict[str, Any]:
    header = {
        "timestamp": artifact.created_at.isoformat(),
        "type": ARTIFACT_TYPE,
        "version": FORMAT_VERSION,
        "backup_id": artifact.backup_id,
        "mode": artifact.mode,
        "created_by": artifact.created_by.model_dump(mode="json"),
    }
    if renamed:
        header["renamed_collections"] = renamed
    return header


def _iter_json(artifact: BackupArtifact) -> Iterator[str]:
    keys = _collection_keys(artifact.collections.keys())
    renamed = {key: name for name, key in keys.items() if key != name}

    header = _dumps(_header(artifact, renamed))
    # Reopen the header object so data and summary can be streamed into it
    yield header[:-1] + ', "data": {'

    for name, snapshot in artifact.collections.items():
        yield f"{_dumps(keys[name])}: {_dumps(snapshot.rows)}, "

    yield f'"{ASSETS_KEY}": ['
    keys_by_locator = artifact.keys_by_locator()
    for index, (locator, outcome) in enumerate(artifact.outcomes_by_locator().items()):
        prefix = ", " if index else ""
        yield prefix + _dumps(_asset_entry(outcome, keys_by_locator[locator]))
    yield "]}"

    yield f', "summary": {_dumps(artifact.summary.model_dump(mode="json"))}}}'


def iter_encode(artifact: BackupArtifact, mode: EncodeMode = EncodeMode.COMPRESSED) -> Iterator[bytes]:
    """Encode an artifact incrementally.

    Embedded files are base64-encoded one at a time, so the whole encoded
    document never has to sit in memory at once.

    Args:
        artifact: Artifact to encode
        mode: COMPRESSED for gzip, PLAIN for UTF-8 JSON

    Yields:
        Chunks of the encoded document
    """
    mode = EncodeMode(mode)
    if mode == EncodeMode.PLAIN:
        for piece in _iter_json(artifact):
            yield piece.encode("utf-8")
        return

    # wbits=31 selects the gzip container
    compressor = zlib.compressobj(level=6, wbits=31)
    for piece in _iter_json(artifact):
        compressed = compressor.compress(piece.encode("utf-8"))
        if compressed:
            yield compressed
    yield compressor.flush()


def encode(artifact: BackupArtifact, mode: EncodeMode = EncodeMode.COMPRESSED) -> bytes:
    """Encode an artifact into one bytes object."""
    data = b"".join(iter_encode(artifact, mode))
    logger.debug(f"Encoded {artifact.backup_id} ({EncodeMode(mode).value}): {len(data):,} bytes")
    return data


def artifact_to_document(artifact: BackupArtifact) -> Dict[str, Any]:
    """The wire document as a plain dict."""
    return json.loads("".join(_iter_json(artifact)))


def decode(data: bytes) -> BackupArtifact:
    """Decode an encoded artifact, compressed or plain.

    Raises:
        CorruptArtifactError: Truncated or corrupt input, invalid JSON, or a
            document that is not a complete backup
    """
    if data[:2] == GZIP_MAGIC:
        try:
            data = gzip.decompress(data)
        except (OSError, EOFError, zlib.error) as e:
            raise CorruptArtifactError(f"Corrupt gzip stream: {e}") from e

    try:
        document = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise CorruptArtifactError(f"Invalid JSON document: {e}") from e

    return artifact_from_document(document)


def artifact_from_document(document: Any) -> BackupArtifact:
    """Rebuild an artifact from its wire document.

    Version 2.0 documents keep the Asset table under ``data.assets`` and the
    embedded files in a top-level ``files`` map of asset id to
    ``{content, originalUrl, mimeType, size}``; both layouts are accepted.

    Raises:
        CorruptArtifactError: The document does not have the expected shape
    """
    if not isinstance(document, dict) or not isinstance(document.get("data"), dict):
        raise CorruptArtifactError("Invalid backup format - missing data section")

    metadata = document.get("metadata")
    includes_files = isinstance(metadata, dict) and metadata.get("includes_files") is True
    if (
        document.get("version") not in SUPPORTED_VERSIONS
        and document.get("type") != ARTIFACT_TYPE
        and not includes_files
    ):
        raise CorruptArtifactError(
            f"Invalid backup format - expected complete backup {' or '.join(SUPPORTED_VERSIONS)}"
        )

    try:
        if _is_legacy(document):
            return _build_legacy_artifact(document)
        return _build_artifact(document)
    except CorruptArtifactError:
        raise
    except (ValidationError, KeyError, TypeError, ValueError, binascii.Error) as e:
        raise CorruptArtifactError(f"Invalid backup document: {e}") from e


def _is_asset_entry(entry: Any) -> bool:
    return isinstance(entry, dict) and "locator" in entry and "status" in entry


def _is_legacy(document: Dict[str, Any]) -> bool:
    """True for documents whose ``data.assets`` holds rows rather than files."""
    if isinstance(document.get("files"), dict):
        return True
    entries = document["data"].get(ASSETS_KEY)
    if not isinstance(entries, list):
        return False
    if not entries:
        return document.get("version") == "2.0"
    return not all(_is_asset_entry(entry) for entry in entries)


def _snapshot(name: str, rows: Any) -> EntityCollectionSnapshot:
    if not isinstance(rows, list):
        raise CorruptArtifactError(f"Collection {name!r} is not a list of rows")
    return EntityCollectionSnapshot(name=name, rows=rows)


def _summary(document: Dict[str, Any], outcomes: List[DownloadOutcome]) -> VerificationSummary:
    if document.get("summary") is not None:
        return VerificationSummary.model_validate(document["summary"])
    return build_summary(outcomes)


def _package(
    document: Dict[str, Any],
    collections: Dict[str, EntityCollectionSnapshot],
    files: Dict[str, DownloadOutcome],
    summary: VerificationSummary,
) -> BackupArtifact:
    return BackupArtifact(
        backup_id=document.get("backup_id") or f"backup_{document.get('timestamp', 'unknown')}",
        created_at=document["timestamp"],
        created_by=document.get("created_by") or {},
        mode=document.get("mode") or "manual",
        collections=collections,
        files=files,
        summary=summary,
    )


def _build_artifact(document: Dict[str, Any]) -> BackupArtifact:
    data = document["data"]
    renamed = document.get("renamed_collections") or {}

    collections: Dict[str, EntityCollectionSnapshot] = {}
    for key, rows in data.items():
        if key == ASSETS_KEY:
            continue
        name = renamed.get(key, key)
        collections[name] = _snapshot(name, rows)

    files: Dict[str, DownloadOutcome] = {}
    outcomes: List[DownloadOutcome] = []
    for entry in data.get(ASSETS_KEY) or []:
        outcome = _outcome_from_entry(entry)
        outcomes.append(outcome)
        for key in entry.get("records") or []:
            files[key] = outcome

    return _package(document, collections, files, _summary(document, outcomes))


def _build_legacy_artifact(document: Dict[str, Any]) -> BackupArtifact:
    collections = {name: _snapshot(name, rows) for name, rows in document["data"].items()}

    files: Dict[str, DownloadOutcome] = {}
    by_locator: Dict[str, DownloadOutcome] = {}
    for asset_id, raw in (document.get("files") or {}).items():
        outcome = _legacy_outcome(asset_id, raw, by_locator)
        if outcome is not None:
            files[record_path_key(ASSETS_KEY, asset_id, LEGACY_ASSET_FIELD)] = outcome

    logger.info(f"Read version {document.get('version')} backup with {len(by_locator)} embedded files")
    return _package(document, collections, files, _summary(document, list(by_locator.values())))


def _legacy_outcome(
    asset_id: str,
    raw: Any,
    by_locator: Dict[str, DownloadOutcome],
) -> Optional[DownloadOutcome]:
    file_data = json.loads(raw) if isinstance(raw, str) else raw
    if not isinstance(file_data, dict):
        raise CorruptArtifactError(f"File entry {asset_id!r} is not an object")

    content = file_data.get("content")
    locator = file_data.get("originalUrl")
    if not content or not locator:
        logger.warning(f"File {asset_id} missing content or URL, skipping")
        return None

    if locator not in by_locator:
        payload = base64.b64decode(content, validate=True)
        by_locator[locator] = DownloadOutcome(
            reference=classify(locator),
            status=DownloadStatus.OK,
            data=payload,
            mime_type=file_data.get("mimeType"),
            attempts=1,
            size_bytes=len(payload),
        )
    return by_locator[locator]


def _outcome_from_entry(entry: Dict[str, Any]) -> DownloadOutcome:
    status = DownloadStatus(entry["status"])
    content = entry.get("content")
    payload = None
    if status == DownloadStatus.OK:
        if content is None:
            raise CorruptArtifactError(f"Missing content for {entry.get('locator')}")
        payload = base64.b64decode(content, validate=True)

    return DownloadOutcome(
        reference=AssetReference(
            locator=entry["locator"],
            backend_hint=entry["backend"],
            path=entry.get("path") or entry["locator"],
        ),
        status=status,
        data=payload,
        mime_type=entry.get("mime_type"),
        attempts=entry.get("attempts") or 0,
        size_bytes=entry.get("size_bytes"),
        error=entry.get("error"),
    )
