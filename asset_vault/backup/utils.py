"""Utility functions for backup/restore operations."""

import hashlib
import secrets
from datetime import datetime, timezone
from typing import Any, BinaryIO, Iterable, Optional, Tuple
from urllib.parse import unquote, urlparse

ARCHIVE_SUFFIX = ".json.gz"
_ID_TIMESTAMP_FORMAT = "%Y-%m-%dT%H-%M-%SZ"


def generate_backup_id() -> str:
    """Generate backup ID with timestamp.

    Returns:
        Backup ID in format: backup_YYYY-MM-DDTHH-MM-SSZ_<6 hex chars>
    """
    timestamp = datetime.now(timezone.utc).strftime(_ID_TIMESTAMP_FORMAT)
    return f"backup_{timestamp}_{secrets.token_hex(3)}"


def parse_backup_timestamp(name: str) -> Optional[datetime]:
    """Recover the creation time embedded in a backup ID or archive name."""
    stem = name.rsplit("/", 1)[-1]
    if stem.endswith(ARCHIVE_SUFFIX):
        stem = stem[: -len(ARCHIVE_SUFFIX)]
    parts = stem.split("_")
    if len(parts) < 2:
        return None
    try:
        return datetime.strptime(parts[1], _ID_TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def archive_name(backup_id: str) -> str:
    return f"{backup_id}{ARCHIVE_SUFFIX}"


def archive_path(folder: str, name: str) -> str:
    return f"{folder.rstrip('/')}/{name}"


def record_path_key(collection: str, row_key: Any, field_name: str) -> str:
    """Key identifying one file reference inside one record."""
    return f"{collection}/{row_key}/{field_name}"


def split_record_path_key(key: str) -> Tuple[str, str, str]:
    """Inverse of record_path_key. Row keys may themselves contain slashes."""
    collection, rest = key.split("/", 1)
    row_key, field_name = rest.rsplit("/", 1)
    return collection, row_key, field_name


def http_restore_path(url: str, restore_prefix: str) -> str:
    """Path-store location for a file that used to live on HTTP storage.

    Example:
        https://cdn.example.com/a/b.png -> /restored/cdn.example.com/a/b.png
    """
    parsed = urlparse(url)
    path = unquote(parsed.path) or "/"
    return f"{restore_prefix.rstrip('/')}/{parsed.netloc}{path}"


def spool_chunks(chunks: Iterable[bytes], fileobj: BinaryIO) -> Tuple[int, str]:
    """Write chunks to a file, hashing them on the way.

    Returns:
        Tuple of (bytes written, SHA-256 checksum with 'sha256:' prefix)
    """
    digest = hashlib.sha256()
    size = 0
    for chunk in chunks:
        digest.update(chunk)
        fileobj.write(chunk)
        size += len(chunk)
    return size, f"sha256:{digest.hexdigest()}"
