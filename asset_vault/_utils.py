import logging
import mimetypes
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger("asset-vault")

_KNOWN_MIME_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "pdf": "application/pdf",
    "svg": "image/svg+xml",
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def guess_mime_type(path: Optional[str]) -> str:
    """Infer a MIME type from a file extension."""
    if not path:
        return "application/octet-stream"
    name = path.split("?", 1)[0].rsplit("/", 1)[-1]
    extension = name.rsplit(".", 1)[-1].lower() if "." in name else ""
    if extension in _KNOWN_MIME_TYPES:
        return _KNOWN_MIME_TYPES[extension]
    guessed, _ = mimetypes.guess_type(name)
    return guessed or "application/octet-stream"


def human_size(size_bytes: int) -> str:
    """Format a byte count as a short human readable string."""
    if size_bytes < 1024:
        return f"{size_bytes}B"
    size = size_bytes / 1024
    for unit in ("KB", "MB"):
        if size < 1024:
            return f"{size:.2f}{unit}"
        size /= 1024
    return f"{size:.2f}GB"
