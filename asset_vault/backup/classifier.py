"""Decide which storage backend owns an asset locator."""

from typing import Iterable
from urllib.parse import unquote, urlparse

from .models import AssetReference, BackendHint

DEFAULT_DOMAIN_MARKERS = ("dropbox",)


def classify(locator: str, domain_markers: Iterable[str] = DEFAULT_DOMAIN_MARKERS) -> AssetReference:
    """Classify a stored asset locator.

    Rules, first match wins:
        1. starts with "/" or contains a backend domain marker -> PATH_STORE
        2. absolute http(s) URL with a host -> HTTP_STORE
        3. anything else -> UNKNOWN

    Never raises. UNKNOWN references are reported as failures by the
    downloader rather than dropped.

    Args:
        locator: Reference string as stored in a record
        domain_markers: Case-insensitive substrings identifying the path store

    Returns:
        AssetReference with backend hint and normalized path
    """
    if not isinstance(locator, str) or not locator:
        return AssetReference(locator=str(locator or ""), backend_hint=BackendHint.UNKNOWN, path=str(locator or ""))

    if locator.startswith("/"):
        return AssetReference(locator=locator, backend_hint=BackendHint.PATH_STORE, path=locator)

    lowered = locator.lower()
    if any(marker and marker.lower() in lowered for marker in domain_markers):
        return AssetReference(
            locator=locator,
            backend_hint=BackendHint.PATH_STORE,
            path=_path_from_marked_locator(locator),
        )

    try:
        parsed = urlparse(locator)
    except ValueError:
        return AssetReference(locator=locator, backend_hint=BackendHint.UNKNOWN, path=locator)

    if parsed.scheme.lower() in ("http", "https") and parsed.netloc:
        return AssetReference(locator=locator, backend_hint=BackendHint.HTTP_STORE, path=locator)

    return AssetReference(locator=locator, backend_hint=BackendHint.UNKNOWN, path=locator)


def _path_from_marked_locator(locator: str) -> str:
    """Turn a backend-domain URL into a path-store path."""
    try:
        parsed = urlparse(locator)
    except ValueError:
        return locator
    if parsed.scheme and parsed.netloc and parsed.path:
        return unquote(parsed.path)
    return locator
