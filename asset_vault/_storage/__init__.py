"""Storage module with lazy loading support."""

from typing import TYPE_CHECKING

# Always import factory and registration (lightweight)
from .factory import StorageFactory, _register_backends

# Type checking imports (no runtime cost)
if TYPE_CHECKING:
    from .path_local import LocalPathStore
    from .path_s3 import S3PathStore
    from .http_fetch import HttpAssetFetcher
    from .entity_json import JsonEntityStore


def __getattr__(name):
    """Lazy import storage backends."""
    if name == "LocalPathStore":
        from .path_local import LocalPathStore
        return LocalPathStore
    elif name == "S3PathStore":
        from .path_s3 import S3PathStore
        return S3PathStore
    elif name == "HttpAssetFetcher":
        from .http_fetch import HttpAssetFetcher
        return HttpAssetFetcher
    elif name == "JsonEntityStore":
        from .entity_json import JsonEntityStore
        return JsonEntityStore
    else:
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


__all__ = [
    "StorageFactory",
    "_register_backends",
    "LocalPathStore",
    "S3PathStore",
    "HttpAssetFetcher",
    "JsonEntityStore",
]
