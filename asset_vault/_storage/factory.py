"""Storage factory for centralized backend creation."""

from typing import Callable, Dict, Type

from ..backup.exceptions import ConfigurationError
from ..base import BaseHttpFetcher, BasePathStore
from ..config import StorageConfig


class StorageFactory:
    """Factory for creating storage backends with validation and registration."""

    _path_backends: Dict[str, Callable[[], Type[BasePathStore]]] = {}

    ALLOWED_PATH = {"local", "s3"}

    @classmethod
    def register_path(cls, name: str, backend_loader: Callable[[], Type[BasePathStore]]) -> None:
        """Register a path storage backend.

        Args:
            name: Backend name (must be in ALLOWED_PATH)
            backend_loader: Function that returns the path store class

        Raises:
            ValueError: If backend name not in allowed list
        """
        if name not in cls.ALLOWED_PATH:
            raise ValueError(f"Backend {name} not in allowed path backends: {cls.ALLOWED_PATH}")
        cls._path_backends[name] = backend_loader

    @classmethod
    def create_path_store(cls, config: StorageConfig) -> BasePathStore:
        """Create the configured path store.

        Args:
            config: Storage configuration

        Returns:
            Initialized path store

        Raises:
            ValueError: If backend not registered
            ConfigurationError: If a setting the backend needs is missing
        """
        backend = config.path_backend
        if backend not in cls._path_backends:
            # Try to register backends if not already done
            _register_backends()
            if backend not in cls._path_backends:
                raise ValueError(f"Unknown path backend: {backend}. Available: {list(cls._path_backends.keys())}")

        backend_class = cls._path_backends[backend]()

        if backend == "s3":
            if not config.s3_bucket:
                raise ConfigurationError("STORAGE_S3_BUCKET is required for the s3 path backend")
            return backend_class(
                bucket=config.s3_bucket,
                region=config.s3_region,
                prefix=config.s3_prefix,
                endpoint_url=config.s3_endpoint_url,
            )

        if not config.local_root:
            raise ConfigurationError("STORAGE_LOCAL_ROOT is required for the local path backend")
        return backend_class(root=config.local_root)

    @classmethod
    def create_http_fetcher(cls, config: StorageConfig, chunk_size: int = 64 * 1024) -> BaseHttpFetcher:
        """Create the HTTP asset fetcher."""
        from .http_fetch import HttpAssetFetcher
        return HttpAssetFetcher(user_agent=config.http_user_agent, chunk_size=chunk_size)


def _get_local_path_store():
    """Lazy loader for local path store."""
    from .path_local import LocalPathStore
    return LocalPathStore


def _get_s3_path_store():
    """Lazy loader for S3 path store."""
    from .path_s3 import S3PathStore
    return S3PathStore


def _register_backends():
    """Register built-in backends with lazy loaders. Called when factory is first used."""
    if not StorageFactory._path_backends:
        StorageFactory.register_path("local", _get_local_path_store)
        StorageFactory.register_path("s3", _get_s3_path_store)
