"""Optional progress callbacks for backup runs."""

from dataclasses import dataclass
from typing import Any, Callable, Optional

from .._utils import logger


@dataclass
class BackupHooks:
    """Progress callbacks. Every hook is optional and receives keyword arguments.

    on_start(total_assets, total_collections)
    on_file_start(locator)
    on_file_success(locator, size_bytes, attempts, duration_ms)
    on_file_fail(locator, attempts, reason, error)
    on_file_skip(locator, size_bytes)
    on_progress(completed, total, percentage)
    on_complete(summary)
    """
    on_start: Optional[Callable[..., Any]] = None
    on_file_start: Optional[Callable[..., Any]] = None
    on_file_success: Optional[Callable[..., Any]] = None
    on_file_fail: Optional[Callable[..., Any]] = None
    on_file_skip: Optional[Callable[..., Any]] = None
    on_progress: Optional[Callable[..., Any]] = None
    on_complete: Optional[Callable[..., Any]] = None

    def emit(self, name: str, **kwargs) -> None:
        callback = getattr(self, name, None)
        if callback is None:
            return
        try:
            callback(**kwargs)
        except Exception as e:
            logger.warning(f"Backup hook {name} raised: {e}")
