"""Bounded-concurrency asset downloader with retries, timeouts and size limits."""

import asyncio
import time
from typing import Dict, Iterable, List, Optional, Tuple

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from .._utils import guess_mime_type, logger
from ..base import BaseAssetBackend, BaseHttpFetcher, BasePathStore
from ..config import DownloaderConfig
from .exceptions import (
    AssetTimeoutError,
    ClassificationAmbiguous,
    PermanentBackendError,
    SizeExceededError,
    TransientBackendError,
)
from .hooks import BackupHooks
from .models import AssetReference, BackendHint, DownloadOutcome, DownloadStatus

CANCELLED_ERROR = "cancelled"


class BoundedDownloader:
    """Fetch many assets with a fixed number of concurrent workers.

    Each reference is dispatched on its backend hint. An attempt is bounded by
    ``file_timeout``; timeouts and transient backend errors are retried up to
    ``max_attempts`` times with exponential backoff plus jitter. Assets larger
    than ``max_file_size`` are aborted before their body is read.
    """

    def __init__(
        self,
        path_store: Optional[BasePathStore],
        http_fetcher: Optional[BaseHttpFetcher],
        config: Optional[DownloaderConfig] = None,
        hooks: Optional[BackupHooks] = None,
    ):
        self.path_store = path_store
        self.http_fetcher = http_fetcher
        self.config = config or DownloaderConfig()
        self.hooks = hooks or BackupHooks()

    async def download_all(
        self,
        refs: Iterable[AssetReference],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[DownloadOutcome]:
        """Download every reference once.

        Args:
            refs: References to fetch; duplicate locators are fetched once
            cancel_event: When set, in-flight fetches are aborted and every
                unresolved reference is recorded as a cancelled failure

        Returns:
            One DownloadOutcome per distinct locator, in completion order
        """
        unique: Dict[str, AssetReference] = {}
        for ref in refs:
            unique.setdefault(ref.locator, ref)

        if not unique:
            return []

        queue: asyncio.Queue = asyncio.Queue()
        for ref in unique.values():
            queue.put_nowait(ref)

        results: Dict[str, DownloadOutcome] = {}
        lock = asyncio.Lock()
        total = len(unique)
        worker_count = min(self.config.concurrency, total)

        logger.info(
            f"Downloading {total} assets with {worker_count} workers "
            f"(timeout {self.config.file_timeout}s, {self.config.max_attempts} attempts, "
            f"limit {self.config.max_file_size} bytes)"
        )

        workers = [
            asyncio.ensure_future(self._worker(queue, results, lock, total, cancel_event))
            for _ in range(worker_count)
        ]
        waiter = asyncio.ensure_future(cancel_event.wait()) if cancel_event is not None else None

        try:
            pending = set(workers)
            while pending:
                wait_set = (pending | {waiter}) if waiter is not None else pending
                done, _ = await asyncio.wait(wait_set, return_when=asyncio.FIRST_COMPLETED)
                pending -= done
                if waiter is not None and waiter in done:
                    logger.warning(f"Download cancelled with {total - len(results)} assets unresolved")
                    break
        finally:
            for task in workers:
                task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            if waiter is not None:
                waiter.cancel()
                await asyncio.gather(waiter, return_exceptions=True)

        for task in workers:
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()

        for locator, ref in unique.items():
            if locator not in results:
                results[locator] = DownloadOutcome(
                    reference=ref,
                    status=DownloadStatus.BACKEND_ERROR,
                    error=CANCELLED_ERROR,
                )

        return list(results.values())

    async def _worker(
        self,
        queue: asyncio.Queue,
        results: Dict[str, DownloadOutcome],
        lock: asyncio.Lock,
        total: int,
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        while True:
            if cancel_event is not None and cancel_event.is_set():
                return
            try:
                ref = queue.get_nowait()
            except asyncio.QueueEmpty:
                return

            outcome = await self._download_one(ref)

            async with lock:
                results[ref.locator] = outcome
                completed = len(results)

            self.hooks.emit(
                "on_progress",
                completed=completed,
                total=total,
                percentage=round(completed / total * 100),
            )

    async def _download_one(self, ref: AssetReference) -> DownloadOutcome:
        """Fetch one asset, turning every failure into an outcome."""
        if ref.backend_hint == BackendHint.UNKNOWN:
            error = str(ClassificationAmbiguous(ref.locator))
            logger.warning(error)
            self.hooks.emit("on_file_fail", locator=ref.locator, attempts=0, reason="unclassified", error=error)
            return DownloadOutcome(reference=ref, status=DownloadStatus.BACKEND_ERROR, error=error)

        backend = self._backend_for(ref)
        if backend is None:
            error = f"No {ref.backend_hint.value} backend configured"
            self.hooks.emit("on_file_fail", locator=ref.locator, attempts=0, reason="backend_error", error=error)
            return DownloadOutcome(reference=ref, status=DownloadStatus.BACKEND_ERROR, error=error)

        self.hooks.emit("on_file_start", locator=ref.locator)
        started = time.monotonic()
        attempts = 0

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.max_attempts),
            wait=wait_exponential(multiplier=self.config.backoff_base, max=self.config.backoff_max)
            + wait_random(0, self.config.backoff_jitter),
            retry=retry_if_exception_type((AssetTimeoutError, TransientBackendError)),
            before_sleep=self._log_retry(ref),
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    data, mime_type = await self._attempt(backend, ref)
        except SizeExceededError as e:
            logger.info(f"Skipping {ref.locator}: {e}")
            self.hooks.emit("on_file_skip", locator=ref.locator, size_bytes=e.size_bytes)
            return DownloadOutcome(
                reference=ref,
                status=DownloadStatus.TOO_LARGE,
                attempts=attempts,
                size_bytes=e.size_bytes,
                error=str(e),
            )
        except AssetTimeoutError as e:
            return self._failed(ref, DownloadStatus.TIMEOUT, "timeout", attempts, str(e))
        except PermanentBackendError as e:
            if e.not_found:
                return self._failed(ref, DownloadStatus.NOT_FOUND, "not_found", attempts, str(e))
            return self._failed(ref, DownloadStatus.BACKEND_ERROR, "backend_error", attempts, str(e))
        except Exception as e:
            return self._failed(ref, DownloadStatus.BACKEND_ERROR, "backend_error", attempts, str(e) or type(e).__name__)

        duration_ms = int((time.monotonic() - started) * 1000)
        logger.debug(f"Downloaded {ref.locator} ({len(data)} bytes, attempt {attempts}, {duration_ms}ms)")
        self.hooks.emit(
            "on_file_success",
            locator=ref.locator,
            size_bytes=len(data),
            attempts=attempts,
            duration_ms=duration_ms,
        )
        return DownloadOutcome(
            reference=ref,
            status=DownloadStatus.OK,
            data=data,
            mime_type=mime_type,
            attempts=attempts,
            size_bytes=len(data),
        )

    async def _attempt(self, backend: BaseAssetBackend, ref: AssetReference) -> Tuple[bytes, str]:
        try:
            return await asyncio.wait_for(self._fetch(backend, ref), timeout=self.config.file_timeout)
        except asyncio.TimeoutError:
            raise AssetTimeoutError(f"Timed out after {self.config.file_timeout}s")

    async def _fetch(self, backend: BaseAssetBackend, ref: AssetReference) -> Tuple[bytes, str]:
        limit = self.config.max_file_size
        async with backend.open(ref.path) as stream:
            if stream.size is not None and stream.size > limit:
                raise SizeExceededError(stream.size, limit)

            buffer = bytearray()
            async for chunk in stream.chunks:
                buffer.extend(chunk)
                if len(buffer) > limit:
                    raise SizeExceededError(len(buffer), limit)

            return bytes(buffer), stream.content_type or guess_mime_type(ref.path)

    def _backend_for(self, ref: AssetReference) -> Optional[BaseAssetBackend]:
        if ref.backend_hint == BackendHint.PATH_STORE:
            return self.path_store
        if ref.backend_hint == BackendHint.HTTP_STORE:
            return self.http_fetcher
        return None

    def _failed(
        self,
        ref: AssetReference,
        status: DownloadStatus,
        reason: str,
        attempts: int,
        error: str,
    ) -> DownloadOutcome:
        logger.warning(f"Failed to download {ref.locator} after {attempts} attempt(s): {error}")
        self.hooks.emit("on_file_fail", locator=ref.locator, attempts=attempts, reason=reason, error=error)
        return DownloadOutcome(reference=ref, status=status, attempts=attempts, error=error)

    def _log_retry(self, ref: AssetReference):
        def _before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            delay = retry_state.next_action.sleep if retry_state.next_action else 0
            logger.warning(
                f"Retry {retry_state.attempt_number}/{self.config.max_attempts} for {ref.locator} "
                f"after {delay:.2f}s ({error})"
            )
        return _before_sleep
