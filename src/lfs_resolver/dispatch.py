"""Batched resolution and bounded-concurrency dispatch to the compute unit."""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import TypeVar

from botocore.exceptions import BotoCoreError, ClientError

from lfs_resolver.compute import ComputeInvoker
from lfs_resolver.credentials import CredentialProvider
from lfs_resolver.errors import IntegrityMismatch, LocatorError, ProcessingFailed
from lfs_resolver.locator import LocatorClient
from lfs_resolver.models import (
    Asset,
    Destination,
    DispatchSummary,
    InvocationPayload,
    ResolvedAsset,
)
from lfs_resolver.storage import build_key

DEFAULT_BATCH_SIZE = 50
DEFAULT_CONCURRENCY = 1000
DEFAULT_PRINT_DPI = 300
DEFAULT_PREVIEW_DPI = 72
MAX_FUNCTION_ERROR_RETRIES = 1
logger = logging.getLogger(__name__)

T = TypeVar("T")


def chunk(items: Sequence[T], size: int) -> list[list[T]]:
    if size <= 0:
        raise ValueError("Batch size must be positive.")
    return [list(items[index : index + size]) for index in range(0, len(items), size)]


class DispatchEngine:
    """Resolve assets batch by batch and invoke the compute unit for each one."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        credentials: CredentialProvider,
        locator: LocatorClient,
        invoker: ComputeInvoker,
        bucket: str,
        namespace: str,
        version: str = "",
        print_dpi: int = DEFAULT_PRINT_DPI,
        preview_dpi: int = DEFAULT_PREVIEW_DPI,
        batch_size: int = DEFAULT_BATCH_SIZE,
        concurrency: int = DEFAULT_CONCURRENCY,
        storage_kind: str = "s3",
    ) -> None:
        self.credentials = credentials
        self.locator = locator
        self.invoker = invoker
        self.bucket = bucket
        self.namespace = namespace
        self.version = version
        self.print_dpi = print_dpi
        self.preview_dpi = preview_dpi
        self.batch_size = batch_size
        self.concurrency = concurrency
        self.storage_kind = storage_kind
        self._retried = 0
        self._retried_lock = threading.Lock()

    @property
    def preview_scale(self) -> float:
        return self.preview_dpi / self.print_dpi

    def run(self, assets: Sequence[Asset]) -> DispatchSummary:
        """Process every asset; the first failing batch aborts the run."""

        summary = DispatchSummary()
        batches = chunk(assets, self.batch_size)
        self._retried = 0
        for index, batch in enumerate(batches, start=1):
            logger.info(
                "Resolve and process batch %d/%d for %d pointers",
                index,
                len(batches),
                len(batch),
            )
            self.run_batch(batch)
            summary.batches += 1
            summary.processed += len(batch)
            logger.info("Completed batch %d/%d", index, len(batches))
        summary.retried = self._retried
        return summary

    def run_batch(self, batch: Sequence[Asset]) -> None:
        credential = self.credentials.fetch()
        urls = self.locator.resolve(batch, credential)
        resolved = zip_resolved(batch, urls)
        payloads = [self.build_payload(item.asset, item.source_url) for item in resolved]
        self._dispatch(batch, payloads)

    def build_destinations(self, file_name: str) -> tuple[Destination, ...]:
        return (
            Destination(
                storage_kind=self.storage_kind,
                bucket=self.bucket,
                key=build_key(self.namespace, self.version, "print", file_name),
                scale=1,
            ),
            Destination(
                storage_kind=self.storage_kind,
                bucket=self.bucket,
                key=build_key(self.namespace, self.version, "preview", file_name),
                scale=self.preview_scale,
            ),
        )

    def build_payload(self, asset: Asset, source_url: str) -> InvocationPayload:
        return InvocationPayload(
            source_url=source_url,
            destinations=self.build_destinations(asset.file_name),
        )

    def invoke_with_retry(self, asset: Asset, payload: InvocationPayload) -> None:
        """Invoke once, retrying a single time on a function-level error."""

        attempts = 0
        while True:
            attempts += 1
            try:
                result = self.invoker.invoke(payload)
            except (BotoCoreError, ClientError) as error:
                raise ProcessingFailed(
                    message=f"Compute unit invocation failed: {error}",
                    file_name=asset.file_name,
                    attempts=attempts,
                ) from error
            if result.is_success:
                return
            if attempts > MAX_FUNCTION_ERROR_RETRIES:
                raise ProcessingFailed(
                    message=f"Compute unit reported {result.function_error}: {result.payload_text}",
                    file_name=asset.file_name,
                    attempts=attempts,
                )
            logger.warning(
                "Compute unit reported %s for %s; retrying once",
                result.function_error,
                asset.file_name,
            )
            with self._retried_lock:
                self._retried += 1

    def _dispatch(self, batch: Sequence[Asset], payloads: Sequence[InvocationPayload]) -> None:
        if not payloads:
            return
        workers = max(1, min(self.concurrency, len(payloads)))
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="dispatch")
        try:
            futures: list[Future[None]] = [
                executor.submit(self.invoke_with_retry, asset, payload)
                for asset, payload in zip(batch, payloads, strict=True)
            ]
            done, _ = wait(futures, return_when=FIRST_EXCEPTION)
            for future in futures:
                if future not in done:
                    continue
                error = future.exception()
                if error is not None:
                    raise error
        finally:
            executor.shutdown(wait=True, cancel_futures=True)


def zip_resolved(batch: Sequence[Asset], urls: Sequence[str]) -> list[ResolvedAsset]:
    """Pair assets with URLs positionally and verify each URL embeds its content id."""

    if len(urls) != len(batch):
        raise LocatorError(
            message=f"Locator returned {len(urls)} URL(s) for {len(batch)} asset(s)",
        )
    resolved = [
        ResolvedAsset(asset=asset, source_url=url) for asset, url in zip(batch, urls, strict=True)
    ]
    for item in resolved:
        if not item.matches_content:
            raise IntegrityMismatch(
                message=(
                    f"Resolved URL does not embed content id {item.asset.content_id}: "
                    f"{item.source_url}"
                ),
                file_name=item.asset.file_name,
            )
    return resolved
