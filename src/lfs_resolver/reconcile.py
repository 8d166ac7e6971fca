"""Incremental build reconciliation: copy-forward versus regenerate."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor

from botocore.exceptions import BotoCoreError, ClientError

from lfs_resolver.errors import CopyForwardError, SourceObjectMissing
from lfs_resolver.models import BuildVersions, ReconciliationResult
from lfs_resolver.storage import ObjectStore, build_key, version_prefix

DEFAULT_VARIANTS: tuple[str, ...] = ("print", "preview")
DEFAULT_COPY_CONCURRENCY = 16
logger = logging.getLogger(__name__)


class ReconciliationEngine:
    """Decide which assets can reuse the previous build's derivatives."""

    def __init__(
        self,
        store: ObjectStore,
        *,
        bucket: str,
        namespace: str,
        variants: tuple[str, ...] = DEFAULT_VARIANTS,
        copy_concurrency: int = DEFAULT_COPY_CONCURRENCY,
    ) -> None:
        self.store = store
        self.bucket = bucket
        self.namespace = namespace
        self.variants = variants
        self.copy_concurrency = copy_concurrency

    def previous_build_exists(self, versions: BuildVersions) -> bool:
        """Probe for the previous build folder with one bounded list call."""

        if not versions.previous:
            return False
        prefix = version_prefix(self.namespace, versions.previous)
        try:
            return self.store.prefix_exists(self.bucket, prefix)
        except (BotoCoreError, ClientError) as error:
            raise CopyForwardError(
                message=f"Cannot probe previous build s3://{self.bucket}/{prefix}: {error}",
            ) from error

    def reconcile(
        self,
        candidates: Sequence[str],
        modified: Sequence[str],
        versions: BuildVersions,
    ) -> ReconciliationResult:
        if not self.previous_build_exists(versions):
            logger.info("No previous build found; regenerating all %d assets", len(candidates))
            return ReconciliationResult(regenerate=list(candidates), cold_build=True)

        missing = self._copy_forward(candidates, versions)
        missing_set = set(missing)
        copied = [name for name in _dedupe(candidates) if name not in missing_set]
        regenerate = _dedupe([*missing, *modified])
        logger.info(
            "Copied forward %d assets from %s; %d missing, %d modified, %d to regenerate",
            len(copied),
            versions.previous,
            len(missing),
            len(_dedupe(modified)),
            len(regenerate),
        )
        return ReconciliationResult(
            regenerate=regenerate,
            cold_build=False,
            copied_forward=copied,
            missing=missing,
        )

    def _copy_forward(self, candidates: Sequence[str], versions: BuildVersions) -> list[str]:
        file_names = _dedupe(candidates)
        if not file_names:
            return []
        workers = max(1, min(self.copy_concurrency, len(file_names)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            outcomes = list(
                executor.map(lambda name: self._copy_asset(name, versions), file_names),
            )
        return [name for name, copied in zip(file_names, outcomes, strict=True) if not copied]

    def _copy_asset(self, file_name: str, versions: BuildVersions) -> bool:
        """Copy every variant of one asset; False when any source derivative is absent."""

        previous = versions.previous or ""
        complete = True
        for variant in self.variants:
            source_key = build_key(self.namespace, previous, variant, file_name)
            dest_key = build_key(self.namespace, versions.current, variant, file_name)
            try:
                self.store.copy_object(self.bucket, source_key, dest_key)
            except SourceObjectMissing:
                logger.debug("No previous %s derivative for %s", variant, file_name)
                complete = False
            except (BotoCoreError, ClientError) as error:
                raise CopyForwardError(
                    message=f"Copy of {source_key} to {dest_key} failed: {error}",
                    file_name=file_name,
                ) from error
        return complete


def _dedupe(values: Sequence[str]) -> list[str]:
    deduped: list[str] = []
    seen: set[str] = set()
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        deduped.append(value)
    return deduped
