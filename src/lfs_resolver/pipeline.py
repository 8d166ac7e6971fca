"""End-to-end resolver run: reconcile, read pointers, dispatch."""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence

from lfs_resolver.candidates import find_candidate_images
from lfs_resolver.compute import ComputeInvoker
from lfs_resolver.config import Settings
from lfs_resolver.credentials import CredentialProvider
from lfs_resolver.dispatch import DispatchEngine
from lfs_resolver.locator import LocatorClient
from lfs_resolver.models import BuildSummary, BuildVersions
from lfs_resolver.pointers import read_pointer
from lfs_resolver.reconcile import ReconciliationEngine
from lfs_resolver.storage import ObjectStore

logger = logging.getLogger(__name__)


class BuildOrchestrator:
    """Coordinates reconciliation and dispatch for one build."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        settings: Settings,
        store: ObjectStore,
        credentials: CredentialProvider,
        locator: LocatorClient,
        invoker: ComputeInvoker,
    ) -> None:
        self.settings = settings
        self.reconciler = ReconciliationEngine(
            store,
            bucket=settings.storage.bucket,
            namespace=settings.storage.namespace,
            copy_concurrency=settings.storage.copy_concurrency,
        )
        self.dispatcher = DispatchEngine(
            credentials=credentials,
            locator=locator,
            invoker=invoker,
            bucket=settings.storage.bucket,
            namespace=settings.storage.namespace,
            version=settings.storage.current_version,
            print_dpi=settings.rendition.print_dpi,
            preview_dpi=settings.rendition.preview_dpi,
            batch_size=settings.dispatch.batch_size,
            concurrency=settings.dispatch.concurrency,
        )

    def run(self, modified: Sequence[str]) -> BuildSummary:
        started = time.monotonic()
        source_dir = self.settings.source.source_dir
        candidates = find_candidate_images(source_dir)
        logger.info("%d candidate images under %s", len(candidates), source_dir)

        versions = BuildVersions(
            current=self.settings.storage.current_version,
            previous=self.settings.storage.previous_version,
        )
        reconciliation = self.reconciler.reconcile(candidates, modified, versions)

        assets = [
            read_pointer(source_dir / file_name, source_root=source_dir)
            for file_name in reconciliation.regenerate
        ]
        logger.info("%d files to process", len(assets))
        dispatch = self.dispatcher.run(assets)

        return BuildSummary(
            candidates=len(candidates),
            copied_forward=len(reconciliation.copied_forward),
            regenerated=dispatch.processed,
            batches=dispatch.batches,
            retried=dispatch.retried,
            cold_build=reconciliation.cold_build,
            elapsed_seconds=time.monotonic() - started,
        )


def run_build(  # noqa: PLR0913
    *,
    settings: Settings,
    store: ObjectStore,
    credentials: CredentialProvider,
    locator: LocatorClient,
    invoker: ComputeInvoker,
    modified: Sequence[str] = (),
) -> BuildSummary:
    """Run one build with provided dependencies."""

    return BuildOrchestrator(
        settings=settings,
        store=store,
        credentials=credentials,
        locator=locator,
        invoker=invoker,
    ).run(modified)
