"""Controllers for resolver CLI commands."""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path

from lfs_resolver.candidates import read_modified_list
from lfs_resolver.compute import LambdaInvoker
from lfs_resolver.config import Settings
from lfs_resolver.credentials import SshCredentialProvider
from lfs_resolver.errors import ConfigurationError
from lfs_resolver.locator import LocatorClient, RetryPolicy
from lfs_resolver.pipeline import run_build
from lfs_resolver.pointers import read_pointer
from lfs_resolver.storage import S3ObjectStore


@dataclass(slots=True)
class RunCommand:
    """CLI inputs for one resolver run."""

    source_dir: Path | None = None
    modified_list: Path | None = None
    build_version: str | None = None
    previous_build_version: str | None = None
    batch_size: int | None = None
    concurrency: int | None = None


@dataclass(slots=True)
class PointerCommand:
    """CLI inputs for pointer inspection."""

    paths: tuple[Path, ...]
    source_dir: Path | None = None


class ResolverCliController:
    """Coordinates resolver command execution."""

    def run(self, command: RunCommand) -> list[str]:
        try:
            settings = _apply_overrides(Settings.from_env(), command)
            settings.validate()
        except ValueError as error:
            raise ConfigurationError(str(error)) from error
        modified = read_modified_list(
            settings.source.modified_list_path,
            source_dir=settings.source.source_dir,
        )

        region = settings.dispatch.aws_region
        with LocatorClient(
            settings.locator.endpoint,
            ref_name=settings.locator.ref_name,
            retry_policy=RetryPolicy(
                max_attempts=settings.locator.max_attempts,
                backoff_seconds=settings.locator.retry_backoff_seconds,
            ),
            timeout_seconds=settings.locator.request_timeout_seconds,
        ) as locator:
            summary = run_build(
                settings=settings,
                store=S3ObjectStore(region_name=region),
                credentials=SshCredentialProvider(
                    settings.locator.repository,
                    host=settings.locator.ssh_host,
                ),
                locator=locator,
                invoker=LambdaInvoker(
                    settings.dispatch.lambda_target,
                    region_name=region,
                    max_pool_connections=settings.dispatch.concurrency,
                ),
                modified=modified,
            )

        return [
            "Build completed: "
            f"mode={'cold' if summary.cold_build else 'incremental'} "
            f"candidates={summary.candidates} "
            f"copied_forward={summary.copied_forward} "
            f"regenerated={summary.regenerated} "
            f"batches={summary.batches} "
            f"retried={summary.retried}",
            f"Process time: {summary.elapsed_seconds:.1f}s",
        ]

    def inspect_pointers(self, command: PointerCommand) -> list[str]:
        source_dir = command.source_dir or Path()
        lines: list[str] = []
        for path in command.paths:
            asset = read_pointer(path, source_root=source_dir)
            lines.append(f"{asset.file_name} oid={asset.content_id} size={asset.size_bytes}")
        return lines


def _apply_overrides(settings: Settings, command: RunCommand) -> Settings:
    source = settings.source
    if command.source_dir is not None:
        source = replace(source, source_dir=command.source_dir)
    if command.modified_list is not None:
        source = replace(source, modified_list_path=command.modified_list)

    storage = settings.storage
    if command.build_version is not None:
        storage = replace(storage, current_version=command.build_version)
    if command.previous_build_version is not None:
        storage = replace(storage, previous_version=command.previous_build_version or None)

    dispatch = settings.dispatch
    if command.batch_size is not None:
        dispatch = replace(dispatch, batch_size=command.batch_size)
    if command.concurrency is not None:
        dispatch = replace(dispatch, concurrency=command.concurrency)

    return replace(settings, source=source, storage=storage, dispatch=dispatch)
