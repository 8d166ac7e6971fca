"""Runtime configuration for a resolver run."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

from lfs_resolver.compute import DEFAULT_LAMBDA_TARGET
from lfs_resolver.credentials import DEFAULT_SSH_HOST
from lfs_resolver.dispatch import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_CONCURRENCY,
    DEFAULT_PREVIEW_DPI,
    DEFAULT_PRINT_DPI,
)
from lfs_resolver.locator import DEFAULT_REF_NAME
from lfs_resolver.reconcile import DEFAULT_COPY_CONCURRENCY

ENV_PREFIX = "LFS_RESOLVER_"


@dataclass(slots=True)
class SourceSettings:
    """Where pointer files live in the checkout."""

    source_dir: Path = Path("static-assets")
    modified_list_path: Path | None = None


@dataclass(slots=True)
class LocatorSettings:
    """LFS batch API and credential handshake settings."""

    endpoint: str = ""
    repository: str = ""
    ssh_host: str = DEFAULT_SSH_HOST
    ref_name: str = DEFAULT_REF_NAME
    max_attempts: int = 3
    retry_backoff_seconds: float = 1.0
    request_timeout_seconds: float = 30.0


@dataclass(slots=True)
class StorageSettings:
    """Artifact bucket layout and build versions."""

    bucket: str = ""
    namespace: str = ""
    current_version: str = ""
    previous_version: str | None = None
    copy_concurrency: int = DEFAULT_COPY_CONCURRENCY


@dataclass(slots=True)
class DispatchSettings:
    """Compute unit target and fan-out limits."""

    lambda_target: str = DEFAULT_LAMBDA_TARGET
    aws_region: str = "eu-west-1"
    batch_size: int = DEFAULT_BATCH_SIZE
    concurrency: int = DEFAULT_CONCURRENCY


@dataclass(slots=True)
class RenditionSettings:
    """Output image resolutions."""

    print_dpi: int = DEFAULT_PRINT_DPI
    preview_dpi: int = DEFAULT_PREVIEW_DPI


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    source: SourceSettings = field(default_factory=SourceSettings)
    locator: LocatorSettings = field(default_factory=LocatorSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    dispatch: DispatchSettings = field(default_factory=DispatchSettings)
    rendition: RenditionSettings = field(default_factory=RenditionSettings)

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from ``LFS_RESOLVER_*`` environment variables."""

        modified_list = _env("MODIFIED_IMAGES").strip()
        previous_version = _env("PREVIOUS_BUILD_VERSION").strip()
        return cls(
            source=SourceSettings(
                source_dir=Path(_env("SOURCE_DIR", "static-assets")),
                modified_list_path=Path(modified_list) if modified_list else None,
            ),
            locator=LocatorSettings(
                endpoint=_env("LFS_DISCOVERY_ENDPOINT").strip(),
                repository=_env("REPOSITORY").strip(),
                ssh_host=_env("SSH_HOST", DEFAULT_SSH_HOST),
                ref_name=_env("REF_NAME", DEFAULT_REF_NAME),
                max_attempts=_env_int("LOCATOR_MAX_ATTEMPTS", 3),
                retry_backoff_seconds=_env_float("LOCATOR_RETRY_BACKOFF_SECONDS", 1.0),
                request_timeout_seconds=_env_float("LOCATOR_REQUEST_TIMEOUT_SECONDS", 30.0),
            ),
            storage=StorageSettings(
                bucket=_env("AWS_S3_BUCKET").strip(),
                namespace=_env("PRODUCT_SLUG").strip(),
                current_version=_env("BUILD_VERSION").strip(),
                previous_version=previous_version or None,
                copy_concurrency=_env_int("COPY_CONCURRENCY", DEFAULT_COPY_CONCURRENCY),
            ),
            dispatch=DispatchSettings(
                lambda_target=_env("LAMBDA_TARGET", DEFAULT_LAMBDA_TARGET),
                aws_region=_env("AWS_REGION", "eu-west-1"),
                batch_size=_env_int("BATCH_SIZE", DEFAULT_BATCH_SIZE),
                concurrency=_env_int("CONCURRENCY", DEFAULT_CONCURRENCY),
            ),
            rendition=RenditionSettings(
                print_dpi=_env_int("PRINT_IMAGE_DPI", DEFAULT_PRINT_DPI),
                preview_dpi=_env_int("PREVIEW_IMAGE_DPI", DEFAULT_PREVIEW_DPI),
            ),
        )

    def validate(self) -> None:
        """Raise ``ValueError`` naming the first invalid setting."""

        _require(self.locator.endpoint, "LFS_DISCOVERY_ENDPOINT")
        _validate_endpoint(self.locator.endpoint)
        _require(self.locator.repository, "REPOSITORY")
        _require(self.storage.bucket, "AWS_S3_BUCKET")
        _require(self.storage.namespace, "PRODUCT_SLUG")

        for name, value in (
            ("LOCATOR_MAX_ATTEMPTS", self.locator.max_attempts),
            ("BATCH_SIZE", self.dispatch.batch_size),
            ("CONCURRENCY", self.dispatch.concurrency),
            ("COPY_CONCURRENCY", self.storage.copy_concurrency),
            ("PRINT_IMAGE_DPI", self.rendition.print_dpi),
            ("PREVIEW_IMAGE_DPI", self.rendition.preview_dpi),
        ):
            if value <= 0:
                raise ValueError(f"{ENV_PREFIX}{name} must be a positive integer.")
        if self.rendition.preview_dpi > self.rendition.print_dpi:
            raise ValueError(
                f"{ENV_PREFIX}PREVIEW_IMAGE_DPI must not exceed {ENV_PREFIX}PRINT_IMAGE_DPI.",
            )

        previous = self.storage.previous_version
        if previous is not None:
            if not self.storage.current_version:
                raise ValueError(
                    f"{ENV_PREFIX}PREVIOUS_BUILD_VERSION requires {ENV_PREFIX}BUILD_VERSION.",
                )
            if previous == self.storage.current_version:
                raise ValueError(
                    f"{ENV_PREFIX}PREVIOUS_BUILD_VERSION must differ from "
                    f"{ENV_PREFIX}BUILD_VERSION.",
                )


def _env(name: str, default: str = "") -> str:
    return os.getenv(f"{ENV_PREFIX}{name}", default)


def _env_int(name: str, default: int) -> int:
    raw = _env(name).strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as error:
        raise ValueError(f"Invalid integer for {ENV_PREFIX}{name}: {raw!r}") from error


def _env_float(name: str, default: float) -> float:
    raw = _env(name).strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as error:
        raise ValueError(f"Invalid number for {ENV_PREFIX}{name}: {raw!r}") from error


def _require(value: str, name: str) -> None:
    if not value:
        raise ValueError(f"{ENV_PREFIX}{name} is required.")


def _validate_endpoint(value: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            f"Invalid LFS endpoint: {value!r}. "
            "Expected an absolute URL with http:// or https:// scheme.",
        )
