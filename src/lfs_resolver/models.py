"""Domain models for pointer resolution and derivative dispatch."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True, frozen=True)
class PointerRecord:
    """Parsed LFS pointer file."""

    path: str
    content_id: str
    size_bytes: int


@dataclass(slots=True, frozen=True)
class Asset:
    """Unit of work tracked through resolution and dispatch."""

    file_name: str
    content_id: str
    size_bytes: int = 0

    def to_lfs_object(self) -> dict[str, Any]:
        """Object entry for the LFS batch API request."""

        return {"oid": self.content_id, "size": self.size_bytes}


@dataclass(slots=True, frozen=True)
class ResolvedAsset:
    """Asset paired with the download URL returned by the locator."""

    asset: Asset
    source_url: str

    @property
    def matches_content(self) -> bool:
        return self.asset.content_id in self.source_url


@dataclass(slots=True, frozen=True)
class Destination:
    """One output variant written by the compute unit."""

    storage_kind: str
    bucket: str
    key: str
    scale: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.storage_kind,
            "bucket": self.bucket,
            "key": self.key,
            "scale": self.scale,
        }


@dataclass(slots=True, frozen=True)
class InvocationPayload:
    """Request handed to the compute unit for one asset."""

    source_url: str
    destinations: tuple[Destination, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": {"url": self.source_url},
            "destinations": [destination.to_dict() for destination in self.destinations],
        }


@dataclass(slots=True, frozen=True)
class BuildVersions:
    """Current and previous build identifiers in the artifact namespace."""

    current: str
    previous: str | None = None


@dataclass(slots=True, frozen=True)
class Credential:
    """Short-lived bearer credential for the LFS batch API."""

    authorization: str
    expires_in: int | None = None


@dataclass(slots=True)
class InvocationResult:
    """Decoded compute unit response."""

    payload_text: str
    function_error: str | None = None

    @property
    def is_success(self) -> bool:
        return not self.function_error


@dataclass(slots=True)
class ReconciliationResult:
    """Outcome of copy-forward against the previous build."""

    regenerate: list[str]
    cold_build: bool
    copied_forward: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)


@dataclass(slots=True)
class DispatchSummary:
    """Aggregate dispatch counters for CLI reporting."""

    batches: int = 0
    processed: int = 0
    retried: int = 0


@dataclass(slots=True)
class BuildSummary:
    """Result of one resolver run."""

    candidates: int
    copied_forward: int
    regenerated: int
    batches: int
    retried: int
    cold_build: bool
    elapsed_seconds: float
