"""Error taxonomy for a resolver run."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class ResolverError(Exception):
    """Base fatal error with asset and stage context."""

    message: str
    code: str = "resolver_error"
    file_name: str | None = None
    stage: str | None = None

    def __str__(self) -> str:
        context = []
        if self.stage:
            context.append(f"stage={self.stage}")
        if self.file_name:
            context.append(f"asset={self.file_name}")
        if not context:
            return self.message
        return f"{self.message} ({' '.join(context)})"


@dataclass(slots=True)
class MalformedPointer(ResolverError):
    """Pointer file does not follow the LFS pointer layout."""

    code: str = "malformed_pointer"
    stage: str | None = "pointer"


@dataclass(slots=True)
class NoCredential(ResolverError):
    """Authentication handshake produced no usable token."""

    code: str = "no_credential"
    stage: str | None = "credential"


@dataclass(slots=True)
class LocatorError(ResolverError):
    """LFS batch API failed after the retry budget or returned garbage."""

    code: str = "locator_error"
    stage: str | None = "locator"
    status_code: int | None = None
    attempts: int = 1


@dataclass(slots=True)
class IntegrityMismatch(ResolverError):
    """Resolved URL does not embed the requested content id."""

    code: str = "integrity_mismatch"
    stage: str | None = "verify"


@dataclass(slots=True)
class ProcessingFailed(ResolverError):
    """Compute unit reported an error for an asset after its retry."""

    code: str = "processing_failed"
    stage: str | None = "invoke"
    attempts: int = 0


@dataclass(slots=True)
class CopyForwardError(ResolverError):
    """Object store copy failed for a reason other than a missing source."""

    code: str = "copy_forward_error"
    stage: str | None = "copy_forward"


@dataclass(slots=True)
class SourceObjectMissing(Exception):
    """Copy source key does not exist in the previous build."""

    bucket: str
    key: str

    def __str__(self) -> str:
        return f"s3://{self.bucket}/{self.key} does not exist"


@dataclass(slots=True)
class ConfigurationError(Exception):
    """Settings are missing or invalid; nothing has been touched yet."""

    message: str

    def __str__(self) -> str:
        return self.message
