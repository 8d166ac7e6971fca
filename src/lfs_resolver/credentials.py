"""Short-lived LFS credentials from the SSH authenticate handshake."""

from __future__ import annotations

import json
import logging
import subprocess
from typing import Protocol

from lfs_resolver.errors import NoCredential
from lfs_resolver.models import Credential

DEFAULT_SSH_HOST = "git@github.com"
DEFAULT_TIMEOUT_SECONDS = 30
logger = logging.getLogger(__name__)


class CredentialProvider(Protocol):
    """Source of a fresh bearer credential for the LFS batch API."""

    def fetch(self) -> Credential:
        """Return a new credential or raise ``NoCredential``."""
        raise NotImplementedError


class SshCredentialProvider:
    """Run ``git-lfs-authenticate`` over SSH and read the Authorization header."""

    def __init__(
        self,
        repository: str,
        *,
        host: str = DEFAULT_SSH_HOST,
        operation: str = "download",
        timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.repository = repository
        self.host = host
        self.operation = operation
        self.timeout_seconds = timeout_seconds

    def command(self) -> list[str]:
        return ["ssh", self.host, "git-lfs-authenticate", self.repository, self.operation]

    def fetch(self) -> Credential:
        argv = self.command()
        try:
            completed = subprocess.run(  # noqa: S603
                argv,
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
                check=False,
            )
        except FileNotFoundError as error:
            raise NoCredential(message=f"Credential command not found: {argv[0]}") from error
        except subprocess.TimeoutExpired as error:
            raise NoCredential(
                message=f"Credential command timed out after {self.timeout_seconds}s",
            ) from error

        if completed.returncode != 0:
            stderr = completed.stderr.strip()
            raise NoCredential(
                message=(
                    f"git-lfs-authenticate exited with {completed.returncode}: "
                    f"{stderr or '<no stderr>'}"
                ),
            )
        credential = parse_authenticate_output(completed.stdout)
        logger.debug(
            "Fetched LFS credential for %s (expires_in=%s)",
            self.repository,
            credential.expires_in,
        )
        return credential


def parse_authenticate_output(stdout: str) -> Credential:
    """Extract ``header.Authorization`` from the handshake JSON."""

    text = stdout.strip()
    if not text:
        raise NoCredential(message="Credential command produced no output")
    try:
        document = json.loads(text)
    except json.JSONDecodeError as error:
        raise NoCredential(message="Credential command output is not JSON") from error

    header = document.get("header") if isinstance(document, dict) else None
    authorization = header.get("Authorization") if isinstance(header, dict) else None
    if not isinstance(authorization, str) or not authorization.strip():
        raise NoCredential(message="Credential response has no header.Authorization")

    expires_in = document.get("expires_in")
    return Credential(
        authorization=authorization.strip(),
        expires_in=expires_in if isinstance(expires_in, int) else None,
    )
