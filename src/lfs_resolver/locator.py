"""Git LFS batch API client with bounded retries."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

import httpx

from lfs_resolver.errors import LocatorError, NoCredential
from lfs_resolver.models import Asset, Credential

LFS_MEDIA_TYPE = "application/vnd.git-lfs+json"
DEFAULT_REF_NAME = "refs/heads/master"
DEFAULT_TIMEOUT_SECONDS = 30.0
RETRYABLE_HTTP_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    """Attempt budget and linear backoff for locator requests."""

    max_attempts: int = 3
    backoff_seconds: float = 1.0
    max_backoff_seconds: float = 30.0

    def delay(self, attempt: int, *, retry_after: float | None = None) -> float:
        backoff = min(self.backoff_seconds * attempt, self.max_backoff_seconds)
        if retry_after is not None:
            backoff = max(backoff, min(retry_after, self.max_backoff_seconds))
        return backoff


@dataclass(slots=True)
class _TransientFailure:
    message: str
    status_code: int | None = None
    retry_after: float | None = None


class LocatorClient:
    """Resolve content ids to download URLs through the LFS batch endpoint."""

    def __init__(  # noqa: PLR0913
        self,
        endpoint: str,
        *,
        ref_name: str = DEFAULT_REF_NAME,
        retry_policy: RetryPolicy | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.endpoint = endpoint
        self.ref_name = ref_name
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            follow_redirects=True,
        )

    def build_request_body(self, assets: Sequence[Asset]) -> dict[str, Any]:
        return {
            "operation": "download",
            "transfers": ["basic"],
            "ref": {"name": self.ref_name},
            "objects": [asset.to_lfs_object() for asset in assets],
        }

    def resolve(self, assets: Sequence[Asset], credential: Credential | None) -> list[str]:
        """Return one download URL per asset, in input order."""

        if credential is None or not credential.authorization:
            raise NoCredential(message="No LFS credential available for locator request")
        if not assets:
            return []

        headers = {
            "Accept": LFS_MEDIA_TYPE,
            "Content-Type": LFS_MEDIA_TYPE,
            "Authorization": credential.authorization,
        }
        response = self._post_with_retries(self.build_request_body(assets), headers)
        return _parse_download_urls(response, assets)

    def _post_with_retries(
        self,
        body: dict[str, Any],
        headers: dict[str, str],
    ) -> httpx.Response:
        policy = self.retry_policy
        attempt = 0
        last_failure: _TransientFailure | None = None
        while attempt < policy.max_attempts:
            attempt += 1
            try:
                response = self._client.post(self.endpoint, json=body, headers=headers)
            except httpx.TransportError as exc:
                last_failure = _TransientFailure(message=f"LFS transport error: {exc}")
            else:
                if response.is_success:
                    return response
                if response.status_code not in RETRYABLE_HTTP_STATUS_CODES:
                    raise LocatorError(
                        message=(
                            f"LFS batch API returned HTTP {response.status_code}: "
                            f"{_error_preview(response)}"
                        ),
                        status_code=response.status_code,
                        attempts=attempt,
                    )
                last_failure = _TransientFailure(
                    message=f"Temporary LFS HTTP error: {response.status_code}",
                    status_code=response.status_code,
                    retry_after=_parse_retry_after(response.headers.get("Retry-After")),
                )

            if attempt < policy.max_attempts:
                backoff = policy.delay(attempt, retry_after=last_failure.retry_after)
                logger.warning(
                    "Locator attempt %d/%d failed (%s); retrying in %.1fs",
                    attempt,
                    policy.max_attempts,
                    last_failure.message,
                    backoff,
                )
                self._sleep(backoff)

        if last_failure is None:
            raise LocatorError(message="LFS batch request was never attempted", attempts=0)
        raise LocatorError(
            message=f"{last_failure.message} after {attempt} attempt(s)",
            status_code=last_failure.status_code,
            attempts=attempt,
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> LocatorClient:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


def _parse_download_urls(response: httpx.Response, assets: Sequence[Asset]) -> list[str]:
    try:
        document = response.json()
    except ValueError as error:
        raise LocatorError(
            message="LFS batch response is not valid JSON",
            status_code=response.status_code,
        ) from error

    objects = document.get("objects") if isinstance(document, dict) else None
    if not isinstance(objects, list):
        raise LocatorError(
            message="LFS batch response has no objects list",
            status_code=response.status_code,
        )
    if len(objects) != len(assets):
        raise LocatorError(
            message=(
                f"LFS batch response has {len(objects)} object(s) "
                f"for {len(assets)} requested"
            ),
            status_code=response.status_code,
        )

    urls: list[str] = []
    for asset, entry in zip(assets, objects, strict=True):
        urls.append(_download_href(entry, asset))
    return urls


def _download_href(entry: object, asset: Asset) -> str:
    if not isinstance(entry, dict):
        raise LocatorError(message="LFS batch object is not a mapping", file_name=asset.file_name)
    error = entry.get("error")
    if isinstance(error, dict):
        raise LocatorError(
            message=(
                f"LFS object error {error.get('code', '?')}: "
                f"{error.get('message', 'unknown error')}"
            ),
            file_name=asset.file_name,
        )
    actions = entry.get("actions")
    download = actions.get("download") if isinstance(actions, dict) else None
    href = download.get("href") if isinstance(download, dict) else None
    if not isinstance(href, str) or not href:
        raise LocatorError(
            message="LFS batch object has no actions.download.href",
            file_name=asset.file_name,
        )
    return href


def _error_preview(response: httpx.Response, limit: int = 200) -> str:
    text = response.text.strip()
    if len(text) > limit:
        return text[:limit] + "..."
    return text or "<empty body>"


def _parse_retry_after(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        return max(0.0, float(value.strip()))
    except ValueError:
        return None
