from __future__ import annotations

import json
import subprocess
import threading
import time
from collections import Counter

import allure
import httpx
import pytest
from botocore.exceptions import EndpointConnectionError

from lfs_resolver.credentials import SshCredentialProvider
from lfs_resolver.dispatch import DispatchEngine, chunk, zip_resolved
from lfs_resolver.errors import IntegrityMismatch, LocatorError, NoCredential, ProcessingFailed
from lfs_resolver.locator import LocatorClient
from lfs_resolver.models import Asset, Credential, InvocationPayload, InvocationResult

pytestmark = [
    allure.epic("LFS Resolver"),
    allure.feature("Dispatch"),
]


class _CountingCredentials:
    def __init__(self) -> None:
        self.calls = 0

    def fetch(self) -> Credential:
        self.calls += 1
        return Credential(authorization=f"RemoteAuth token-{self.calls}")


class _FakeLocator:
    def __init__(self, urls: dict[str, str] | None = None) -> None:
        self.urls = urls or {}
        self.calls: list[tuple[list[Asset], Credential]] = []

    def resolve(self, assets, credential):
        self.calls.append((list(assets), credential))
        return [
            self.urls.get(asset.content_id, f"https://objects.example.com/{asset.content_id}")
            for asset in assets
        ]


class _ScriptedInvoker:
    """Returns a function error for the first ``failures[url]`` calls of each payload."""

    def __init__(self, failures: dict[str, int] | None = None) -> None:
        self.failures = dict(failures or {})
        self.calls: Counter[str] = Counter()
        self.payloads: list[InvocationPayload] = []
        self._lock = threading.Lock()

    def invoke(self, payload: InvocationPayload) -> InvocationResult:
        with self._lock:
            self.calls[payload.source_url] += 1
            self.payloads.append(payload)
            remaining = self.failures.get(payload.source_url, 0)
            if remaining:
                self.failures[payload.source_url] = remaining - 1
                return InvocationResult(
                    payload_text=json.dumps({"errorMessage": "Task timed out"}),
                    function_error="Unhandled",
                )
        return InvocationResult(payload_text="null")


def _assets(count: int) -> list[Asset]:
    return [
        Asset(file_name=f"images/{index}.jpg", content_id=f"c{index}", size_bytes=index)
        for index in range(count)
    ]


def _engine(credentials=None, locator=None, invoker=None, **kwargs) -> DispatchEngine:
    return DispatchEngine(
        credentials=credentials or _CountingCredentials(),
        locator=locator or _FakeLocator(),
        invoker=invoker or _ScriptedInvoker(),
        bucket="assets",
        namespace="product",
        version="v2",
        **kwargs,
    )


def test_chunk_splits_into_fixed_size_batches() -> None:
    assert chunk([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]
    assert chunk([], 50) == []
    with pytest.raises(ValueError, match="positive"):
        chunk([1], 0)


def test_payloads_carry_print_and_preview_destinations() -> None:
    invoker = _ScriptedInvoker()
    locator = _FakeLocator({"c1": "https://x/c1", "c2": "https://x/c2"})
    assets = [
        Asset(file_name="a.jpg", content_id="c1"),
        Asset(file_name="b.jpg", content_id="c2"),
    ]

    _engine(locator=locator, invoker=invoker, print_dpi=300, preview_dpi=72).run(assets)

    by_url = {payload.source_url: payload for payload in invoker.payloads}
    assert set(by_url) == {"https://x/c1", "https://x/c2"}
    payload = by_url["https://x/c1"]
    assert payload.destinations[0].scale == 1
    assert payload.destinations[1].scale == pytest.approx(72 / 300)
    assert payload.to_dict() == {
        "source": {"url": "https://x/c1"},
        "destinations": [
            {"type": "s3", "bucket": "assets", "key": "product/v2/print/a.jpg", "scale": 1},
            {
                "type": "s3",
                "bucket": "assets",
                "key": "product/v2/preview/a.jpg",
                "scale": 72 / 300,
            },
        ],
    }


def test_each_asset_is_invoked_exactly_once_on_success() -> None:
    invoker = _ScriptedInvoker()

    summary = _engine(invoker=invoker).run(_assets(5))

    assert summary.processed == 5
    assert summary.batches == 1
    assert summary.retried == 0
    assert sorted(invoker.calls.values()) == [1, 1, 1, 1, 1]


def test_single_function_error_is_retried_once() -> None:
    invoker = _ScriptedInvoker({"https://objects.example.com/c1": 1})

    summary = _engine(invoker=invoker).run(_assets(3))

    assert invoker.calls["https://objects.example.com/c1"] == 2
    assert invoker.calls["https://objects.example.com/c0"] == 1
    assert summary.retried == 1
    assert summary.processed == 3


def test_two_function_errors_fail_the_batch() -> None:
    invoker = _ScriptedInvoker({"https://objects.example.com/c1": 2})

    with pytest.raises(ProcessingFailed, match="Task timed out") as excinfo:
        _engine(invoker=invoker).run(_assets(3))

    assert invoker.calls["https://objects.example.com/c1"] == 2
    assert excinfo.value.file_name == "images/1.jpg"
    assert excinfo.value.attempts == 2


def test_failed_batch_stops_the_run_before_later_batches() -> None:
    credentials = _CountingCredentials()
    locator = _FakeLocator()
    invoker = _ScriptedInvoker({"https://objects.example.com/c0": 2})

    with pytest.raises(ProcessingFailed):
        _engine(credentials, locator, invoker, batch_size=2).run(_assets(5))

    assert len(locator.calls) == 1
    assert credentials.calls == 1
    assert "https://objects.example.com/c4" not in invoker.calls


def test_transport_failure_is_not_retried() -> None:
    class _UnreachableInvoker(_ScriptedInvoker):
        def invoke(self, payload: InvocationPayload) -> InvocationResult:
            with self._lock:
                self.calls[payload.source_url] += 1
            raise EndpointConnectionError(endpoint_url="https://lambda.eu-west-1.amazonaws.com")

    invoker = _UnreachableInvoker()

    with pytest.raises(ProcessingFailed, match="invocation failed"):
        _engine(invoker=invoker).run(_assets(1))

    assert invoker.calls["https://objects.example.com/c0"] == 1


def test_credentials_are_fetched_once_per_batch_and_threaded_through() -> None:
    credentials = _CountingCredentials()
    locator = _FakeLocator()

    summary = _engine(credentials, locator, batch_size=2).run(_assets(5))

    assert summary.batches == 3
    assert credentials.calls == 3
    assert [credential.authorization for _, credential in locator.calls] == [
        "RemoteAuth token-1",
        "RemoteAuth token-2",
        "RemoteAuth token-3",
    ]
    assert [len(batch) for batch, _ in locator.calls] == [2, 2, 1]


def test_empty_credential_output_fails_before_any_locator_call(monkeypatch) -> None:
    def _run(argv, **_kwargs):
        return subprocess.CompletedProcess(args=argv, returncode=0, stdout="", stderr="")

    monkeypatch.setattr(subprocess, "run", _run)
    locator = _FakeLocator()
    invoker = _ScriptedInvoker()

    with pytest.raises(NoCredential):
        _engine(SshCredentialProvider("org/repo"), locator, invoker).run(_assets(2))

    assert locator.calls == []
    assert sum(invoker.calls.values()) == 0


def test_permuted_locator_response_is_an_integrity_mismatch() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        objects = json.loads(request.content)["objects"]
        hrefs = [f"https://objects.example.com/{item['oid']}" for item in objects]
        hrefs.reverse()
        return httpx.Response(
            200,
            json={"objects": [{"actions": {"download": {"href": href}}} for href in hrefs]},
        )

    locator = LocatorClient(
        "https://lfs.example.com/objects/batch",
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )
    invoker = _ScriptedInvoker()

    with pytest.raises(IntegrityMismatch) as excinfo:
        _engine(locator=locator, invoker=invoker).run(_assets(2))

    assert excinfo.value.file_name == "images/0.jpg"
    assert sum(invoker.calls.values()) == 0


def test_zip_resolved_rejects_length_mismatch() -> None:
    with pytest.raises(LocatorError, match="1 URL"):
        zip_resolved(_assets(2), ["https://objects.example.com/c0"])


def test_concurrency_ceiling_bounds_in_flight_invocations() -> None:
    class _SlowInvoker:
        def __init__(self) -> None:
            self.in_flight = 0
            self.max_in_flight = 0
            self.calls = 0
            self._lock = threading.Lock()

        def invoke(self, payload: InvocationPayload) -> InvocationResult:
            with self._lock:
                self.calls += 1
                self.in_flight += 1
                self.max_in_flight = max(self.max_in_flight, self.in_flight)
            time.sleep(0.05)
            with self._lock:
                self.in_flight -= 1
            return InvocationResult(payload_text="null")

    invoker = _SlowInvoker()

    _engine(invoker=invoker, concurrency=2).run(_assets(5))

    assert invoker.calls == 5
    assert 1 <= invoker.max_in_flight <= 2


def test_run_with_no_assets_does_nothing() -> None:
    credentials = _CountingCredentials()

    summary = _engine(credentials).run([])

    assert summary.processed == 0
    assert summary.batches == 0
    assert credentials.calls == 0
