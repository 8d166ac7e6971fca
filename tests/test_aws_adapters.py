from __future__ import annotations

import io
import json

import allure
import boto3
import pytest
from botocore.exceptions import ClientError
from botocore.response import StreamingBody
from botocore.stub import ANY, Stubber

from lfs_resolver.compute import DEFAULT_READ_TIMEOUT_SECONDS, LambdaInvoker
from lfs_resolver.errors import SourceObjectMissing
from lfs_resolver.models import Destination, InvocationPayload
from lfs_resolver.storage import S3ObjectStore, build_key, version_prefix

pytestmark = [
    allure.epic("LFS Resolver"),
    allure.feature("AWS Adapters"),
]


def _client(service: str):
    return boto3.client(
        service,
        region_name="eu-west-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",  # noqa: S106
    )


def _payload() -> InvocationPayload:
    return InvocationPayload(
        source_url="https://objects.example.com/c1",
        destinations=(
            Destination(storage_kind="s3", bucket="assets", key="p/v2/print/a.jpg", scale=1),
            Destination(storage_kind="s3", bucket="assets", key="p/v2/preview/a.jpg", scale=0.24),
        ),
    )


def _streaming(body: bytes) -> StreamingBody:
    return StreamingBody(io.BytesIO(body), len(body))


def test_build_key_joins_namespace_version_variant_and_file() -> None:
    assert build_key("product", "v2", "print", "images/a.jpg") == "product/v2/print/images/a.jpg"
    assert build_key("product/", "", "preview", "/images/a.jpg") == "product/preview/images/a.jpg"
    assert version_prefix("product", "v1") == "product/v1/"


def test_prefix_exists_uses_one_bounded_list_call() -> None:
    client = _client("s3")
    stubber = Stubber(client)
    stubber.add_response(
        "list_objects_v2",
        {"KeyCount": 1, "Contents": [{"Key": "product/v1/print/a.jpg"}]},
        {"Bucket": "assets", "Prefix": "product/v1/", "MaxKeys": 1},
    )
    stubber.add_response(
        "list_objects_v2",
        {"KeyCount": 0},
        {"Bucket": "assets", "Prefix": "product/v0/", "MaxKeys": 1},
    )

    with stubber:
        store = S3ObjectStore(client)
        assert store.prefix_exists("assets", "product/v1/") is True
        assert store.prefix_exists("assets", "product/v0/") is False
    stubber.assert_no_pending_responses()


def test_copy_object_copies_in_place() -> None:
    client = _client("s3")
    stubber = Stubber(client)
    stubber.add_response(
        "copy_object",
        {},
        {"Bucket": "assets", "Key": "product/v2/print/a.jpg", "CopySource": ANY},
    )

    with stubber:
        S3ObjectStore(client).copy_object(
            "assets",
            "product/v1/print/a.jpg",
            "product/v2/print/a.jpg",
        )
    stubber.assert_no_pending_responses()


def test_copy_object_maps_missing_source_to_signal() -> None:
    client = _client("s3")
    stubber = Stubber(client)
    stubber.add_client_error("copy_object", service_error_code="NoSuchKey", http_status_code=404)

    with stubber, pytest.raises(SourceObjectMissing) as excinfo:
        S3ObjectStore(client).copy_object(
            "assets",
            "product/v1/print/a.jpg",
            "product/v2/print/a.jpg",
        )

    assert excinfo.value.key == "product/v1/print/a.jpg"


def test_copy_object_propagates_other_client_errors() -> None:
    client = _client("s3")
    stubber = Stubber(client)
    stubber.add_client_error("copy_object", service_error_code="AccessDenied", http_status_code=403)

    with stubber, pytest.raises(ClientError):
        S3ObjectStore(client).copy_object(
            "assets",
            "product/v1/print/a.jpg",
            "product/v2/print/a.jpg",
        )


def test_lambda_invoker_sends_request_response_payload() -> None:
    client = _client("lambda")
    stubber = Stubber(client)
    stubber.add_response(
        "invoke",
        {"StatusCode": 200, "Payload": _streaming(b'{"ok": true}')},
        {
            "FunctionName": "muse-create-preview-lfs",
            "InvocationType": "RequestResponse",
            "Payload": json.dumps(_payload().to_dict()).encode("utf-8"),
        },
    )

    with stubber:
        result = LambdaInvoker(client=client).invoke(_payload())

    assert result.is_success
    assert result.payload_text == '{"ok": true}'


def test_lambda_invoker_reports_function_error() -> None:
    client = _client("lambda")
    stubber = Stubber(client)
    stubber.add_response(
        "invoke",
        {
            "StatusCode": 200,
            "FunctionError": "Unhandled",
            "Payload": _streaming(b'{"errorMessage": "Task timed out"}'),
        },
        {"FunctionName": "resize", "InvocationType": "RequestResponse", "Payload": ANY},
    )

    with stubber:
        result = LambdaInvoker("resize", client=client).invoke(_payload())

    assert not result.is_success
    assert result.function_error == "Unhandled"
    assert "Task timed out" in result.payload_text


def test_lambda_invoker_client_makes_one_attempt_with_long_read_timeout() -> None:
    invoker = LambdaInvoker(region_name="eu-west-1", max_pool_connections=64)

    config = invoker._client.meta.config
    assert config.read_timeout == DEFAULT_READ_TIMEOUT_SECONDS
    assert config.read_timeout >= 900
    assert config.retries["total_max_attempts"] == 1
    assert config.max_pool_connections == 64
