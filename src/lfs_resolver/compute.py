"""Compute unit adapter: synchronous AWS Lambda invocation."""

from __future__ import annotations

import json
from typing import Any, Protocol

import boto3
from botocore.config import Config

from lfs_resolver.models import InvocationPayload, InvocationResult

DEFAULT_LAMBDA_TARGET = "muse-create-preview-lfs"
DEFAULT_READ_TIMEOUT_SECONDS = 900
DEFAULT_CONNECT_TIMEOUT_SECONDS = 10
DEFAULT_MAX_POOL_CONNECTIONS = 10


class ComputeInvoker(Protocol):
    """Runs the derivative generator for one payload."""

    def invoke(self, payload: InvocationPayload) -> InvocationResult:
        """Invoke synchronously and report any function-level error."""
        raise NotImplementedError


class LambdaInvoker:
    """Invoke a Lambda function with ``RequestResponse`` semantics.

    Lambda answers 200 even when the handler raised; the failure is reported
    through ``FunctionError`` and the decoded payload holds the details.
    """

    def __init__(
        self,
        function_name: str = DEFAULT_LAMBDA_TARGET,
        *,
        client: Any | None = None,
        region_name: str | None = None,
        max_pool_connections: int = DEFAULT_MAX_POOL_CONNECTIONS,
        read_timeout_seconds: int = DEFAULT_READ_TIMEOUT_SECONDS,
    ) -> None:
        self.function_name = function_name
        self._client = client or boto3.client(
            "lambda",
            region_name=region_name,
            config=invoker_config(
                max_pool_connections=max_pool_connections,
                read_timeout_seconds=read_timeout_seconds,
            ),
        )

    def invoke(self, payload: InvocationPayload) -> InvocationResult:
        response = self._client.invoke(
            FunctionName=self.function_name,
            InvocationType="RequestResponse",
            Payload=json.dumps(payload.to_dict()).encode("utf-8"),
        )
        body = response.get("Payload")
        payload_text = body.read().decode("utf-8", errors="replace") if body is not None else ""
        return InvocationResult(
            payload_text=payload_text,
            function_error=response.get("FunctionError"),
        )


def invoker_config(
    *,
    max_pool_connections: int = DEFAULT_MAX_POOL_CONNECTIONS,
    read_timeout_seconds: int = DEFAULT_READ_TIMEOUT_SECONDS,
) -> Config:
    """Client config for synchronous invokes.

    The read timeout covers Lambda's maximum runtime and each call makes exactly
    one attempt; retries belong to the dispatcher.
    """

    return Config(
        read_timeout=read_timeout_seconds,
        connect_timeout=DEFAULT_CONNECT_TIMEOUT_SECONDS,
        retries={"total_max_attempts": 1, "mode": "standard"},
        max_pool_connections=max_pool_connections,
    )
