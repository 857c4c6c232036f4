from __future__ import annotations

import os
import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from functools import partial
from typing import Any, cast

import boto3
from botocore.config import Config

from .model import TableDefinition


@dataclass(frozen=True)
class ClientSettings:
    region: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = None
    endpoint_url: str | None = None
    connect_timeout: float = 1.0
    read_timeout: float = 3.0
    max_attempts: int = 3

    @staticmethod
    def from_env(environ: Mapping[str, str] = os.environ) -> ClientSettings:
        return ClientSettings(
            region=environ.get("AWS_REGION") or environ.get("AWS_DEFAULT_REGION") or None,
            access_key_id=environ.get("AWS_ACCESS_KEY_ID") or None,
            secret_access_key=environ.get("AWS_SECRET_ACCESS_KEY") or None,
            endpoint_url=environ.get("DYNAMODB_ENDPOINT") or None,
        )


@dataclass(frozen=True)
class AwsCallMetric:
    service: str
    operation: str
    seconds: float
    ok: bool


def create_boto3_config(settings: ClientSettings) -> Config:
    return Config(
        connect_timeout=settings.connect_timeout,
        read_timeout=settings.read_timeout,
        retries={"max_attempts": settings.max_attempts, "mode": "adaptive"},
    )


def create_dynamodb_client(
    settings: ClientSettings | None = None,
    *,
    session: Any | None = None,
    metrics: Callable[[AwsCallMetric], None] | None = None,
) -> Any:
    settings = settings or ClientSettings.from_env()
    sess = session or boto3.session.Session(
        region_name=settings.region,
        aws_access_key_id=settings.access_key_id,
        aws_secret_access_key=settings.secret_access_key,
    )
    client = cast(Any, sess).client(
        "dynamodb",
        region_name=settings.region,
        endpoint_url=settings.endpoint_url,
        config=create_boto3_config(settings),
    )
    if metrics is not None:
        client = instrument_boto3_client(client, service="dynamodb", on_call=metrics)
    return client


def open_table(
    definition: TableDefinition,
    settings: ClientSettings | None = None,
    *,
    metrics: Callable[[AwsCallMetric], None] | None = None,
    **table_options: Any,
) -> Any:
    from .table import Table

    return Table(definition, client=create_dynamodb_client(settings, metrics=metrics), **table_options)


class _InstrumentedClient:
    """Proxy reporting one ``AwsCallMetric`` per public client method call."""

    def __init__(self, client: Any, service: str, on_call: Callable[[AwsCallMetric], None]) -> None:
        self._client = client
        self._service = service
        self._on_call = on_call

    def __getattr__(self, name: str) -> Any:
        attr = getattr(self._client, name)
        if name.startswith("_") or not callable(attr):
            return attr
        return partial(self._timed, name, attr)

    def _timed(self, operation: str, method: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Any:
        with self._measure(operation):
            return method(*args, **kwargs)

    @contextmanager
    def _measure(self, operation: str) -> Iterator[None]:
        start = time.perf_counter()
        ok = False
        try:
            yield
            ok = True
        finally:
            self._on_call(AwsCallMetric(self._service, operation, time.perf_counter() - start, ok))


def instrument_boto3_client(
    client: Any,
    *,
    service: str,
    on_call: Callable[[AwsCallMetric], None],
) -> Any:
    return _InstrumentedClient(client, service, on_call)
