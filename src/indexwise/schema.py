"""Table provisioning for a ``TableDefinition``."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal

import boto3
from botocore.exceptions import ClientError

from .aws_errors import error_code
from .errors import ProvisioningError, UsageError
from .model import TableDefinition

logger = logging.getLogger(__name__)

type BillingMode = Literal["PAY_PER_REQUEST", "PROVISIONED"]

RESOURCE_NOT_FOUND = "ResourceNotFoundException"
RESOURCE_IN_USE = "ResourceInUseException"
ACTIVE = "ACTIVE"


@dataclass(frozen=True)
class WaitPolicy:
    """How provisioning calls poll ``describe_table`` until a table is ACTIVE."""

    timeout_seconds: float = 300.0
    poll_interval_seconds: float = 0.25
    sleep: Callable[[float], None] = time.sleep
    clock: Callable[[], float] = time.monotonic

    def __post_init__(self) -> None:
        if self.timeout_seconds < 0 or self.poll_interval_seconds < 0:
            raise UsageError("wait timeout and poll interval must be >= 0")


DEFAULT_WAIT = WaitPolicy()


def _dynamodb(client: Any | None) -> Any:
    return client if client is not None else boto3.client("dynamodb")


def _describe_or_none(client: Any, table_name: str) -> dict[str, Any] | None:
    try:
        return dict(client.describe_table(TableName=table_name))
    except ClientError as err:
        if error_code(err) != RESOURCE_NOT_FOUND:
            raise
        return None


def wait_until_active(client: Any, table_name: str, policy: WaitPolicy = DEFAULT_WAIT) -> dict[str, Any]:
    """Poll until ``table_name`` is ACTIVE and return its description.

    The table is described at least once, even with a zero timeout.
    """
    deadline = policy.clock() + policy.timeout_seconds
    polls = 0
    while True:
        resp = _describe_or_none(client, table_name) or {}
        polls += 1
        if resp.get("Table", {}).get("TableStatus") == ACTIVE:
            logger.debug(f"table {table_name} is {ACTIVE} after {polls} polls")
            return resp
        if policy.clock() >= deadline:
            raise ProvisioningError(
                f"table {table_name} not {ACTIVE} after {policy.timeout_seconds}s ({polls} polls)"
            )
        policy.sleep(policy.poll_interval_seconds)


def describe_table(definition: TableDefinition, *, client: Any | None = None) -> dict[str, Any]:
    return dict(_dynamodb(client).describe_table(TableName=definition.table_name))


def create_table(
    definition: TableDefinition,
    *,
    client: Any | None = None,
    billing_mode: BillingMode = "PAY_PER_REQUEST",
    provisioned_throughput: dict[str, int] | None = None,
    wait: WaitPolicy | None = DEFAULT_WAIT,
) -> dict[str, Any]:
    """Create the table; a table that already exists is not an error.

    With a ``wait`` policy the ACTIVE table's description is returned,
    otherwise the raw ``create_table`` response (empty if the table existed).
    """
    client = _dynamodb(client)
    req = build_create_table_request(
        definition,
        billing_mode=billing_mode,
        provisioned_throughput=provisioned_throughput,
    )

    try:
        resp = dict(client.create_table(**req))
    except ClientError as err:
        if error_code(err) != RESOURCE_IN_USE:
            raise
        logger.debug(f"table {definition.table_name} already exists")
        resp = {}
    else:
        logger.info(f"created table {definition.table_name}")

    if wait is None:
        return resp
    return wait_until_active(client, definition.table_name, wait)


def ensure_table(
    definition: TableDefinition,
    *,
    client: Any | None = None,
    billing_mode: BillingMode = "PAY_PER_REQUEST",
    provisioned_throughput: dict[str, int] | None = None,
    wait: WaitPolicy | None = DEFAULT_WAIT,
) -> dict[str, Any]:
    """Create the table unless it exists, then wait for it per ``wait``."""
    client = _dynamodb(client)

    resp = _describe_or_none(client, definition.table_name)
    if resp is None:
        return create_table(
            definition,
            client=client,
            billing_mode=billing_mode,
            provisioned_throughput=provisioned_throughput,
            wait=wait,
        )
    if wait is None or resp.get("Table", {}).get("TableStatus") == ACTIVE:
        return resp
    return wait_until_active(client, definition.table_name, wait)


def delete_table(
    definition: TableDefinition,
    *,
    client: Any | None = None,
    ignore_missing: bool = False,
) -> None:
    try:
        _dynamodb(client).delete_table(TableName=definition.table_name)
    except ClientError as err:
        if not (ignore_missing and error_code(err) == RESOURCE_NOT_FOUND):
            raise
        logger.debug(f"table {definition.table_name} already deleted")
        return
    logger.info(f"deleted table {definition.table_name}")


def build_create_table_request(
    definition: TableDefinition,
    *,
    billing_mode: BillingMode = "PAY_PER_REQUEST",
    provisioned_throughput: dict[str, int] | None = None,
) -> dict[str, Any]:
    if billing_mode not in {"PAY_PER_REQUEST", "PROVISIONED"}:
        raise UsageError(f"unsupported billing_mode: {billing_mode}")
    if billing_mode == "PROVISIONED" and provisioned_throughput is None:
        raise UsageError("provisioned_throughput is required when billing_mode=PROVISIONED")

    schema = definition.schema
    key_schema = [
        {"AttributeName": schema.partition, "KeyType": "HASH"},
        {"AttributeName": schema.sort, "KeyType": "RANGE"},
    ]

    # First definition of an attribute wins; table keys are always strings.
    attr_types: dict[str, str] = {schema.partition: "S", schema.sort: "S"}

    gsis: list[dict[str, Any]] = []
    for idx in definition.global_indexes:
        attr_types.setdefault(idx.partition, "S")
        attr_types.setdefault(idx.sort, idx.sort_type)
        gsi: dict[str, Any] = {
            "IndexName": idx.name,
            "KeySchema": [
                {"AttributeName": idx.partition, "KeyType": "HASH"},
                {"AttributeName": idx.sort, "KeyType": "RANGE"},
            ],
            "Projection": {"ProjectionType": "ALL"},
        }
        if billing_mode == "PROVISIONED" and provisioned_throughput is not None:
            gsi["ProvisionedThroughput"] = dict(provisioned_throughput)
        gsis.append(gsi)

    lsis: list[dict[str, Any]] = []
    for idx in definition.local_indexes:
        attr_types.setdefault(idx.sort, idx.sort_type)
        lsis.append(
            {
                "IndexName": idx.name,
                "KeySchema": [
                    {"AttributeName": schema.partition, "KeyType": "HASH"},
                    {"AttributeName": idx.sort, "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "ALL"},
            }
        )

    req: dict[str, Any] = {
        "TableName": definition.table_name,
        "BillingMode": billing_mode,
        "KeySchema": key_schema,
        "AttributeDefinitions": [
            {"AttributeName": name, "AttributeType": attr_type} for name, attr_type in attr_types.items()
        ],
    }
    if billing_mode == "PROVISIONED" and provisioned_throughput is not None:
        req["ProvisionedThroughput"] = dict(provisioned_throughput)
    if gsis:
        req["GlobalSecondaryIndexes"] = gsis
    if lsis:
        req["LocalSecondaryIndexes"] = lsis

    return req


