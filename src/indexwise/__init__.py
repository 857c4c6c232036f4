from __future__ import annotations

import json
import re
from importlib.resources import files
from typing import TYPE_CHECKING, Any

from .errors import (
    BatchRetryExceededError,
    ConcurrencyConflictError,
    ConditionFailedError,
    IndexwiseError,
    NotFoundError,
    ProvisioningError,
    UsageError,
)
from .expressions import merge_condition, merge_update, parse_update_expression, render_update_expression
from .model import IndexDefinition, TableDefinition, TableSchema
from .query import Page, PageEvent, QueryOptions, QueryResult
from .resolver import KeyResolution, resolve_key_schema

if TYPE_CHECKING:
    from .runtime import (
        AwsCallMetric,
        ClientSettings,
        create_boto3_config,
        create_dynamodb_client,
        instrument_boto3_client,
        open_table,
    )
    from .schema import (
        WaitPolicy,
        build_create_table_request,
        create_table,
        delete_table,
        describe_table,
        ensure_table,
        wait_until_active,
    )
    from .table import Table
    from .update_builder import UpdateBuilder, UpdateFragment


def _read_repo_version() -> str:
    try:
        data = json.loads(files(__package__).joinpath("version.json").read_text(encoding="utf-8"))
    except Exception:
        return "0.0.0"

    version = data.get("version")
    return version if isinstance(version, str) and version else "0.0.0"


def _normalize_repo_version(repo_version: str) -> str:
    match = re.match(r"^(\d+\.\d+\.\d+)-rc\.?([0-9]+)$", repo_version)
    if match:
        return f"{match.group(1)}rc{match.group(2)}"
    return repo_version


__repo_version__ = _read_repo_version()
__version__ = _normalize_repo_version(__repo_version__)


def __getattr__(name: str) -> Any:
    if name == "Table":
        from .table import Table

        return Table
    if name in {"UpdateBuilder", "UpdateFragment"}:
        from . import update_builder

        return getattr(update_builder, name)
    if name in {
        "build_create_table_request",
        "create_table",
        "delete_table",
        "describe_table",
        "ensure_table",
        "wait_until_active",
        "WaitPolicy",
    }:
        from . import schema

        return getattr(schema, name)
    if name in {
        "AwsCallMetric",
        "ClientSettings",
        "create_boto3_config",
        "create_dynamodb_client",
        "instrument_boto3_client",
        "open_table",
    }:
        from . import runtime

        return getattr(runtime, name)
    raise AttributeError(name)


__all__ = [
    "AwsCallMetric",
    "BatchRetryExceededError",
    "build_create_table_request",
    "ClientSettings",
    "ConcurrencyConflictError",
    "ConditionFailedError",
    "create_boto3_config",
    "create_dynamodb_client",
    "create_table",
    "delete_table",
    "describe_table",
    "ensure_table",
    "IndexDefinition",
    "IndexwiseError",
    "instrument_boto3_client",
    "KeyResolution",
    "merge_condition",
    "merge_update",
    "NotFoundError",
    "open_table",
    "Page",
    "PageEvent",
    "parse_update_expression",
    "ProvisioningError",
    "QueryOptions",
    "QueryResult",
    "render_update_expression",
    "resolve_key_schema",
    "Table",
    "TableDefinition",
    "TableSchema",
    "UpdateBuilder",
    "UpdateFragment",
    "UsageError",
    "wait_until_active",
    "WaitPolicy",
    "__repo_version__",
    "__version__",
]
