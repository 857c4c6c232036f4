from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import boto3
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer

from .aws_errors import translate_condition_failures
from .concurrency import (
    CREATE_ONLY_CONDITION,
    STAMP_UPDATE,
    TIMESTAMP_ATTRIBUTE,
    TIMESTAMP_NAME,
    TIMESTAMP_NEXT_VALUE,
    TIMESTAMP_VALUE,
    UNCHANGED_CONDITION,
    UNCHANGED_OR_NEW_CONDITION,
    Clock,
    expected_timestamp,
    next_timestamp,
    now_ms,
    stamp,
)
from .errors import BatchRetryExceededError, NotFoundError, UsageError
from .expressions import merge_condition, merge_update
from .model import IndexDefinition, TableDefinition, TableSchema
from .query import Cursor, Item, Page, PageEvent, QueryOptions, QueryResult
from .resolver import KeyResolution, resolve_key_schema

if TYPE_CHECKING:
    from .update_builder import UpdateBuilder

logger = logging.getLogger(__name__)

BATCH_WRITE_LIMIT = 25

type UpdateFn = Callable[[Item], Mapping[str, Any] | None]


def _backoff_seconds(attempt: int) -> float:
    seconds = 0.05 * (2.0 ** (attempt - 1))
    if seconds > 1.0:
        return 1.0
    return seconds


def _chunked[T](items: Sequence[T], size: int) -> Sequence[Sequence[T]]:
    if size <= 0:
        raise ValueError("size must be > 0")
    return [items[i : i + size] for i in range(0, len(items), size)]


def _merge_options(options: QueryOptions | None, changes: Mapping[str, Any]) -> QueryOptions:
    base = options if options is not None else QueryOptions.defaults()
    if changes:
        return base.with_changes(**changes)
    return base


class Table:
    def __init__(
        self,
        definition: TableDefinition,
        *,
        client: Any | None = None,
        now: Clock | None = None,
        sleep: Callable[[float], None] | None = time.sleep,
        max_retries: int = 5,
    ) -> None:
        if max_retries < 0:
            raise UsageError("max_retries must be >= 0")

        self._definition = definition
        self._client: Any = client or boto3.client("dynamodb")
        self._now: Clock = now or now_ms
        self._sleep = sleep
        self._max_retries = max_retries
        self._serializer = TypeSerializer()
        self._deserializer = TypeDeserializer()

    @property
    def definition(self) -> TableDefinition:
        return self._definition

    @property
    def table_name(self) -> str:
        return self._definition.table_name

    @property
    def schema(self) -> TableSchema:
        return self._definition.schema

    @property
    def indexes(self) -> tuple[IndexDefinition, ...]:
        return self._definition.indexes

    @property
    def client(self) -> Any:
        return self._client

    def resolve(self, item: Mapping[str, Any]) -> KeyResolution:
        return resolve_key_schema(item, self.schema, self.indexes)

    def query(self, item: Mapping[str, Any], options: QueryOptions | None = None, **changes: Any) -> QueryResult:
        """Query the partition addressed by ``item``.

        Only the first page is fetched unless ``all`` is set. ``on_page`` is
        called once per fetched page, before the next page is requested.
        """
        options = _merge_options(options, changes)

        items: list[Item] = []
        cursor: Cursor | None = None
        for page in self.iter_pages(item, options):
            if options.on_page is not None:
                options.on_page(PageEvent(count=page.count, items=page.items))
            items.extend(page.items)
            cursor = page.cursor
            if not options.all:
                break

        return QueryResult(items=items, count=len(items), cursor=cursor)

    def iter_pages(self, item: Mapping[str, Any], options: QueryOptions | None = None) -> Iterator[Page]:
        """Lazily yield pages until the store stops returning a cursor."""
        options = options if options is not None else QueryOptions.defaults()
        req = self._build_query_request(item, options)

        start_key = options.start_key
        while True:
            page_req = dict(req)
            if start_key:
                page_req["ExclusiveStartKey"] = self._to_item(start_key)

            resp = self._client.query(**page_req)

            items = [self._from_item(raw) for raw in resp.get("Items", [])]
            last = resp.get("LastEvaluatedKey")
            cursor = self._from_item(last) if last else None
            logger.debug(f"query {self.table_name} index={req.get('IndexName')} returned {len(items)} items")

            yield Page(items=items, cursor=cursor)

            if cursor is None:
                return
            start_key = cursor

    def get(self, item: Mapping[str, Any], options: QueryOptions | None = None, **changes: Any) -> Item | None:
        options = _merge_options(options, changes).with_changes(limit=1, all=False, on_page=None)
        res = self.query(item, options)
        return res.items[0] if res.items else None

    def put(
        self,
        item: Mapping[str, Any],
        *,
        overwrite: bool = False,
        condition_expression: str = "",
        attribute_names: Mapping[str, str] | None = None,
        attribute_values: Mapping[str, Any] | None = None,
    ) -> Item:
        """Write ``item`` stamped with a fresh ``__ts``.

        Without ``overwrite`` the write only succeeds when no item with the
        same partition key exists yet.
        """
        return self._put(
            item,
            ts=self._now(),
            overwrite=overwrite,
            condition_expression=condition_expression,
            attribute_names=attribute_names,
            attribute_values=attribute_values,
        )

    def _put(
        self,
        item: Mapping[str, Any],
        *,
        ts: int,
        overwrite: bool,
        condition_expression: str,
        attribute_names: Mapping[str, str] | None,
        attribute_values: Mapping[str, Any] | None,
    ) -> Item:
        names = dict(attribute_names or {})
        values = dict(attribute_values or {})

        condition = ""
        if not overwrite:
            condition = CREATE_ONLY_CONDITION
            names["#partition"] = self.schema.partition
        if condition_expression:
            condition = merge_condition(condition, condition_expression)

        stored = stamp(item, ts)
        req: dict[str, Any] = {"TableName": self.table_name, "Item": self._to_item(stored)}
        if condition:
            req["ConditionExpression"] = condition
        if names:
            req["ExpressionAttributeNames"] = names
        if values:
            req["ExpressionAttributeValues"] = self._to_item(values)

        with translate_condition_failures("put"):
            self._client.put_item(**req)
        return stored

    def delete(
        self,
        item: Mapping[str, Any],
        *,
        index: str | None = None,
        prefix: bool = False,
        filter_expression: str = "",
        condition_expression: str = "",
        attribute_names: Mapping[str, str] | None = None,
        attribute_values: Mapping[str, Any] | None = None,
    ) -> Item | None:
        """Delete the first item addressed by ``item``.

        The delete is rejected with ``ConditionFailedError`` when the item was
        rewritten after it was read. Returns ``None`` when nothing matched.
        """
        lookup = QueryOptions(index=index, prefix=prefix)
        if filter_expression:
            lookup = lookup.with_changes(
                filter_expression=filter_expression,
                attribute_names=dict(attribute_names or {}),
                attribute_values=dict(attribute_values or {}),
            )

        current = self.get(item, lookup)
        if current is None:
            return None

        condition = UNCHANGED_CONDITION
        names: dict[str, str] = {TIMESTAMP_NAME: TIMESTAMP_ATTRIBUTE}
        values: dict[str, Any] = {TIMESTAMP_VALUE: expected_timestamp(current, self._now)}
        if condition_expression:
            condition = merge_condition(condition, condition_expression)
            names.update(attribute_names or {})
            values.update(attribute_values or {})

        req: dict[str, Any] = {
            "TableName": self.table_name,
            "Key": self._key_of(current),
            "ConditionExpression": condition,
            "ExpressionAttributeNames": names,
            "ExpressionAttributeValues": self._to_item(values),
            "ReturnValues": "ALL_OLD",
        }
        with translate_condition_failures("delete"):
            resp = self._client.delete_item(**req)

        attrs = resp.get("Attributes")
        return self._from_item(attrs) if attrs else current

    def update(
        self,
        item: Mapping[str, Any],
        *,
        update_fn: UpdateFn | None = None,
        expression: str | None = None,
        upsert: bool = False,
        condition_expression: str = "",
        attribute_names: Mapping[str, str] | None = None,
        attribute_values: Mapping[str, Any] | None = None,
    ) -> Item:
        """Read-modify-write guarded by the ``__ts`` read from the store.

        Exactly one of ``update_fn`` (returns the full replacement item) and
        ``expression`` (a raw update expression) must be given.
        """
        has_expression = bool(expression and expression.strip())
        if update_fn is not None and has_expression:
            raise UsageError("update_fn and expression are mutually exclusive")
        if update_fn is None and not has_expression:
            raise UsageError("either update_fn or expression is required")

        current = self.get(item)
        if current is None and not upsert:
            raise NotFoundError("item not found")

        condition = UNCHANGED_OR_NEW_CONDITION
        if condition_expression:
            condition = merge_condition(condition, condition_expression)

        names = {**(attribute_names or {}), TIMESTAMP_NAME: TIMESTAMP_ATTRIBUTE}
        values = {**(attribute_values or {}), TIMESTAMP_VALUE: expected_timestamp(current, self._now)}

        if update_fn is None:
            values[TIMESTAMP_NEXT_VALUE] = next_timestamp(current, self._now)
            req: dict[str, Any] = {
                "TableName": self.table_name,
                "Key": self._key_of(current if current is not None else item),
                "UpdateExpression": merge_update(expression or "", STAMP_UPDATE),
                "ConditionExpression": condition,
                "ExpressionAttributeNames": names,
                "ExpressionAttributeValues": self._to_item(values),
                "ReturnValues": "ALL_NEW",
            }
            with translate_condition_failures("update"):
                resp = self._client.update_item(**req)
            return self._from_item(resp.get("Attributes") or {})

        base = dict(current) if current is not None else dict(item)
        replacement = update_fn(base)
        return self._put(
            replacement if replacement is not None else base,
            ts=next_timestamp(current, self._now),
            overwrite=True,
            condition_expression=condition,
            attribute_names=names,
            attribute_values=values,
        )

    def update_builder(self, item: Mapping[str, Any]) -> UpdateBuilder:
        from .update_builder import UpdateBuilder

        return UpdateBuilder(self, item)

    def batch_write(self, items: Iterable[Mapping[str, Any]]) -> list[Item]:
        """Put ``items`` in groups of 25, all stamped with the same ``__ts``."""
        ts = self._now()
        stamped = [stamp(item, ts) for item in items]

        requests = [{"PutRequest": {"Item": self._to_item(item)}} for item in stamped]
        self._send_batches("batch_write", requests)

        logger.info(f"batch_write {self.table_name}: wrote {len(stamped)} items")
        return stamped

    def batch_delete(
        self, item: Mapping[str, Any], options: QueryOptions | None = None, **changes: Any
    ) -> list[Item]:
        """Delete every item the query for ``item`` matches.

        Each page is deleted before the next one is fetched. Returns the
        matched items in page order.
        """
        options = _merge_options(options, changes)
        user_on_page = options.on_page

        def delete_page(event: PageEvent) -> None:
            requests = [{"DeleteRequest": {"Key": self._key_of(matched)}} for matched in event.items]
            self._send_batches("batch_delete", requests)
            if user_on_page is not None:
                user_on_page(event)

        res = self.query(item, options.with_changes(all=True, on_page=delete_page))

        logger.info(f"batch_delete {self.table_name}: deleted {res.count} items")
        return res.items

    def _send_batches(self, operation: str, requests: Sequence[dict[str, Any]]) -> None:
        for chunk in _chunked(requests, BATCH_WRITE_LIMIT):
            pending = list(chunk)
            attempts = 0

            while pending:
                resp = self._client.batch_write_item(RequestItems={self.table_name: pending})

                pending = resp.get("UnprocessedItems", {}).get(self.table_name, []) or []
                if pending:
                    if attempts >= self._max_retries:
                        raise BatchRetryExceededError(operation=operation, unprocessed_count=len(pending))
                    attempts += 1
                    logger.warning(
                        f"{operation} {self.table_name}: retrying {len(pending)} unprocessed requests "
                        f"(attempt {attempts})"
                    )
                    if self._sleep is not None:
                        self._sleep(_backoff_seconds(attempts))

    def _build_query_request(self, item: Mapping[str, Any], options: QueryOptions) -> dict[str, Any]:
        resolution = self.resolve(item)
        if options.index is not None:
            self._definition.index(options.index)

        names: dict[str, str] = {}
        values: dict[str, Any] = {}

        if resolution.matched:
            partition_attr = resolution.schema.partition
            sort_attr = resolution.schema.sort
            key_expr = "#partition = :partition"
            if options.prefix:
                key_expr += " AND begins_with(#sort, :sort)"
            else:
                key_expr += " AND #sort = :sort"
            names["#sort"] = sort_attr
            values[":sort"] = item[sort_attr]
        else:
            partition_attr = self.schema.partition
            if options.index is not None:
                partition_attr = self._definition.index(options.index).partition
            if partition_attr not in item:
                raise UsageError(f"no key schema matches the supplied attributes: {sorted(item)}")
            key_expr = "#partition = :partition"

        names["#partition"] = partition_attr
        values[":partition"] = item[partition_attr]
        names.update(options.attribute_names)
        values.update(options.attribute_values)

        if options.expression:
            key_expr = merge_condition(key_expr, options.expression)

        req: dict[str, Any] = {
            "TableName": self.table_name,
            "KeyConditionExpression": key_expr,
            "ExpressionAttributeNames": names,
            "ExpressionAttributeValues": self._to_item(values),
            "ScanIndexForward": options.scan_forward,
            "ConsistentRead": options.consistent_read,
        }

        # An explicit index always wins; a primary-key resolution never sets one.
        index_name = options.index or resolution.index_name
        if index_name is not None:
            req["IndexName"] = index_name
        if options.limit is not None:
            req["Limit"] = options.limit
        if options.filter_expression:
            req["FilterExpression"] = options.filter_expression

        logger.debug(f"resolved {sorted(item)} to {resolution.target} on {self.table_name}")
        return req

    def _key_of(self, item: Mapping[str, Any]) -> dict[str, Any]:
        missing = [attr for attr in self.schema.attributes if attr not in item]
        if missing:
            raise UsageError(f"item is missing primary key attributes: {missing}")
        return self._to_item({attr: item[attr] for attr in self.schema.attributes})

    def _to_item(self, item: Mapping[str, Any]) -> dict[str, Any]:
        return {k: self._serializer.serialize(v) for k, v in item.items()}

    def _from_item(self, item: Mapping[str, Any]) -> Item:
        out = {k: self._deserializer.deserialize(v) for k, v in item.items()}
        ts = out.get(TIMESTAMP_ATTRIBUTE)
        if isinstance(ts, Decimal) and ts == ts.to_integral_value():
            out[TIMESTAMP_ATTRIBUTE] = int(ts)
        return out
