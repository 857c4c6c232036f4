from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from .model import NO_MATCH, PRIMARY, IndexDefinition, TableSchema


@dataclass(frozen=True)
class KeyResolution:
    target: str
    schema: TableSchema

    @property
    def matched(self) -> bool:
        return self.target != NO_MATCH

    @property
    def is_primary(self) -> bool:
        return self.target == PRIMARY

    @property
    def index_name(self) -> str | None:
        if self.target in {PRIMARY, NO_MATCH}:
            return None
        return self.target


def resolve_key_schema(
    item: Mapping[str, Any],
    schema: TableSchema,
    indexes: Sequence[IndexDefinition],
) -> KeyResolution:
    """Pick the key schema that ``item`` fully addresses.

    The primary key always wins; otherwise the first index, in declaration
    order, whose partition and sort attributes are both keys of ``item``.
    Only key presence matters, so placeholder values such as ``""`` count.
    """
    if schema.partition in item and schema.sort in item:
        return KeyResolution(target=PRIMARY, schema=schema)

    for idx in indexes:
        if idx.partition in item and idx.sort in item:
            return KeyResolution(target=idx.name, schema=idx.schema)

    return KeyResolution(target=NO_MATCH, schema=TableSchema.empty())
