from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Literal

from .errors import UsageError

PRIMARY = "primary"
NO_MATCH = "none"

type SortType = Literal["S", "N"]


@dataclass(frozen=True)
class TableSchema:
    partition: str
    sort: str

    @staticmethod
    def empty() -> TableSchema:
        return TableSchema(partition="", sort="")

    @property
    def attributes(self) -> tuple[str, ...]:
        return tuple(attr for attr in (self.partition, self.sort) if attr)


@dataclass(frozen=True)
class IndexDefinition:
    name: str
    partition: str
    sort: str
    sort_type: SortType = "S"

    @property
    def schema(self) -> TableSchema:
        return TableSchema(partition=self.partition, sort=self.sort)

    def is_local_to(self, schema: TableSchema) -> bool:
        return self.partition == schema.partition


@dataclass(frozen=True)
class TableDefinition:
    table_name: str
    schema: TableSchema
    indexes: tuple[IndexDefinition, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not self.table_name:
            raise UsageError("table_name is required")
        if not self.schema.partition or not self.schema.sort:
            raise UsageError("schema requires both partition and sort attributes")

        object.__setattr__(self, "indexes", tuple(self.indexes))

        seen: set[str] = set()
        for idx in self.indexes:
            if not idx.name:
                raise UsageError("index name is required")
            if idx.name in {PRIMARY, NO_MATCH}:
                raise UsageError(f"index name is reserved: {idx.name}")
            if idx.name in seen:
                raise UsageError(f"duplicate index name: {idx.name}")
            if not idx.partition or not idx.sort:
                raise UsageError(f"index requires both partition and sort attributes: {idx.name}")
            if idx.sort_type not in {"S", "N"}:
                raise UsageError(f"unsupported index sort type: {idx.sort_type}")
            seen.add(idx.name)

    @staticmethod
    def build(
        table_name: str,
        *,
        partition: str = "namespace",
        sort: str = "id",
        indexes: Iterable[IndexDefinition] = (),
    ) -> TableDefinition:
        return TableDefinition(
            table_name=table_name,
            schema=TableSchema(partition=partition, sort=sort),
            indexes=tuple(indexes),
        )

    def index(self, name: str) -> IndexDefinition:
        for idx in self.indexes:
            if idx.name == name:
                return idx
        raise UsageError(f"unknown index: {name}")

    @property
    def local_indexes(self) -> tuple[IndexDefinition, ...]:
        return tuple(idx for idx in self.indexes if idx.is_local_to(self.schema))

    @property
    def global_indexes(self) -> tuple[IndexDefinition, ...]:
        return tuple(idx for idx in self.indexes if not idx.is_local_to(self.schema))
