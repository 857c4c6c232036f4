from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from .errors import UsageError

type Item = dict[str, Any]
type Cursor = dict[str, Any]


@dataclass(frozen=True)
class PageEvent:
    count: int
    items: list[Item]


type PageCallback = Callable[[PageEvent], None]


@dataclass(frozen=True)
class Page:
    items: list[Item]
    cursor: Cursor | None

    @property
    def count(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class QueryResult:
    items: list[Item]
    count: int
    cursor: Cursor | None


@dataclass(frozen=True)
class QueryOptions:
    """Options for a key query.

    ``index`` overrides the index the resolver would pick. ``expression`` is
    merged into the key condition, ``filter_expression`` is applied after key
    matching. ``limit`` is the page size of every request (``None`` leaves it
    to the store). ``all`` keeps following cursors until the partition is
    exhausted, calling ``on_page`` once per page.
    """

    index: str | None = None
    expression: str = ""
    filter_expression: str = ""
    attribute_names: Mapping[str, str] = field(default_factory=dict)
    attribute_values: Mapping[str, Any] = field(default_factory=dict)
    limit: int | None = None
    start_key: Cursor | None = None
    prefix: bool = False
    all: bool = False
    on_page: PageCallback | None = None
    scan_forward: bool = True
    consistent_read: bool = False

    def __post_init__(self) -> None:
        if self.limit is not None and self.limit <= 0:
            raise UsageError("limit must be > 0")

    @staticmethod
    def defaults() -> QueryOptions:
        return QueryOptions()

    def with_changes(self, **changes: Any) -> QueryOptions:
        return replace(self, **changes)
