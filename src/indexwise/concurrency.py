from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from decimal import Decimal
from typing import Any

TIMESTAMP_ATTRIBUTE = "__ts"
TIMESTAMP_NAME = "#__ts"
TIMESTAMP_VALUE = ":__ts"
TIMESTAMP_NEXT_VALUE = ":__ts_next"

CREATE_ONLY_CONDITION = "(attribute_not_exists(#partition))"
UNCHANGED_OR_NEW_CONDITION = f"(attribute_not_exists({TIMESTAMP_NAME}) OR {TIMESTAMP_NAME} = {TIMESTAMP_VALUE})"
UNCHANGED_CONDITION = f"(attribute_exists({TIMESTAMP_NAME}) AND {TIMESTAMP_NAME} = {TIMESTAMP_VALUE})"
STAMP_UPDATE = f"SET {TIMESTAMP_NAME} = {TIMESTAMP_NEXT_VALUE}"

type Clock = Callable[[], int]


def now_ms() -> int:
    return time.time_ns() // 1_000_000


def stamp(item: Mapping[str, Any], ts: int) -> dict[str, Any]:
    return {**item, TIMESTAMP_ATTRIBUTE: ts}


def read_timestamp(item: Mapping[str, Any] | None) -> int | None:
    if item is None:
        return None
    value = item.get(TIMESTAMP_ATTRIBUTE)
    if isinstance(value, Decimal) and value == value.to_integral_value():
        return int(value)
    if isinstance(value, int):
        return value
    return None


def expected_timestamp(current: Mapping[str, Any] | None, clock: Clock) -> int:
    """The ``__ts`` value a guarded write expects to find.

    A missing item (or one written before stamping) compares against ``now``,
    which only the ``attribute_not_exists`` branch of the guard can satisfy.
    """
    ts = read_timestamp(current)
    return ts if ts is not None else clock()


def next_timestamp(current: Mapping[str, Any] | None, clock: Clock) -> int:
    """The ``__ts`` a guarded write stores: ``now``, but always past the value read."""
    now = clock()
    ts = read_timestamp(current)
    if ts is not None and now <= ts:
        return ts + 1
    return now
