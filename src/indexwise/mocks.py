"""Scripted stand-in for the boto3 DynamoDB client.

Tests script the calls a ``Table`` is expected to make, in order, and the
responses to hand back. Responses can be written in plain Python values
(``expect_query`` / ``expect_write``); they are converted to the wire format
the real client returns.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from boto3.dynamodb.types import TypeSerializer

OPERATIONS = frozenset(
    {
        "batch_write_item",
        "create_table",
        "delete_item",
        "delete_table",
        "describe_table",
        "put_item",
        "query",
        "update_item",
    }
)

_serializer = TypeSerializer()


class _Wildcard:
    def __repr__(self) -> str:  # pragma: no cover
        return "ANY"


ANY: Any = _Wildcard()

type Expectation = Mapping[str, Any] | Callable[[Mapping[str, Any]], None] | None


def to_wire(item: Mapping[str, Any]) -> dict[str, Any]:
    return {k: _serializer.serialize(v) for k, v in item.items()}


def query_page(items: Iterable[Mapping[str, Any]], last_key: Mapping[str, Any] | None = None) -> dict[str, Any]:
    """A ``query`` response in wire format."""
    out: dict[str, Any] = {"Items": [to_wire(item) for item in items]}
    if last_key:
        out["LastEvaluatedKey"] = to_wire(last_key)
    return out


def _mismatches(expected: Any, actual: Any, path: str) -> Iterator[str]:
    # Mappings match on the expected keys only; lists match element-wise.
    if expected is ANY:
        return
    if isinstance(expected, Mapping):
        if not isinstance(actual, Mapping):
            yield f"{path}: expected a mapping, got {type(actual).__name__}"
            return
        for key, value in expected.items():
            if key in actual:
                yield from _mismatches(value, actual[key], f"{path}.{key}")
            else:
                yield f"{path}: missing key {key!r}"
        return
    if isinstance(expected, list):
        if not isinstance(actual, list):
            yield f"{path}: expected a list, got {type(actual).__name__}"
        elif len(actual) != len(expected):
            yield f"{path}: expected {len(expected)} items, got {len(actual)}"
        else:
            for i, (e, a) in enumerate(zip(expected, actual, strict=True)):
                yield from _mismatches(e, a, f"{path}[{i}]")
        return
    if expected != actual:
        yield f"{path}: expected {expected!r}, got {actual!r}"


@dataclass(frozen=True)
class ScriptedCall:
    operation: str
    expected: Expectation = None
    response: Mapping[str, Any] | None = None
    error: Exception | None = None

    def answer(self, request: Mapping[str, Any]) -> dict[str, Any]:
        if callable(self.expected):
            self.expected(request)
        elif self.expected is not None:
            problems = list(_mismatches(self.expected, request, self.operation))
            if problems:
                raise AssertionError("; ".join(problems))

        if self.error is not None:
            raise self.error
        return dict(self.response or {})


class FakeDynamoDBClient:
    """Answers the operations in ``OPERATIONS`` from a script.

    Every call is recorded in ``calls``. A call that does not match the next
    scripted one fails the test with ``AssertionError``.
    """

    def __init__(self) -> None:
        self._script: deque[ScriptedCall] = deque()
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def expect(
        self,
        operation: str,
        expected: Expectation = None,
        *,
        response: Mapping[str, Any] | None = None,
        error: Exception | None = None,
    ) -> None:
        if operation not in OPERATIONS:
            raise ValueError(f"unsupported operation: {operation}")
        self._script.append(ScriptedCall(operation=operation, expected=expected, response=response, error=error))

    def expect_query(
        self,
        items: Iterable[Mapping[str, Any]],
        *,
        last_key: Mapping[str, Any] | None = None,
        expected: Expectation = None,
    ) -> None:
        self.expect("query", expected, response=query_page(items, last_key))

    def expect_write(
        self,
        operation: str,
        expected: Expectation = None,
        *,
        attributes: Mapping[str, Any] | None = None,
        error: Exception | None = None,
    ) -> None:
        """Script a single-item write, returning ``attributes`` as ``Attributes``."""
        response = {"Attributes": to_wire(attributes)} if attributes is not None else {}
        self.expect(operation, expected, response=response, error=error)

    def assert_no_pending(self) -> None:
        if self._script:
            raise AssertionError(f"pending expected calls: {[c.operation for c in self._script]}")

    def calls_to(self, operation: str) -> list[dict[str, Any]]:
        return [req for name, req in self.calls if name == operation]

    def __getattr__(self, name: str) -> Callable[..., dict[str, Any]]:
        if name not in OPERATIONS:
            raise AttributeError(name)

        def call(**request: Any) -> dict[str, Any]:
            return self._answer(name, request)

        return call

    def _answer(self, operation: str, request: dict[str, Any]) -> dict[str, Any]:
        self.calls.append((operation, dict(request)))
        if not self._script:
            raise AssertionError(f"unexpected call: {operation}")

        scripted = self._script.popleft()
        if scripted.operation != operation:
            raise AssertionError(f"expected {scripted.operation}, got {operation}")
        return scripted.answer(request)
