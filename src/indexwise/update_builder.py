from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from .concurrency import TIMESTAMP_ATTRIBUTE
from .errors import UsageError
from .expressions import merge_condition, merge_update
from .query import Item

if TYPE_CHECKING:
    from .table import Table


@dataclass(frozen=True)
class UpdateFragment:
    expression: str
    condition_expression: str = ""
    attribute_names: dict[str, str] = field(default_factory=dict)
    attribute_values: dict[str, Any] = field(default_factory=dict)


class UpdateBuilder:
    """Fluent construction of a raw update for ``Table.update``.

    Attribute names and values are bound to generated placeholders, so
    callers never write ``#name`` / ``:value`` tokens by hand.
    """

    def __init__(self, table: Table, item: Mapping[str, Any]) -> None:
        self._table = table
        self._item = dict(item)
        self._upsert = False
        self._expression = ""
        self._condition = ""
        self._names: dict[str, str] = {}
        self._values: dict[str, Any] = {}
        self._targets: set[str] = set()

    def set(self, attribute: str, value: Any) -> UpdateBuilder:
        ref = self._target_ref(attribute)
        return self._extend(f"SET {ref} = {self._value_ref('u', value)}")

    def set_if_not_exists(self, attribute: str, default_value: Any) -> UpdateBuilder:
        ref = self._target_ref(attribute)
        return self._extend(f"SET {ref} = if_not_exists({ref}, {self._value_ref('u', default_value)})")

    def add(self, attribute: str, value: Any) -> UpdateBuilder:
        if not isinstance(value, (int, Decimal, set, frozenset)) or isinstance(value, bool):
            raise UsageError("ADD requires a number or a set")
        ref = self._target_ref(attribute)
        return self._extend(f"ADD {ref} {self._value_ref('u', value)}")

    def increment(self, attribute: str) -> UpdateBuilder:
        return self.add(attribute, 1)

    def decrement(self, attribute: str) -> UpdateBuilder:
        return self.add(attribute, -1)

    def remove(self, attribute: str) -> UpdateBuilder:
        return self._extend(f"REMOVE {self._target_ref(attribute)}")

    def delete(self, attribute: str, values: set[Any] | frozenset[Any]) -> UpdateBuilder:
        if not isinstance(values, (set, frozenset)) or not values:
            raise UsageError("DELETE requires a non-empty set")
        ref = self._target_ref(attribute)
        return self._extend(f"DELETE {ref} {self._value_ref('u', set(values))}")

    def append_to_list(self, attribute: str, values: Sequence[Any]) -> UpdateBuilder:
        ref = self._target_ref(attribute)
        return self._extend(f"SET {ref} = list_append({ref}, {self._value_ref('u', list(values))})")

    def prepend_to_list(self, attribute: str, values: Sequence[Any]) -> UpdateBuilder:
        ref = self._target_ref(attribute)
        return self._extend(f"SET {ref} = list_append({self._value_ref('u', list(values))}, {ref})")

    def condition(self, attribute: str, operator: str, value: Any = None) -> UpdateBuilder:
        self._condition = merge_condition(self._condition, self._condition_term(attribute, operator, value))
        return self

    def or_condition(self, attribute: str, operator: str, value: Any = None) -> UpdateBuilder:
        term = self._condition_term(attribute, operator, value)
        self._condition = merge_condition(self._condition, f"OR {term}")
        return self

    def condition_exists(self, attribute: str) -> UpdateBuilder:
        return self.condition(attribute, "attribute_exists")

    def condition_not_exists(self, attribute: str) -> UpdateBuilder:
        return self.condition(attribute, "attribute_not_exists")

    def upsert(self, enabled: bool = True) -> UpdateBuilder:
        self._upsert = enabled
        return self

    def build(self) -> UpdateFragment:
        if not self._expression:
            raise UsageError("no updates provided")
        return UpdateFragment(
            expression=self._expression,
            condition_expression=self._condition,
            attribute_names=dict(self._names),
            attribute_values=dict(self._values),
        )

    def execute(self) -> Item:
        fragment = self.build()
        return self._table.update(
            self._item,
            expression=fragment.expression,
            upsert=self._upsert,
            condition_expression=fragment.condition_expression,
            attribute_names=fragment.attribute_names,
            attribute_values=fragment.attribute_values,
        )

    def _extend(self, clause: str) -> UpdateBuilder:
        self._expression = merge_update(self._expression, clause)
        return self

    def _target_ref(self, attribute: str) -> str:
        # The store rejects two actions on the same document path.
        ref = self._name_ref(attribute)
        if attribute in self._targets:
            raise UsageError(f"attribute is already updated: {attribute}")
        self._targets.add(attribute)
        return ref

    def _name_ref(self, attribute: str) -> str:
        if not attribute:
            raise UsageError("attribute name is required")
        if attribute == TIMESTAMP_ATTRIBUTE:
            raise UsageError(f"{TIMESTAMP_ATTRIBUTE} is managed by the table")

        for ref, name in self._names.items():
            if name == attribute:
                return ref
        ref = f"#n{len(self._names)}"
        self._names[ref] = attribute
        return ref

    def _value_ref(self, prefix: str, value: Any) -> str:
        ref = f":{prefix}{len(self._values)}"
        self._values[ref] = value
        return ref

    def _condition_term(self, attribute: str, operator: str, value: Any) -> str:
        op = str(operator or "").strip().upper()

        if op in {"ATTRIBUTE_EXISTS", "EXISTS"}:
            return f"attribute_exists({self._name_ref(attribute)})"
        if op in {"ATTRIBUTE_NOT_EXISTS", "NOT_EXISTS"}:
            return f"attribute_not_exists({self._name_ref(attribute)})"

        if value is None:
            raise UsageError(f"{operator} requires a value")

        ref = self._name_ref(attribute)
        if op in {"=", "EQ"}:
            return f"{ref} = {self._value_ref('c', value)}"
        if op in {"!=", "<>", "NE"}:
            return f"{ref} <> {self._value_ref('c', value)}"
        if op in {"<", "LT"}:
            return f"{ref} < {self._value_ref('c', value)}"
        if op in {"<=", "LE"}:
            return f"{ref} <= {self._value_ref('c', value)}"
        if op in {">", "GT"}:
            return f"{ref} > {self._value_ref('c', value)}"
        if op in {">=", "GE"}:
            return f"{ref} >= {self._value_ref('c', value)}"
        if op == "BEGINS_WITH":
            return f"begins_with({ref}, {self._value_ref('c', value)})"
        if op == "CONTAINS":
            return f"contains({ref}, {self._value_ref('c', value)})"

        raise UsageError(f"unsupported condition operator: {operator}")
