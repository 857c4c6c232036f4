"""Composition of condition and update expression fragments.

Fragments are never parsed into a full syntax tree. Condition fragments are
joined textually; update fragments are split into their ``SET`` / ``ADD`` /
``DELETE`` / ``REMOVE`` sections by a small tokenizer that only recognises
commas and section keywords outside of parentheses and brackets, so function
arguments such as ``if_not_exists(#a, :a)`` and placeholders such as ``:SET``
are carried through untouched.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

JOINERS = ("AND", "OR")
UPDATE_SECTIONS = ("SET", "ADD", "DELETE", "REMOVE")

type UpdateSections = dict[str, list[str]]


def _leading_joiner(expression: str) -> str | None:
    head = expression[:4].upper()
    for joiner in JOINERS:
        if not head.startswith(joiner):
            continue
        rest = expression[len(joiner) :]
        if not rest or rest[0].isspace() or rest[0] == "(":
            return joiner
    return None


def _strip_leading_joiners(expression: str) -> str:
    out = expression.strip()
    while True:
        joiner = _leading_joiner(out)
        if joiner is None:
            return out
        out = out[len(joiner) :].strip()


def merge_condition(a: str, b: str) -> str:
    """Join two condition fragments.

    ``b`` may start with an explicit ``AND`` / ``OR`` joiner, which is kept;
    otherwise the fragments are joined with ``AND``. The result never starts
    with a joiner.
    """
    left = _strip_leading_joiners(a or "")
    right = (b or "").strip()
    if not right:
        return left

    joiner = _leading_joiner(right) or "AND"
    right = _strip_leading_joiners(right)
    if not right:
        return left
    if not left:
        return right
    return f"{left} {joiner} {right}"


def _top_level_words(expression: str) -> list[str]:
    words: list[str] = []
    buf: list[str] = []
    depth = 0

    def flush() -> None:
        if buf:
            words.append("".join(buf))
            buf.clear()

    for ch in expression:
        if ch in "([":
            depth += 1
        elif ch in ")]" and depth > 0:
            depth -= 1
        elif depth == 0 and (ch.isspace() or ch == ","):
            flush()
            if ch == ",":
                words.append(",")
            continue
        buf.append(ch)

    flush()
    return words


def parse_update_expression(expression: str) -> UpdateSections:
    """Split an update expression into its sections.

    Items that appear before any section keyword belong to ``SET``. Item text
    is whitespace-normalised so equal assignments compare equal.
    """
    sections: UpdateSections = {name: [] for name in UPDATE_SECTIONS}
    current = "SET"
    item: list[str] = []

    def flush() -> None:
        if item:
            sections[current].append(" ".join(item))
            item.clear()

    for word in _top_level_words(expression or ""):
        if word == ",":
            flush()
            continue
        keyword = word.upper()
        if keyword in UPDATE_SECTIONS:
            flush()
            current = keyword
            continue
        item.append(word)

    flush()
    return sections


def render_update_expression(sections: Mapping[str, Sequence[str]]) -> str:
    parts: list[str] = []
    for name in UPDATE_SECTIONS:
        items = list(sections.get(name) or ())
        if items:
            parts.append(f"{name} " + ", ".join(items))
    return " ".join(parts)


def merge_update(a: str, b: str) -> str:
    """Merge two update fragments section by section.

    Repeated items within a section are dropped, keeping the first
    occurrence, and sections are emitted in ``SET, ADD, DELETE, REMOVE``
    order.
    """
    left = parse_update_expression(a)
    right = parse_update_expression(b)

    merged: UpdateSections = {}
    for name in UPDATE_SECTIONS:
        seen: dict[str, None] = {}
        for entry in (*left[name], *right[name]):
            seen.setdefault(entry, None)
        merged[name] = list(seen)

    return render_update_expression(merged)
