from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import pytest

from indexwise import BatchRetryExceededError, PageEvent, Table, TableDefinition
from indexwise.testkit import fixed_clock, no_sleep, query_page


def _definition() -> TableDefinition:
    return TableDefinition.build("images", partition="pk", sort="sk")


class _BatchClient:
    def __init__(self, *, pages: list[list[dict[str, Any]]] | None = None, unprocessed_rounds: int = 0) -> None:
        self._pages = list(pages or [])
        self._unprocessed_rounds = unprocessed_rounds
        self.batches: list[list[dict[str, Any]]] = []
        self.log: list[str] = []

    def query(self, **req: Any) -> Mapping[str, Any]:
        self.log.append("query")
        page = self._pages.pop(0)
        last_key = None
        if self._pages:
            last_key = {"pk": page[-1]["pk"], "sk": page[-1]["sk"]}
        return query_page(page, last_key)

    def batch_write_item(self, *, RequestItems):  # noqa: N803
        self.log.append("batch_write_item")
        requests = RequestItems["images"]
        self.batches.append(requests)
        if self._unprocessed_rounds > 0:
            self._unprocessed_rounds -= 1
            return {"UnprocessedItems": {"images": requests[:1]}}
        return {"UnprocessedItems": {}}


def test_batch_write_chunks_by_25_and_shares_one_timestamp() -> None:
    client = _BatchClient()
    table = Table(_definition(), client=client, now=fixed_clock(1000, step=1))

    stored = table.batch_write([{"pk": "p", "sk": f"{i:03d}"} for i in range(52)])

    assert [len(batch) for batch in client.batches] == [25, 25, 2]
    assert {item["__ts"] for item in stored} == {1000}
    sent = [req["PutRequest"]["Item"]["__ts"] for batch in client.batches for req in batch]
    assert {v["N"] for v in sent} == {"1000"}


def test_batch_write_of_nothing_sends_nothing() -> None:
    client = _BatchClient()
    table = Table(_definition(), client=client)

    assert table.batch_write([]) == []
    assert client.batches == []


def test_batch_write_retries_unprocessed_items() -> None:
    client = _BatchClient(unprocessed_rounds=2)
    sleeps: list[float] = []
    table = Table(_definition(), client=client, sleep=sleeps.append)

    table.batch_write([{"pk": "p", "sk": "1"}, {"pk": "p", "sk": "2"}])

    assert [len(batch) for batch in client.batches] == [2, 1, 1]
    assert sleeps == [0.05, 0.1]


def test_batch_write_gives_up_after_max_retries() -> None:
    client = _BatchClient(unprocessed_rounds=10)
    table = Table(_definition(), client=client, sleep=no_sleep, max_retries=2)

    with pytest.raises(BatchRetryExceededError) as exc:
        table.batch_write([{"pk": "p", "sk": "1"}])
    assert exc.value.operation == "batch_write"
    assert exc.value.unprocessed_count == 1
    assert len(client.batches) == 3


def test_batch_delete_deletes_each_page_before_the_next_query() -> None:
    pages = [
        [{"pk": "p", "sk": "1", "x": 1}, {"pk": "p", "sk": "2", "x": 2}],
        [{"pk": "p", "sk": "3", "x": 3}],
    ]
    client = _BatchClient(pages=pages)
    table = Table(_definition(), client=client)
    events: list[PageEvent] = []

    deleted = table.batch_delete({"pk": "p"}, limit=2, on_page=events.append)

    assert client.log == ["query", "batch_write_item", "query", "batch_write_item"]
    assert [e.count for e in events] == [2, 1]
    assert [d["sk"] for d in deleted] == ["1", "2", "3"]
    keys = [req["DeleteRequest"]["Key"] for batch in client.batches for req in batch]
    assert keys[0] == {"pk": {"S": "p"}, "sk": {"S": "1"}}
    assert all(set(key) == {"pk", "sk"} for key in keys)


def test_batch_delete_with_no_matches_sends_nothing() -> None:
    client = _BatchClient(pages=[[]])
    table = Table(_definition(), client=client)

    assert table.batch_delete({"pk": "p"}) == []
    assert client.batches == []


def test_batch_delete_splits_a_large_page_into_groups_of_25() -> None:
    pages = [
        [{"pk": "p", "sk": f"{i:03d}"} for i in range(30)],
        [{"pk": "p", "sk": "100"}],
    ]
    client = _BatchClient(pages=pages)
    table = Table(_definition(), client=client)

    deleted = table.batch_delete({"pk": "p"})

    assert [len(batch) for batch in client.batches] == [25, 5, 1]
    assert client.log == ["query", "batch_write_item", "batch_write_item", "query", "batch_write_item"]
    assert len(deleted) == 31
