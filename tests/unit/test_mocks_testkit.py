from __future__ import annotations

import pytest
from botocore.exceptions import ClientError

from indexwise import Table, TableDefinition
from indexwise.testkit import (
    ANY,
    FakeDynamoDBClient,
    client_error,
    conditional_check_failed,
    fixed_clock,
    no_sleep,
    query_page,
    to_wire,
)


def test_fake_dynamodb_client_records_and_matches_put_item() -> None:
    client = FakeDynamoDBClient()
    client.expect("put_item", {"TableName": "notes", "Item": ANY})

    table = Table(TableDefinition.build("notes"), client=client)
    table.put({"namespace": "A", "id": "B", "value": 1})

    client.assert_no_pending()
    assert client.calls[0][0] == "put_item"
    assert client.calls_to("put_item")[0]["TableName"] == "notes"


def test_fake_dynamodb_client_reports_mismatches() -> None:
    client = FakeDynamoDBClient()
    client.expect("query", {"TableName": "a"})
    with pytest.raises(AssertionError, match="expected 'a'"):
        client.query(TableName="b")

    client.expect("query")
    with pytest.raises(AssertionError, match="expected query, got put_item"):
        client.put_item(TableName="a")

    with pytest.raises(AssertionError, match="unexpected call"):
        client.delete_item(TableName="a")


def test_fake_dynamodb_client_list_matching() -> None:
    client = FakeDynamoDBClient()
    client.expect("batch_write_item", {"RequestItems": {"t": [ANY, ANY]}})
    with pytest.raises(AssertionError, match="expected 2 items"):
        client.batch_write_item(RequestItems={"t": [{}]})


def test_fake_dynamodb_client_pending_expectations_fail() -> None:
    client = FakeDynamoDBClient()
    client.expect("describe_table")
    with pytest.raises(AssertionError, match="pending"):
        client.assert_no_pending()


def test_fixed_clock_steps() -> None:
    clock = fixed_clock(10, step=5)
    assert [clock(), clock(), clock()] == [10, 15, 20]

    frozen = fixed_clock(7)
    assert frozen() == frozen() == 7


def test_no_sleep_is_noop() -> None:
    no_sleep(0.0)
    no_sleep(1.0)


def test_client_error_helpers() -> None:
    err = client_error("ThrottlingException")
    assert isinstance(err, ClientError)
    assert err.response["Error"]["Code"] == "ThrottlingException"

    cond = conditional_check_failed("UpdateItem")
    assert cond.response["Error"]["Code"] == "ConditionalCheckFailedException"
    assert cond.operation_name == "UpdateItem"


def test_wire_helpers() -> None:
    assert to_wire({"a": "x", "n": 1}) == {"a": {"S": "x"}, "n": {"N": "1"}}
    assert query_page([{"a": "x"}]) == {"Items": [{"a": {"S": "x"}}]}
    assert query_page([], {"a": "x"})["LastEvaluatedKey"] == {"a": {"S": "x"}}


def test_fake_dynamodb_client_scripts_python_values() -> None:
    client = FakeDynamoDBClient()
    client.expect_query([{"pk": "a", "n": 1}], last_key={"pk": "a"}, expected={"TableName": "t"})
    client.expect_write("update_item", attributes={"pk": "a"})
    client.expect_write("delete_item")

    page = client.query(TableName="t")
    assert page["Items"] == [{"pk": {"S": "a"}, "n": {"N": "1"}}]
    assert page["LastEvaluatedKey"] == {"pk": {"S": "a"}}
    assert client.update_item(TableName="t") == {"Attributes": {"pk": {"S": "a"}}}
    assert client.delete_item(TableName="t") == {}
    client.assert_no_pending()


def test_fake_dynamodb_client_rejects_unknown_operations() -> None:
    client = FakeDynamoDBClient()
    with pytest.raises(ValueError, match="unsupported operation"):
        client.expect("scan")
    with pytest.raises(AttributeError):
        client.scan(TableName="t")  # type: ignore[attr-defined]
