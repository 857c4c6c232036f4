from __future__ import annotations

import logging
import os
import uuid

from indexwise import (
    ClientSettings,
    ConditionFailedError,
    IndexDefinition,
    Table,
    TableDefinition,
    create_dynamodb_client,
    delete_table,
    ensure_table,
)


def _settings() -> ClientSettings:
    return ClientSettings(
        region=os.environ.get("AWS_REGION", "us-east-1"),
        access_key_id=os.environ.get("AWS_ACCESS_KEY_ID", "dummy"),
        secret_access_key=os.environ.get("AWS_SECRET_ACCESS_KEY", "dummy"),
        endpoint_url=os.environ.get("DYNAMODB_ENDPOINT", "http://localhost:8000"),
    )


def main() -> None:
    logging.basicConfig(level=logging.INFO)

    definition = TableDefinition.build(
        f"indexwise_example_{uuid.uuid4().hex[:12]}",
        partition="pk",
        sort="sk",
        indexes=[IndexDefinition(name="by-owner", partition="owner", sort="created")],
    )
    client = create_dynamodb_client(_settings())
    ensure_table(definition, client=client)

    try:
        table = Table(definition, client=client)

        table.batch_write(
            [{"pk": "A", "sk": f"{i:03d}", "owner": "ada", "created": f"2024-01-{i + 1:02d}"} for i in range(3)]
        )
        print("get:", table.get({"pk": "A", "sk": "001"}))

        page = table.query({"pk": "A", "sk": "0"}, prefix=True)
        print("query begins_with('0'):", page.items)

        print("by owner:", table.query({"owner": "ada", "created": "2024-01"}, prefix=True).items)

        try:
            table.put({"pk": "A", "sk": "001"})
        except ConditionFailedError as err:
            print("create-only put rejected:", err)

        print("update:", table.update_builder({"pk": "A", "sk": "001"}).increment("views").execute())
        print("deleted:", len(table.batch_delete({"pk": "A"})))
    finally:
        delete_table(definition, client=client)


if __name__ == "__main__":
    main()
