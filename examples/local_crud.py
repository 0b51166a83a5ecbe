from __future__ import annotations

import logging
import os
import uuid

import boto3

from dynamodb_engine import DynamoDBEngine, EngineConfig

SCHEMA = """
schema_version: "1"
entities:
  Note:
    attributes:
      topic: String
      rank: Number
    indexes:
      ByTopic:
        keys:
          hash: {name: topic, type: String}
          range: {name: rank, type: Number}
  Person: {}
"""


def _client():
    return boto3.client(
        "dynamodb",
        endpoint_url=os.environ.get("DYNAMODB_ENDPOINT", "http://localhost:8000"),
        region_name=os.environ.get("AWS_REGION", "us-east-1"),
        aws_access_key_id=os.environ.get("AWS_ACCESS_KEY_ID", "dummy"),
        aws_secret_access_key=os.environ.get("AWS_SECRET_ACCESS_KEY", "dummy"),
    )


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    config = EngineConfig(table_prefix=f"example_{uuid.uuid4().hex[:8]}", billing_mode="PAY_PER_REQUEST")
    engine = DynamoDBEngine.from_document(SCHEMA, config=config, client=_client())
    engine.migrate_up()

    try:
        for rank in (1, 10, 100):
            engine.create_record({"id": f"n-{rank}", "type": "Note", "topic": "dynamo", "rank": rank})
        engine.create_record({"id": "p-1", "type": "Person"})
        engine.create_relation({"id": "p-1", "type": "Person"}, {"id": "n-10", "type": "Note"})

        print("get:", engine.get_record("Note", "n-10"))

        page = engine.query("Note", "ByTopic").hash_equal("dynamo").range_less_than(50).descending().fetch_page()
        print("query rank < 50:", page.items)
        print("relations:", engine.get_relations("p-1", "Note"))
    finally:
        engine.migrate_down()


if __name__ == "__main__":
    main()
