"""Unit tests for DynamoDBClient."""

from unittest.mock import patch

import pytest

from infrastructure.clients.aws import DynamoDBClient, SessionProvider
from infrastructure.operations import OperationResult

pytestmark = pytest.mark.unit

KEY = {"tenant_id": {"S": "tenant-a"}, "message_id": {"S": "m1"}}


@pytest.fixture
def mock_execute():
    with patch(
        "infrastructure.clients.aws.dynamodb.execute_aws_api_call",
        return_value=OperationResult.success(data={}),
    ) as mock:
        yield mock


@pytest.fixture
def client(session_provider):
    return DynamoDBClient(session_provider)


CLIENT_KWARGS = {
    "session_config": {"region_name": "ca-central-1"},
    "client_config": {
        "region_name": "ca-central-1",
        "endpoint_url": "http://localhost:8000",
    },
    "role_arn": None,
}


class TestDynamoDBClient:
    """Tests for the DynamoDB wrapper methods."""

    def test_get_item(self, client, mock_execute):
        result = client.get_item("ledger", KEY, ConsistentRead=True)

        assert result.is_success
        mock_execute.assert_called_once_with(
            "dynamodb",
            "get_item",
            TableName="ledger",
            Key=KEY,
            ConsistentRead=True,
            **CLIENT_KWARGS,
        )

    def test_conditional_put(self, client, mock_execute):
        client.put_item(
            "ledger", {"a": {"S": "1"}}, ConditionExpression="attribute_not_exists(#sk)"
        )

        kwargs = mock_execute.call_args.kwargs
        assert mock_execute.call_args.args == ("dynamodb", "put_item")
        assert kwargs["ConditionExpression"] == "attribute_not_exists(#sk)"
        assert kwargs["Item"] == {"a": {"S": "1"}}

    def test_conditional_delete(self, client, mock_execute):
        client.delete_item("ledger", KEY, ConditionExpression="#v = :v")

        assert mock_execute.call_args.args == ("dynamodb", "delete_item")
        assert mock_execute.call_args.kwargs["Key"] == KEY
        assert mock_execute.call_args.kwargs["ConditionExpression"] == "#v = :v"

    def test_query_paginates(self, client, mock_execute):
        client.query("ledger", "tenant_id = :pk", ExpressionAttributeValues={})

        kwargs = mock_execute.call_args.kwargs
        assert kwargs["keys"] == ["Items"]
        assert kwargs["force_paginate"] is True
        assert kwargs["KeyConditionExpression"] == "tenant_id = :pk"

    def test_default_role(self, mock_execute):
        client = DynamoDBClient(SessionProvider(), default_role_arn="arn:ledger")

        client.get_item("ledger", KEY)

        assert mock_execute.call_args.kwargs["role_arn"] == "arn:ledger"
