"""DynamoDB access for the processing record store.

Low-level API (typed attribute values) with every call routed through
``execute_aws_api_call``, so the store only ever handles an
OperationResult. A conditional write that loses its condition comes
back with ``is_conflict`` set instead of raising.
"""

from typing import Any, Dict, Optional

from infrastructure.clients.aws.executor import execute_aws_api_call
from infrastructure.clients.aws.session_provider import SessionProvider
from infrastructure.operations.result import OperationResult

SERVICE_NAME = "dynamodb"

ItemKey = Dict[str, Dict[str, Any]]


class DynamoDBClient:
    """Item and query operations against one or more tables.

    Args:
        session_provider: Supplies region, endpoint and role configuration.
        default_role_arn: Role assumed when a call does not name one.
    """

    def __init__(
        self,
        session_provider: SessionProvider,
        default_role_arn: Optional[str] = None,
    ) -> None:
        self._session_provider = session_provider
        self._default_role_arn = default_role_arn

    def _call(
        self, method: str, role_arn: Optional[str] = None, **kwargs: Any
    ) -> OperationResult:
        client_kwargs = self._session_provider.build_client_kwargs(
            service_name=SERVICE_NAME,
            role_arn=role_arn or self._default_role_arn,
        )
        return execute_aws_api_call(SERVICE_NAME, method, **kwargs, **client_kwargs)

    def get_item(
        self, table_name: str, Key: ItemKey, role_arn: Optional[str] = None, **kwargs
    ) -> OperationResult:
        """Read one item. The raw response (``Item`` when found) is the data."""
        return self._call(
            "get_item", role_arn, TableName=table_name, Key=Key, **kwargs
        )

    def put_item(
        self,
        table_name: str,
        Item: Dict[str, Any],
        role_arn: Optional[str] = None,
        **kwargs,
    ) -> OperationResult:
        """Write one item. Pass ``ConditionExpression`` for a guarded write."""
        return self._call(
            "put_item", role_arn, TableName=table_name, Item=Item, **kwargs
        )

    def delete_item(
        self, table_name: str, Key: ItemKey, role_arn: Optional[str] = None, **kwargs
    ) -> OperationResult:
        return self._call(
            "delete_item", role_arn, TableName=table_name, Key=Key, **kwargs
        )

    def query(
        self,
        table_name: str,
        KeyConditionExpression: str,
        role_arn: Optional[str] = None,
        **kwargs,
    ) -> OperationResult:
        """Query every page matching a key condition. Data is the merged item list."""
        return self._call(
            "query",
            role_arn,
            keys=["Items"],
            force_paginate=True,
            TableName=table_name,
            KeyConditionExpression=KeyConditionExpression,
            **kwargs,
        )
