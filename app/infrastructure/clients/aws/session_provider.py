"""boto3 session and client configuration for the record store.

A SessionProvider turns the ``aws`` settings section into the keyword
arguments ``execute_aws_api_call`` expects: region, an optional local
endpoint (DynamoDB Local, LocalStack) and the role to assume per service.
"""

from typing import Any, Dict, Mapping, Optional

from infrastructure.clients.aws.executor import get_boto3_client
from infrastructure.configuration.integrations.aws import AwsSettings
from infrastructure.logging import get_module_logger

logger = get_module_logger()


class SessionProvider:
    """Builds boto3 session and client configuration.

    Args:
        region: Region used for the session and every client.
        service_role_map: Role ARN to assume, keyed by service name.
        endpoint_url: Endpoint override for local stacks.
    """

    def __init__(
        self,
        region: Optional[str] = None,
        service_role_map: Optional[Mapping[str, str]] = None,
        endpoint_url: Optional[str] = None,
    ) -> None:
        self.region = region
        self.service_role_map = dict(service_role_map or {})
        self.endpoint_url = endpoint_url

    @classmethod
    def from_settings(cls, aws: AwsSettings) -> "SessionProvider":
        return cls(
            region=aws.AWS_REGION,
            service_role_map=aws.SERVICE_ROLE_MAP,
            endpoint_url=aws.ENDPOINT_URL,
        )

    def get_role_arn_for_service(self, service_name: str) -> Optional[str]:
        return self.service_role_map.get(service_name)

    def build_client_kwargs(
        self,
        service_name: Optional[str] = None,
        role_arn: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Keyword arguments for ``execute_aws_api_call``.

        An explicit ``role_arn`` wins over the service map. Empty configs
        are passed as ``None`` so boto3 falls back to its own defaults.
        """
        if role_arn is None and service_name:
            role_arn = self.get_role_arn_for_service(service_name)

        session_config = {"region_name": self.region} if self.region else {}
        client_config = dict(session_config)
        if self.endpoint_url:
            client_config["endpoint_url"] = self.endpoint_url

        logger.debug(
            "aws_client_kwargs_built",
            service_name=service_name,
            region=self.region,
            endpoint_url=self.endpoint_url,
            assumes_role=role_arn is not None,
        )
        return {
            "session_config": session_config or None,
            "client_config": client_config or None,
            "role_arn": role_arn,
        }

    def get_boto3_client(
        self, service_name: str, role_arn: Optional[str] = None
    ) -> Any:
        return get_boto3_client(
            service_name, **self.build_client_kwargs(service_name, role_arn)
        )
