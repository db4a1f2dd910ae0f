"""STS role assumption into linked data source accounts."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import boto3

LOGGER = logging.getLogger("workbench.role_sessions")

DEFAULT_SESSION_NAME = "swb-reachability"


class RoleSessionFactory:
    """Builds boto3 clients that act as an IAM role in another account."""

    def __init__(self, region: str, profile: Optional[str] = None):
        session_kwargs = {"region_name": region}
        if profile:
            session_kwargs["profile_name"] = profile

        self.session = boto3.Session(**session_kwargs)
        self.sts = self.session.client("sts")
        self.region = region

    def assume_role(
        self,
        role_arn: str,
        session_name: str = DEFAULT_SESSION_NAME,
        external_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Assume ``role_arn`` and return its temporary credentials.

        Raises:
            ClientError: when the role cannot be assumed
        """
        kwargs: Dict[str, Any] = {"RoleArn": role_arn, "RoleSessionName": session_name}
        if external_id:
            kwargs["ExternalId"] = external_id
        response = self.sts.assume_role(**kwargs)
        LOGGER.debug("Assumed role %s", role_arn)
        return response["Credentials"]

    def client_for_role(
        self,
        role_arn: str,
        service: str,
        region: Optional[str] = None,
        external_id: Optional[str] = None,
    ) -> Any:
        credentials = self.assume_role(role_arn, external_id=external_id)
        role_session = boto3.Session(
            aws_access_key_id=credentials["AccessKeyId"],
            aws_secret_access_key=credentials["SecretAccessKey"],
            aws_session_token=credentials["SessionToken"],
            region_name=region or self.region,
        )
        return role_session.client(service)
