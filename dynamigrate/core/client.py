"""AWS client manager for the services a migration talks to."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from aiobotocore.client import AioBaseClient
from aiobotocore.session import get_session
from botocore.config import Config

from dynamigrate.core.settings import MigrationSettings


class AWSClientManager:
    """Creates aiobotocore clients configured from migration settings.

    One session is shared by every client; each client is an async context
    manager and is closed when the ``async with`` block exits.
    """

    def __init__(self, settings: MigrationSettings):
        """Initialize the client manager.

        Args:
            settings: Migration settings
        """
        self.settings = settings
        self._session = get_session()
        self._client_config = Config(
            retries={
                "max_attempts": settings.aws_retry_attempts,
                "mode": "standard",
            },
        )

    def _client_kwargs(self) -> dict:
        kwargs = {
            "region_name": self.settings.aws_region,
            "config": self._client_config,
        }
        if self.settings.aws_url:
            kwargs["endpoint_url"] = self.settings.aws_url
        if self.settings.aws_access_key_id:
            kwargs["aws_access_key_id"] = self.settings.aws_access_key_id
            kwargs["aws_secret_access_key"] = self.settings.aws_secret_access_key
        return kwargs

    @asynccontextmanager
    async def client(self, service: str) -> AsyncGenerator[AioBaseClient, None]:
        """Get an async client for an AWS service.

        Args:
            service: Service name, e.g. ``"dynamodb"``

        Yields:
            An aiobotocore client
        """
        async with self._session.create_client(service, **self._client_kwargs()) as client:
            yield client

    def dynamodb(self):
        """Client for the data plane."""
        return self.client("dynamodb")

    def cloudformation(self):
        """Client for stack status and outputs."""
        return self.client("cloudformation")

    def sts(self):
        """Client used for the credential check."""
        return self.client("sts")

    def s3(self):
        """Client used for the deployment bucket."""
        return self.client("s3")
