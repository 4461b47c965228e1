"""Environment checks that run before anything is changed."""

import logging
import shutil
from collections.abc import Callable
from pathlib import Path

from botocore.exceptions import BotoCoreError, ClientError

from dynamigrate.core.exceptions import (
    CredentialInvalidError,
    PrerequisiteMissingError,
)
from dynamigrate.core.settings import MigrationSettings

logger = logging.getLogger(__name__)


class Preflight:
    """Checks configuration, required tools, templates and credentials.

    Every failure is fatal: nothing after preflight may run against a
    broken environment.
    """

    def __init__(
        self,
        settings: MigrationSettings,
        sts_client=None,
        which: Callable[[str], str | None] = shutil.which,
    ):
        self.settings = settings
        self.sts = sts_client
        self.which = which

    def check_tools(self, tools: tuple[str, ...]) -> None:
        for tool in tools:
            if self.which(tool) is None:
                raise PrerequisiteMissingError(tool)

    def check_templates(self, templates: tuple[Path, ...]) -> None:
        for template in templates:
            if not Path(template).is_file():
                raise PrerequisiteMissingError(
                    str(template),
                    f"Template {template} not found",
                )

    async def check_credentials(self) -> dict:
        """Confirm the credentials resolve to an identity.

        Returns:
            The caller identity (Account, Arn, UserId)
        """
        if self.sts is None:
            raise CredentialInvalidError("No STS client available to check credentials")
        try:
            identity = await self.sts.get_caller_identity()
        except (ClientError, BotoCoreError) as e:
            raise CredentialInvalidError(original_error=e) from e
        logger.info(
            f"Using AWS account {identity.get('Account')} as {identity.get('Arn')}"
        )
        return identity

    async def run(
        self,
        tools: tuple[str, ...] = (),
        templates: tuple[Path, ...] = (),
        require_user_pool: bool = False,
    ) -> dict:
        self.settings.validate_for_run(require_user_pool)
        self.check_tools(tools)
        self.check_templates(templates)
        return await self.check_credentials()
