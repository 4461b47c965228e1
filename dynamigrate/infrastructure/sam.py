"""SAM CLI and CloudFormation backed infrastructure tool."""

import asyncio
import logging
from pathlib import Path

from botocore.exceptions import BotoCoreError, ClientError

from dynamigrate.core.exceptions import (
    InfrastructureApplyError,
    PrerequisiteMissingError,
    StackOperationError,
)
from dynamigrate.core.settings import MigrationSettings
from dynamigrate.core.tables import ReadinessState, error_code
from dynamigrate.infrastructure.base import ApplyOutcome

logger = logging.getLogger(__name__)

CAPABILITIES = ("CAPABILITY_IAM", "CAPABILITY_AUTO_EXPAND")


def stack_state(status: str) -> ReadinessState:
    """Map a CloudFormation stack status to a readiness state."""
    if status == "DELETE_COMPLETE":
        return ReadinessState.not_found()
    if status.endswith("_COMPLETE") and "ROLLBACK" not in status:
        return ReadinessState.active(status)
    return ReadinessState.transitioning(status)


class SamCliTool:
    """Deploys templates with ``sam deploy`` and watches the stack through
    the CloudFormation API.
    """

    required_tools = ("sam",)

    def __init__(
        self,
        settings: MigrationSettings,
        cloudformation_client,
        s3_client=None,
        executable: str = "sam",
    ):
        """Initialize the tool.

        Args:
            settings: Migration settings (stack, region, bucket)
            cloudformation_client: aiobotocore CloudFormation client
            s3_client: aiobotocore S3 client for the deployment bucket
            executable: SAM CLI executable
        """
        self.settings = settings
        self.stack_name = settings.stack_name
        self.cloudformation = cloudformation_client
        self.s3 = s3_client
        self.executable = executable

    def deploy_command(self, template: Path, parameters: dict[str, str]) -> list[str]:
        command = [
            self.executable,
            "deploy",
            "--template-file",
            str(template),
            "--stack-name",
            self.stack_name,
            "--s3-bucket",
            self.settings.bucket_name,
            "--capabilities",
            *CAPABILITIES,
            "--region",
            self.settings.aws_region,
            "--no-confirm-changeset",
            "--no-fail-on-empty-changeset",
        ]
        if parameters:
            command.append("--parameter-overrides")
            command.extend(f"{key}={value}" for key, value in parameters.items())
        return command

    async def ensure_bucket_exists(self) -> None:
        """Create the deployment bucket if it is missing.

        Raises:
            InfrastructureApplyError: If the bucket can't be checked or created
        """
        if self.s3 is None:
            return

        bucket = self.settings.bucket_name
        try:
            await self.s3.head_bucket(Bucket=bucket)
            return
        except ClientError as e:
            code = error_code(e)
            if code not in ("404", "NoSuchBucket", "NotFound"):
                raise InfrastructureApplyError(
                    "deployment bucket", self.stack_name, detail=f"Error checking bucket {bucket}: {e}"
                ) from e

        logger.info(f"Creating deployment bucket {bucket}")
        params = {"Bucket": bucket}
        # us-east-1 rejects an explicit location constraint
        if self.settings.aws_region != "us-east-1":
            params["CreateBucketConfiguration"] = {
                "LocationConstraint": self.settings.aws_region
            }
        try:
            await self.s3.create_bucket(**params)
        except ClientError as e:
            if error_code(e) not in ("BucketAlreadyOwnedByYou",):
                raise InfrastructureApplyError(
                    "deployment bucket", self.stack_name, detail=f"Failed to create bucket {bucket}: {e}"
                ) from e

    async def apply(self, template: Path, parameters: dict[str, str]) -> ApplyOutcome:
        """Deploy a template to the stack.

        A non-zero exit status is returned as a failed outcome, not raised.
        """
        await self.ensure_bucket_exists()

        command = self.deploy_command(template, parameters)
        logger.info(f"Deploying {template} to stack {self.stack_name}")
        logger.debug("Running: " + " ".join(command))

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except FileNotFoundError as e:
            raise PrerequisiteMissingError(self.executable) from e

        stdout, _ = await process.communicate()
        output = stdout.decode("utf-8", errors="replace") if stdout else ""
        outcome = ApplyOutcome(
            template=str(template),
            stack_name=self.stack_name,
            ok=process.returncode == 0,
            returncode=process.returncode,
            output=output,
        )
        if outcome.ok:
            logger.info(f"Deployed {template} to stack {self.stack_name}")
        else:
            logger.error(
                f"sam deploy of {template} exited with {process.returncode}:\n{outcome.tail()}"
            )
        return outcome

    async def _describe(self) -> dict | None:
        try:
            response = await self.cloudformation.describe_stacks(StackName=self.stack_name)
        except ClientError as e:
            if error_code(e) == "ValidationError" and "does not exist" in str(e):
                return None
            raise StackOperationError(self.stack_name, "describe_stacks", e) from e
        except BotoCoreError as e:
            raise StackOperationError(self.stack_name, "describe_stacks", e) from e
        stacks = response.get("Stacks", [])
        return stacks[0] if stacks else None

    async def describe_stack(self) -> ReadinessState:
        stack = await self._describe()
        if stack is None:
            return ReadinessState.not_found()
        return stack_state(stack.get("StackStatus", "UNKNOWN"))

    async def delete_stack(self) -> bool:
        if await self._describe() is None:
            logger.info(f"Stack {self.stack_name} does not exist, skipping deletion")
            return False
        logger.info(f"Deleting stack {self.stack_name}")
        try:
            await self.cloudformation.delete_stack(StackName=self.stack_name)
        except (ClientError, BotoCoreError) as e:
            raise StackOperationError(self.stack_name, "delete_stack", e) from e
        return True

    async def stack_outputs(self) -> dict[str, str]:
        stack = await self._describe()
        if stack is None:
            return {}
        return {
            output["OutputKey"]: output.get("OutputValue", "")
            for output in stack.get("Outputs", [])
        }
