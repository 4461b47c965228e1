"""Settings for dynamigrate runs."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from dynamigrate.core.exceptions import ConfigurationError


class MigrationSettings(BaseSettings):
    """Immutable configuration for a migration run.

    Values are read from keyword arguments first, then from environment
    variables (``AWS_REGION``, ``STACK_NAME``, ``USER_POOL_ID``, ...) and
    an optional ``.env`` file, then from the defaults below.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        frozen=True,
    )

    # AWS
    aws_region: str = "eu-west-2"
    aws_url: str | None = None
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None
    aws_retry_attempts: int = 3

    # Stack
    stack_name: str = "lockbox-box-service"
    user_pool_id: str | None = None
    stage: str = "prod"
    deployment_bucket: str | None = None
    migration_template: Path = Path("template-migration.yaml")
    final_template: Path = Path("template.yaml")

    # Run behaviour
    auto_confirm: bool = False
    backup_root: Path = Path(".")
    table_poll_interval: float = 2.0
    table_max_attempts: int = 60
    stack_poll_interval: float = 5.0
    stack_max_attempts: int = 360
    write_concurrency: int = Field(default=16, ge=1)

    @property
    def bucket_name(self) -> str:
        """Deployment bucket used by the infrastructure tool."""
        return self.deployment_bucket or f"lockbox-deployment-bucket-{self.aws_region}"

    def parameter_overrides(self, include_user_pool: bool = True) -> dict[str, str]:
        """Template parameters passed on every apply."""
        params = {"Stage": self.stage}
        if include_user_pool and self.user_pool_id:
            params["UserPoolId"] = self.user_pool_id
        return params

    def validate_for_run(self, require_user_pool: bool = False) -> None:
        """Check that everything a run depends on is present.

        Args:
            require_user_pool: Fail when ``user_pool_id`` is unset

        Raises:
            ConfigurationError: listing every missing or invalid field
        """
        missing = []
        if not self.aws_region:
            missing.append("aws_region")
        if not self.stack_name:
            missing.append("stack_name")
        if require_user_pool and not self.user_pool_id:
            missing.append("user_pool_id")
        if self.table_poll_interval <= 0:
            missing.append("table_poll_interval")
        if self.table_max_attempts < 1:
            missing.append("table_max_attempts")
        if self.stack_poll_interval <= 0:
            missing.append("stack_poll_interval")
        if self.stack_max_attempts < 1:
            missing.append("stack_max_attempts")
        if missing:
            raise ConfigurationError(missing_fields=missing)
