"""Testing utilities for dynamigrate."""

from pathlib import Path

from dynamigrate.core.settings import MigrationSettings


def create_test_settings(
    workdir: Path,
    stack_name: str = "test-stack",
    region: str = "eu-west-2",
    **overrides,
) -> MigrationSettings:
    """Create settings suitable for tests.

    Both templates are written to ``workdir`` so preflight finds them,
    backups go under ``workdir`` and polling uses tiny intervals.

    Args:
        workdir: Directory for templates and backups
        stack_name: Stack name
        region: AWS region
        **overrides: Additional settings to override
    """
    workdir = Path(workdir)
    migration_template = workdir / "template-migration.yaml"
    final_template = workdir / "template.yaml"
    for template in (migration_template, final_template):
        if not template.exists():
            template.write_text("AWSTemplateFormatVersion: '2010-09-09'\n")

    values = {
        "aws_region": region,
        "aws_access_key_id": "testing",
        "aws_secret_access_key": "testing",
        "stack_name": stack_name,
        "user_pool_id": "eu-west-2_test",
        "migration_template": migration_template,
        "final_template": final_template,
        "backup_root": workdir,
        "auto_confirm": True,
        "table_poll_interval": 0.01,
        "table_max_attempts": 5,
        "stack_poll_interval": 0.01,
        "stack_max_attempts": 5,
        "write_concurrency": 4,
    }
    values.update(overrides)
    return MigrationSettings(**values)


def fake_which(tool: str) -> str:
    """Tool lookup that finds every tool."""
    return f"/usr/local/bin/{tool}"


async def no_sleep(seconds: float) -> None:
    """Sleep replacement that returns immediately."""
    return None
