"""dynamigrate CLI tool."""

import asyncio
import contextlib
import logging
import signal
from pathlib import Path

import click
from botocore.exceptions import BotoCoreError, ClientError

from dynamigrate.core.client import AWSClientManager
from dynamigrate.core.exceptions import DynamigrateError
from dynamigrate.core.settings import MigrationSettings
from dynamigrate.infrastructure.sam import SamCliTool
from dynamigrate.migrations.rules import select_tables
from dynamigrate.pipeline.confirm import click_confirmer, typed_confirmer
from dynamigrate.pipeline.driver import MigrationDriver
from dynamigrate.pipeline.models import MigrationRun, RunStatus, StepStatus

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INCOMPLETE = 3
EXIT_CANCELLED = 4

PROGRESS_EVERY = 100

STEP_MARKS = {
    StepStatus.SUCCEEDED: "✓",
    StepStatus.FAILED: "✗",
    StepStatus.SKIPPED: "○",
    StepStatus.PENDING: "○",
    StepStatus.RUNNING: "…",
}


def exit_code(run: MigrationRun) -> int:
    """Map a finished run to the process exit status."""
    return {
        RunStatus.SUCCEEDED: EXIT_OK,
        RunStatus.COMPLETED_WITH_ERRORS: EXIT_INCOMPLETE,
        RunStatus.CANCELLED: EXIT_CANCELLED,
    }.get(run.status, EXIT_FAILED)


def build_settings(**options) -> MigrationSettings:
    """Settings from CLI options; unset options fall back to env and defaults."""
    return MigrationSettings(**{k: v for k, v in options.items() if v is not None})


def echo_progress(table: str, done: int, total: int) -> None:
    """Print a line every PROGRESS_EVERY items and when a table finishes."""
    if done == total or done % PROGRESS_EVERY == 0:
        click.echo(f"  {table}: restored {done}/{total} items")


def echo_summary(run: MigrationRun) -> None:
    """Print steps, per-table counts and the final status."""
    click.echo(f"\n📋 {run.kind} summary:\n")
    for record in run.steps.values():
        line = f"  {STEP_MARKS[record.status]} {record.name.value}"
        if record.detail:
            line += f": {record.detail}"
        click.echo(line)

    click.echo("\nTables:")
    for report in run.tables.values():
        parts = []
        if report.backup_skipped:
            parts.append(f"not backed up ({report.backup_skipped})")
        if report.expected is not None:
            parts.append(f"expected {report.expected}")
        if report.restored or report.failed:
            parts.append(f"restored {report.restored}")
            parts.append(f"failed {report.failed}")
        if report.restore_skipped:
            parts.append(f"not restored ({report.restore_skipped})")
        if report.verification is not None:
            parts.append(f"verify: {report.verification.describe()}")
        click.echo(f"  {report.table_name}: {', '.join(parts) or 'no activity'}")

    if run.snapshot_dir:
        click.echo(f"\nSnapshot directory: {run.snapshot_dir}")

    if run.outputs:
        click.echo("\nStack outputs:")
        for key, value in sorted(run.outputs.items()):
            click.echo(f"  {key}: {value}")

    status = run.status
    if status is RunStatus.SUCCEEDED:
        click.secho(f"\n✅ {run.kind} complete", fg="green")
    elif status is RunStatus.COMPLETED_WITH_ERRORS:
        click.secho(
            f"\n⚠️  {run.kind} completed with {run.write_failures} failed write(s) "
            "or verification discrepancies",
            fg="yellow",
        )
    elif status is RunStatus.CANCELLED:
        click.secho(f"\n🛑 {run.kind} cancelled: {run.error}", fg="yellow")
    else:
        step = run.failed_step.value if run.failed_step else "unknown"
        click.secho(f"\n❌ {run.kind} failed at step '{step}':\n{run.error}", fg="red")


def run_pipeline(settings: MigrationSettings, tables, pipeline, confirm=click_confirmer) -> int:
    """Wire AWS clients to a driver, run one pipeline and report it.

    Args:
        settings: Run settings
        tables: Table specs taking part
        pipeline: Coroutine function taking the driver and returning a run
        confirm: Confirmation gate for destructive steps

    Returns:
        The process exit status
    """

    async def _run() -> MigrationRun:
        cancel_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(signal.SIGTERM, cancel_event.set)

        manager = AWSClientManager(settings)
        async with manager.dynamodb() as dynamodb, manager.sts() as sts, \
                manager.cloudformation() as cloudformation, manager.s3() as s3:
            driver = MigrationDriver(
                settings,
                dynamodb,
                infrastructure=SamCliTool(settings, cloudformation, s3),
                sts_client=sts,
                tables=tables,
                confirm=confirm,
                progress=echo_progress,
                cancel_event=cancel_event,
            )
            return await pipeline(driver)

    try:
        run = asyncio.run(_run())
    except DynamigrateError as e:
        click.secho(f"❌ {e}", fg="red")
        return EXIT_FAILED
    except (ClientError, BotoCoreError) as e:
        click.secho(f"❌ AWS error: {e}", fg="red")
        return EXIT_FAILED

    echo_summary(run)
    return exit_code(run)


region_option = click.option(
    "-r", "--region", "aws_region", help="AWS region (default: AWS_REGION or eu-west-2)"
)
stack_option = click.option(
    "-s", "--stack-name", help="CloudFormation stack name (default: lockbox-box-service)"
)
endpoint_option = click.option("--endpoint", "aws_url", help="AWS endpoint URL (for LocalStack)")
table_option = click.option(
    "--table", "tables", multiple=True, help="Table to include (repeatable; default: all)"
)
yes_option = click.option(
    "-y", "--yes", "auto_confirm", is_flag=True, default=None, help="Skip confirmation prompts"
)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
def cli(verbose):
    """dynamigrate - back up, recreate and restore DynamoDB tables."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # botocore is very chatty at DEBUG
    logging.getLogger("botocore").setLevel(logging.WARNING)


@cli.command()
@click.argument("output_dir", required=False, type=click.Path(file_okay=False, path_type=Path))
@region_option
@endpoint_option
@table_option
@click.pass_context
def backup(ctx, output_dir, aws_region, aws_url, tables):
    """Back up tables to JSON snapshots.

    Without OUTPUT_DIR a timestamped dynamodb-backup-* directory is created.
    """
    settings = build_settings(aws_region=aws_region, aws_url=aws_url)
    click.echo(f"💾 Backing up tables in {settings.aws_region}")
    ctx.exit(
        run_pipeline(settings, select_tables(tables), lambda d: d.backup(output_dir))
    )


@cli.command()
@click.argument("snapshot_dir", type=click.Path(exists=True, file_okay=False, path_type=Path))
@region_option
@endpoint_option
@table_option
@click.pass_context
def restore(ctx, snapshot_dir, aws_region, aws_url, tables):
    """Restore tables from a snapshot directory, renaming legacy attributes."""
    settings = build_settings(aws_region=aws_region, aws_url=aws_url)
    click.echo(f"♻️  Restoring from {snapshot_dir} in {settings.aws_region}")
    ctx.exit(
        run_pipeline(settings, select_tables(tables), lambda d: d.restore(snapshot_dir))
    )


@cli.command()
@stack_option
@region_option
@endpoint_option
@table_option
@yes_option
@click.option("--user-pool-id", help="Cognito user pool ID passed to the templates")
@click.option("--migration-template", type=click.Path(path_type=Path), help="Template that recreates the tables")
@click.option("--template", "final_template", type=click.Path(path_type=Path), help="Final template")
@click.pass_context
def migrate(ctx, stack_name, aws_region, aws_url, tables, auto_confirm, user_pool_id,
            migration_template, final_template):
    """Run the full backup, recreate, restore and verify migration."""
    settings = build_settings(
        stack_name=stack_name,
        aws_region=aws_region,
        aws_url=aws_url,
        auto_confirm=auto_confirm,
        user_pool_id=user_pool_id,
        migration_template=migration_template,
        final_template=final_template,
    )
    click.echo(f"🚚 Migrating stack {settings.stack_name} in {settings.aws_region}")
    ctx.exit(run_pipeline(settings, select_tables(tables), lambda d: d.migrate()))


@cli.command("clean-migrate")
@stack_option
@region_option
@endpoint_option
@table_option
@yes_option
@click.option("--user-pool-id", help="Cognito user pool ID passed to the template")
@click.option("--template", "final_template", type=click.Path(path_type=Path), help="Template to deploy")
@click.pass_context
def clean_migrate(ctx, stack_name, aws_region, aws_url, tables, auto_confirm, user_pool_id,
                  final_template):
    """Delete the stack and ALL its data, then deploy it fresh.

    Only for test environments.
    """
    settings = build_settings(
        stack_name=stack_name,
        aws_region=aws_region,
        aws_url=aws_url,
        auto_confirm=auto_confirm,
        user_pool_id=user_pool_id,
        final_template=final_template,
    )
    click.secho("CLEAN MIGRATION - ALL DATA WILL BE DELETED", fg="red", bold=True)
    click.echo(f"  Stack: {settings.stack_name}")
    click.echo(f"  Region: {settings.aws_region}")
    click.echo(f"  User pool: {settings.user_pool_id or '(none)'}")
    ctx.exit(
        run_pipeline(
            settings,
            select_tables(tables),
            lambda d: d.clean_migrate(),
            confirm=typed_confirmer("DELETE"),
        )
    )


@cli.command()
@click.argument("snapshot_dir", required=False, type=click.Path(exists=True, file_okay=False, path_type=Path))
@region_option
@endpoint_option
@table_option
@click.pass_context
def verify(ctx, snapshot_dir, aws_region, aws_url, tables):
    """Compare table counts against a snapshot directory (or check reachability)."""
    settings = build_settings(aws_region=aws_region, aws_url=aws_url)
    ctx.exit(
        run_pipeline(settings, select_tables(tables), lambda d: d.verify(snapshot_dir))
    )


@cli.command()
def version():
    """Show dynamigrate version."""
    from dynamigrate import __version__

    click.echo(f"dynamigrate version: {__version__}")


if __name__ == "__main__":
    cli()
