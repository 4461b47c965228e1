"""Migration driver.

The driver sequences the steps of a run. Each step assumes the previous
one succeeded; the first fatal failure halts the run and later steps are
never executed. The full migration is:

1. preflight        tools, templates and credentials
2. backup           snapshot every table (missing tables are skipped)
3. schema-apply     deploy the migration template (confirmation gated)
4. readiness        wait for the stack and for every table to be ACTIVE
5. restore          rename attributes and put every snapshot record
6. schema-finalize  deploy the final template and wait again
7. verify           compare table counts with the snapshots
"""

import asyncio
import logging
import shutil
from collections.abc import Awaitable, Callable
from pathlib import Path

from dynamigrate.core.exceptions import (
    ConfirmationDeclinedError,
    DynamigrateError,
    SnapshotNotFoundError,
    TableNotFoundError,
)
from dynamigrate.core.readiness import ReadinessWaiter, Sleep, is_active, is_gone
from dynamigrate.core.settings import MigrationSettings
from dynamigrate.core.tables import TableClient
from dynamigrate.infrastructure.base import InfrastructureTool
from dynamigrate.migrations.rules import DEFAULT_TABLES, TableSpec
from dynamigrate.pipeline.confirm import Confirmer, click_confirmer
from dynamigrate.pipeline.models import MigrationRun, StepName
from dynamigrate.pipeline.preflight import Preflight
from dynamigrate.pipeline.verify import Verifier
from dynamigrate.snapshots.store import Snapshot, SnapshotStore

logger = logging.getLogger(__name__)

Progress = Callable[[str, int, int], None]
StepAction = Callable[[MigrationRun], Awaitable[str | None]]


async def gather_or_cancel(*aws: Awaitable) -> list:
    """Run awaitables concurrently.

    On the first failure the remaining ones are cancelled and awaited before
    the error propagates, so no waiter keeps polling after its step failed.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class MigrationDriver:
    """Runs migration pipelines against a set of tables.

    The driver owns the :class:`MigrationRun` of each pipeline it executes.
    Pipelines return the run rather than raising; inspect
    ``run.status``, ``run.failed_step`` and ``run.error``.
    """

    def __init__(
        self,
        settings: MigrationSettings,
        dynamodb_client,
        infrastructure: InfrastructureTool | None = None,
        sts_client=None,
        tables: tuple[TableSpec, ...] = DEFAULT_TABLES,
        confirm: Confirmer | None = None,
        progress: Progress | None = None,
        sleep: Sleep | None = None,
        cancel_event: asyncio.Event | None = None,
        which: Callable[[str], str | None] = shutil.which,
    ):
        """Initialize the driver.

        Args:
            settings: Immutable run configuration
            dynamodb_client: DynamoDB client for the data plane
            infrastructure: Infrastructure tool used by schema steps
            sts_client: STS client for the credential check
            tables: Tables taking part in the run
            confirm: Confirmation gate for destructive steps
            progress: Called with (table, done, total) while restoring
            sleep: Sleep coroutine used between readiness probes
            cancel_event: Setting this event interrupts readiness waits
            which: Tool lookup used by preflight
        """
        self.settings = settings
        self.table_client = TableClient(dynamodb_client)
        self.infrastructure = infrastructure
        self.preflight = Preflight(settings, sts_client, which=which)
        self.verifier = Verifier(self.table_client)
        self.tables = tables
        self.confirm = confirm or click_confirmer
        self.progress = progress
        self.sleep = sleep
        self.cancel_event = cancel_event

    # Pipelines

    async def migrate(self) -> MigrationRun:
        """Back up, recreate, restore and verify every table."""
        steps = [
            (StepName.PREFLIGHT, self._preflight_full),
            (StepName.BACKUP, self._backup),
            (StepName.SCHEMA_APPLY, self._schema_apply),
            (StepName.READINESS, self._readiness),
            (StepName.RESTORE, self._restore),
            (StepName.SCHEMA_FINALIZE, self._schema_finalize),
            (StepName.VERIFY, self._verify),
        ]
        return await self._execute(self._plan("migrate", steps), steps)

    async def backup(self, output_dir: Path | str | None = None) -> MigrationRun:
        """Snapshot every table into ``output_dir`` (or a new timestamped one)."""
        steps = [
            (StepName.PREFLIGHT, self._preflight_credentials),
            (StepName.BACKUP, self._backup),
        ]
        run = self._plan("backup", steps)
        if output_dir is not None:
            run.snapshot_dir = Path(output_dir)
        return await self._execute(run, steps)

    async def restore(self, snapshot_dir: Path | str) -> MigrationRun:
        """Wait for the tables, replay a snapshot directory and verify."""
        steps = [
            (StepName.READINESS, self._table_readiness),
            (StepName.RESTORE, self._restore),
            (StepName.VERIFY, self._verify),
        ]
        run = self._plan("restore", steps)
        run.snapshot_dir = Path(snapshot_dir)
        return await self._execute(run, steps)

    async def verify(self, snapshot_dir: Path | str | None = None) -> MigrationRun:
        """Check every table, against snapshot counts when a directory is given."""
        steps = [(StepName.VERIFY, self._verify)]
        run = self._plan("verify", steps)
        if snapshot_dir is not None:
            run.snapshot_dir = Path(snapshot_dir)
        return await self._execute(run, steps)

    async def clean_migrate(self) -> MigrationRun:
        """Delete the stack and its tables, then deploy the final template fresh.

        All data is lost. Intended for test environments.
        """
        steps = [
            (StepName.PREFLIGHT, self._preflight_clean),
            (StepName.STACK_TEARDOWN, self._stack_teardown),
            (StepName.TABLE_CLEANUP, self._table_cleanup),
            (StepName.DEPLOY, self._deploy_fresh),
            (StepName.READINESS, self._table_readiness),
            (StepName.VERIFY, self._verify),
        ]
        return await self._execute(self._plan("clean-migrate", steps), steps)

    # Execution

    def _plan(self, kind: str, steps: list[tuple[StepName, StepAction]]) -> MigrationRun:
        return MigrationRun.plan(
            kind,
            [name for name, _ in steps],
            [spec.name for spec in self.tables],
        )

    async def _execute(
        self, run: MigrationRun, steps: list[tuple[StepName, StepAction]]
    ) -> MigrationRun:
        logger.info(f"Starting {run.kind} for stack {self.settings.stack_name}")
        for name, action in steps:
            if not await self._run_step(run, name, action):
                break
        run.finish()
        logger.info(f"{run.kind} finished: {run.status.value}")
        return run

    async def _run_step(self, run: MigrationRun, name: StepName, action: StepAction) -> bool:
        run.start(name)
        logger.info(f"Step {name.value}: started")
        try:
            detail = await action(run)
        except ConfirmationDeclinedError as e:
            logger.warning(f"Step {name.value}: {e.message}")
            run.cancel(name, e)
            return False
        except DynamigrateError as e:
            logger.error(f"Step {name.value} failed: {e}")
            run.fail(name, e)
            return False
        except Exception as e:
            logger.exception(f"Step {name.value} failed unexpectedly: {e}")
            run.fail(name, e)
            return False

        run.succeed(name, detail)
        logger.info(f"Step {name.value}: {detail or 'done'}")
        return True

    def _gate(self, step: StepName, description: str) -> None:
        if self.settings.auto_confirm:
            logger.info(f"Auto-confirmed: {description}")
            return
        if not self.confirm(description):
            raise ConfirmationDeclinedError(step.value)

    def _require_infrastructure(self) -> InfrastructureTool:
        if self.infrastructure is None:
            raise DynamigrateError(
                "This pipeline needs an infrastructure tool",
                "Construct the driver with infrastructure=SamCliTool(...).",
            )
        return self.infrastructure

    def _table_waiter(self, table_name: str, predicate=is_active) -> ReadinessWaiter:
        return ReadinessWaiter(
            lambda: self.table_client.describe(table_name),
            interval=self.settings.table_poll_interval,
            max_attempts=self.settings.table_max_attempts,
            predicate=predicate,
            sleep=self.sleep,
            cancel_event=self.cancel_event,
        )

    def _stack_waiter(self, predicate=is_active) -> ReadinessWaiter:
        infrastructure = self._require_infrastructure()
        return ReadinessWaiter(
            infrastructure.describe_stack,
            interval=self.settings.stack_poll_interval,
            max_attempts=self.settings.stack_max_attempts,
            predicate=predicate,
            sleep=self.sleep,
            cancel_event=self.cancel_event,
        )

    async def _wait_for_tables(self, predicate=is_active) -> None:
        await gather_or_cancel(
            *(
                self._table_waiter(spec.name, predicate).wait_or_raise(f"Table {spec.name}")
                for spec in self.tables
            )
        )

    async def _wait_for_stack(self) -> None:
        await self._stack_waiter().wait_or_raise(f"Stack {self.settings.stack_name}")

    async def _apply(self, template: Path, parameters: dict[str, str]) -> None:
        outcome = await self._require_infrastructure().apply(template, parameters)
        outcome.raise_for_status()

    # Steps

    async def _preflight_full(self, run: MigrationRun) -> str:
        infrastructure = self._require_infrastructure()
        identity = await self.preflight.run(
            tools=infrastructure.required_tools,
            templates=(self.settings.migration_template, self.settings.final_template),
        )
        return f"account {identity.get('Account')}"

    async def _preflight_clean(self, run: MigrationRun) -> str:
        infrastructure = self._require_infrastructure()
        identity = await self.preflight.run(
            tools=infrastructure.required_tools,
            templates=(self.settings.final_template,),
            require_user_pool=True,
        )
        return f"account {identity.get('Account')}"

    async def _preflight_credentials(self, run: MigrationRun) -> str:
        identity = await self.preflight.run()
        return f"account {identity.get('Account')}"

    async def _backup(self, run: MigrationRun) -> str:
        if run.snapshot_dir is None:
            run.snapshot_dir = SnapshotStore.create_backup_dir(self.settings.backup_root)
        store = SnapshotStore(run.snapshot_dir, self.table_client)

        async def capture(spec: TableSpec) -> Snapshot | None:
            report = run.table(spec.name)
            try:
                snapshot = await store.capture(spec.name)
            except TableNotFoundError:
                logger.warning(f"Table {spec.name} does not exist, skipping backup")
                report.backup_skipped = "table does not exist"
                return None
            report.expected = snapshot.item_count
            report.snapshot_path = snapshot.path
            return snapshot

        results = await gather_or_cancel(*(capture(spec) for spec in self.tables))
        captured = [r for r in results if r is not None]
        skipped = len(results) - len(captured)
        detail = f"{len(captured)} table(s) backed up to {run.snapshot_dir}"
        if skipped:
            detail += f", {skipped} skipped"
        return detail

    async def _schema_apply(self, run: MigrationRun) -> str:
        self._require_infrastructure()
        self._gate(
            StepName.SCHEMA_APPLY,
            f"Deploying {self.settings.migration_template} will DELETE and RECREATE "
            f"the tables of stack '{self.settings.stack_name}'. "
            f"Backup: {run.snapshot_dir}",
        )
        await self._apply(self.settings.migration_template, self.settings.parameter_overrides())
        return f"applied {self.settings.migration_template}"

    async def _readiness(self, run: MigrationRun) -> str:
        await self._wait_for_stack()
        await self._wait_for_tables()
        return f"stack and {len(self.tables)} table(s) ready"

    async def _table_readiness(self, run: MigrationRun) -> str:
        await self._wait_for_tables()
        return f"{len(self.tables)} table(s) ready"

    async def _restore(self, run: MigrationRun) -> str:
        store = SnapshotStore(run.snapshot_dir)
        work = []
        for spec in self.tables:
            report = run.table(spec.name)
            if report.backup_skipped:
                continue
            try:
                snapshot = store.load(spec.name)
            except SnapshotNotFoundError as e:
                logger.warning(f"Cannot restore {spec.name}: {e.message}")
                report.restore_skipped = "no snapshot"
                continue
            report.expected = snapshot.item_count
            report.snapshot_path = snapshot.path
            work.append(self.restore_table(spec, snapshot, run))

        await gather_or_cancel(*work)

        for report in run.tables.values():
            if report.failed:
                reasons = ", ".join(f"{k}: {v}" for k, v in sorted(report.failure_reasons.items()))
                logger.warning(
                    f"{report.failed} item(s) failed to restore into {report.table_name} ({reasons})"
                )
        return f"{run.restored} item(s) restored, {run.write_failures} failed"

    async def restore_table(self, spec: TableSpec, snapshot: Snapshot, run: MigrationRun) -> None:
        """Replay one snapshot into its table.

        Each record is renamed before its put. Write failures are counted on
        the table report and never stop the loop.
        """
        report = run.table(spec.name)
        total = len(snapshot.items)
        if not total:
            logger.info(f"No items to restore into {spec.name}")
            return

        semaphore = asyncio.Semaphore(self.settings.write_concurrency)
        done = 0

        async def write(item: dict) -> None:
            nonlocal done
            record = spec.rules.transform(item)
            async with semaphore:
                outcome = await self.table_client.put_item(spec.name, record)
            report.record(outcome)
            done += 1
            if self.progress:
                self.progress(spec.name, done, total)

        logger.info(f"Restoring {total} items into {spec.name} (rules: {spec.rules.name})")
        await gather_or_cancel(*(write(item) for item in snapshot.items))
        logger.info(f"Restored {report.restored}/{total} items into {spec.name}")

    async def _schema_finalize(self, run: MigrationRun) -> str:
        await self._apply(self.settings.final_template, self.settings.parameter_overrides())
        await self._wait_for_stack()
        await self._wait_for_tables()
        return f"applied {self.settings.final_template}"

    async def _verify(self, run: MigrationRun) -> str:
        store = SnapshotStore(run.snapshot_dir) if run.snapshot_dir else None

        async def check(spec: TableSpec) -> None:
            report = run.table(spec.name)
            if report.expected is None and store is not None and store.exists(spec.name):
                report.expected = store.load(spec.name).item_count
            report.verification = await self.verifier.verify_table(
                spec.name, report.expected, spec.rules
            )

        await gather_or_cancel(*(check(spec) for spec in self.tables))
        problems = [r.table_name for r in run.tables.values() if r.verification and not r.verification.ok]
        if problems:
            return f"discrepancies in {', '.join(sorted(problems))}"
        return f"{len(self.tables)} table(s) verified"

    async def _stack_teardown(self, run: MigrationRun) -> str:
        infrastructure = self._require_infrastructure()
        self._gate(
            StepName.STACK_TEARDOWN,
            f"This will DELETE stack '{self.settings.stack_name}' and ALL data in its tables.",
        )
        if not await infrastructure.delete_stack():
            return "stack did not exist"
        await self._stack_waiter(is_gone).wait_or_raise(
            f"Deletion of stack {self.settings.stack_name}"
        )
        return "stack deleted"

    async def _table_cleanup(self, run: MigrationRun) -> str:
        async def remove(spec: TableSpec) -> bool:
            if not await self.table_client.delete(spec.name):
                return False
            await self._table_waiter(spec.name, is_gone).wait_or_raise(
                f"Deletion of table {spec.name}"
            )
            return True

        removed = await gather_or_cancel(*(remove(spec) for spec in self.tables))
        return f"{sum(removed)} retained table(s) deleted"

    async def _deploy_fresh(self, run: MigrationRun) -> str:
        await self._apply(self.settings.final_template, self.settings.parameter_overrides())
        await self._wait_for_stack()
        run.outputs = await self._require_infrastructure().stack_outputs()
        return f"applied {self.settings.final_template}"
