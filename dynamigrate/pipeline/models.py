"""State of a migration run."""

import enum
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from dynamigrate.core.tables import WriteOutcome
from dynamigrate.pipeline.verify import TableVerification


class StepName(str, enum.Enum):
    PREFLIGHT = "preflight"
    BACKUP = "backup"
    SCHEMA_APPLY = "schema-apply"
    READINESS = "readiness"
    RESTORE = "restore"
    SCHEMA_FINALIZE = "schema-finalize"
    VERIFY = "verify"
    STACK_TEARDOWN = "stack-teardown"
    TABLE_CLEANUP = "table-cleanup"
    DEPLOY = "deploy"


class StepStatus(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class RunStatus(str, enum.Enum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class StepRecord:
    name: StepName
    status: StepStatus = StepStatus.PENDING
    detail: str | None = None
    error: Exception | None = None


@dataclass
class TableReport:
    """Per-table counts accumulated over a run.

    Attributes:
        table_name: The table
        expected: Declared item count of the table's snapshot
        snapshot_path: Snapshot file used for the table
        backup_skipped: Why the table was not backed up (e.g. it did not exist)
        restore_skipped: Why the table could not be restored
        restored: Records written successfully
        failed: Records whose write failed
        failure_reasons: Failed writes grouped by reason
        verification: Result of the verify step
    """

    table_name: str
    expected: int | None = None
    snapshot_path: Path | None = None
    backup_skipped: str | None = None
    restore_skipped: str | None = None
    restored: int = 0
    failed: int = 0
    failure_reasons: Counter = field(default_factory=Counter)
    verification: TableVerification | None = None

    def record(self, outcome: WriteOutcome) -> None:
        if outcome.ok:
            self.restored += 1
        else:
            self.failed += 1
            self.failure_reasons[outcome.reason or "error"] += 1

    @property
    def has_issues(self) -> bool:
        if self.failed or self.restore_skipped:
            return True
        return self.verification is not None and not self.verification.ok


@dataclass
class MigrationRun:
    """Ephemeral state of one pipeline execution.

    Attributes:
        kind: Pipeline that was run (migrate, backup, restore, ...)
        steps: Step records, in execution order
        tables: Per-table reports
        snapshot_dir: Snapshot directory in use
        failed_step: Step that failed fatally, if any
        error: The fatal error, if any
        cancelled: Whether the operator declined a confirmation
        outputs: Stack outputs collected at the end of the run
    """

    kind: str
    steps: dict[StepName, StepRecord] = field(default_factory=dict)
    tables: dict[str, TableReport] = field(default_factory=dict)
    snapshot_dir: Path | None = None
    failed_step: StepName | None = None
    error: Exception | None = None
    cancelled: bool = False
    outputs: dict[str, str] = field(default_factory=dict)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None

    @classmethod
    def plan(cls, kind: str, steps: list[StepName], tables: list[str]) -> "MigrationRun":
        return cls(
            kind=kind,
            steps={name: StepRecord(name) for name in steps},
            tables={name: TableReport(name) for name in tables},
        )

    def table(self, name: str) -> TableReport:
        if name not in self.tables:
            self.tables[name] = TableReport(name)
        return self.tables[name]

    def start(self, step: StepName) -> None:
        self.steps.setdefault(step, StepRecord(step)).status = StepStatus.RUNNING

    def succeed(self, step: StepName, detail: str | None = None) -> None:
        record = self.steps[step]
        record.status = StepStatus.SUCCEEDED
        record.detail = detail

    def fail(self, step: StepName, error: Exception) -> None:
        record = self.steps[step]
        record.status = StepStatus.FAILED
        record.error = error
        self.failed_step = step
        self.error = error

    def cancel(self, step: StepName, error: Exception) -> None:
        record = self.steps[step]
        record.status = StepStatus.SKIPPED
        record.detail = "declined"
        record.error = error
        self.cancelled = True
        self.error = error

    def skip_pending(self) -> None:
        for record in self.steps.values():
            if record.status is StepStatus.PENDING:
                record.status = StepStatus.SKIPPED
                record.detail = "not run"

    def finish(self) -> None:
        self.skip_pending()
        self.finished_at = datetime.now(timezone.utc)

    @property
    def restored(self) -> int:
        return sum(report.restored for report in self.tables.values())

    @property
    def write_failures(self) -> int:
        return sum(report.failed for report in self.tables.values())

    @property
    def status(self) -> RunStatus:
        if self.cancelled:
            return RunStatus.CANCELLED
        if self.failed_step is not None:
            return RunStatus.FAILED
        if self.finished_at is None:
            return RunStatus.RUNNING
        if any(report.has_issues for report in self.tables.values()):
            return RunStatus.COMPLETED_WITH_ERRORS
        return RunStatus.SUCCEEDED
