"""dynamigrate: resumable DynamoDB schema migrations driven by backup and restore."""

__version__ = "0.1.0"

# Core components
from dynamigrate.core.client import AWSClientManager
from dynamigrate.core.exceptions import (
    DynamigrateError,
    ConfigurationError,
    PrerequisiteMissingError,
    CredentialInvalidError,
    TableNotFoundError,
    TableOperationError,
    SnapshotNotFoundError,
    SnapshotFormatError,
    ReadinessTimeoutError,
    WaitCancelledError,
    ConfirmationDeclinedError,
    InfrastructureApplyError,
    StackOperationError,
)
from dynamigrate.core.readiness import ReadinessWaiter, WaitOutcome, WaitState
from dynamigrate.core.settings import MigrationSettings
from dynamigrate.core.tables import ReadinessState, TableClient, WriteOutcome

# Renaming
from dynamigrate.migrations import (
    IDENTITY,
    INVITATION_RULES,
    DEFAULT_TABLES,
    RenameRule,
    RuleSet,
    TableSpec,
)

# Snapshots
from dynamigrate.snapshots import Snapshot, SnapshotStore

# Infrastructure
from dynamigrate.infrastructure import ApplyOutcome, InfrastructureTool, SamCliTool

# Pipeline
from dynamigrate.pipeline import (
    MigrationDriver,
    MigrationRun,
    RunStatus,
    StepName,
    StepStatus,
    Verifier,
    Match,
    Mismatch,
    always_confirm,
)

__all__ = [
    # Version
    "__version__",
    # Core
    "AWSClientManager",
    "MigrationSettings",
    "TableClient",
    "ReadinessState",
    "WriteOutcome",
    "ReadinessWaiter",
    "WaitOutcome",
    "WaitState",
    # Errors
    "DynamigrateError",
    "ConfigurationError",
    "PrerequisiteMissingError",
    "CredentialInvalidError",
    "TableNotFoundError",
    "TableOperationError",
    "SnapshotNotFoundError",
    "SnapshotFormatError",
    "ReadinessTimeoutError",
    "WaitCancelledError",
    "ConfirmationDeclinedError",
    "InfrastructureApplyError",
    "StackOperationError",
    # Renaming
    "IDENTITY",
    "INVITATION_RULES",
    "DEFAULT_TABLES",
    "RenameRule",
    "RuleSet",
    "TableSpec",
    # Snapshots
    "Snapshot",
    "SnapshotStore",
    # Infrastructure
    "ApplyOutcome",
    "InfrastructureTool",
    "SamCliTool",
    # Pipeline
    "MigrationDriver",
    "MigrationRun",
    "RunStatus",
    "StepName",
    "StepStatus",
    "Verifier",
    "Match",
    "Mismatch",
    "always_confirm",
]
