"""Migration pipelines: preflight, backup, schema apply, restore and verify."""

from dynamigrate.pipeline.confirm import Confirmer, always_confirm, never_confirm
from dynamigrate.pipeline.driver import MigrationDriver
from dynamigrate.pipeline.models import (
    MigrationRun,
    RunStatus,
    StepName,
    StepRecord,
    StepStatus,
    TableReport,
)
from dynamigrate.pipeline.preflight import Preflight
from dynamigrate.pipeline.verify import Match, Mismatch, TableVerification, Verifier

__all__ = [
    "Confirmer",
    "always_confirm",
    "never_confirm",
    "MigrationDriver",
    "MigrationRun",
    "RunStatus",
    "StepName",
    "StepRecord",
    "StepStatus",
    "TableReport",
    "Preflight",
    "Match",
    "Mismatch",
    "TableVerification",
    "Verifier",
]
