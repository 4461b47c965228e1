"""Attribute renaming for dynamigrate.

Records are restored into the new tables through a :class:`RuleSet`,
which renames legacy snake_case attributes to their camelCase names.
"""

from dynamigrate.migrations.base import IDENTITY, RenameRule, RuleSet
from dynamigrate.migrations.rules import (
    DEFAULT_TABLES,
    INVITATION_RULES,
    TableSpec,
    select_tables,
)

__all__ = [
    "IDENTITY",
    "RenameRule",
    "RuleSet",
    "DEFAULT_TABLES",
    "INVITATION_RULES",
    "TableSpec",
    "select_tables",
]
