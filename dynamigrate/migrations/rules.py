"""The attribute rules and table catalogue for the camelCase migration."""

from dataclasses import dataclass, field

from dynamigrate.migrations.base import IDENTITY, RuleSet

INVITATION_RULES = RuleSet.from_pairs(
    "invitations-camel-case",
    [
        ("invite_code", "inviteCode"),
        ("box_id", "boxId"),
        ("invited_name", "invitedName"),
        ("created_at", "createdAt"),
        ("expires_at", "expiresAt"),
        ("linked_user_id", "linkedUserId"),
        ("creator_id", "creatorId"),
    ],
)


@dataclass(frozen=True)
class TableSpec:
    """A table taking part in the migration.

    Attributes:
        name: Table name, stable across the infrastructure replacement
        key_attributes: Primary key attribute names after migration
        rules: Rules applied to each record on restore
    """

    name: str
    key_attributes: tuple[str, ...] = ("id",)
    rules: RuleSet = field(default=IDENTITY)


DEFAULT_TABLES: tuple[TableSpec, ...] = (
    TableSpec("invitations-table", ("inviteCode",), INVITATION_RULES),
    TableSpec("box-table", ("id",), IDENTITY),
)


def select_tables(
    names: list[str] | tuple[str, ...] | None,
    catalogue: tuple[TableSpec, ...] = DEFAULT_TABLES,
) -> tuple[TableSpec, ...]:
    """Pick tables from the catalogue by name.

    Unknown names get an identity rule set. With no names the whole
    catalogue is returned.
    """
    if not names:
        return catalogue
    known = {spec.name: spec for spec in catalogue}
    return tuple(known.get(name) or TableSpec(name) for name in names)
