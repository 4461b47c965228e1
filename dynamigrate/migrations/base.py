"""Attribute rename rules applied to records during restore."""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class RenameRule:
    """Rename a legacy attribute to its canonical name.

    If the record carries the legacy attribute, its value moves to the
    canonical attribute and the legacy attribute is removed. When both are
    present the canonical value wins. A record without the legacy attribute
    is returned unchanged, so applying a rule twice has no further effect.

    Example:
        RenameRule("invite_code", "inviteCode")
    """

    legacy_name: str
    canonical_name: str

    def forward(self, data: dict[str, Any]) -> dict[str, Any]:
        if self.legacy_name not in data:
            return data
        result = data.copy()
        value = result.pop(self.legacy_name)
        result.setdefault(self.canonical_name, value)
        return result


@dataclass(frozen=True)
class RuleSet:
    """An ordered, closed set of rename rules for one table.

    Attributes:
        name: Identifier used in logs
        rules: Rules, applied in order
    """

    name: str
    rules: tuple[RenameRule, ...] = field(default_factory=tuple)

    def __post_init__(self):
        targets = [rule.canonical_name for rule in self.rules]
        sources = {rule.legacy_name for rule in self.rules}
        if len(set(targets)) != len(targets):
            raise ValueError(f"Rule set '{self.name}' maps two attributes to one name")
        if sources & set(targets):
            raise ValueError(
                f"Rule set '{self.name}' renames into an attribute it also renames"
            )

    @classmethod
    def from_pairs(cls, name: str, pairs) -> "RuleSet":
        return cls(name, tuple(RenameRule(old, new) for old, new in pairs))

    @property
    def is_identity(self) -> bool:
        return not self.rules

    @property
    def legacy_names(self) -> frozenset[str]:
        return frozenset(rule.legacy_name for rule in self.rules)

    def transform(self, record: dict[str, Any]) -> dict[str, Any]:
        """Apply every rule in order.

        The input record is never modified; a copy is returned.
        """
        result = dict(record)
        for rule in self.rules:
            result = rule.forward(result)
        return result

    def legacy_attributes(self, record: dict[str, Any]) -> set[str]:
        """Legacy attribute names still present on a record."""
        return self.legacy_names & record.keys()


IDENTITY = RuleSet("identity")
