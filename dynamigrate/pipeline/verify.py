"""Post-migration consistency checks."""

import logging
from dataclasses import dataclass

from dynamigrate.core.exceptions import TableNotFoundError
from dynamigrate.core.tables import TableClient
from dynamigrate.migrations.base import IDENTITY, RuleSet

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Match:
    """Expected and actual counts agree."""

    count: int

    @property
    def delta(self) -> int:
        return 0

    def __str__(self) -> str:
        return f"match ({self.count})"


@dataclass(frozen=True)
class Mismatch:
    """Expected and actual counts differ.

    ``delta`` is ``actual - expected``: negative when records are missing.
    """

    expected: int
    actual: int

    @property
    def delta(self) -> int:
        return self.actual - self.expected

    def __str__(self) -> str:
        return f"mismatch (expected {self.expected}, found {self.actual}, delta {self.delta:+d})"


Comparison = Match | Mismatch


@dataclass
class TableVerification:
    """Result of verifying one table.

    Attributes:
        table_name: The verified table
        reachable: Whether the table could be scanned
        actual: Records found, when reachable
        comparison: Count comparison, when an expected count was known
        residual_legacy: Records still carrying legacy attribute names
    """

    table_name: str
    reachable: bool
    actual: int | None = None
    comparison: Comparison | None = None
    residual_legacy: int = 0

    @property
    def ok(self) -> bool:
        if not self.reachable or self.residual_legacy:
            return False
        return self.comparison is None or isinstance(self.comparison, Match)

    def describe(self) -> str:
        if not self.reachable:
            return "unreachable"
        text = str(self.comparison) if self.comparison else f"reachable ({self.actual})"
        if self.residual_legacy:
            text += f", {self.residual_legacy} record(s) with legacy attributes"
        return text


class Verifier:
    """Compares tables against expected counts.

    Discrepancies are reported, never corrected.
    """

    def __init__(self, table_client: TableClient | None = None):
        self.table_client = table_client

    @staticmethod
    def compare(expected_count: int, actual_count: int) -> Comparison:
        """Compare two counts."""
        if expected_count == actual_count:
            return Match(actual_count)
        return Mismatch(expected_count, actual_count)

    async def verify_table(
        self,
        table_name: str,
        expected_count: int | None = None,
        rules: RuleSet = IDENTITY,
    ) -> TableVerification:
        """Scan a table and check it.

        With no expected count only reachability is checked. Tables without
        rename rules are counted without transferring their records.
        """
        if self.table_client is None:
            raise RuntimeError("Verifier.verify_table needs a table client")

        actual = 0
        residual = 0
        try:
            if rules.is_identity:
                actual = await self.table_client.count_items(table_name)
            else:
                async for record in self.table_client.scan_all(table_name):
                    actual += 1
                    if rules.legacy_attributes(record):
                        residual += 1
        except TableNotFoundError:
            logger.warning(f"Table {table_name} is not reachable")
            return TableVerification(table_name, reachable=False)

        comparison = None
        if expected_count is not None:
            comparison = self.compare(expected_count, actual)

        verification = TableVerification(
            table_name,
            reachable=True,
            actual=actual,
            comparison=comparison,
            residual_legacy=residual,
        )
        if verification.ok:
            logger.info(f"Verified {table_name}: {verification.describe()}")
        else:
            logger.warning(f"Verification of {table_name}: {verification.describe()}")
        return verification
