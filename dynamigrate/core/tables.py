"""Gateway to the DynamoDB data plane.

:class:`TableClient` is the only component that reads from or writes to
tables. It holds no state besides the client it wraps.
"""

import enum
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionError as BotoConnectionError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from dynamigrate.core.exceptions import TableNotFoundError, TableOperationError

logger = logging.getLogger(__name__)

Record = dict[str, Any]

NOT_FOUND_CODES = ("ResourceNotFoundException",)
THROTTLING_CODES = (
    "ProvisionedThroughputExceededException",
    "ThrottlingException",
    "RequestLimitExceeded",
)
VALIDATION_CODES = (
    "ValidationException",
    "ConditionalCheckFailedException",
    "ItemCollectionSizeLimitExceededException",
)


class ReadinessKind(str, enum.Enum):
    ACTIVE = "active"
    NOT_FOUND = "not_found"
    TRANSITIONING = "transitioning"


@dataclass(frozen=True)
class ReadinessState:
    """Result of probing an external resource.

    Attributes:
        kind: Active, NotFound or Transitioning
        status: Raw status reported by the resource while transitioning
    """

    kind: ReadinessKind
    status: str | None = None

    @classmethod
    def active(cls, status: str = "ACTIVE") -> "ReadinessState":
        return cls(ReadinessKind.ACTIVE, status)

    @classmethod
    def not_found(cls) -> "ReadinessState":
        return cls(ReadinessKind.NOT_FOUND)

    @classmethod
    def transitioning(cls, status: str) -> "ReadinessState":
        return cls(ReadinessKind.TRANSITIONING, status)

    @property
    def is_active(self) -> bool:
        return self.kind is ReadinessKind.ACTIVE

    @property
    def is_not_found(self) -> bool:
        return self.kind is ReadinessKind.NOT_FOUND

    def __str__(self) -> str:
        if self.kind is ReadinessKind.NOT_FOUND:
            return "NOT_FOUND"
        return self.status or self.kind.value.upper()


@dataclass(frozen=True)
class WriteOutcome:
    """Outcome of a single put.

    Attributes:
        ok: Whether the item was written
        reason: ``throttling``, ``validation``, ``network`` or ``error`` on failure
        message: Error detail on failure
    """

    ok: bool
    reason: str | None = None
    message: str | None = None

    @classmethod
    def success(cls) -> "WriteOutcome":
        return cls(True)

    @classmethod
    def failure(cls, reason: str, message: str) -> "WriteOutcome":
        return cls(False, reason, message)


@dataclass
class ScanResult:
    """Every record of a table together with the counts DynamoDB reported."""

    table_name: str
    items: list[Record] = field(default_factory=list)
    count: int = 0
    scanned_count: int = 0

    @property
    def consistent(self) -> bool:
        """Whether the declared count matches the records produced."""
        return self.count == len(self.items)


def error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


def classify_write_error(error: Exception) -> str:
    """Map a put failure to a coarse reason."""
    if isinstance(error, ClientError):
        code = error_code(error)
        if code in THROTTLING_CODES:
            return "throttling"
        if code in VALIDATION_CODES:
            return "validation"
        return "error"
    if isinstance(
        error,
        (BotoConnectionError, EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError),
    ):
        return "network"
    return "error"


class TableClient:
    """Scan, put, describe and delete operations over DynamoDB tables.

    Records are passed through in the low-level attribute value format
    (``{"S": "abc"}``, ``{"N": "1"}``) so they round-trip through JSON
    unchanged.
    """

    def __init__(self, dynamodb_client, page_size: int | None = None):
        """Initialize the table client.

        Args:
            dynamodb_client: An aiobotocore DynamoDB client (or compatible mock)
            page_size: Optional ``Limit`` per scan request
        """
        self.client = dynamodb_client
        self.page_size = page_size

    def _operation_error(
        self, error: Exception, operation: str, table_name: str
    ) -> Exception:
        if isinstance(error, ClientError) and error_code(error) in NOT_FOUND_CODES:
            return TableNotFoundError(table_name)
        return TableOperationError(
            f"{operation} on '{table_name}' failed: {error}",
            operation=operation,
            table_name=table_name,
            original_error=error,
        )

    async def scan_pages(
        self, table_name: str, **scan_kwargs
    ) -> AsyncIterator[dict]:
        """Yield raw scan responses until no continuation key is returned.

        Raises:
            TableNotFoundError: If the table does not exist
            TableOperationError: If a scan request fails or the endpoint is unreachable
        """
        params = {"TableName": table_name, **scan_kwargs}
        if self.page_size:
            params["Limit"] = self.page_size

        while True:
            try:
                response = await self.client.scan(**params)
            except (ClientError, BotoCoreError) as e:
                raise self._operation_error(e, "scan", table_name) from e

            yield response

            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                break
            params["ExclusiveStartKey"] = last_key

    async def scan_all(self, table_name: str) -> AsyncIterator[Record]:
        """Iterate over every record currently in a table.

        Each call starts a fresh scan, so the sequence can be restarted by
        calling this again.
        """
        async for page in self.scan_pages(table_name):
            for item in page.get("Items", []):
                yield item

    async def scan_table(self, table_name: str) -> ScanResult:
        """Read a table's full record set.

        Returns:
            ScanResult with the items and the summed ``Count``/``ScannedCount``
        """
        result = ScanResult(table_name=table_name)
        async for page in self.scan_pages(table_name):
            items = page.get("Items", [])
            result.items.extend(items)
            result.count += page.get("Count", len(items))
            result.scanned_count += page.get("ScannedCount", len(items))

        if not result.consistent:
            logger.warning(
                f"Scan of {table_name} declared {result.count} items "
                f"but produced {len(result.items)}"
            )
            result.count = len(result.items)
        return result

    async def count_items(self, table_name: str) -> int:
        """Count the records in a table without transferring them."""
        total = 0
        async for page in self.scan_pages(table_name, Select="COUNT"):
            total += page.get("Count", 0)
        return total

    async def put_item(self, table_name: str, item: Record) -> WriteOutcome:
        """Upsert a single record keyed by its primary key.

        Failures are returned, never raised.
        """
        try:
            await self.client.put_item(TableName=table_name, Item=item)
        except (ClientError, BotoCoreError) as e:
            reason = classify_write_error(e)
            logger.debug(f"put_item on {table_name} failed ({reason}): {e}")
            return WriteOutcome.failure(reason, str(e))
        return WriteOutcome.success()

    async def describe(self, table_name: str) -> ReadinessState:
        """Probe a table.

        A table is active only when the table and every global secondary
        index report ``ACTIVE``.
        """
        try:
            response = await self.client.describe_table(TableName=table_name)
        except ClientError as e:
            if error_code(e) in NOT_FOUND_CODES:
                return ReadinessState.not_found()
            raise self._operation_error(e, "describe_table", table_name) from e
        except BotoCoreError as e:
            raise self._operation_error(e, "describe_table", table_name) from e

        table = response.get("Table", {})
        status = table.get("TableStatus", "UNKNOWN")
        if status != "ACTIVE":
            return ReadinessState.transitioning(status)

        pending = [
            f"index {index.get('IndexName')}: {index.get('IndexStatus')}"
            for index in table.get("GlobalSecondaryIndexes", [])
            if index.get("IndexStatus") != "ACTIVE"
        ]
        if pending:
            return ReadinessState.transitioning(f"ACTIVE ({', '.join(pending)})")
        return ReadinessState.active()

    async def exists(self, table_name: str) -> bool:
        state = await self.describe(table_name)
        return not state.is_not_found

    async def delete(self, table_name: str) -> bool:
        """Delete a table.

        Deleting a table that does not exist succeeds.

        Returns:
            True if a delete was issued, False if the table was already gone
        """
        try:
            await self.client.delete_table(TableName=table_name)
        except ClientError as e:
            if error_code(e) in NOT_FOUND_CODES:
                logger.info(f"Table {table_name} does not exist, nothing to delete")
                return False
            raise self._operation_error(e, "delete_table", table_name) from e
        except BotoCoreError as e:
            raise self._operation_error(e, "delete_table", table_name) from e

        logger.info(f"Deleting table {table_name}")
        return True
