"""In-memory AWS fakes for testing dynamigrate pipelines."""

import json
from collections.abc import Callable
from contextlib import contextmanager
from pathlib import Path

from botocore.exceptions import ClientError

from dynamigrate.core.tables import ReadinessState
from dynamigrate.infrastructure.base import ApplyOutcome
from dynamigrate.infrastructure.sam import stack_state

NOT_FOUND = "NOT_FOUND"


def _client_error(code: str, message: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


def _not_found(table_name: str, operation: str) -> ClientError:
    return _client_error(
        "ResourceNotFoundException",
        f"Requested resource not found: Table: {table_name} not found",
        operation,
    )


class InMemoryDynamoDB:
    """In-memory DynamoDB mock implementing the calls dynamigrate makes.

    Items are kept in the low-level attribute value format. Scans are
    paginated by ``page_size`` (or ``Limit``) so continuation handling is
    exercised, ``describe_table`` can be scripted to walk through a status
    sequence, and put failures can be injected per table.

    Example:
        >>> db = InMemoryDynamoDB()
        >>> db.add_table("box-table", ("id",), items=[{"id": {"S": "1"}}])
        >>> db.script_statuses("box-table", ["NOT_FOUND", "CREATING", "ACTIVE"])
    """

    def __init__(self, page_size: int = 100):
        # {table_name: {"key": tuple, "items": {key: item}, "status": str, "indexes": {name: status}}}
        self._tables: dict[str, dict] = {}
        self._scripts: dict[str, list[str]] = {}
        self._put_failures: dict[str, list[dict]] = {}
        self.page_size = page_size
        self.calls: list[tuple[str, str]] = []

    # Test helpers

    def add_table(
        self,
        name: str,
        key_attributes: tuple[str, ...] = ("id",),
        items: list[dict] | None = None,
        status: str = "ACTIVE",
        indexes: dict[str, str] | None = None,
    ) -> None:
        """Create a table synchronously, optionally with items."""
        self._tables[name] = {
            "key": tuple(key_attributes),
            "items": {},
            "status": status,
            "indexes": dict(indexes or {}),
        }
        for item in items or []:
            self._store(name, item)

    def has_table(self, name: str) -> bool:
        return name in self._tables

    def drop_table(self, name: str) -> None:
        self._tables.pop(name, None)

    def set_status(self, name: str, status: str, indexes: dict[str, str] | None = None) -> None:
        self._tables[name]["status"] = status
        if indexes is not None:
            self._tables[name]["indexes"] = dict(indexes)

    def script_statuses(self, name: str, statuses: list[str]) -> None:
        """Make the next ``describe_table`` calls report these statuses.

        ``"NOT_FOUND"`` makes a call fail with ResourceNotFoundException.
        Once the script is used up, the table's real state is reported.
        """
        self._scripts[name] = list(statuses)

    def fail_puts(
        self,
        name: str,
        predicate: Callable[[dict], bool] | None = None,
        code: str = "ProvisionedThroughputExceededException",
        count: int | None = None,
    ) -> None:
        """Make puts into ``name`` fail.

        Args:
            name: Table name
            predicate: Only items matching this fail (all items by default)
            code: Error code raised
            count: Fail at most this many puts
        """
        self._put_failures.setdefault(name, []).append(
            {"predicate": predicate, "code": code, "remaining": count}
        )

    def get_items(self, name: str) -> list[dict]:
        """Items of a table, for assertions."""
        return [dict(item) for item in self._tables[name]["items"].values()]

    def describe_calls(self, name: str) -> int:
        return sum(1 for op, table in self.calls if op == "DescribeTable" and table == name)

    def clear(self) -> None:
        self._tables.clear()
        self._scripts.clear()
        self._put_failures.clear()
        self.calls.clear()

    # Internals

    def _key(self, name: str, item: dict) -> tuple:
        key_attributes = self._tables[name]["key"]
        missing = [attr for attr in key_attributes if attr not in item]
        if missing:
            raise _client_error(
                "ValidationException",
                "One or more parameter values were invalid: Missing the key "
                f"{missing[0]} in the item",
                "PutItem",
            )
        return tuple(json.dumps(item[attr], sort_keys=True) for attr in key_attributes)

    def _store(self, name: str, item: dict) -> None:
        self._tables[name]["items"][self._key(name, item)] = dict(item)

    def _require(self, name: str, operation: str) -> dict:
        if name not in self._tables:
            raise _not_found(name, operation)
        return self._tables[name]

    def _injected_failure(self, name: str, item: dict) -> ClientError | None:
        for failure in self._put_failures.get(name, []):
            if failure["remaining"] == 0:
                continue
            if failure["predicate"] is None or failure["predicate"](item):
                if failure["remaining"] is not None:
                    failure["remaining"] -= 1
                return _client_error(failure["code"], "Injected failure", "PutItem")
        return None

    # DynamoDB API

    async def create_table(
        self,
        TableName: str,
        KeySchema: list[dict] | None = None,
        **kwargs,
    ) -> dict:
        if TableName in self._tables:
            raise _client_error(
                "ResourceInUseException", f"Table already exists: {TableName}", "CreateTable"
            )
        key_attributes = tuple(k["AttributeName"] for k in (KeySchema or [{"AttributeName": "id"}]))
        self.add_table(TableName, key_attributes)
        return {"TableDescription": {"TableName": TableName, "TableStatus": "ACTIVE"}}

    async def describe_table(self, TableName: str, **kwargs) -> dict:
        self.calls.append(("DescribeTable", TableName))
        script = self._scripts.get(TableName)
        if script:
            status = script.pop(0)
            if status == NOT_FOUND:
                raise _not_found(TableName, "DescribeTable")
            return {"Table": {"TableName": TableName, "TableStatus": status}}

        table = self._require(TableName, "DescribeTable")
        description = {
            "TableName": TableName,
            "TableStatus": table["status"],
            "ItemCount": len(table["items"]),
            "KeySchema": [
                {"AttributeName": attr, "KeyType": "HASH" if i == 0 else "RANGE"}
                for i, attr in enumerate(table["key"])
            ],
        }
        if table["indexes"]:
            description["GlobalSecondaryIndexes"] = [
                {"IndexName": index, "IndexStatus": status}
                for index, status in table["indexes"].items()
            ]
        return {"Table": description}

    async def scan(
        self,
        TableName: str,
        Limit: int | None = None,
        ExclusiveStartKey: dict | None = None,
        Select: str | None = None,
        **kwargs,
    ) -> dict:
        self.calls.append(("Scan", TableName))
        table = self._require(TableName, "Scan")
        keys = list(table["items"].keys())

        start = 0
        if ExclusiveStartKey:
            last = self._key(TableName, ExclusiveStartKey)
            start = keys.index(last) + 1

        limit = Limit or self.page_size
        page_keys = keys[start:start + limit]
        items = [dict(table["items"][key]) for key in page_keys]

        response = {"Count": len(items), "ScannedCount": len(items)}
        if Select != "COUNT":
            response["Items"] = items
        if start + limit < len(keys):
            last_item = table["items"][page_keys[-1]]
            response["LastEvaluatedKey"] = {attr: last_item[attr] for attr in table["key"]}
        return response

    async def put_item(self, TableName: str, Item: dict, **kwargs) -> dict:
        self.calls.append(("PutItem", TableName))
        self._require(TableName, "PutItem")
        failure = self._injected_failure(TableName, Item)
        if failure is not None:
            raise failure
        self._store(TableName, Item)
        return {}

    async def delete_table(self, TableName: str, **kwargs) -> dict:
        self.calls.append(("DeleteTable", TableName))
        self._require(TableName, "DeleteTable")
        del self._tables[TableName]
        return {"TableDescription": {"TableName": TableName, "TableStatus": "DELETING"}}

    async def list_tables(self, **kwargs) -> dict:
        return {"TableNames": sorted(self._tables)}


class InMemorySTS:
    """STS mock answering the credential check."""

    def __init__(self, valid: bool = True, account: str = "123456789012"):
        self.valid = valid
        self.account = account

    async def get_caller_identity(self, **kwargs) -> dict:
        if not self.valid:
            raise _client_error(
                "InvalidClientTokenId",
                "The security token included in the request is invalid.",
                "GetCallerIdentity",
            )
        return {
            "UserId": "AIDATESTUSER",
            "Account": self.account,
            "Arn": f"arn:aws:iam::{self.account}:user/test",
        }


class FakeInfrastructureTool:
    """Infrastructure tool fake backed by an :class:`InMemoryDynamoDB`.

    Applying a template whose name contains ``migration`` replaces every
    declared table with an empty one, the way a resource replacement does.
    Any other template only creates declared tables that are missing.
    """

    required_tools = ("sam",)

    def __init__(
        self,
        dynamodb: InMemoryDynamoDB,
        tables: dict[str, tuple[str, ...]],
        stack_name: str = "test-stack",
        stack_exists: bool = True,
        retain_tables: bool = False,
        fail_templates: set[str] | None = None,
    ):
        """Initialize the fake.

        Args:
            dynamodb: The table store the stack manages
            tables: Declared tables and their key attributes
            stack_name: Stack name
            stack_exists: Whether the stack exists initially
            retain_tables: Keep tables when the stack is deleted
            fail_templates: Template file names whose apply fails
        """
        self.dynamodb = dynamodb
        self.tables = tables
        self.stack_name = stack_name
        self.stack_exists = stack_exists
        self.retain_tables = retain_tables
        self.fail_templates = set(fail_templates or ())
        self.applied: list[tuple[str, dict]] = []
        self._stack_script: list[str] = []

    def script_stack_statuses(self, statuses: list[str]) -> None:
        self._stack_script = list(statuses)

    async def apply(self, template: Path, parameters: dict[str, str]) -> ApplyOutcome:
        name = Path(template).name
        self.applied.append((name, dict(parameters)))
        if name in self.fail_templates:
            return ApplyOutcome(
                template=str(template),
                stack_name=self.stack_name,
                ok=False,
                returncode=1,
                output="Error: Failed to create changeset for the stack",
            )

        replace = "migration" in name
        for table, key_attributes in self.tables.items():
            if replace:
                self.dynamodb.drop_table(table)
            if not self.dynamodb.has_table(table):
                self.dynamodb.add_table(table, key_attributes)
        self.stack_exists = True
        return ApplyOutcome(
            template=str(template),
            stack_name=self.stack_name,
            ok=True,
            returncode=0,
            output="Successfully created/updated stack",
        )

    async def describe_stack(self) -> ReadinessState:
        if self._stack_script:
            status = self._stack_script.pop(0)
            if status == NOT_FOUND:
                return ReadinessState.not_found()
            return stack_state(status)
        if not self.stack_exists:
            return ReadinessState.not_found()
        return ReadinessState.active("UPDATE_COMPLETE")

    async def delete_stack(self) -> bool:
        if not self.stack_exists:
            return False
        self.stack_exists = False
        if not self.retain_tables:
            for table in self.tables:
                self.dynamodb.drop_table(table)
        return True

    async def stack_outputs(self) -> dict[str, str]:
        if not self.stack_exists:
            return {}
        outputs = {"ApiURL": f"https://api.example.com/{self.stack_name}"}
        for table in self.tables:
            if table.startswith("box"):
                outputs["BoxesTableName"] = table
            elif table.startswith("invitation"):
                outputs["InvitationsTableName"] = table
        return outputs


@contextmanager
def mock_dynamodb_client(page_size: int = 100):
    """Context manager providing an in-memory DynamoDB mock.

    Args:
        page_size: Items returned per scan page

    Yields:
        InMemoryDynamoDB instance
    """
    mock = InMemoryDynamoDB(page_size=page_size)
    try:
        yield mock
    finally:
        mock.clear()
