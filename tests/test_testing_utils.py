"""Tests for the in-memory AWS fakes and client manager."""

import pytest
from botocore.exceptions import ClientError

from dynamigrate.core.client import AWSClientManager
from dynamigrate.testing.mocks import (
    FakeInfrastructureTool,
    InMemoryDynamoDB,
    mock_dynamodb_client,
)
from dynamigrate.testing.utils import create_test_settings


class TestInMemoryDynamoDB:
    """Tests for InMemoryDynamoDB mock."""

    @pytest.mark.asyncio
    async def test_create_and_describe(self):
        """Test creating a table and describing it."""
        db = InMemoryDynamoDB()

        await db.create_table(
            TableName="box-table", KeySchema=[{"AttributeName": "id", "KeyType": "HASH"}]
        )
        response = await db.describe_table(TableName="box-table")

        assert response["Table"]["TableStatus"] == "ACTIVE"
        assert response["Table"]["KeySchema"][0]["AttributeName"] == "id"

    @pytest.mark.asyncio
    async def test_create_existing_table(self):
        """Test creating a table twice fails."""
        db = InMemoryDynamoDB()
        db.add_table("box-table")

        with pytest.raises(ClientError) as exc_info:
            await db.create_table(TableName="box-table")

        assert exc_info.value.response["Error"]["Code"] == "ResourceInUseException"

    @pytest.mark.asyncio
    async def test_scripted_statuses(self):
        """Test describe walks the script, then reports the real state."""
        db = InMemoryDynamoDB()
        db.add_table("box-table")
        db.script_statuses("box-table", ["NOT_FOUND", "CREATING"])

        with pytest.raises(ClientError):
            await db.describe_table(TableName="box-table")
        second = await db.describe_table(TableName="box-table")
        third = await db.describe_table(TableName="box-table")

        assert second["Table"]["TableStatus"] == "CREATING"
        assert third["Table"]["TableStatus"] == "ACTIVE"
        assert db.describe_calls("box-table") == 3

    @pytest.mark.asyncio
    async def test_scan_pagination(self):
        """Test scans return a continuation key only while items remain."""
        db = InMemoryDynamoDB(page_size=2)
        db.add_table("box-table", items=[{"id": {"S": str(i)}} for i in range(4)])

        first = await db.scan(TableName="box-table")
        second = await db.scan(TableName="box-table", ExclusiveStartKey=first["LastEvaluatedKey"])

        assert first["Count"] == 2
        assert second["Count"] == 2
        assert "LastEvaluatedKey" not in second

    @pytest.mark.asyncio
    async def test_fail_puts_count(self):
        """Test an injected failure can be limited to a number of puts."""
        db = InMemoryDynamoDB()
        db.add_table("box-table")
        db.fail_puts("box-table", count=1)

        with pytest.raises(ClientError):
            await db.put_item(TableName="box-table", Item={"id": {"S": "1"}})
        await db.put_item(TableName="box-table", Item={"id": {"S": "1"}})

        assert len(db.get_items("box-table")) == 1

    @pytest.mark.asyncio
    async def test_missing_table(self):
        """Test operations on a missing table raise ResourceNotFoundException."""
        db = InMemoryDynamoDB()

        with pytest.raises(ClientError) as exc_info:
            await db.scan(TableName="nope")

        assert exc_info.value.response["Error"]["Code"] == "ResourceNotFoundException"

    def test_context_manager_clears(self):
        """Test the context manager clears state on exit."""
        with mock_dynamodb_client() as db:
            db.add_table("box-table")

        assert not db.has_table("box-table")


class TestFakeInfrastructureTool:
    """Tests for FakeInfrastructureTool."""

    @pytest.mark.asyncio
    async def test_migration_template_replaces_tables(self):
        """Test applying the migration template empties declared tables."""
        db = InMemoryDynamoDB()
        db.add_table("box-table", items=[{"id": {"S": "1"}}])
        tool = FakeInfrastructureTool(db, {"box-table": ("id",)})

        outcome = await tool.apply("template-migration.yaml", {})

        assert outcome.ok
        assert db.get_items("box-table") == []

    @pytest.mark.asyncio
    async def test_final_template_keeps_tables(self):
        """Test other templates leave existing tables alone."""
        db = InMemoryDynamoDB()
        db.add_table("box-table", items=[{"id": {"S": "1"}}])
        tool = FakeInfrastructureTool(db, {"box-table": ("id",), "invitations-table": ("inviteCode",)})

        await tool.apply("template.yaml", {})

        assert len(db.get_items("box-table")) == 1
        assert db.has_table("invitations-table")

    @pytest.mark.asyncio
    async def test_scripted_stack_statuses(self):
        """Test scripted stack statuses are mapped like real ones."""
        tool = FakeInfrastructureTool(InMemoryDynamoDB(), {})
        tool.script_stack_statuses(["UPDATE_IN_PROGRESS", "NOT_FOUND"])

        assert str(await tool.describe_stack()) == "UPDATE_IN_PROGRESS"
        assert (await tool.describe_stack()).is_not_found
        assert (await tool.describe_stack()).is_active


class TestAWSClientManager:
    """Tests for client configuration."""

    def test_client_kwargs(self, tmp_path):
        """Test region, endpoint and credentials are passed to clients."""
        settings = create_test_settings(tmp_path, aws_url="http://localhost:4566")

        kwargs = AWSClientManager(settings)._client_kwargs()

        assert kwargs["region_name"] == "eu-west-2"
        assert kwargs["endpoint_url"] == "http://localhost:4566"
        assert kwargs["aws_access_key_id"] == "testing"

    def test_default_credential_chain(self, tmp_path):
        """Test credentials are omitted when not configured."""
        settings = create_test_settings(tmp_path, aws_access_key_id=None, aws_secret_access_key=None)

        kwargs = AWSClientManager(settings)._client_kwargs()

        assert "aws_access_key_id" not in kwargs
        assert "endpoint_url" not in kwargs
