"""Pytest fixtures for dynamigrate testing.

To use these fixtures, add to your conftest.py:

    pytest_plugins = ["dynamigrate.testing.fixtures"]
"""

import pytest

from dynamigrate.core.settings import MigrationSettings
from dynamigrate.migrations.rules import DEFAULT_TABLES
from dynamigrate.pipeline.confirm import always_confirm
from dynamigrate.pipeline.driver import MigrationDriver
from dynamigrate.testing.mocks import (
    FakeInfrastructureTool,
    InMemoryDynamoDB,
    InMemorySTS,
    mock_dynamodb_client,
)
from dynamigrate.testing.utils import create_test_settings, fake_which, no_sleep


@pytest.fixture
def migration_settings(tmp_path) -> MigrationSettings:
    """Provide settings pointing at a temporary working directory."""
    return create_test_settings(tmp_path)


@pytest.fixture
def mock_dynamodb() -> InMemoryDynamoDB:
    """Provide an in-memory DynamoDB with a small scan page size."""
    with mock_dynamodb_client(page_size=2) as db:
        yield db


@pytest.fixture
def mock_sts() -> InMemorySTS:
    return InMemorySTS()


@pytest.fixture
def fake_infrastructure(mock_dynamodb, migration_settings) -> FakeInfrastructureTool:
    """Provide an infrastructure fake managing the default tables."""
    return FakeInfrastructureTool(
        mock_dynamodb,
        {spec.name: spec.key_attributes for spec in DEFAULT_TABLES},
        stack_name=migration_settings.stack_name,
    )


@pytest.fixture
def make_driver(migration_settings, mock_dynamodb, mock_sts, fake_infrastructure):
    """Provide a factory for drivers wired to the fakes.

    Example:
        def test_something(make_driver):
            driver = make_driver(confirm=never_confirm)
    """

    def _make(**kwargs) -> MigrationDriver:
        options = {
            "settings": migration_settings,
            "dynamodb_client": mock_dynamodb,
            "infrastructure": fake_infrastructure,
            "sts_client": mock_sts,
            "tables": DEFAULT_TABLES,
            "confirm": always_confirm,
            "sleep": no_sleep,
            "which": fake_which,
        }
        options.update(kwargs)
        return MigrationDriver(**options)

    return _make
