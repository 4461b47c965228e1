"""Testing utilities for dynamigrate.

This module provides in-memory fakes for DynamoDB, STS and the
infrastructure tool, plus pytest fixtures wiring them to a driver.

Usage in conftest.py:
    pytest_plugins = ["dynamigrate.testing.fixtures"]
"""

from dynamigrate.testing.mocks import (
    FakeInfrastructureTool,
    InMemoryDynamoDB,
    InMemorySTS,
    mock_dynamodb_client,
)
from dynamigrate.testing.utils import create_test_settings, fake_which, no_sleep

__all__ = [
    "FakeInfrastructureTool",
    "InMemoryDynamoDB",
    "InMemorySTS",
    "mock_dynamodb_client",
    "create_test_settings",
    "fake_which",
    "no_sleep",
]
