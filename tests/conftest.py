"""
Shared pytest fixtures for doclite tests.

Record dataclasses are declared at module level in each test module so
their type hints resolve.
"""

import pytest

from doclite import Database


@pytest.fixture
def db():
    """In-memory database, closed after the test."""
    database = Database()
    yield database
    database.close()


@pytest.fixture
def store_path(tmp_path):
    """Store directory inside the test's temporary directory."""
    return tmp_path / "store"

