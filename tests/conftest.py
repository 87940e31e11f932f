"""
Pytest configuration and shared fixtures
Automatically adds project root to Python path for all tests
"""
import sys
import os

import pytest

# Add project root to Python path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
sys.path.insert(0, project_root)


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "organizadin.db")


@pytest.fixture
def db(db_path):
    """Initialized SecureDatabase on a throwaway file."""
    from organizadin.secure_database import SecureDatabase

    database = SecureDatabase(db_path=db_path)
    database.initialize()
    yield database
    database.close()


@pytest.fixture
def store(tmp_path):
    from organizadin.secure_store import SecureStore
    return SecureStore(str(tmp_path / "store" / "secure_store.json"))
