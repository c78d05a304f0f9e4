import os
import sys

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from storage import LocalStore, SafeStorage  # noqa: E402


class BrokenStore(LocalStore):
    """A storage area that fails every operation, like a disabled localStorage."""

    def _load(self):
        raise OSError("storage disabled")

    def _save(self, data):
        raise OSError("storage disabled")


@pytest.fixture
def store():
    return LocalStore()


@pytest.fixture
def storage(store):
    return SafeStorage(store)


@pytest.fixture
def broken_storage():
    return SafeStorage(BrokenStore())


@pytest.fixture
def client(tmp_path):
    from app import app

    app.config.update(
        TESTING=True,
        STORAGE_DIR=str(tmp_path),
        CONTRACT_API_URL="http://analysis.test",
    )
    return app.test_client()
