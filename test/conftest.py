import os
import sys

import pytest
from fastapi.testclient import TestClient

# test/ directory on path so _helper is found (avoid "test" package - shadows stdlib)
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from _helper import InMemoryStore  # noqa: E402

from status_api.db import get_store  # noqa: E402
from status_api.main import app  # noqa: E402


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def client(store: InMemoryStore):
    app.dependency_overrides[get_store] = lambda: store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
