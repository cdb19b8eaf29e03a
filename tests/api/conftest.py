from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from api.dependencies import get_engine
from api.main import app


@pytest.fixture
def client(engine):
    app.dependency_overrides[get_engine] = lambda: engine
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
