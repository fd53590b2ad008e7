import pytest
from fastapi.testclient import TestClient

from backend.app.data.store import ReportStore, get_store
from backend.app.main import app


@pytest.fixture
def store(tmp_path):
    return ReportStore(tmp_path / "reports.json")


@pytest.fixture
def api(store):
    app.dependency_overrides[get_store] = lambda: store
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()
