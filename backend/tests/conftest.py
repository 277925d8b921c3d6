import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy import text

from apptracker.config import settings
from apptracker.main import app
from apptracker.store import MEMORY, SqlStore, open_store


@pytest.fixture
def tmp_data(tmp_path):
    data_path = tmp_path / "AppTracker"
    data_path.mkdir()
    return data_path


@pytest_asyncio.fixture(params=["sqlite", "json"])
async def store(request):
    s = await open_store(MEMORY, backend=request.param, locale="en")
    yield s
    await s.close()


@pytest.fixture(params=["sqlite", "json"])
def client(request, tmp_data):
    original = (settings.data_path, settings.backend, settings.locale)
    settings.data_path = tmp_data
    settings.backend = request.param
    settings.locale = "en"
    with TestClient(app) as c:
        yield c
    settings.data_path, settings.backend, settings.locale = original


def add_tag(store, application_id: int, tag_id: int, name: str):
    """Tags are read-only through the store, so tests write them underneath it."""
    if isinstance(store, SqlStore):
        with store.engine.begin() as conn:
            conn.execute(
                text("INSERT OR IGNORE INTO tags(id, name) VALUES (:id, :name)"),
                {"id": tag_id, "name": name},
            )
            conn.execute(
                text("INSERT INTO application_tags(application_id, tag_id) VALUES (:a, :t)"),
                {"a": application_id, "t": tag_id},
            )
    else:
        if not any(t["id"] == tag_id for t in store._doc["tags"]):
            store._doc["tags"].append({"id": tag_id, "name": name})
        store._doc["application_tags"].append({"application_id": application_id, "tag_id": tag_id})
