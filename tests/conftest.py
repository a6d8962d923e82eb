from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from app.core.config import Settings
from app.db.session import build_engine, build_sessionmaker
from app.dispensations.lifecycle import DispensationLifecycle
from app.dispensations.rate_limiter import SubmissionRateLimiter
from app.dispensations.store import DatabaseStore, JsonFileStore
from app.dispensations.uploads import AttachmentStorage
from app.main import create_app

from helpers import SCHOOL_LAT, SCHOOL_LON, RecordingNotifier, StepClock


@pytest.fixture()
def json_store(tmp_path) -> JsonFileStore:
    return JsonFileStore(tmp_path / "db.json")


@pytest.fixture()
async def database_store(tmp_path) -> AsyncGenerator[DatabaseStore, None]:
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    store = DatabaseStore(build_sessionmaker(engine), engine=engine)
    await store.init()
    yield store
    await store.close()


@pytest.fixture(params=["file", "database"])
async def any_store(request, tmp_path):
    """Each test using this runs once per storage backend."""
    if request.param == "file":
        store = JsonFileStore(tmp_path / "db.json")
        await store.init()
        yield store
        return
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    store = DatabaseStore(build_sessionmaker(engine), engine=engine)
    await store.init()
    yield store
    await store.close()


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def uploads_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture()
def lifecycle(any_store, notifier, uploads_dir) -> DispensationLifecycle:
    return DispensationLifecycle(
        any_store,
        notifier,
        SubmissionRateLimiter(window=30, retention=60),
        attachments=AttachmentStorage(uploads_dir),
        clock=StepClock(),
    )


@pytest.fixture()
def test_settings(tmp_path, uploads_dir) -> Settings:
    return Settings(
        storage_backend="file",
        db_json_path=str(tmp_path / "db.json"),
        uploads_dir=str(uploads_dir),
        school_latitude=SCHOOL_LAT,
        school_longitude=SCHOOL_LON,
        school_radius_meters=100,
        discord_webhook_url=None,
    )


@pytest.fixture()
def app(test_settings, json_store, notifier):
    return create_app(settings=test_settings, store=json_store, notifier=notifier)


@pytest.fixture()
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
