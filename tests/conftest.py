from __future__ import annotations

import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from vidtube.core.settings import get_settings
from vidtube.db.session import Database
from vidtube.main import create_app
from vidtube.services.media_uploader import UploadResult


class FakeUploader:
    """Records uploaded paths and hands back predictable URLs."""

    def __init__(self) -> None:
        self.uploaded: list[str] = []
        self.fail = False

    def upload(self, local_path: str | None) -> UploadResult | None:
        if not local_path or self.fail:
            return None
        self.uploaded.append(local_path)
        name = Path(local_path).name
        return UploadResult(url=f"https://media.example.test/{len(self.uploaded)}/{name}")


@pytest.fixture()
def settings(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'test.db'}")
    monkeypatch.setenv("UPLOAD_TEMP_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("AUTH_RATE_LIMIT_MAX_REQUESTS", "1000")
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest.fixture()
def uploader() -> FakeUploader:
    return FakeUploader()


@pytest.fixture()
def db(settings):
    database = Database(settings.database_url)
    database.init_schema()
    session = database.session()
    try:
        yield session
    finally:
        session.close()
        database.dispose()


@pytest.fixture()
def app(settings, uploader):
    application = create_app(settings)
    application.state.media_uploader = uploader
    return application


@pytest.fixture()
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def plain_http_client(settings, uploader):
    """Client for an app whose session cookies are sent back over plain http."""
    application = create_app(settings.model_copy(update={"cookie_secure": False}))
    application.state.media_uploader = uploader
    with TestClient(application) as test_client:
        yield test_client
