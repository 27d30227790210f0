import asyncio
from pathlib import Path

import cv2
import jwt
import numpy as np
import pytest
from fastapi.testclient import TestClient

from livecast.core.config import get_settings
from livecast.core.db import Base, create_engine, create_session_factory
from livecast.db.models import VideoChannel
from livecast.main import create_app

JWT_SECRET = "test-secret"
JWT_ISSUER = "livecast-test"
JWT_AUDIENCE = "livecast"


def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "no_default_env: disable the default Livecast environment bootstrap fixture for tests that manage their own .env",
    )


@pytest.fixture(autouse=True)
def configure_environment(request, monkeypatch, tmp_path):
    if request.node.get_closest_marker("no_default_env"):
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()
        return
    db_path = tmp_path / "livecast_test.db"

    monkeypatch.setenv("LIVECAST_ENV", "test")
    monkeypatch.setenv("LIVECAST_LOG_LEVEL", "debug")
    monkeypatch.setenv("LIVECAST_DB_URL", f"sqlite+aiosqlite:///{db_path}")
    monkeypatch.setenv("LIVECAST_STORAGE_ROOT", str(tmp_path / "storage"))
    monkeypatch.setenv("LIVECAST_TMP_DIR", str(tmp_path / "spool"))
    monkeypatch.setenv("LIVECAST_WEBSERVER_URL", "https://live.example.test")
    monkeypatch.setenv("LIVECAST_RTMP_URL", "rtmp://live.example.test:1935/live")
    monkeypatch.setenv("LIVECAST_LIVE_ENABLED", "true")
    monkeypatch.setenv("LIVECAST_TRANSACTION_RETRY_BACKOFF_S", "0")
    monkeypatch.setenv("LIVECAST_JWT_SECRET", JWT_SECRET)
    monkeypatch.setenv("LIVECAST_JWT_ISSUER", JWT_ISSUER)
    monkeypatch.setenv("LIVECAST_JWT_AUDIENCE", JWT_AUDIENCE)

    get_settings.cache_clear()
    settings = get_settings()
    engine = create_engine(settings)

    async def _setup() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(_setup())

    yield

    async def _teardown() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()

    asyncio.run(_teardown())
    get_settings.cache_clear()


@pytest.fixture()
def client(configure_environment):
    app = create_app()
    with TestClient(app) as client:
        yield client


def build_token(user_id: str, *, scopes: list[str] | None = None) -> str:
    payload: dict[str, object] = {"sub": user_id, "iss": JWT_ISSUER, "aud": JWT_AUDIENCE}
    if scopes:
        payload["scopes"] = scopes
    return jwt.encode(payload, JWT_SECRET, algorithm="HS256")


@pytest.fixture()
def user_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {build_token('user-alice')}"}


@pytest.fixture()
def other_user_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {build_token('user-bob')}"}


@pytest.fixture()
def admin_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {build_token('user-root', scopes=['admin'])}"}


def run_db(coro_factory):
    """Run ``coro_factory(session_factory)`` against the test database."""

    async def _runner():
        engine = create_engine(get_settings())
        try:
            return await coro_factory(create_session_factory(engine))
        finally:
            await engine.dispose()

    return asyncio.run(_runner())


@pytest.fixture()
def channel(configure_environment) -> VideoChannel:
    async def _create(session_factory):
        async with session_factory() as session:
            async with session.begin():
                created = VideoChannel(name="alice_channel", owner_id="user-alice")
                session.add(created)
            return created

    return run_db(_create)


def write_image(path: Path, width: int = 640, height: int = 360) -> Path:
    image = np.zeros((height, width, 3), dtype=np.uint8)
    image[:, : width // 2] = (0, 128, 255)
    cv2.imwrite(str(path), image)
    return path


@pytest.fixture()
def image_file(tmp_path) -> Path:
    return write_image(tmp_path / "source.png")
