from __future__ import annotations

import asyncio
import sqlite3
from uuid import UUID

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from structlog.testing import capture_logs

from livecast.core.config import get_settings
from livecast.core.storage import get_storage
from livecast.db.models import Tag, Thumbnail, ThumbnailType, Video, VideoLive, VideoPrivacy, VideoState, video_tags
from livecast.db.repositories import LiveRepository, TagRepository, ThumbnailRepository
from livecast.live.identity import ChannelRef, LiveVideoRequest
from livecast.media.thumbnails import derive_thumbnail
from livecast.services.errors import LiveIntegrityError, PreprocessingError
from livecast.services.live_service import CallerContext, LiveService
from tests.conftest import run_db, write_image


class CountingDeriver:
    def __init__(self):
        self.calls = 0

    def __call__(self, *args, **kwargs):
        self.calls += 1
        return derive_thumbnail(*args, **kwargs)


class CountingTagRepository(TagRepository):
    def __init__(self):
        self.calls: list[list[str]] = []

    async def resolve_or_create(self, session, names):
        names = list(names)
        self.calls.append(names)
        return await super().resolve_or_create(session, names)


class FaultyLiveRepository(LiveRepository):
    async def insert(self, session, draft):
        raise RuntimeError("simulated fault")


class FlakyLiveRepository(LiveRepository):
    def __init__(self, failures: int):
        self.failures = failures
        self.calls = 0

    async def insert(self, session, draft):
        self.calls += 1
        if self.calls <= self.failures:
            raise OperationalError("INSERT INTO video_lives", {}, sqlite3.OperationalError("database is locked"))
        await super().insert(session, draft)


@pytest.fixture()
def caller(channel) -> CallerContext:
    return CallerContext(
        user_id=channel.owner_id,
        channel=ChannelRef(id=channel.id, name=channel.name, owner_id=channel.owner_id),
    )


def _service(session_factory, **kwargs) -> LiveService:
    settings = get_settings()
    return LiveService(settings, get_storage(settings), session_factory, **kwargs)


async def _count(session_factory, target) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(target))).scalar_one()


def test_register_without_images(caller):
    async def scenario(session_factory):
        created = await _service(session_factory).register_live_video(LiveVideoRequest(name="first live"), caller)
        async with session_factory() as session:
            video = await session.get(Video, created.id)
            live = (await session.execute(select(VideoLive))).scalar_one()
        return created, video, live, await _count(session_factory, Thumbnail)

    created, video, live, thumbnails = run_db(scenario)

    assert thumbnails == 0
    assert video.uuid == created.uuid
    assert UUID(created.uuid).version == 4
    assert video.url == f"https://live.example.test/videos/watch/{created.uuid}"
    assert video.state == VideoState.WAITING_FOR_LIVE
    assert video.is_live is True
    assert video.remote is False
    assert video.duration == 0
    assert video.privacy == VideoPrivacy.PRIVATE
    assert video.comments_enabled is True
    assert video.download_enabled is True
    assert video.channel_id == caller.channel.id
    assert live.video_id == created.id
    assert live.stream_key == created.stream_key
    assert created.channel == caller.channel


def test_register_with_thumbnail_and_preview(caller, tmp_path):
    thumbnail = write_image(tmp_path / "thumb.png")
    preview = write_image(tmp_path / "preview.jpg", width=1280, height=720)

    async def scenario(session_factory):
        created = await _service(session_factory).register_live_video(
            LiveVideoRequest(name="with images"),
            caller,
            thumbnail_path=thumbnail,
            preview_path=preview,
        )
        async with session_factory() as session:
            rows = await ThumbnailRepository().list_for_video(session, created.id)
        return created, rows

    created, rows = run_db(scenario)

    assert [row.type for row in rows] == [ThumbnailType.MINIATURE, ThumbnailType.PREVIEW]
    miniature, preview_row = rows
    assert miniature.storage_key.startswith(f"thumbnails/{created.uuid}-")
    assert (miniature.width, miniature.height) == (223, 122)
    assert preview_row.storage_key.startswith(f"previews/{created.uuid}-")
    assert (preview_row.width, preview_row.height) == (850, 480)
    assert sorted(row.storage_key for row in rows) == sorted(artifact.storage_key for artifact in created.thumbnails)
    storage = get_storage(get_settings())
    assert storage.exists(miniature.storage_key)
    assert storage.exists(preview_row.storage_key)


def test_only_preview_attaches_one_row(caller, tmp_path):
    preview = write_image(tmp_path / "preview.png")

    async def scenario(session_factory):
        created = await _service(session_factory).register_live_video(
            LiveVideoRequest(name="preview only"), caller, preview_path=preview
        )
        async with session_factory() as session:
            return (await session.execute(select(Thumbnail.type).where(Thumbnail.video_id == created.id))).scalars().all()

    assert run_db(scenario) == [ThumbnailType.PREVIEW]


def test_fault_before_sidecar_rolls_back_everything(caller, tmp_path):
    thumbnail = write_image(tmp_path / "thumb.png")

    async def scenario(session_factory):
        service = _service(session_factory, lives=FaultyLiveRepository())
        with pytest.raises(RuntimeError, match="simulated fault"):
            await service.register_live_video(
                LiveVideoRequest(name="doomed", tags=["music"]), caller, thumbnail_path=thumbnail
            )
        return (
            await _count(session_factory, Video),
            await _count(session_factory, VideoLive),
            await _count(session_factory, Thumbnail),
        )

    assert run_db(scenario) == (0, 0, 0)
    storage_root = get_settings().storage_root
    assert not list((storage_root / "thumbnails").glob("*.jpg"))


@pytest.mark.parametrize(
    "tags, expected_calls, expected_links",
    [
        (None, 0, 0),
        ([], 1, 0),
        (["aa", "bb", "aa"], 1, 2),
    ],
)
def test_tag_semantics(caller, tags, expected_calls, expected_links):
    resolver = CountingTagRepository()

    async def scenario(session_factory):
        created = await _service(session_factory, tags=resolver).register_live_video(
            LiveVideoRequest(name="tagged", tags=tags), caller
        )
        links = await _count(session_factory, video_tags)
        return created, links

    created, links = run_db(scenario)

    assert len(resolver.calls) == expected_calls
    assert links == expected_links
    assert created.tags == list(dict.fromkeys(tags or []))


def test_single_letter_tags_deduplicated(caller):
    async def scenario(session_factory):
        await _service(session_factory).register_live_video(LiveVideoRequest(name="tagged", tags=["a", "b", "a"]), caller)
        return await _count(session_factory, video_tags), await _count(session_factory, Tag)

    assert run_db(scenario) == (2, 2)


def test_tags_are_shared_between_videos(caller):
    async def scenario(session_factory):
        service = _service(session_factory)
        first = await service.register_live_video(LiveVideoRequest(name="one", tags=["gaming", "chill"]), caller)
        second = await service.register_live_video(LiveVideoRequest(name="two", tags=["chill", "news"]), caller)
        repo = TagRepository()
        async with session_factory() as session:
            first_tags = await repo.names_for_video(session, first.id)
            second_tags = await repo.names_for_video(session, second.id)
        return first_tags, second_tags, await _count(session_factory, Tag)

    first_tags, second_tags, tag_rows = run_db(scenario)

    assert first_tags == ["chill", "gaming"]
    assert second_tags == ["chill", "news"]
    assert tag_rows == 3


def test_transient_conflict_retries_without_rederiving(caller, tmp_path):
    thumbnail = write_image(tmp_path / "thumb.png")
    deriver = CountingDeriver()
    lives = FlakyLiveRepository(failures=1)

    async def scenario(session_factory):
        created = await _service(session_factory, deriver=deriver, lives=lives).register_live_video(
            LiveVideoRequest(name="retried", tags=["retry"]), caller, thumbnail_path=thumbnail
        )
        return (
            created,
            await _count(session_factory, Video),
            await _count(session_factory, VideoLive),
            await _count(session_factory, Thumbnail),
        )

    created, videos, sidecars, thumbnails = run_db(scenario)

    assert deriver.calls == 1
    assert lives.calls == 2
    assert (videos, sidecars, thumbnails) == (1, 1, 1)
    assert get_storage(get_settings()).exists(created.thumbnails[0].storage_key)


def test_exhausted_retries_surface_conflict(caller, monkeypatch):
    monkeypatch.setenv("LIVECAST_TRANSACTION_RETRY_ATTEMPTS", "2")
    get_settings.cache_clear()
    lives = FlakyLiveRepository(failures=5)

    async def scenario(session_factory):
        with pytest.raises(OperationalError):
            await _service(session_factory, lives=lives).register_live_video(LiveVideoRequest(name="contended"), caller)
        return await _count(session_factory, Video)

    assert run_db(scenario) == 0
    assert lives.calls == 2


def test_preprocessing_failure_persists_nothing(caller, tmp_path):
    thumbnail = write_image(tmp_path / "thumb.png")
    broken = tmp_path / "preview.png"
    broken.write_bytes(b"not an image")

    async def scenario(session_factory):
        with pytest.raises(PreprocessingError):
            await _service(session_factory).register_live_video(
                LiveVideoRequest(name="bad preview"), caller, thumbnail_path=thumbnail, preview_path=broken
            )
        return await _count(session_factory, Video), await _count(session_factory, VideoLive)

    assert run_db(scenario) == (0, 0)
    # the miniature derived before the failure is not left behind
    assert not list((get_settings().storage_root / "thumbnails").glob("*.jpg"))


def test_duplicate_uuid_is_an_integrity_failure(caller, monkeypatch):
    fixed = UUID("3b241101-e2bb-4255-8caf-4136c566a962")
    monkeypatch.setattr("livecast.live.identity.uuid4", lambda: fixed)
    lives = FlakyLiveRepository(failures=0)

    async def scenario(session_factory):
        service = _service(session_factory, lives=lives)
        await service.register_live_video(LiveVideoRequest(name="original"), caller)
        with pytest.raises(LiveIntegrityError):
            await service.register_live_video(LiveVideoRequest(name="clash"), caller)
        return await _count(session_factory, Video), await _count(session_factory, VideoLive)

    assert run_db(scenario) == (1, 1)
    # the clash fails on the video insert and is never retried
    assert lives.calls == 1


def test_created_event_logged_after_commit(caller):
    async def scenario(session_factory):
        with capture_logs() as logs:
            created = await _service(session_factory).register_live_video(LiveVideoRequest(name="logged live"), caller)
        return created, logs

    created, logs = run_db(scenario)

    events = [entry for entry in logs if entry["event"] == "live_video_created"]
    assert len(events) == 1
    assert events[0]["name"] == "logged live"
    assert events[0]["uuid"] == created.uuid
    assert events[0]["log_level"] == "info"


def test_failed_registration_does_not_log_creation(caller):
    async def scenario(session_factory):
        with capture_logs() as logs:
            with pytest.raises(RuntimeError):
                await _service(session_factory, lives=FaultyLiveRepository()).register_live_video(
                    LiveVideoRequest(name="silent"), caller
                )
        return logs

    assert not [entry for entry in run_db(scenario) if entry["event"] == "live_video_created"]


def test_get_live_video_round_trip(caller):
    async def scenario(session_factory):
        service = _service(session_factory)
        created = await service.register_live_video(LiveVideoRequest(name="round trip"), caller)
        by_id = await service.get_live_video(created.id)
        by_uuid = await service.get_live_video(created.uuid)
        return created, by_id, by_uuid

    created, by_id, by_uuid = run_db(scenario)

    assert by_id.stream_key == created.stream_key
    assert by_uuid.stream_key == created.stream_key
    assert by_id.rtmp_url == "rtmp://live.example.test:1935/live"
    assert by_id.video_uuid == created.uuid


def test_get_live_video_missing():
    async def scenario(session_factory):
        with pytest.raises(LookupError):
            await _service(session_factory).get_live_video(999)

    run_db(scenario)


def test_uuid_clash_keeps_existing_video_images(caller, tmp_path, monkeypatch):
    fixed = UUID("5f0c2a1e-8d3b-4c6a-9e7f-0a1b2c3d4e5f")
    monkeypatch.setattr("livecast.live.identity.uuid4", lambda: fixed)

    async def scenario(session_factory):
        service = _service(session_factory)
        original = await service.register_live_video(
            LiveVideoRequest(name="original"), caller, thumbnail_path=write_image(tmp_path / "first.png")
        )
        with pytest.raises(LiveIntegrityError):
            await service.register_live_video(
                LiveVideoRequest(name="clash"), caller, thumbnail_path=write_image(tmp_path / "second.png")
            )
        return original

    original = run_db(scenario)

    storage_root = get_settings().storage_root
    assert [path.name for path in (storage_root / "thumbnails").glob("*.jpg")] == [original.thumbnails[0].filename]


def test_concurrent_registrations_share_one_new_tag(caller):
    async def scenario(session_factory):
        service = _service(session_factory)
        await asyncio.gather(
            *(
                service.register_live_video(LiveVideoRequest(name=f"concurrent {index}", tags=["shared", f"own{index}"]), caller)
                for index in range(8)
            )
        )
        async with session_factory() as session:
            shared = (await session.execute(select(Tag).where(Tag.name == "shared"))).scalars().all()
            shared_links = (
                await session.execute(
                    select(func.count()).select_from(video_tags).where(video_tags.c.tag_id == shared[0].id)
                )
            ).scalar_one()
        return len(shared), shared_links, await _count(session_factory, video_tags), await _count(session_factory, Video)

    assert run_db(scenario) == (1, 8, 16, 8)
