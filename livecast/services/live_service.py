from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from livecast.core.config import Settings
from livecast.core.logging import get_logger
from livecast.core.storage import Storage
from livecast.db.models import ThumbnailType
from livecast.db.repositories import LiveRepository, TagRepository, ThumbnailRepository, VideoRepository
from livecast.db.retry import retry_transaction
from livecast.live.identity import ChannelRef, LiveDraft, LiveVideoRequest, VideoDraft, build_live_video
from livecast.media.thumbnails import ThumbnailArtifact, ThumbnailError, derive_thumbnail
from livecast.services.errors import LiveIntegrityError, PreprocessingError

ThumbnailDeriver = Callable[..., ThumbnailArtifact]


@dataclass(frozen=True)
class CallerContext:
    """Who is creating the video and in which channel, as resolved upstream."""

    user_id: str
    channel: ChannelRef


@dataclass(slots=True)
class CreatedLiveVideo:
    id: int
    uuid: str
    name: str
    url: str
    stream_key: str
    channel: ChannelRef
    thumbnails: list[ThumbnailArtifact] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)


@dataclass(slots=True)
class LiveView:
    video_id: int
    video_uuid: str
    rtmp_url: str
    stream_key: str


class LiveService:
    def __init__(
        self,
        settings: Settings,
        storage: Storage,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        videos: VideoRepository | None = None,
        thumbnails: ThumbnailRepository | None = None,
        lives: LiveRepository | None = None,
        tags: TagRepository | None = None,
        deriver: ThumbnailDeriver = derive_thumbnail,
    ):
        self.settings = settings
        self.storage = storage
        self.session_factory = session_factory
        self.videos = videos or VideoRepository()
        self.thumbnails = thumbnails or ThumbnailRepository()
        self.lives = lives or LiveRepository()
        self.tags = tags or TagRepository()
        self.deriver = deriver
        self.logger = get_logger(component="live_service")

    async def register_live_video(
        self,
        request: LiveVideoRequest,
        caller: CallerContext,
        *,
        thumbnail_path: Path | None = None,
        preview_path: Path | None = None,
    ) -> CreatedLiveVideo:
        draft, live = build_live_video(request, caller.channel, webserver_url=self.settings.webserver_url)

        # Derivation is slow file work: finish it before any transaction holds locks.
        artifacts = await self._derive_artifacts(draft.uuid, thumbnail_path, preview_path)

        async def _attempt() -> CreatedLiveVideo:
            return await self._persist(draft, live, artifacts, request.tags, caller)

        try:
            created = await retry_transaction(
                _attempt,
                attempts=self.settings.transaction_retry_attempts,
                backoff_s=self.settings.transaction_retry_backoff_s,
            )
        except IntegrityError as exc:
            self._discard_artifacts(artifacts)
            raise LiveIntegrityError(str(exc.orig)) from exc
        except Exception:
            self._discard_artifacts(artifacts)
            raise

        self.logger.info("live_video_created", name=created.name, uuid=created.uuid)
        return created

    async def get_live_video(self, video_ref: str | int) -> LiveView:
        async with self.session_factory() as session:
            video = await self.videos.load(session, video_ref)
            if video is None or not video.is_live:
                raise LookupError("video_not_found")
            live = await self.lives.load_by_video_id(session, video.id)
            if live is None:
                raise LookupError("live_not_found")
            return LiveView(
                video_id=video.id,
                video_uuid=video.uuid,
                rtmp_url=self.settings.rtmp_url,
                stream_key=live.stream_key,
            )

    async def _persist(
        self,
        draft: VideoDraft,
        live: LiveDraft,
        artifacts: list[ThumbnailArtifact],
        tag_names: list[str] | None,
        caller: CallerContext,
    ) -> CreatedLiveVideo:
        async with self.session_factory() as session:
            async with session.begin():
                video_id = await self.videos.insert(session, draft)

                for artifact in artifacts:
                    await self.thumbnails.attach(session, video_id, artifact)

                live.video_id = video_id
                await self.lives.insert(session, live)

                tags: list[str] = []
                if tag_names is not None:
                    resolved = await self.tags.resolve_or_create(session, tag_names)
                    await self.tags.replace_video_tags(session, video_id, resolved)
                    tags = [tag.name for tag in resolved]

        return CreatedLiveVideo(
            id=video_id,
            uuid=draft.uuid,
            name=draft.name,
            url=draft.url,
            stream_key=live.stream_key,
            channel=caller.channel,
            thumbnails=list(artifacts),
            tags=tags,
        )

    async def _derive_artifacts(
        self,
        video_uuid: str,
        thumbnail_path: Path | None,
        preview_path: Path | None,
    ) -> list[ThumbnailArtifact]:
        sources = [
            (thumbnail_path, ThumbnailType.MINIATURE, (self.settings.thumbnail_width, self.settings.thumbnail_height)),
            (preview_path, ThumbnailType.PREVIEW, (self.settings.preview_width, self.settings.preview_height)),
        ]
        artifacts: list[ThumbnailArtifact] = []
        for source, thumbnail_type, size in sources:
            if source is None:
                continue
            try:
                artifact = await asyncio.to_thread(
                    self.deriver,
                    source,
                    video_uuid,
                    thumbnail_type,
                    size,
                    self.storage,
                )
            except (ThumbnailError, OSError) as exc:
                self._discard_artifacts(artifacts)
                self.logger.warning(
                    "thumbnail_derivation_failed",
                    video_uuid=video_uuid,
                    type=thumbnail_type.name.lower(),
                    error=str(exc),
                )
                raise PreprocessingError(f"{thumbnail_type.name.lower()}_unprocessable") from exc
            artifacts.append(artifact)
        return artifacts

    def _discard_artifacts(self, artifacts: list[ThumbnailArtifact]) -> None:
        for artifact in artifacts:
            try:
                self.storage.delete(artifact.storage_key)
            except OSError as cleanup_error:
                self.logger.warning(
                    "thumbnail_cleanup_failed",
                    storage_key=artifact.storage_key,
                    error=str(cleanup_error),
                )


__all__ = ["LiveService", "CallerContext", "CreatedLiveVideo", "LiveView"]
