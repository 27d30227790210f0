from __future__ import annotations

from dataclasses import asdict
from typing import Iterable, Sequence

from sqlalchemy import delete, insert, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from livecast.db.models import Tag, Thumbnail, Video, VideoChannel, VideoLive, video_tags
from livecast.live.identity import LiveDraft, VideoDraft
from livecast.media.thumbnails import ThumbnailArtifact
from livecast.services.errors import TransientConflictError

_UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class VideoRepository:
    async def insert(self, session: AsyncSession, draft: VideoDraft) -> int:
        video = Video(**asdict(draft))
        session.add(video)
        await session.flush()
        return video.id

    async def load(self, session: AsyncSession, video_ref: str | int) -> Video | None:
        stmt = select(Video).options(selectinload(Video.channel))
        if isinstance(video_ref, int) or str(video_ref).isdigit():
            stmt = stmt.where(Video.id == int(video_ref))
        else:
            stmt = stmt.where(Video.uuid == str(video_ref))
        return (await session.execute(stmt)).scalar_one_or_none()


class ChannelRepository:
    async def get(self, session: AsyncSession, channel_id: int) -> VideoChannel | None:
        return await session.get(VideoChannel, channel_id)

    async def create(self, session: AsyncSession, *, name: str, owner_id: str) -> VideoChannel:
        channel = VideoChannel(name=name, owner_id=owner_id)
        session.add(channel)
        await session.flush()
        return channel


class ThumbnailRepository:
    async def attach(self, session: AsyncSession, video_id: int, artifact: ThumbnailArtifact) -> None:
        session.add(
            Thumbnail(
                video_id=video_id,
                type=artifact.type,
                filename=artifact.filename,
                storage_key=artifact.storage_key,
                width=artifact.width,
                height=artifact.height,
                automatically_generated=artifact.automatically_generated,
            )
        )
        await session.flush()

    async def list_for_video(self, session: AsyncSession, video_id: int) -> Sequence[Thumbnail]:
        stmt = select(Thumbnail).where(Thumbnail.video_id == video_id).order_by(Thumbnail.type)
        return (await session.execute(stmt)).scalars().all()


class LiveRepository:
    async def insert(self, session: AsyncSession, draft: LiveDraft) -> None:
        if draft.video_id is None:
            raise ValueError("live sidecar requires a persisted video")
        session.add(VideoLive(stream_key=draft.stream_key, video_id=draft.video_id))
        await session.flush()

    async def load_by_video_id(self, session: AsyncSession, video_id: int) -> VideoLive | None:
        stmt = select(VideoLive).where(VideoLive.video_id == video_id)
        return (await session.execute(stmt)).scalar_one_or_none()


class TagRepository:
    async def resolve_or_create(self, session: AsyncSession, names: Iterable[str]) -> list[Tag]:
        """Find or create one tag per distinct name, keeping first-seen order."""
        unique = list(dict.fromkeys(names))
        if not unique:
            return []

        upsert = _UPSERT_INSERTS.get(session.bind.dialect.name)
        if upsert is not None:
            stmt = upsert(Tag).values([{"name": name} for name in unique])
            await session.execute(stmt.on_conflict_do_nothing(index_elements=["name"]))
        else:
            await self._insert_missing(session, unique)

        found = await self._by_names(session, unique)
        return [found[name] for name in unique]

    async def replace_video_tags(self, session: AsyncSession, video_id: int, tags: Sequence[Tag]) -> None:
        await session.execute(delete(video_tags).where(video_tags.c.video_id == video_id))
        if tags:
            await session.execute(
                insert(video_tags),
                [{"video_id": video_id, "tag_id": tag.id} for tag in tags],
            )

    async def names_for_video(self, session: AsyncSession, video_id: int) -> list[str]:
        stmt = (
            select(Tag.name)
            .join(video_tags, video_tags.c.tag_id == Tag.id)
            .where(video_tags.c.video_id == video_id)
            .order_by(Tag.name)
        )
        return list((await session.execute(stmt)).scalars().all())

    async def _by_names(self, session: AsyncSession, names: list[str]) -> dict[str, Tag]:
        rows = (await session.execute(select(Tag).where(Tag.name.in_(names)))).scalars().all()
        return {tag.name: tag for tag in rows}

    async def _insert_missing(self, session: AsyncSession, names: list[str]) -> None:
        existing = await self._by_names(session, names)
        missing = [name for name in names if name not in existing]
        if not missing:
            return
        try:
            await session.execute(insert(Tag), [{"name": name} for name in missing])
        except IntegrityError as exc:
            # another transaction created one of the names first; the retry finds it
            raise TransientConflictError("tag_name_conflict") from exc


__all__ = [
    "VideoRepository",
    "ChannelRepository",
    "ThumbnailRepository",
    "LiveRepository",
    "TagRepository",
]
