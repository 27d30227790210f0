from __future__ import annotations

import enum
from datetime import datetime

from typing import List, Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from livecast.core.db import Base


class VideoState(enum.IntEnum):
    PUBLISHED = 1
    TO_TRANSCODE = 2
    TO_IMPORT = 3
    WAITING_FOR_LIVE = 4
    LIVE_ENDED = 5


class VideoPrivacy(enum.IntEnum):
    PUBLIC = 1
    UNLISTED = 2
    PRIVATE = 3
    INTERNAL = 4


class ThumbnailType(enum.IntEnum):
    MINIATURE = 1
    PREVIEW = 2


video_tags = Table(
    "video_tags",
    Base.metadata,
    Column("video_id", ForeignKey("videos.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


class VideoChannel(Base):
    __tablename__ = "video_channels"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    videos: Mapped[List["Video"]] = relationship(back_populates="channel")


class Video(Base):
    __tablename__ = "videos"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uuid: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    url: Mapped[str] = mapped_column(String(2000), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    category: Mapped[int | None] = mapped_column(Integer, nullable=True)
    licence: Mapped[int | None] = mapped_column(Integer, nullable=True)
    language: Mapped[str | None] = mapped_column(String(16), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    support: Mapped[str | None] = mapped_column(Text, nullable=True)
    privacy: Mapped[VideoPrivacy] = mapped_column(Enum(VideoPrivacy), nullable=False)
    state: Mapped[VideoState] = mapped_column(Enum(VideoState), nullable=False)
    nsfw: Mapped[bool] = mapped_column(Boolean, nullable=False)
    comments_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False)
    download_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False)
    wait_transcoding: Mapped[bool] = mapped_column(Boolean, nullable=False)
    is_live: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    remote: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    duration: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    channel_id: Mapped[int] = mapped_column(ForeignKey("video_channels.id", ondelete="CASCADE"), nullable=False)
    originally_published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    published_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    channel: Mapped[VideoChannel] = relationship(back_populates="videos")
    live: Mapped[Optional["VideoLive"]] = relationship(back_populates="video", uselist=False)
    thumbnails: Mapped[List["Thumbnail"]] = relationship(back_populates="video", cascade="all, delete-orphan")
    tags: Mapped[List["Tag"]] = relationship(secondary=video_tags)


class VideoLive(Base):
    __tablename__ = "video_lives"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    stream_key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    video_id: Mapped[int] = mapped_column(ForeignKey("videos.id", ondelete="CASCADE"), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    video: Mapped[Video] = relationship(back_populates="live")


class Thumbnail(Base):
    __tablename__ = "thumbnails"
    __table_args__ = (UniqueConstraint("video_id", "type", name="uq_thumbnails_video_type"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    video_id: Mapped[int] = mapped_column(ForeignKey("videos.id", ondelete="CASCADE"), nullable=False)
    type: Mapped[ThumbnailType] = mapped_column(Enum(ThumbnailType), nullable=False)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    storage_key: Mapped[str] = mapped_column(String(2048), nullable=False)
    width: Mapped[int | None] = mapped_column(Integer, nullable=True)
    height: Mapped[int | None] = mapped_column(Integer, nullable=True)
    automatically_generated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    video: Mapped[Video] = relationship(back_populates="thumbnails")


class Tag(Base):
    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)


__all__ = [
    "VideoChannel",
    "Video",
    "VideoLive",
    "Thumbnail",
    "Tag",
    "video_tags",
    "VideoState",
    "VideoPrivacy",
    "ThumbnailType",
]
