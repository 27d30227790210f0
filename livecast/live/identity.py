from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from uuid import uuid4

from livecast.db.models import VideoPrivacy, VideoState

__all__ = [
    "ChannelRef",
    "LiveVideoRequest",
    "VideoDraft",
    "LiveDraft",
    "build_live_video",
    "generate_stream_key",
    "video_url",
]


@dataclass(frozen=True, slots=True)
class ChannelRef:
    """The caller's channel as resolved by request validation."""

    id: int
    name: str
    owner_id: str


@dataclass(slots=True)
class LiveVideoRequest:
    """Validated creation fields.

    Optional flags stay ``None`` when the client omitted them so the builder
    can tell "absent" from an explicit ``false``. ``tags`` is ``None`` when
    the field was not sent at all and a (possibly empty) list otherwise.
    """

    name: str
    category: Optional[int] = None
    licence: Optional[int] = None
    language: Optional[str] = None
    description: Optional[str] = None
    support: Optional[str] = None
    comments_enabled: Optional[bool] = None
    download_enabled: Optional[bool] = None
    wait_transcoding: Optional[bool] = None
    nsfw: Optional[bool] = None
    privacy: Optional[VideoPrivacy] = None
    originally_published_at: Optional[datetime] = None
    tags: Optional[list[str]] = None


@dataclass(slots=True)
class VideoDraft:
    """In-memory video aggregate, complete except for its database id."""

    uuid: str
    url: str
    name: str
    channel_id: int
    privacy: VideoPrivacy
    state: VideoState
    comments_enabled: bool
    download_enabled: bool
    wait_transcoding: bool
    nsfw: bool
    is_live: bool = True
    remote: bool = False
    duration: int = 0
    category: Optional[int] = None
    licence: Optional[int] = None
    language: Optional[str] = None
    description: Optional[str] = None
    support: Optional[str] = None
    originally_published_at: Optional[datetime] = None


@dataclass(slots=True)
class LiveDraft:
    """Live sidecar awaiting the id of its video."""

    stream_key: str
    video_id: Optional[int] = field(default=None)


def generate_stream_key() -> str:
    """Return a fresh, unguessable stream key.

    ``uuid4`` draws from ``os.urandom`` so the key is backed by the OS CSPRNG.
    """
    return str(uuid4())


def video_url(webserver_url: str, video_uuid: str) -> str:
    """Return the canonical public URL of a video.

    Args:
        webserver_url: The instance base URL.
        video_uuid: The video's external identifier.

    Returns:
        The watch URL.
    """
    return f"{webserver_url.rstrip('/')}/videos/watch/{video_uuid}"


def build_live_video(
    request: LiveVideoRequest,
    channel: ChannelRef,
    *,
    webserver_url: str,
) -> tuple[VideoDraft, LiveDraft]:
    """Build the video aggregate and its live sidecar without touching storage.

    Args:
        request: The validated creation fields.
        channel: The channel the video is created in.
        webserver_url: The instance base URL used for the canonical URL.

    Returns:
        The video draft and the live draft.
    """
    video_uuid = str(uuid4())
    draft = VideoDraft(
        uuid=video_uuid,
        # the URL embeds the UUID, so it can only be computed once the UUID exists
        url=video_url(webserver_url, video_uuid),
        name=request.name,
        channel_id=channel.id,
        category=request.category,
        licence=request.licence,
        language=request.language,
        description=request.description,
        support=request.support,
        comments_enabled=request.comments_enabled is not False,
        download_enabled=request.download_enabled is not False,
        wait_transcoding=request.wait_transcoding or False,
        nsfw=request.nsfw or False,
        privacy=request.privacy or VideoPrivacy.PRIVATE,
        state=VideoState.WAITING_FOR_LIVE,
        is_live=True,
        remote=False,
        duration=0,
        originally_published_at=request.originally_published_at,
    )
    return draft, LiveDraft(stream_key=generate_stream_key())
