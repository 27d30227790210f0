from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from livecast.db.models import VideoPrivacy
from livecast.live.identity import LiveVideoRequest

TAGS_MAX = 5

TagName = Annotated[str, Field(min_length=2, max_length=30)]


class HealthResponse(BaseModel):
    status: str = Field(default="ok", description="Health status indicator.")
    version: str
    live_enabled: bool
    time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ReadinessResponse(BaseModel):
    status: str
    database: bool
    storage_writable: bool


class EnvCheckResponse(BaseModel):
    opencv: bool
    storage_writable: bool


class LiveVideoCreate(BaseModel):
    """Body of ``POST /v1/live``; field names follow the public camelCase API."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    channel_id: int = Field(..., alias="channelId", ge=1)
    name: str = Field(..., min_length=3, max_length=120, json_schema_extra={"example": "Friday stream"})
    category: Optional[int] = Field(default=None, ge=1)
    licence: Optional[int] = Field(default=None, ge=1)
    language: Optional[str] = Field(default=None, max_length=16)
    description: Optional[str] = Field(default=None, min_length=3, max_length=10000)
    support: Optional[str] = Field(default=None, min_length=3, max_length=1000)
    comments_enabled: Optional[bool] = Field(default=None, alias="commentsEnabled")
    download_enabled: Optional[bool] = Field(default=None, alias="downloadEnabled")
    wait_transcoding: Optional[bool] = Field(default=None, alias="waitTranscoding")
    nsfw: Optional[bool] = None
    privacy: Optional[VideoPrivacy] = None
    originally_published_at: Optional[datetime] = Field(default=None, alias="originallyPublishedAt")
    tags: Optional[List[TagName]] = Field(default=None, max_length=TAGS_MAX)

    def to_request(self) -> LiveVideoRequest:
        return LiveVideoRequest(
            name=self.name,
            category=self.category,
            licence=self.licence,
            language=self.language,
            description=self.description,
            support=self.support,
            comments_enabled=self.comments_enabled,
            download_enabled=self.download_enabled,
            wait_transcoding=self.wait_transcoding,
            nsfw=self.nsfw,
            privacy=self.privacy,
            originally_published_at=self.originally_published_at,
            tags=list(self.tags) if self.tags is not None else None,
        )


class CreatedVideoRef(BaseModel):
    id: int
    uuid: str


class LiveVideoCreateResponse(BaseModel):
    video: CreatedVideoRef


class LiveVideoResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    rtmp_url: str = Field(..., serialization_alias="rtmpUrl")
    stream_key: str = Field(..., serialization_alias="streamKey")


__all__ = [
    "HealthResponse",
    "ReadinessResponse",
    "EnvCheckResponse",
    "LiveVideoCreate",
    "LiveVideoCreateResponse",
    "LiveVideoResponse",
    "CreatedVideoRef",
]
