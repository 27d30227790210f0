"""Live video building blocks shared by the service, the API and the CLI."""

from livecast.live.identity import (
    ChannelRef,
    LiveDraft,
    LiveVideoRequest,
    VideoDraft,
    build_live_video,
    generate_stream_key,
    video_url,
)

__all__ = [
    "ChannelRef",
    "LiveDraft",
    "LiveVideoRequest",
    "VideoDraft",
    "build_live_video",
    "generate_stream_key",
    "video_url",
]
