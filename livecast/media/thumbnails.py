from __future__ import annotations

from dataclasses import dataclass
from secrets import token_hex
from pathlib import Path
from typing import Tuple

import cv2  # type: ignore

from livecast.core.storage import Storage
from livecast.db.models import ThumbnailType

JPEG_QUALITY = 90

THUMBNAIL_DIRS = {
    ThumbnailType.MINIATURE: "thumbnails",
    ThumbnailType.PREVIEW: "previews",
}


class ThumbnailError(RuntimeError):
    """Raised when a source image cannot be turned into a stored artifact."""


@dataclass(slots=True)
class ThumbnailArtifact:
    type: ThumbnailType
    filename: str
    storage_key: str
    width: int
    height: int
    automatically_generated: bool = False


def derive_thumbnail(
    source_path: Path,
    video_uuid: str,
    thumbnail_type: ThumbnailType,
    size: Tuple[int, int],
    storage: Storage,
    *,
    keep_original: bool = False,
) -> ThumbnailArtifact:
    """Resize an uploaded image to the target size and store it as JPEG.

    The source is cropped to fill the target box. Unless ``keep_original`` is
    set, the source file is removed once the artifact is stored.
    """
    width, height = size
    image = cv2.imread(str(source_path), cv2.IMREAD_COLOR)
    if image is None:
        raise ThumbnailError(f"Unreadable image at {source_path}")

    resized = _resize_cover(image, width, height)
    ok, buffer = cv2.imencode(".jpg", resized, [cv2.IMWRITE_JPEG_QUALITY, JPEG_QUALITY])
    if not ok:
        raise ThumbnailError(f"Failed to encode {thumbnail_type.name.lower()} for {video_uuid}")

    # one file per derivation, even when two requests carry the same video uuid
    filename = f"{video_uuid}-{token_hex(4)}.jpg"
    storage_key = f"{THUMBNAIL_DIRS[thumbnail_type]}/{filename}"
    storage.write_bytes(storage_key, buffer.tobytes())

    if not keep_original:
        source_path.unlink(missing_ok=True)

    return ThumbnailArtifact(
        type=thumbnail_type,
        filename=filename,
        storage_key=storage_key,
        width=width,
        height=height,
    )


def _resize_cover(image, width: int, height: int):
    src_height, src_width = image.shape[:2]
    scale = max(width / src_width, height / src_height)
    scaled_width = max(width, int(round(src_width * scale)))
    scaled_height = max(height, int(round(src_height * scale)))
    interpolation = cv2.INTER_AREA if scale < 1 else cv2.INTER_CUBIC
    resized = cv2.resize(image, (scaled_width, scaled_height), interpolation=interpolation)

    left = (scaled_width - width) // 2
    top = (scaled_height - height) // 2
    return resized[top : top + height, left : left + width]


__all__ = ["ThumbnailArtifact", "ThumbnailError", "derive_thumbnail", "THUMBNAIL_DIRS"]
