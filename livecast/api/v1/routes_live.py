from __future__ import annotations

import json
from pathlib import Path
from typing import Any
from uuid import UUID, uuid4

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from starlette.datastructures import UploadFile

from livecast.api import deps
from livecast.core.config import Settings
from livecast.core.logging import get_logger
from livecast.db.repositories import ChannelRepository, VideoRepository
from livecast.db.retry import is_transient_db_error
from livecast.live.identity import ChannelRef
from livecast.services.errors import LiveIntegrityError, PreprocessingError
from livecast.services.live_service import CallerContext

from . import schemas


router = APIRouter(prefix="/live", tags=["live"])
logger = get_logger(component="live_routes")

IMAGE_MIMETYPES = frozenset({"image/png", "image/jpg", "image/jpeg", "image/webp"})
UPLOAD_FIELDS = ("thumbnailfile", "previewfile")
TAG_FIELDS = ("tags", "tags[]")
SPOOL_CHUNK_BYTES = 1024 * 1024


async def _read_body(request: Request) -> tuple[dict[str, Any], dict[str, UploadFile]]:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data"):
        form = await request.form()
        data: dict[str, Any] = {}
        uploads: dict[str, UploadFile] = {}
        for key in set(form.keys()):
            if key in UPLOAD_FIELDS:
                value = form.get(key)
                if isinstance(value, UploadFile):
                    uploads[key] = value
            elif key in TAG_FIELDS:
                # a lone empty value sends an explicit empty tag set
                data["tags"] = [value for value in form.getlist(key) if isinstance(value, str) and value != ""]
            else:
                value = form.get(key)
                if isinstance(value, str) and value != "":
                    data[key] = value
        return data, uploads

    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="malformed_json") from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="object_body_required")
    return payload, {}


async def _spool_upload(upload: UploadFile, tmp_dir: Path, limit_bytes: int) -> Path:
    """Copy an uploaded image into the spool directory and return its path."""
    if upload.content_type not in IMAGE_MIMETYPES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_image_type")

    tmp_dir.mkdir(parents=True, exist_ok=True)
    suffix = Path(upload.filename or "").suffix or ".img"
    target = tmp_dir / f"{uuid4().hex}{suffix}"
    written = 0
    with target.open("wb") as handle:
        while chunk := await upload.read(SPOOL_CHUNK_BYTES):
            written += len(chunk)
            if written > limit_bytes:
                break
            handle.write(chunk)
    if written > limit_bytes:
        target.unlink(missing_ok=True)
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="image_too_large")
    return target


def _is_id_or_uuid(value: str) -> bool:
    if value.isdigit():
        return True
    try:
        UUID(value)
    except ValueError:
        return False
    return True


@router.post("", response_model=schemas.LiveVideoCreateResponse)
async def create_live(
    request: Request,
    service: deps.LiveServiceDependency,
    session: deps.SessionDependency,
    context: deps.AuthDependency,
    settings: Settings = Depends(deps.get_app_settings),
) -> schemas.LiveVideoCreateResponse:
    if not settings.live_enabled:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="live_not_enabled")

    data, uploads = await _read_body(request)
    try:
        payload = schemas.LiveVideoCreate.model_validate(data)
    except ValidationError as exc:
        raise RequestValidationError(exc.errors()) from exc

    channel = await ChannelRepository().get(session, payload.channel_id)
    if channel is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="unknown_video_channel")
    if channel.owner_id != context.user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="channel_not_owned")
    caller = CallerContext(
        user_id=context.user_id,
        channel=ChannelRef(id=channel.id, name=channel.name, owner_id=channel.owner_id),
    )
    # release the read connection before the long-running part of the request
    await session.close()

    spooled: dict[str, Path] = {}
    try:
        for field_name, upload in uploads.items():
            spooled[field_name] = await _spool_upload(upload, Path(settings.tmp_dir), settings.max_image_upload_bytes)

        created = await service.register_live_video(
            payload.to_request(),
            caller,
            thumbnail_path=spooled.get("thumbnailfile"),
            preview_path=spooled.get("previewfile"),
        )
    except PreprocessingError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except LiveIntegrityError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="integrity_violation") from exc
    except Exception as exc:
        if is_transient_db_error(exc):
            logger.error("live_registration_conflict_exhausted", error=str(exc))
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="transaction_conflict") from exc
        raise
    finally:
        for path in spooled.values():
            path.unlink(missing_ok=True)

    return schemas.LiveVideoCreateResponse(video=schemas.CreatedVideoRef(id=created.id, uuid=created.uuid))


@router.get("/{video_id}", response_model=schemas.LiveVideoResponse)
async def get_live(
    video_id: str,
    service: deps.LiveServiceDependency,
    session: deps.SessionDependency,
    context: deps.AuthDependency,
) -> schemas.LiveVideoResponse:
    if not _is_id_or_uuid(video_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_video_id")

    video = await VideoRepository().load(session, video_id)
    if video is None or not video.is_live:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="video_not_found")
    if video.channel.owner_id != context.user_id and not context.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="video_not_owned")

    try:
        view = await service.get_live_video(video.id)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return schemas.LiveVideoResponse(rtmp_url=view.rtmp_url, stream_key=view.stream_key)


__all__ = ["router"]
