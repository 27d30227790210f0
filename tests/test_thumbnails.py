from __future__ import annotations

from pathlib import Path

import cv2
import numpy as np
import pytest

from livecast.core.storage import LocalStorage
from livecast.db.models import ThumbnailType
from livecast.media.thumbnails import ThumbnailError, derive_thumbnail
from tests.conftest import write_image

VIDEO_UUID = "0f3c9a52-5e9b-4d0e-8c1e-7a2d3b4c5d6e"


def _decode(storage: LocalStorage, key: str):
    raw = np.frombuffer(storage.read_bytes(key), dtype=np.uint8)
    return cv2.imdecode(raw, cv2.IMREAD_COLOR)


def test_miniature_is_resized_and_stored(tmp_path: Path):
    storage = LocalStorage(tmp_path / "storage")
    source = write_image(tmp_path / "upload.png", width=640, height=360)

    artifact = derive_thumbnail(source, VIDEO_UUID, ThumbnailType.MINIATURE, (223, 122), storage)

    assert artifact.type == ThumbnailType.MINIATURE
    assert artifact.filename.startswith(f"{VIDEO_UUID}-")
    assert artifact.filename.endswith(".jpg")
    assert artifact.storage_key == f"thumbnails/{artifact.filename}"
    assert artifact.automatically_generated is False
    image = _decode(storage, artifact.storage_key)
    assert image.shape[:2] == (122, 223)
    assert not source.exists()


def test_preview_goes_to_previews_and_can_upscale(tmp_path: Path):
    storage = LocalStorage(tmp_path / "storage")
    source = write_image(tmp_path / "small.png", width=100, height=100)

    artifact = derive_thumbnail(source, VIDEO_UUID, ThumbnailType.PREVIEW, (850, 480), storage, keep_original=True)

    assert artifact.storage_key == f"previews/{artifact.filename}"
    assert _decode(storage, artifact.storage_key).shape[:2] == (480, 850)
    assert source.exists()


def test_unreadable_image_raises(tmp_path: Path):
    storage = LocalStorage(tmp_path / "storage")
    source = tmp_path / "broken.png"
    source.write_bytes(b"definitely not an image")

    with pytest.raises(ThumbnailError):
        derive_thumbnail(source, VIDEO_UUID, ThumbnailType.MINIATURE, (223, 122), storage)

    assert not list((tmp_path / "storage").rglob("*.jpg"))


def test_storage_rejects_escaping_keys(tmp_path: Path):
    storage = LocalStorage(tmp_path / "storage")
    with pytest.raises(ValueError):
        storage.write_bytes("../outside.jpg", b"x")


def test_each_derivation_gets_its_own_file(tmp_path: Path):
    storage = LocalStorage(tmp_path / "storage")
    first = derive_thumbnail(write_image(tmp_path / "a.png"), VIDEO_UUID, ThumbnailType.MINIATURE, (223, 122), storage)
    second = derive_thumbnail(write_image(tmp_path / "b.png"), VIDEO_UUID, ThumbnailType.MINIATURE, (223, 122), storage)

    assert first.storage_key != second.storage_key
    storage.delete(second.storage_key)
    assert storage.exists(first.storage_key)
