"""Persisting incoming uploads under the uploads root.

The stored name is always synthesized: ``{millis}-{sanitized stem}{ext}``.
The file is created with ``O_EXCL`` so two uploads landing in the same
millisecond get different names instead of overwriting each other.
"""

from __future__ import annotations

import logging
import os
import re
import time
from pathlib import Path
from typing import BinaryIO

from PIL import Image

from assets_admin.errors import CodecFailure, StorageFailure, TooLarge, UnsupportedExtension
from assets_admin.images import CODEC_ERRORS
from assets_admin.paths import IMAGE_EXTENSIONS, StorageRoot, to_virtual


logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024
DEFAULT_EXTENSION = ".png"
MAX_STEM_LENGTH = 50

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def sanitize_stem(stem: str) -> str:
    cleaned = _UNSAFE_CHARS.sub("_", stem)[:MAX_STEM_LENGTH]
    return cleaned or "image"


def upload_extension(original_name: str) -> str:
    ext = Path(original_name or "").suffix.lower() or DEFAULT_EXTENSION
    if ext not in IMAGE_EXTENSIONS:
        raise UnsupportedExtension(f"unsupported file type: {ext}")
    return ext


def _open_exclusive(directory: Path, stem: str, ext: str) -> tuple[Path, int]:
    stamp = time.time_ns() // 1_000_000
    while True:
        target = directory / f"{stamp}-{stem}{ext}"
        try:
            fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
        except FileExistsError:
            stamp += 1
            continue
        return target, fd


def _verify_image(path: Path) -> None:
    if path.suffix.lower() == ".svg":
        return
    try:
        with Image.open(path) as img:
            img.verify()
    except CODEC_ERRORS as exc:
        path.unlink(missing_ok=True)
        raise CodecFailure(f"file is not a readable image: {exc}") from exc


def ingest(stream: BinaryIO, original_name: str, uploads: StorageRoot, max_bytes: int) -> str:
    ext = upload_extension(original_name)
    stem = sanitize_stem(Path(original_name or "").stem)

    try:
        uploads.directory.mkdir(parents=True, exist_ok=True)
        target, fd = _open_exclusive(uploads.directory, stem, ext)
    except OSError as exc:
        raise StorageFailure(f"cannot create upload: {exc}") from exc

    written = 0
    try:
        with os.fdopen(fd, "wb") as handle:
            while True:
                chunk = stream.read(CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if written > max_bytes:
                    raise TooLarge(f"file exceeds {max_bytes} bytes")
                handle.write(chunk)
    except TooLarge:
        target.unlink(missing_ok=True)
        raise
    except OSError as exc:
        target.unlink(missing_ok=True)
        raise StorageFailure(f"upload failed: {exc}") from exc

    _verify_image(target)
    logger.info("Stored upload %s (%d bytes)", target.name, written)
    return to_virtual(target, uploads)
