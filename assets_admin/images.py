from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable

from PIL import Image, ImageOps

from assets_admin.errors import CodecFailure, Conflict, NotAFile, NotFound, StorageFailure, UnsupportedExtension
from assets_admin.paths import StorageRoot, is_convertible_file, to_virtual


logger = logging.getLogger(__name__)

MIN_QUALITY, MAX_QUALITY, DEFAULT_QUALITY = 70, 100, 85
MIN_SIDE, MAX_SIDE = 1, 4096
DEFAULT_WIDTH, DEFAULT_HEIGHT = 420, 720

# Errors Pillow raises for unreadable or unwritable image data
CODEC_ERRORS = (OSError, ValueError, SyntaxError, Image.DecompressionBombError)


def clamp(value: int, lo: int, hi: int) -> int:
    return max(lo, min(hi, int(value)))


def cover_fit(img: Image.Image, size: tuple[int, int]) -> Image.Image:
    # fill the box exactly, cropping overflow around the center
    if img.size == size:
        return img
    return ImageOps.fit(img, size, method=Image.Resampling.LANCZOS, centering=(0.5, 0.5))


def _format_for(path: Path) -> str:
    fmt = Image.registered_extensions().get(path.suffix.lower())
    if fmt is None:
        raise UnsupportedExtension(f"cannot encode {path.suffix} files")
    return fmt


def _prepare_mode(img: Image.Image, fmt: str) -> Image.Image:
    if fmt == "JPEG":
        return img if img.mode in {"RGB", "L"} else img.convert("RGB")
    if img.mode not in {"RGB", "RGBA", "L"}:
        return img.convert("RGBA")
    return img


def _save_options(fmt: str, quality: int) -> dict[str, object]:
    if fmt == "JPEG":
        return {"quality": quality, "optimize": True, "progressive": True}
    if fmt == "WEBP":
        return {"quality": quality, "method": 6}
    if fmt == "PNG":
        return {"optimize": True}
    return {}


def transform(
    source: Path,
    target: Path,
    op: Callable[[Image.Image], Image.Image],
    *,
    allow_overwrite: bool,
    quality: int = DEFAULT_QUALITY,
) -> Path:
    """
    Decode ``source``, apply ``op`` and encode the result to ``target``.

    The output is written to a hidden temp file beside the target and moved
    into place. With ``allow_overwrite`` an existing target is replaced;
    without it an existing target raises ``Conflict``. The source file is
    never modified unless it is the target and overwriting is allowed.
    """
    if not source.exists():
        raise NotFound(f"file not found: {source.name}")
    if not source.is_file():
        raise NotAFile(f"not a file: {source.name}")
    if not is_convertible_file(source):
        raise UnsupportedExtension(f"cannot convert {source.suffix} files")
    if not allow_overwrite and target.exists():
        raise Conflict(f"{target.name} already exists")

    fmt = _format_for(target)
    tmp = target.with_name(f".{target.name}.tmp")
    try:
        with Image.open(source) as img:
            img.load()
            src = img if img.mode in {"RGB", "RGBA", "L"} else img.convert("RGBA")
            out = _prepare_mode(op(src), fmt)
            out.save(tmp, format=fmt, **_save_options(fmt, quality))
    except CODEC_ERRORS as exc:
        tmp.unlink(missing_ok=True)
        raise CodecFailure(f"could not process {source.name}: {exc}") from exc

    try:
        if allow_overwrite:
            os.replace(tmp, target)
        else:
            # link() refuses an existing name, unlike rename()
            os.link(tmp, target)
            tmp.unlink()
    except FileExistsError as exc:
        tmp.unlink(missing_ok=True)
        raise Conflict(f"{target.name} already exists") from exc
    except OSError as exc:
        tmp.unlink(missing_ok=True)
        raise StorageFailure(f"could not write {target.name}: {exc}") from exc
    return target


def convert_to_webp(source: Path, root: StorageRoot, quality: int = DEFAULT_QUALITY) -> str:
    """Re-encode ``source`` as ``{stem}.webp`` beside it.

    Unlike every other write in this package this one overwrites: running it
    again re-compresses into the same file.
    """
    quality = clamp(quality, MIN_QUALITY, MAX_QUALITY)
    target = source.with_suffix(".webp")
    transform(source, target, lambda img: img, allow_overwrite=True, quality=quality)
    logger.info("Converted %s -> %s (quality %d)", source.name, target.name, quality)
    return to_virtual(target, root)


def resized_name(source: Path, width: int, height: int) -> str:
    return f"{source.stem}-{width}x{height}{source.suffix}"


def resize_image(source: Path, root: StorageRoot, width: int = DEFAULT_WIDTH, height: int = DEFAULT_HEIGHT) -> str:
    width = clamp(width, MIN_SIDE, MAX_SIDE)
    height = clamp(height, MIN_SIDE, MAX_SIDE)
    target = source.with_name(resized_name(source, width, height))
    transform(source, target, lambda img: cover_fit(img, (width, height)), allow_overwrite=False)
    logger.info("Resized %s -> %s", source.name, target.name)
    return to_virtual(target, root)
