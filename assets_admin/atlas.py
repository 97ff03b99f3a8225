"""Bake a tree of card images into one sprite sheet plus a frame map.

Every frame occupies one cell of a uniform grid. The cell size is taken from
the first readable image; other sizes are cover-cropped in memory. The column
count is the one whose sheet is closest to square.
"""

from __future__ import annotations

import io
import json
import logging
import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Sequence

from PIL import Image

from assets_admin.errors import CodecFailure, Empty
from assets_admin.images import CODEC_ERRORS, cover_fit
from assets_admin.paths import StorageRoot, resolve_file
from assets_admin.tree import build_tree, iter_tree_files


logger = logging.getLogger(__name__)

# vector images cannot be decoded by Pillow
RASTER_ONLY_SKIP = {".svg"}


@dataclass(frozen=True)
class Grid:
    columns: int
    rows: int
    cell_width: int
    cell_height: int

    @property
    def sheet_width(self) -> int:
        return self.columns * self.cell_width

    @property
    def sheet_height(self) -> int:
        return self.rows * self.cell_height


@dataclass(frozen=True)
class Frame:
    key: str
    x: int
    y: int
    w: int
    h: int


@dataclass(frozen=True)
class DestinationResult:
    directory: str
    ok: bool
    error: Optional[str] = None


@dataclass
class AtlasResult:
    image_path: str
    frames_path: str
    frame_count: int
    grid: Grid
    skipped: list[str] = field(default_factory=list)
    duplicates: list[str] = field(default_factory=list)
    destinations: list[DestinationResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(d.ok for d in self.destinations)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "imagePath": self.image_path,
            "framesPath": self.frames_path,
            "frameCount": self.frame_count,
            "sheetSize": {"w": self.grid.sheet_width, "h": self.grid.sheet_height},
            "columns": self.grid.columns,
            "rows": self.grid.rows,
            "skipped": list(self.skipped),
            "duplicates": list(self.duplicates),
            "destinations": [{"directory": d.directory, "ok": d.ok, "error": d.error} for d in self.destinations],
        }


def choose_grid(count: int, cell_width: int, cell_height: int) -> Grid:
    """Pick the column count whose sheet ratio is closest to 1.

    Columns are scanned in ascending order and only a strictly better score
    replaces the current pick, so ties go to the fewest columns.
    """
    if count < 1:
        raise Empty("no frames to lay out")
    best: Optional[Grid] = None
    best_score = math.inf
    for columns in range(1, count + 1):
        rows = math.ceil(count / columns)
        ratio = (columns * cell_width) / (rows * cell_height)
        score = abs(ratio - 1)
        if score < best_score:
            best, best_score = Grid(columns, rows, cell_width, cell_height), score
    assert best is not None
    return best


def layout_frames(keys: Sequence[str], grid: Grid) -> list[Frame]:
    frames = []
    for i, key in enumerate(keys):
        row, col = divmod(i, grid.columns)
        frames.append(Frame(key, col * grid.cell_width, row * grid.cell_height, grid.cell_width, grid.cell_height))
    return frames


def frame_key(path: Path, base: Path) -> str:
    return path.relative_to(base).with_suffix("").as_posix()


def collect_sources(source: StorageRoot) -> tuple[list[tuple[str, Path]], list[str]]:
    """Frame sources in display order, plus the files left out as duplicates.

    Two files that differ only by extension (``hero.png`` and ``hero.webp``)
    map to the same key; the first one in display order wins.
    """
    out: list[tuple[str, Path]] = []
    duplicates: list[str] = []
    seen: dict[str, str] = {}
    for node in iter_tree_files(build_tree(source.directory, source.prefix, image_only=True)):
        path = resolve_file(node.path, source)
        if path.suffix.lower() in RASTER_ONLY_SKIP:
            continue
        key = frame_key(path, source.directory)
        if key in seen:
            logger.warning("Leaving %s out of the atlas: frame %s already taken by %s", node.path, key, seen[key])
            duplicates.append(node.path)
            continue
        seen[key] = node.path
        out.append((key, path))
    return out, duplicates


def _load_frames(sources: list[tuple[str, Path]], skip_unreadable: bool) -> tuple[list[Optional[Image.Image]], list[str]]:
    loaded: list[Optional[Image.Image]] = []
    skipped: list[str] = []
    for key, path in sources:
        try:
            with Image.open(path) as img:
                img.load()
                loaded.append(img.convert("RGBA"))
        except CODEC_ERRORS as exc:
            if not skip_unreadable:
                raise CodecFailure(f"could not read {key}: {exc}") from exc
            logger.warning("Skipping unreadable atlas frame %s: %s", key, exc)
            loaded.append(None)
            skipped.append(key)
    return loaded, skipped


def frame_map(frames: list[Frame], grid: Grid, image_name: str, image_path: str) -> dict[str, Any]:
    return {
        "frames": {f.key: {"x": f.x, "y": f.y, "w": f.w, "h": f.h} for f in frames},
        "meta": {
            "image": image_name,
            "size": {"w": grid.sheet_width, "h": grid.sheet_height},
            "scale": "1",
            "path": image_path,
        },
    }


def _write_atomic(path: Path, data: bytes) -> None:
    tmp = path.with_name(f".{path.name}.tmp")
    try:
        tmp.write_bytes(data)
        os.replace(tmp, path)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise


def _write_destination(directory: Path, image_name: str, image_bytes: bytes, map_name: str, map_bytes: bytes) -> DestinationResult:
    try:
        directory.mkdir(parents=True, exist_ok=True)
        _write_atomic(directory / image_name, image_bytes)
        _write_atomic(directory / map_name, map_bytes)
    except OSError as exc:
        logger.warning("Atlas write to %s failed: %s", directory, exc)
        return DestinationResult(directory=str(directory), ok=False, error=str(exc))
    return DestinationResult(directory=str(directory), ok=True)


def build_atlas(
    source: StorageRoot,
    staging: StorageRoot,
    extra_destinations: Sequence[Path] = (),
    *,
    name: str = "cards",
    skip_unreadable: bool = True,
) -> AtlasResult:
    sources, duplicates = collect_sources(source)
    if not sources:
        raise Empty(f"no images found under {source.prefix}")

    # read everything before touching the canvas
    images, skipped = _load_frames(sources, skip_unreadable)
    first = next((img for img in images if img is not None), None)
    if first is None:
        raise CodecFailure("none of the source images could be read")

    grid = choose_grid(len(sources), *first.size)
    frames = layout_frames([key for key, _ in sources], grid)

    buf = io.BytesIO()
    try:
        canvas = Image.new("RGBA", (grid.sheet_width, grid.sheet_height), (0, 0, 0, 0))
        for frame, img in zip(frames, images):
            if img is None:
                continue
            canvas.paste(cover_fit(img, (grid.cell_width, grid.cell_height)), (frame.x, frame.y))
        canvas.save(buf, format="PNG", optimize=True)
    except CODEC_ERRORS as exc:
        raise CodecFailure(f"could not encode atlas: {exc}") from exc

    image_name, map_name = f"{name}.png", f"{name}.json"
    image_path = f"{staging.prefix}/{image_name}"
    frames_path = f"{staging.prefix}/{map_name}"
    map_bytes = json.dumps(frame_map(frames, grid, image_name, image_path), indent=2).encode("utf-8")

    result = AtlasResult(
        image_path=image_path,
        frames_path=frames_path,
        frame_count=len(frames),
        grid=grid,
        skipped=skipped,
        duplicates=duplicates,
    )
    for directory in [*extra_destinations, staging.directory]:
        result.destinations.append(_write_destination(Path(directory), image_name, buf.getvalue(), map_name, map_bytes))

    logger.info(
        "Built atlas %s: %d frames, %dx%d grid, %dx%d px",
        image_name,
        len(frames),
        grid.columns,
        grid.rows,
        grid.sheet_width,
        grid.sheet_height,
    )
    return result
