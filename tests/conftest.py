import io
from pathlib import Path

import pytest
from PIL import Image

from assets_admin.config import Settings
from assets_admin.service import AssetManager


# --- Storage fixtures ---------------------------------------------------------
@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """Both roots, the staging dir and a game dir under a fresh temp dir."""
    (tmp_path / "cards").mkdir()
    return Settings(
        cards_dir=str(tmp_path / "cards"),
        uploads_dir=str(tmp_path / "uploads"),
        atlas_dir=str(tmp_path / "atlas"),
        game_atlas_dir=str(tmp_path / "game"),
    )


@pytest.fixture()
def manager(settings) -> AssetManager:
    return AssetManager(settings)


@pytest.fixture()
def cards_dir(settings) -> Path:
    return Path(settings.cards_dir)


@pytest.fixture()
def uploads_dir(settings) -> Path:
    d = Path(settings.uploads_dir)
    d.mkdir(parents=True, exist_ok=True)
    return d


# --- Image helpers ------------------------------------------------------------
@pytest.fixture()
def png_bytes():
    def _mk(size=(4, 4), color="red") -> bytes:
        buf = io.BytesIO()
        Image.new("RGB", size, color).save(buf, format="PNG")
        return buf.getvalue()

    return _mk


@pytest.fixture()
def make_image():
    def _mk(path: Path, size=(100, 100), color=(200, 30, 30, 255)) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        img = Image.new("RGBA", size, color)
        if path.suffix.lower() in {".jpg", ".jpeg", ".bmp"}:
            img = img.convert("RGB")
        img.save(path)
        return path

    return _mk
