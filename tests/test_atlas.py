import json
import math
from dataclasses import replace
from itertools import combinations
from pathlib import Path

import pytest
from PIL import Image

from assets_admin.atlas import choose_grid, layout_frames
from assets_admin.errors import CodecFailure, Empty
from assets_admin.service import AssetManager


def _score(columns, count, w, h):
    return abs((columns * w) / (math.ceil(count / columns) * h) - 1)


def _overlap(a, b):
    return a.x < b.x + b.w and b.x < a.x + a.w and a.y < b.y + b.h and b.y < a.y + a.h


# --- Grid selection -----------------------------------------------------------
def test_grid_matches_brute_force_for_six_tall_cards():
    grid = choose_grid(6, 420, 720)

    expected = min(range(1, 7), key=lambda c: _score(c, 6, 420, 720))
    assert grid.columns == expected == 3
    assert (grid.rows, grid.sheet_width, grid.sheet_height) == (2, 1260, 1440)


@pytest.mark.parametrize("count", [1, 2, 3, 5, 7, 12, 31])
@pytest.mark.parametrize("cell", [(100, 100), (420, 720), (64, 32)])
def test_grid_is_brute_force_minimum(count, cell):
    grid = choose_grid(count, *cell)

    best = min(_score(c, count, *cell) for c in range(1, count + 1))
    assert _score(grid.columns, count, *cell) == best
    assert grid.columns * grid.rows >= count


def test_five_square_frames_beat_wide_tall_and_three_column_layouts():
    grid = choose_grid(5, 100, 100)

    chosen = _score(grid.columns, 5, 100, 100)
    assert chosen <= _score(3, 5, 100, 100) < _score(5, 5, 100, 100)
    assert chosen < _score(1, 5, 100, 100)
    # 2x3 (ratio 0.67) edges out 3x2 (ratio 1.5) on |ratio - 1|
    assert (grid.columns, grid.rows) == (2, 3)


def test_ties_go_to_fewest_columns():
    # 3x2 cells: one column gives ratio 0.5, two columns give 1.5
    grid = choose_grid(3, 3, 2)

    assert grid.columns == 1


def test_grid_of_nothing_is_empty():
    with pytest.raises(Empty):
        choose_grid(0, 10, 10)


def test_layout_row_major_within_sheet_without_overlap():
    grid = choose_grid(7, 30, 40)
    frames = layout_frames([f"k{i}" for i in range(7)], grid)

    assert [(f.x, f.y) for f in frames[:2]] == [(0, 0), (30, 0)]
    assert frames[grid.columns].x == 0 and frames[grid.columns].y == 40
    for f in frames:
        assert 0 <= f.x and f.x + f.w <= grid.sheet_width
        assert 0 <= f.y and f.y + f.h <= grid.sheet_height
    assert not any(_overlap(a, b) for a, b in combinations(frames, 2))


# --- Build --------------------------------------------------------------------
def test_build_atlas_writes_every_destination(manager, settings, cards_dir, make_image):
    make_image(cards_dir / "heroes" / "knight.png")
    make_image(cards_dir / "heroes" / "mage.webp")
    make_image(cards_dir / "a.png")
    make_image(cards_dir / "b.jpg", size=(50, 80))
    make_image(cards_dir / "zeta.png")
    (cards_dir / "readme.txt").write_text("not an image")

    result = manager.build_atlas()

    assert result.success
    assert result.frame_count == 5
    assert (result.grid.columns, result.grid.rows) == (2, 3)
    assert result.image_path == "/atlas/cards.png"
    assert result.frames_path == "/atlas/cards.json"
    assert [d.directory for d in result.destinations] == [settings.game_atlas_dir, settings.atlas_dir]

    for directory in (settings.game_atlas_dir, settings.atlas_dir):
        data = json.loads(Path(directory, "cards.json").read_text())
        with Image.open(f"{directory}/cards.png") as img:
            assert img.size == (200, 300)
        assert list(data["frames"]) == ["heroes/knight", "heroes/mage", "a", "b", "zeta"]
        assert data["frames"]["heroes/knight"] == {"x": 0, "y": 0, "w": 100, "h": 100}
        assert data["frames"]["a"] == {"x": 0, "y": 100, "w": 100, "h": 100}
        assert data["meta"] == {"image": "cards.png", "size": {"w": 200, "h": 300}, "scale": "1", "path": "/atlas/cards.png"}


def test_build_atlas_frames_stay_inside_sheet(manager, cards_dir, make_image):
    for i in range(11):
        make_image(cards_dir / f"c{i:02d}.png", size=(42, 72))

    result = manager.build_atlas()
    frames = json.loads((manager.staging.directory / "cards.json").read_text())["frames"]

    assert len(frames) == result.frame_count == 11
    w, h = result.grid.sheet_width, result.grid.sheet_height
    for f in frames.values():
        assert f["x"] + f["w"] <= w and f["y"] + f["h"] <= h


def test_build_atlas_empty(manager, cards_dir):
    (cards_dir / "empty-set").mkdir()
    (cards_dir / "icon.svg").write_text("<svg/>")

    with pytest.raises(Empty):
        manager.build_atlas()


def test_unreadable_frame_left_transparent(manager, cards_dir, make_image):
    make_image(cards_dir / "a.png")
    (cards_dir / "b.png").write_bytes(b"broken")

    result = manager.build_atlas()

    assert result.skipped == ["b"]
    assert result.frame_count == 2
    with Image.open(manager.staging.directory / "cards.png") as img:
        sheet = img.convert("RGBA")
        assert sheet.getpixel((50, 50))[3] == 255
        assert sheet.getpixel((50, 150))[3] == 0


def test_unreadable_frame_aborts_when_policy_says_so(tmp_path, settings, cards_dir, make_image):
    make_image(cards_dir / "a.png")
    (cards_dir / "b.png").write_bytes(b"broken")
    strict = AssetManager(replace(settings, atlas_skip_unreadable=False))

    with pytest.raises(CodecFailure):
        strict.build_atlas()
    assert not (tmp_path / "atlas").exists()


def test_failed_destination_reported_without_rollback(tmp_path, settings, cards_dir, make_image):
    make_image(cards_dir / "a.png")
    (tmp_path / "blocker").write_text("a file where a directory should be")
    manager = AssetManager(replace(settings, game_atlas_dir=str(tmp_path / "blocker" / "game")))

    result = manager.build_atlas()

    assert not result.success
    game, staging = result.destinations
    assert not game.ok and game.error
    assert staging.ok
    assert (tmp_path / "atlas" / "cards.png").exists()
    assert result.to_dict()["success"] is False


def test_same_stem_different_extension_keeps_first(manager, cards_dir, make_image):
    make_image(cards_dir / "hero.png", color="red")
    make_image(cards_dir / "hero.webp", color="blue")
    make_image(cards_dir / "villain.png")

    result = manager.build_atlas()
    frames = json.loads((manager.staging.directory / "cards.json").read_text())["frames"]

    assert sorted(frames) == ["hero", "villain"]
    assert result.frame_count == 2
    assert result.duplicates == ["/assets/images/cards/hero.webp"]
    assert result.to_dict()["duplicates"] == ["/assets/images/cards/hero.webp"]
    with Image.open(manager.staging.directory / "cards.png") as img:
        x, y = frames["hero"]["x"], frames["hero"]["y"]
        assert img.convert("RGB").getpixel((x + 10, y + 10)) == (255, 0, 0)


def test_encode_failure_is_codec_failure(manager, cards_dir, make_image, monkeypatch):
    make_image(cards_dir / "a.png")

    def _broken_save(self, *args, **kwargs):
        raise OSError("encoder error")

    monkeypatch.setattr(Image.Image, "save", _broken_save)

    with pytest.raises(CodecFailure):
        manager.build_atlas()
    assert not manager.staging.directory.exists()
