from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


CARDS_PREFIX = "/assets/images/cards"
UPLOADS_PREFIX = "/uploads"
ATLAS_PREFIX = "/atlas"

DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024


@dataclass(frozen=True)
class Settings:
    cards_dir: str
    uploads_dir: str
    atlas_dir: str
    game_atlas_dir: Optional[str] = None
    atlas_name: str = "cards"
    atlas_skip_unreadable: bool = True
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    port: int = 3001
    root_path: str = ""
    log_level: str = "INFO"


def _bool_env(name: str, default: bool) -> bool:
    v = os.environ.get(name)
    if v is None:
        return default
    return v.strip().lower() in {"1", "true", "yes", "on"}


def load_settings() -> Settings:
    # Normalize root_path: strip trailing slashes, ensure leading slash if not empty
    raw_root = os.environ.get("ROOT_PATH", "").strip()
    if raw_root:
        raw_root = "/" + raw_root.strip("/")
    game_dir = os.environ.get("GAME_ATLAS_DIR", "").strip()
    return Settings(
        cards_dir=os.environ.get("CARDS_DIR", "/data/assets/images/cards"),
        uploads_dir=os.environ.get("UPLOADS_DIR", "/data/uploads"),
        atlas_dir=os.environ.get("ATLAS_DIR", "/data/atlas"),
        game_atlas_dir=game_dir or None,
        atlas_name=os.environ.get("ATLAS_NAME", "cards"),
        atlas_skip_unreadable=_bool_env("ATLAS_SKIP_UNREADABLE", True),
        max_upload_bytes=int(os.environ.get("MAX_UPLOAD_BYTES", str(DEFAULT_MAX_UPLOAD_BYTES))),
        port=int(os.environ.get("PORT", "3001")),
        root_path=raw_root,
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    )
