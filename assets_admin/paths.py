from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from assets_admin.errors import InvalidPath, NotADirectory, NotFound


IMAGE_EXTENSIONS = frozenset({".png", ".jpg", ".jpeg", ".gif", ".webp", ".svg", ".bmp"})
CONVERTIBLE_EXTENSIONS = frozenset({".png", ".jpg", ".jpeg", ".gif", ".webp", ".bmp", ".tiff", ".tif"})


@dataclass(frozen=True)
class StorageRoot:
    directory: Path
    prefix: str

    @classmethod
    def create(cls, directory: str | os.PathLike[str], prefix: str) -> "StorageRoot":
        return cls(directory=Path(os.path.abspath(directory)), prefix="/" + prefix.strip("/"))

    def owns(self, virtual_path: str) -> bool:
        return virtual_path == self.prefix or virtual_path.startswith(self.prefix + "/")


def is_image_file(p: str | os.PathLike[str]) -> bool:
    return Path(p).suffix.lower() in IMAGE_EXTENSIONS


def is_convertible_file(p: str | os.PathLike[str]) -> bool:
    return Path(p).suffix.lower() in CONVERTIBLE_EXTENSIONS


def _contained(target: str, base: str) -> bool:
    return target == base or target.startswith(base.rstrip(os.sep) + os.sep)


def resolve_file(virtual_path: str, root: StorageRoot) -> Path:
    """Map ``virtual_path`` onto ``root``; the result never leaves the root.

    Symlinks are not followed: containment is checked on the normalized
    string form of the path.
    """
    if not isinstance(virtual_path, str) or not root.owns(virtual_path):
        raise InvalidPath(f"path must start with {root.prefix}")
    rest = virtual_path[len(root.prefix):]
    if rest.startswith("/"):
        rest = rest[1:]
    if "\x00" in rest or "\\" in rest:
        raise InvalidPath("invalid characters in path")
    if rest.startswith("/") or os.path.isabs(rest):
        raise InvalidPath("absolute paths are not allowed")
    if ".." in rest.split("/"):
        raise InvalidPath("path traversal is not allowed")

    base = os.path.normpath(str(root.directory))
    target = os.path.normpath(os.path.join(base, rest))
    if not _contained(target, base):
        raise InvalidPath("path escapes its storage root")
    return Path(target)


def resolve_folder(virtual_path: str, root: StorageRoot) -> Path:
    target = resolve_file(virtual_path, root)
    if not target.exists():
        raise NotFound(f"folder not found: {virtual_path}")
    if not target.is_dir():
        raise NotADirectory(f"not a folder: {virtual_path}")
    return target


def safe_basename(name: str) -> str:
    # bare file names only, no directory components
    if not isinstance(name, str) or not name or name in {".", ".."}:
        raise InvalidPath("invalid file name")
    if "\x00" in name or "\\" in name or ".." in name:
        raise InvalidPath("invalid file name")
    if os.path.basename(name) != name:
        raise InvalidPath("file name must not contain directories")
    return name


def to_virtual(path: str | os.PathLike[str], root: StorageRoot) -> str:
    base = os.path.normpath(str(root.directory))
    target = os.path.normpath(str(path))
    if not _contained(target, base):
        raise InvalidPath("path escapes its storage root")
    rel = os.path.relpath(target, base)
    if rel == ".":
        return root.prefix
    return f"{root.prefix}/{Path(rel).as_posix()}"


def resolve_upload(identifier: str, uploads: StorageRoot) -> Path:
    """Accept either a bare file name or a full ``/uploads/...`` path."""
    if isinstance(identifier, str) and uploads.owns(identifier):
        return resolve_file(identifier, uploads)
    return uploads.directory / safe_basename(identifier)
