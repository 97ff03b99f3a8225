"""Rename, delete and move for the cards and uploads roots.

None of these overwrite an existing destination. The existence check is not
atomic with the write that follows it, so two concurrent callers targeting
the same name can race; there is no locking.
"""

from __future__ import annotations

import filecmp
import logging
import os
import shutil
from pathlib import Path

from assets_admin.errors import Conflict, InvalidPath, NotADirectory, NotAFile, NotFound, StorageFailure
from assets_admin.paths import StorageRoot, is_image_file, resolve_file, resolve_upload, safe_basename, to_virtual


logger = logging.getLogger(__name__)


def _existing_file(path: Path, label: str) -> Path:
    if not path.exists():
        raise NotFound(f"file not found: {label}")
    if not path.is_file():
        raise NotAFile(f"not a file: {label}")
    return path


def _target_name(current: Path, new_name: str) -> str:
    new_name = safe_basename((new_name or "").strip())
    if new_name.startswith("."):
        raise InvalidPath(f"new name cannot start with a dot: {new_name}")
    if not Path(new_name).suffix:
        new_name += current.suffix
    if Path(new_name).suffix.lower() != current.suffix.lower():
        raise InvalidPath(f"new name must keep the {current.suffix} extension")
    return new_name


def _rename(source: Path, new_name: str, root: StorageRoot) -> str:
    target = source.with_name(_target_name(source, new_name))
    if target == source:
        return to_virtual(source, root)
    if target.exists():
        raise Conflict(f"{target.name} already exists")
    try:
        source.rename(target)
    except OSError as exc:
        raise StorageFailure(f"rename failed: {exc}") from exc
    logger.info("Renamed %s -> %s", source, target)
    return to_virtual(target, root)


def rename_uploaded(identifier: str, new_name: str, uploads: StorageRoot) -> str:
    source = _existing_file(resolve_upload(identifier, uploads), identifier)
    return _rename(source, new_name, uploads)


def rename_card(virtual_path: str, new_name: str, cards: StorageRoot) -> str:
    source = _existing_file(resolve_file(virtual_path, cards), virtual_path)
    if not is_image_file(source):
        raise InvalidPath(f"not an image file: {virtual_path}")
    return _rename(source, new_name, cards)


def _delete(target: Path) -> None:
    try:
        target.unlink()
    except OSError as exc:
        raise StorageFailure(f"delete failed: {exc}") from exc
    logger.info("Deleted %s", target)


def delete_uploaded(identifier: str, uploads: StorageRoot) -> None:
    _delete(_existing_file(resolve_upload(identifier, uploads), identifier))


def delete_card(virtual_path: str, cards: StorageRoot) -> None:
    target = _existing_file(resolve_file(virtual_path, cards), virtual_path)
    if not is_image_file(target):
        raise InvalidPath(f"not an image file: {virtual_path}")
    _delete(target)


def _existing_target_folder(target_folder: str, root: StorageRoot) -> Path:
    folder = resolve_file(target_folder, root)
    if not folder.is_dir():
        raise InvalidPath(f"target folder does not exist: {target_folder}")
    return folder


def move_uploaded(identifier: str, target_folder: str, uploads: StorageRoot) -> str:
    source = _existing_file(resolve_upload(identifier, uploads), identifier)
    folder = resolve_file(target_folder, uploads)
    if folder.exists() and not folder.is_dir():
        raise NotADirectory(f"not a folder: {target_folder}")
    target = folder / source.name
    if target == source:
        return to_virtual(source, uploads)
    if target.exists():
        raise Conflict(f"{target.name} already exists in {target_folder}")
    try:
        folder.mkdir(parents=True, exist_ok=True)
        source.rename(target)
    except OSError as exc:
        raise StorageFailure(f"move failed: {exc}") from exc
    logger.info("Moved %s -> %s", source, target)
    return to_virtual(target, uploads)


def move_card(virtual_path: str, target_folder: str, cards: StorageRoot) -> str:
    source = _existing_file(resolve_file(virtual_path, cards), virtual_path)
    if not is_image_file(source):
        raise InvalidPath(f"not an image file: {virtual_path}")
    folder = _existing_target_folder(target_folder, cards)
    if folder == source.parent:
        raise InvalidPath("file is already in the target folder")
    target = folder / source.name
    if target.exists():
        raise Conflict(f"{target.name} already exists in {target_folder}")
    try:
        source.rename(target)
    except OSError as exc:
        raise StorageFailure(f"move failed: {exc}") from exc
    logger.info("Moved %s -> %s", source, target)
    return to_virtual(target, cards)


def _copy_exclusive(source: Path, target: Path) -> None:
    created = False
    try:
        with source.open("rb") as src:
            with target.open("xb") as dst:
                created = True
                shutil.copyfileobj(src, dst)
    except FileExistsError as exc:
        raise Conflict(f"{target.name} already exists") from exc
    except OSError as exc:
        if created:
            target.unlink(missing_ok=True)
        raise StorageFailure(f"copy failed: {exc}") from exc


def move_uploaded_to_cards(identifier: str, target_folder: str, uploads: StorageRoot, cards: StorageRoot) -> str:
    """Copy an upload into the cards tree, then delete the upload.

    The roots may live on different mounts, so this is a copy followed by a
    delete rather than a rename. If the destination already holds identical
    bytes, an earlier call copied but never deleted; only the delete is
    finished. A failed delete leaves both copies and raises.
    """
    source = _existing_file(resolve_upload(identifier, uploads), identifier)
    if not is_image_file(source):
        raise InvalidPath(f"not an image file: {identifier}")
    folder = _existing_target_folder(target_folder, cards)
    target = folder / source.name

    if target.exists():
        try:
            same = target.is_file() and filecmp.cmp(source, target, shallow=False)
        except OSError as exc:
            raise StorageFailure(f"cannot compare with {target.name}: {exc}") from exc
        if not same:
            raise Conflict(f"{target.name} already exists in {target_folder}")
        logger.info("Found completed copy at %s, finishing move", target)
    else:
        _copy_exclusive(source, target)

    try:
        os.unlink(source)
    except OSError as exc:
        raise StorageFailure(f"copied to {to_virtual(target, cards)} but could not remove upload: {exc}") from exc
    logger.info("Moved upload %s -> %s", source, target)
    return to_virtual(target, cards)


def move_file(source_path: str, target_folder: str, uploads: StorageRoot, cards: StorageRoot) -> str:
    if cards.owns(source_path) and cards.owns(target_folder):
        return move_card(source_path, target_folder, cards)
    if uploads.owns(source_path) and uploads.owns(target_folder):
        return move_uploaded(source_path, target_folder, uploads)
    if uploads.owns(source_path) and cards.owns(target_folder):
        return move_uploaded_to_cards(source_path, target_folder, uploads, cards)
    raise InvalidPath("unsupported move between these folders")
