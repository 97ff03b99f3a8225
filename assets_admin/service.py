from __future__ import annotations

from pathlib import Path
from typing import BinaryIO, Literal, Optional

from assets_admin import atlas, images, mutations, uploads
from assets_admin.config import ATLAS_PREFIX, CARDS_PREFIX, UPLOADS_PREFIX, Settings
from assets_admin.errors import InvalidPath
from assets_admin.paths import StorageRoot, resolve_upload
from assets_admin.tree import TreeNode, build_tree, combined_tree


RootName = Literal["cards", "uploads"]


class AssetManager:
    """Entry point for every asset operation.

    Holds only the storage roots built from ``settings``; every call reads
    the filesystem fresh.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.cards = StorageRoot.create(settings.cards_dir, CARDS_PREFIX)
        self.uploads = StorageRoot.create(settings.uploads_dir, UPLOADS_PREFIX)
        self.staging = StorageRoot.create(settings.atlas_dir, ATLAS_PREFIX)
        self.game_atlas_dir: Optional[Path] = Path(settings.game_atlas_dir) if settings.game_atlas_dir else None

    def root(self, name: str) -> StorageRoot:
        if name == "cards":
            return self.cards
        if name == "uploads":
            return self.uploads
        raise InvalidPath(f"unknown root: {name!r}")

    def list_tree(self, root: RootName) -> list[TreeNode]:
        r = self.root(root)
        return build_tree(r.directory, r.prefix, image_only=True)

    def combined_tree(self) -> TreeNode:
        return combined_tree(self.cards, self.uploads)

    def upload(self, stream: BinaryIO, original_name: str) -> str:
        return uploads.ingest(stream, original_name, self.uploads, self.settings.max_upload_bytes)

    def rename(self, root: RootName, identifier: str, new_name: str) -> str:
        if self.root(root) is self.cards:
            return mutations.rename_card(identifier, new_name, self.cards)
        return mutations.rename_uploaded(identifier, new_name, self.uploads)

    def delete_file(self, root: RootName, identifier: str) -> None:
        if self.root(root) is self.cards:
            mutations.delete_card(identifier, self.cards)
        else:
            mutations.delete_uploaded(identifier, self.uploads)

    def move_file(self, source_path: str, target_folder: str) -> str:
        return mutations.move_file(source_path, target_folder, self.uploads, self.cards)

    def convert_to_webp(self, name: str, quality: int = images.DEFAULT_QUALITY) -> str:
        return images.convert_to_webp(resolve_upload(name, self.uploads), self.uploads, quality)

    def resize(self, name: str, width: int = images.DEFAULT_WIDTH, height: int = images.DEFAULT_HEIGHT) -> str:
        return images.resize_image(resolve_upload(name, self.uploads), self.uploads, width, height)

    def build_atlas(self) -> atlas.AtlasResult:
        extra = [self.game_atlas_dir] if self.game_atlas_dir else []
        return atlas.build_atlas(
            self.cards,
            self.staging,
            extra,
            name=self.settings.atlas_name,
            skip_unreadable=self.settings.atlas_skip_unreadable,
        )
