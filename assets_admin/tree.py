from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Literal, Optional

from assets_admin.errors import StorageFailure
from assets_admin.paths import StorageRoot, is_image_file


NodeKind = Literal["dir", "file"]


@dataclass(frozen=True)
class TreeNode:
    name: str
    path: str
    kind: NodeKind
    children: Optional[list["TreeNode"]] = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name, "path": self.path, "type": self.kind}
        if self.children is not None:
            out["children"] = [c.to_dict() for c in self.children]
        return out


def _sort_key(node: TreeNode) -> tuple[int, str, str]:
    return (0 if node.kind == "dir" else 1, node.name.lower(), node.name)


def build_tree(directory: Path, virtual_prefix: str, image_only: bool = True) -> list[TreeNode]:
    if not directory.is_dir():
        return []

    try:
        entries = list(directory.iterdir())
    except OSError as exc:
        raise StorageFailure(f"cannot list {virtual_prefix}: {exc}") from exc

    nodes: list[TreeNode] = []
    for entry in entries:
        if entry.name.startswith("."):
            continue
        virtual_path = f"{virtual_prefix.rstrip('/')}/{entry.name}"
        if entry.is_dir():
            children = build_tree(entry, virtual_path, image_only)
            nodes.append(TreeNode(name=entry.name, path=virtual_path, kind="dir", children=children))
        elif entry.is_file() and (not image_only or is_image_file(entry)):
            nodes.append(TreeNode(name=entry.name, path=virtual_path, kind="file"))
    return sorted(nodes, key=_sort_key)


def combined_tree(cards: StorageRoot, uploads: StorageRoot) -> TreeNode:
    """Both editable roots under a single ``assets`` node, as the admin UI shows them."""
    return TreeNode(
        name="assets",
        path="",
        kind="dir",
        children=[
            TreeNode(name="cards", path=cards.prefix, kind="dir", children=build_tree(cards.directory, cards.prefix)),
            TreeNode(
                name="uploaded", path=uploads.prefix, kind="dir", children=build_tree(uploads.directory, uploads.prefix)
            ),
        ],
    )


def iter_tree_files(nodes: list[TreeNode]) -> Iterator[TreeNode]:
    for node in nodes:
        if node.kind == "dir":
            yield from iter_tree_files(node.children or [])
        else:
            yield node
