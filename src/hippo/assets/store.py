"""Path-addressed asset tree with blob storage.

The tree holds folders and files addressed by slash-separated paths relative
to the root (path ``""``). File contents live in a separate blob map keyed
by path and are only reachable through the async blob API, mirroring a
browser object store.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import string
import time
from dataclasses import dataclass, field
from typing import Iterator, Literal

__all__ = [
    "ROOT_PATH",
    "SCRIPT_EXTENSIONS",
    "AssetKind",
    "AssetNode",
    "AssetStoreError",
    "AssetStore",
    "join_path",
    "parent_path",
    "is_script_path",
]

LOGGER = logging.getLogger(__name__)

ROOT_PATH = ""
SCRIPT_EXTENSIONS: tuple[str, ...] = (".ts", ".tsx", ".js")

AssetKind = Literal["file", "folder"]

_ID_ALPHABET = string.ascii_lowercase + string.digits


def join_path(parent: str, name: str) -> str:
    return f"{parent}/{name}" if parent else name


def parent_path(path: str) -> str:
    index = path.rfind("/")
    return ROOT_PATH if index == -1 else path[:index]


def is_script_path(path: str) -> bool:
    return path.lower().endswith(SCRIPT_EXTENSIONS)


def _generate_id() -> str:
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(7))
    return f"asset_{int(time.time() * 1000)}_{suffix}"


class AssetStoreError(RuntimeError):
    """Raised when a tree mutation violates the store's structure."""


@dataclass(slots=True, eq=False)
class AssetNode:
    name: str
    kind: AssetKind
    path: str
    id: str = field(default_factory=_generate_id)
    children: list[AssetNode] = field(default_factory=list)

    @property
    def is_folder(self) -> bool:
        return self.kind == "folder"

    def iter_files(self) -> Iterator[AssetNode]:
        if self.kind == "file":
            yield self
            return
        for child in self.children:
            yield from child.iter_files()

    def child(self, name: str) -> AssetNode | None:
        for node in self.children:
            if node.name == name:
                return node
        return None


class AssetStore:
    """In-memory asset tree plus blob map."""

    def __init__(self) -> None:
        self._root = AssetNode(name="Assets", kind="folder", path=ROOT_PATH, id="__root__")
        self._blobs: dict[str, bytes] = {}

    @property
    def root(self) -> AssetNode:
        return self._root

    # ------------------------------------------------------------------
    # Tree
    # ------------------------------------------------------------------

    def find_node(self, path: str) -> AssetNode | None:
        if path == ROOT_PATH:
            return self._root
        cursor: AssetNode | None = self._root
        for segment in path.split("/"):
            if cursor is None or not cursor.is_folder:
                return None
            cursor = cursor.child(segment)
        return cursor

    def add_node(self, parent: str, name: str, kind: AssetKind) -> AssetNode:
        folder = self.find_node(parent)
        if folder is None or not folder.is_folder:
            raise AssetStoreError("Parent not found or not a folder")
        if not name or "/" in name:
            raise AssetStoreError(f'Invalid asset name "{name}"')
        if folder.child(name) is not None:
            raise AssetStoreError(f'"{name}" already exists')
        node = AssetNode(name=name, kind=kind, path=join_path(parent, name))
        folder.children.append(node)
        return node

    def ensure_folders(self, path: str) -> str:
        """Create every missing folder along ``path``; returns the folder path."""

        current = ROOT_PATH
        if not path:
            return current
        for segment in path.split("/"):
            target = join_path(current, segment)
            node = self.find_node(target)
            if node is None:
                self.add_node(current, segment, "folder")
            elif not node.is_folder:
                raise AssetStoreError(f'"{target}" is a file, not a folder')
            current = target
        return current

    def delete_node(self, path: str) -> list[str]:
        """Remove a node and return the file paths that lived under it."""

        node = self.find_node(path)
        if node is None or node is self._root:
            return []
        folder = self.find_node(parent_path(path))
        if folder is not None:
            folder.children = [child for child in folder.children if child is not node]
        return self.collect_file_paths(node)

    def rename_node(self, path: str, new_name: str) -> AssetNode:
        node = self.find_node(path)
        if node is None or node is self._root:
            raise AssetStoreError(f'Asset "{path}" not found')
        folder_path = parent_path(path)
        folder = self.find_node(folder_path)
        if folder is not None and any(
            child.name == new_name and child is not node for child in folder.children
        ):
            raise AssetStoreError(f'"{new_name}" already exists')
        old_prefix = node.path
        node.name = new_name
        node.path = join_path(folder_path, new_name)
        for descendant in self._descendants(node):
            descendant.path = node.path + descendant.path[len(old_prefix):]
        for file_path in list(self._blobs):
            if file_path == old_prefix or file_path.startswith(old_prefix + "/"):
                self._blobs[node.path + file_path[len(old_prefix):]] = self._blobs.pop(file_path)
        return node

    def collect_file_paths(self, node: AssetNode | None = None) -> list[str]:
        return [item.path for item in (node or self._root).iter_files()]

    def _descendants(self, node: AssetNode) -> Iterator[AssetNode]:
        for child in node.children:
            yield child
            yield from self._descendants(child)

    # ------------------------------------------------------------------
    # Blobs
    # ------------------------------------------------------------------

    async def get_blob(self, path: str) -> bytes | None:
        await asyncio.sleep(0)
        return self._blobs.get(path)

    async def set_blob(self, path: str, data: bytes) -> None:
        await asyncio.sleep(0)
        self._blobs[path] = bytes(data)

    async def delete_blob(self, path: str) -> None:
        await asyncio.sleep(0)
        self._blobs.pop(path, None)

    async def write_file(self, path: str, data: bytes) -> AssetNode:
        """Create ``path`` (and its folders) if needed and store its contents."""

        folder = self.ensure_folders(parent_path(path))
        node = self.find_node(path)
        if node is None:
            node = self.add_node(folder, path.rsplit("/", 1)[-1], "file")
        elif node.is_folder:
            raise AssetStoreError(f'"{path}" is a folder')
        await self.set_blob(path, data)
        LOGGER.debug("Stored %d byte(s) at %s", len(data), path)
        return node
