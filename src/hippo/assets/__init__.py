"""Virtual content store used for scripts and imported models."""

from .store import (
    ROOT_PATH,
    SCRIPT_EXTENSIONS,
    AssetKind,
    AssetNode,
    AssetStore,
    AssetStoreError,
    is_script_path,
    join_path,
    parent_path,
)

__all__ = [
    "ROOT_PATH",
    "SCRIPT_EXTENSIONS",
    "AssetKind",
    "AssetNode",
    "AssetStore",
    "AssetStoreError",
    "is_script_path",
    "join_path",
    "parent_path",
]
