"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from hippo.ai.tools import ToolContext, ToolRegistry, build_default_registry
from hippo.assets.store import AssetStore
from hippo.scene import Scene, SceneOperations
from hippo.scripting.diagnostics import DelimiterDiagnostics


@pytest.fixture
def scene() -> Scene:
    return Scene.create_default()


@pytest.fixture
def operations(scene: Scene) -> SceneOperations:
    return SceneOperations(scene)


@pytest.fixture
def assets() -> AssetStore:
    return AssetStore()


@pytest.fixture
def registry(operations: SceneOperations, assets: AssetStore) -> ToolRegistry:
    return build_default_registry(
        ToolContext(operations=operations, assets=assets, diagnostics=DelimiterDiagnostics())
    )


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    for name in (
        "HIPPO_API_KEY",
        "HIPPO_BASE_URL",
        "HIPPO_MODEL",
        "HIPPO_CHATS_DIR",
        "HIPPO_DEBUG_LOGGING",
        "HIPPO_REQUEST_TIMEOUT",
        "HIPPO_TEMPERATURE",
        "HIPPO_MAX_ROUND_TRIPS",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("HIPPO_LOG_DIR", str(tmp_path / "logs"))
