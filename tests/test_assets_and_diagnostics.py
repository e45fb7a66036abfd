"""Tests for the asset store and script diagnostics."""

from __future__ import annotations

import pytest

from hippo.assets.store import AssetStore, AssetStoreError, is_script_path, parent_path
from hippo.scripting.diagnostics import (
    DelimiterDiagnostics,
    NullDiagnostics,
    format_diagnostics,
    run_diagnostics,
)

VALID_SCRIPT = """export default class Spin extends Script {
    update() {
        this.node.rotation.y += this.deltaTime // spin ) ignored in comment
    }
}
"""


class TestAssetTree:
    def test_add_and_find(self, assets: AssetStore) -> None:
        assets.add_node("", "scripts", "folder")
        node = assets.add_node("scripts", "spin.ts", "file")
        assert node.path == "scripts/spin.ts"
        assert assets.find_node("scripts/spin.ts") is node
        assert assets.find_node("scripts/missing.ts") is None

    def test_add_rejects_bad_parent_and_duplicates(self, assets: AssetStore) -> None:
        with pytest.raises(AssetStoreError, match="Parent not found"):
            assets.add_node("nope", "a.ts", "file")
        assets.add_node("", "a.ts", "file")
        with pytest.raises(AssetStoreError, match="already exists"):
            assets.add_node("", "a.ts", "file")
        with pytest.raises(AssetStoreError, match="Parent not found"):
            assets.add_node("a.ts", "b.ts", "file")

    def test_ensure_folders(self, assets: AssetStore) -> None:
        assert assets.ensure_folders("a/b/c") == "a/b/c"
        assert assets.find_node("a/b").is_folder
        assert assets.ensure_folders("a/b") == "a/b"

    @pytest.mark.asyncio
    async def test_write_file_and_blobs(self, assets: AssetStore) -> None:
        await assets.write_file("scripts/deep/spin.ts", b"code")
        assert await assets.get_blob("scripts/deep/spin.ts") == b"code"
        assert assets.collect_file_paths() == ["scripts/deep/spin.ts"]

    @pytest.mark.asyncio
    async def test_delete_folder_returns_file_paths(self, assets: AssetStore) -> None:
        await assets.write_file("scripts/a.ts", b"a")
        await assets.write_file("scripts/b.ts", b"b")
        assert sorted(assets.delete_node("scripts")) == ["scripts/a.ts", "scripts/b.ts"]
        assert assets.find_node("scripts") is None
        assert assets.delete_node("scripts") == []

    @pytest.mark.asyncio
    async def test_rename_moves_paths_and_blobs(self, assets: AssetStore) -> None:
        await assets.write_file("scripts/a.ts", b"a")
        assets.rename_node("scripts", "code")
        assert assets.find_node("code/a.ts").path == "code/a.ts"
        assert await assets.get_blob("code/a.ts") == b"a"
        assert await assets.get_blob("scripts/a.ts") is None

    def test_path_helpers(self) -> None:
        assert parent_path("a/b/c.ts") == "a/b"
        assert parent_path("c.ts") == ""
        assert is_script_path("x/Player.TSX")
        assert not is_script_path("models/ship.glb")


class TestDiagnostics:
    def test_clean_script(self) -> None:
        assert DelimiterDiagnostics().check("scripts/spin.ts", VALID_SCRIPT) == []

    def test_unbalanced_delimiters(self) -> None:
        source = "export default class A extends Script {\n  start() {\n    log(')'\n}\n"
        findings = DelimiterDiagnostics().check("a.ts", source)
        assert "line 3: unclosed '('" in findings
        assert "line 1: unclosed '{'" in findings

    def test_unexpected_closer(self) -> None:
        findings = DelimiterDiagnostics(require_default_export=False).check("a.ts", "let x = 1)\n")
        assert findings == ["line 1: unexpected ')'"]

    def test_unterminated_string(self) -> None:
        findings = DelimiterDiagnostics(require_default_export=False).check("a.ts", "const s = 'oops\n")
        assert findings == ["line 1: unterminated string literal"]

    def test_template_literals_span_lines(self) -> None:
        source = "const s = `line one (\nline two`\n"
        assert DelimiterDiagnostics(require_default_export=False).check("a.ts", source) == []

    def test_missing_default_export(self) -> None:
        findings = DelimiterDiagnostics().check("a.ts", "class A {}\n")
        assert findings == ["a.ts: missing `export default class ... extends Script`"]

    @pytest.mark.asyncio
    async def test_run_diagnostics_accepts_async_services(self) -> None:
        class AsyncService:
            async def check(self, path: str, source: str) -> list[str]:
                return [f"{path}: checked"]

        assert await run_diagnostics(AsyncService(), "a.ts", "") == ["a.ts: checked"]
        assert await run_diagnostics(NullDiagnostics(), "a.ts", "") == []

    def test_format(self) -> None:
        assert format_diagnostics([]) == ""
        assert format_diagnostics(["line 1: x"]) == "\n\nDiagnostics (1):\n- line 1: x"
