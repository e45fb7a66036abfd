"""Script and asset tool handlers backed by the content store."""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping

from ...assets.store import AssetStore, is_script_path
from ...scene.operations import SceneOperations
from ...scripting.diagnostics import (
    DiagnosticService,
    NullDiagnostics,
    format_diagnostics,
    run_diagnostics,
)
from .errors import EditTargetNotFoundError, ScriptNotFoundError

__all__ = ["ScriptTools", "normalize_newlines"]

LOGGER = logging.getLogger(__name__)

_ENCODING = "utf-8"


def normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


class ScriptTools:
    """Handlers for script files and the asset listing tools."""

    def __init__(
        self,
        assets: AssetStore,
        operations: SceneOperations,
        diagnostics: DiagnosticService | None = None,
    ) -> None:
        self._assets = assets
        self._operations = operations
        self._diagnostics = diagnostics or NullDiagnostics()

    async def _read(self, path: str) -> str:
        entry = self._assets.find_node(path)
        if entry is None or entry.is_folder:
            raise ScriptNotFoundError.for_path(path)
        data = await self._assets.get_blob(path)
        if data is None:
            raise ScriptNotFoundError.for_path(path)
        return data.decode(_ENCODING, errors="replace")

    async def _diagnose(self, path: str, source: str) -> str:
        findings = await run_diagnostics(self._diagnostics, path, source)
        if findings:
            LOGGER.debug("Diagnostics for %s: %d finding(s)", path, len(findings))
        return format_diagnostics(findings)

    async def create_script(self, args: Mapping[str, Any]) -> str:
        path = args["path"]
        content = args["content"]
        existed = self._assets.find_node(path) is not None
        await self._assets.write_file(path, content.encode(_ENCODING))
        verb = "updated" if existed else "created"
        return f'Script {verb} at "{path}"' + await self._diagnose(path, content)

    async def read_script(self, args: Mapping[str, Any]) -> str:
        return await self._read(args["path"])

    async def edit_script(self, args: Mapping[str, Any]) -> str:
        path = args["path"]
        current = normalize_newlines(await self._read(path))
        old = normalize_newlines(args["old_string"])
        new = normalize_newlines(args["new_string"])
        if not old or old not in current:
            raise EditTargetNotFoundError(
                message=f'old_string not found in "{path}"',
                path=path,
            )
        updated = current.replace(old, new, 1)
        await self._assets.set_blob(path, updated.encode(_ENCODING))
        return f'Edited "{path}"' + await self._diagnose(path, updated)

    async def delete_script(self, args: Mapping[str, Any]) -> str:
        path = args["path"]
        detached = self._operations.detach_script_everywhere(path)
        removed = self._assets.delete_node(path)
        for file_path in removed or [path]:
            await self._assets.delete_blob(file_path)
        if not removed:
            message = f'No script at "{path}"; nothing to delete'
        else:
            message = f'Deleted script "{path}"'
        if detached:
            message += f" and detached it from: {', '.join(detached)}"
        return message

    def attach_script(self, args: Mapping[str, Any]) -> str:
        node, script = args["node"], args["script"]
        entry = self._assets.find_node(script)
        if entry is None or entry.is_folder:
            raise ScriptNotFoundError.for_path(script)
        if not self._operations.attach_script(node, script):
            return f'"{script}" is already attached to "{node}"'
        return f'Attached "{script}" to "{node}"'

    def detach_script(self, args: Mapping[str, Any]) -> str:
        node, script = args["node"], args["script"]
        self._operations.detach_script(node, script)
        return f'Detached "{script}" from "{node}"'

    def list_scripts(self, args: Mapping[str, Any]) -> str:
        scripts = [path for path in self._assets.collect_file_paths() if is_script_path(path)]
        if not scripts:
            return "No scripts in the asset store."
        return json.dumps(sorted(scripts))

    def list_assets(self, args: Mapping[str, Any]) -> str:
        paths = self._assets.collect_file_paths()
        if not paths:
            return "The asset store is empty."
        return json.dumps(sorted(paths))
