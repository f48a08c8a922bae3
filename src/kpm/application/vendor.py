from __future__ import annotations

from pathlib import Path
import shutil

from kpm.adapters.errors import AdapterError
from kpm.adapters.workspace.filesystem import FilesystemWorkspace
from kpm.domain.errors import StorageError
from kpm.domain.json_types import as_json_dict
from kpm.domain.manifest import VENDOR_DIR
from kpm.ports.workspace import WorkspacePort

IGNORE = shutil.ignore_patterns(".git")


def vendor_dependencies(
    root: Path,
    dependencies: dict[str, Path],
    *,
    workspace: WorkspacePort | None = None,
) -> dict[str, Path]:
    """Rebuild ``root/vendor`` from scratch with one copy per dependency."""
    ws = workspace or FilesystemWorkspace(root)
    current: str | None = None
    stage: Path | None = None
    try:
        stage = ws.begin_transaction()
        for current in sorted(dependencies):
            shutil.copytree(dependencies[current], stage / current, symlinks=True, ignore=IGNORE)
        current = None
        vendor_root = ws.replace_tree(Path(VENDOR_DIR), stage)
    except (AdapterError, OSError) as e:
        if stage is not None:
            FilesystemWorkspace.discard(stage)
        details = {"package": str(root), "path": str(root / VENDOR_DIR)}
        if current is not None:
            details["dependency"] = current
        raise StorageError(
            f"failed to vendor dependencies into {root / VENDOR_DIR}",
            details=as_json_dict(details),
            cause=e,
        )
    return {name: vendor_root / name for name in dependencies}
