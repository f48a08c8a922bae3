from pathlib import Path
import os
import shutil
import tempfile

from kpm.adapters.errors import WorkspaceCommitError
from kpm.domain.json_types import as_json_dict


class FilesystemWorkspace:
    def __init__(self, root: Path) -> None:
        self.root = root

    def _move(self, src: Path, dest: Path) -> None:
        os.replace(src, dest)

    def begin_transaction(self) -> Path:
        return Path(tempfile.mkdtemp(prefix=".kpm-stage-", dir=self.root))

    def write_atomic(self, rel: Path, content: str) -> Path:
        dest = self.root / rel
        dest.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{dest.name}.", suffix=".tmp", dir=dest.parent)
        tmp = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(content)
                handle.flush()
                os.fsync(handle.fileno())
            self._move(tmp, dest)
        except Exception as e:
            tmp.unlink(missing_ok=True)
            raise WorkspaceCommitError(
                f"failed to write {dest}",
                details=as_json_dict({"path": str(dest)}),
                cause=e,
            )
        return dest

    def replace_tree(self, rel: Path, stage: Path) -> Path:
        """Swap ``stage`` in as ``root/rel``; the previous tree is restored on failure."""
        dest = self.root / rel
        dest.parent.mkdir(parents=True, exist_ok=True)
        backup: Path | None = None
        if dest.exists():
            backup = Path(tempfile.mkdtemp(prefix=".kpm-backup-", dir=self.root)) / dest.name
        try:
            if backup is not None:
                self._move(dest, backup)
            self._move(stage, dest)
        except Exception as e:
            if backup is not None and backup.exists() and not dest.exists():
                os.replace(backup, dest)
            raise WorkspaceCommitError(
                f"failed to replace {dest}",
                details=as_json_dict({"path": str(dest)}),
                cause=e,
            )
        finally:
            shutil.rmtree(stage, ignore_errors=True)
            if backup is not None:
                shutil.rmtree(backup.parent, ignore_errors=True)
        return dest

    @staticmethod
    def discard(stage: Path) -> None:
        shutil.rmtree(stage, ignore_errors=True)
