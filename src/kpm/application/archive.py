from __future__ import annotations

from pathlib import Path

from kpm.adapters.archive import tarball
from kpm.adapters.errors import AdapterError
from kpm.adapters.workspace.filesystem import FilesystemWorkspace
from kpm.application.manifest_io import has_manifest
from kpm.application.reporting import Reporter
from kpm.domain.errors import ArchiveError, PathNotFoundError, StorageError
from kpm.domain.json_types import as_json_dict
from kpm.domain.manifest import VENDOR_DIR

ALWAYS_EXCLUDED = (".git", ".kpm-stage-*", ".kpm-backup-*")


def unpack_destination(archive: Path) -> Path:
    return archive.parent / tarball.strip_tar_suffix(archive.name)


def unpack_package(archive: Path, reporter: Reporter | None = None) -> Path:
    """Extract ``archive`` next to itself and return the package root inside.

    An existing destination is replaced, so repeated unpacks converge to the
    same tree.
    """
    if not archive.is_file():
        raise PathNotFoundError(
            f"archive not found: {archive}",
            details=as_json_dict({"archive": str(archive)}),
        )
    dest = unpack_destination(archive)
    if reporter is not None:
        reporter.info(f"unpacking '{archive}' into '{dest}'")
    workspace = FilesystemWorkspace(archive.parent)
    stage: Path | None = None
    try:
        stage = workspace.begin_transaction()
        tarball.extract(archive, stage)
        workspace.replace_tree(Path(dest.name), stage)
    except (ArchiveError, AdapterError, OSError) as e:
        if stage is not None:
            FilesystemWorkspace.discard(stage)
        if isinstance(e, ArchiveError):
            raise
        raise StorageError(
            f"failed to unpack '{archive}' into '{dest}'",
            details=as_json_dict({"archive": str(archive), "package": str(dest)}),
            cause=e,
        )
    if has_manifest(dest):
        return dest
    return tarball.single_root(dest)


def pack_package(root: Path, archive: Path, *, include_vendor: bool) -> Path:
    exclude = ALWAYS_EXCLUDED if include_vendor else (*ALWAYS_EXCLUDED, VENDOR_DIR)
    return tarball.create(root, archive, exclude=exclude)
