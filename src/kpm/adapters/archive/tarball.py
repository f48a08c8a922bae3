"""Deterministic tar creation and safe extraction."""

from __future__ import annotations

import fnmatch
from pathlib import Path
import tarfile

from kpm.domain.errors import ArchiveError
from kpm.domain.json_types import as_json_dict

TAR_SUFFIXES = (".tar", ".tar.gz", ".tgz")


def strip_tar_suffix(name: str) -> str:
    for suffix in sorted(TAR_SUFFIXES, key=len, reverse=True):
        if name.endswith(suffix):
            return name[: -len(suffix)]
    return name


def is_tar_path(path: Path) -> bool:
    return path.is_file() and path.name.endswith(TAR_SUFFIXES)


def _normalize(info: tarfile.TarInfo) -> tarfile.TarInfo:
    info.uid = 0
    info.gid = 0
    info.uname = ""
    info.gname = ""
    info.mtime = 0
    return info


def _excluded(rel: str, exclude: tuple[str, ...]) -> bool:
    first = rel.split("/", 1)[0]
    return any(fnmatch.fnmatch(rel, pat) or fnmatch.fnmatch(first, pat) for pat in exclude)


def create(src_dir: Path, archive: Path, exclude: tuple[str, ...] = ()) -> Path:
    """Write ``src_dir``'s contents to ``archive``; entries are relative and sorted."""
    archive.parent.mkdir(parents=True, exist_ok=True)
    archive_resolved = archive.resolve()
    members: list[Path] = []
    for path in sorted(src_dir.rglob("*")):
        rel = path.relative_to(src_dir).as_posix()
        if _excluded(rel, exclude) or path.resolve() == archive_resolved:
            continue
        members.append(path)
    mode = "w:gz" if archive.name.endswith((".tar.gz", ".tgz")) else "w"
    try:
        with tarfile.open(archive, mode, format=tarfile.PAX_FORMAT) as tar:
            for path in members:
                tar.add(
                    path,
                    arcname=path.relative_to(src_dir).as_posix(),
                    recursive=False,
                    filter=_normalize,
                )
    except OSError as e:
        raise ArchiveError(
            f"failed to create archive {archive}",
            details=as_json_dict({"archive": str(archive), "source": str(src_dir)}),
            cause=e,
        )
    return archive


def extract(archive: Path, dest: Path) -> Path:
    try:
        with tarfile.open(archive, "r:*") as tar:
            tar.extractall(dest, filter="data")
    except (tarfile.TarError, OSError) as e:
        raise ArchiveError(
            f"failed to extract archive {archive}",
            details=as_json_dict({"archive": str(archive), "destination": str(dest)}),
            cause=e,
        )
    return dest


def single_root(directory: Path) -> Path:
    """Return the lone top-level directory of an extracted tree, or the tree itself."""
    children = [child for child in directory.iterdir()]
    if len(children) == 1 and children[0].is_dir():
        return children[0]
    return directory
