"""Content checksums for materialized dependency trees ("sum-check")."""

from __future__ import annotations

import base64
import hashlib
import os
from pathlib import Path
from typing import Iterator

from kpm.domain.errors import ChecksumMismatchError
from kpm.domain.json_types import as_json_dict

IGNORED_DIRS = {".git"}
CHUNK_SIZE = 1 << 16


def _files(root: Path) -> Iterator[tuple[str, Path]]:
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [name for name in dirnames if name not in IGNORED_DIRS]
        base = Path(dirpath)
        for name in filenames:
            path = base / name
            yield path.relative_to(root).as_posix(), path
        for name in dirnames:
            path = base / name
            if path.is_symlink():
                yield path.relative_to(root).as_posix(), path


def _file_digest(path: Path) -> bytes:
    if path.is_symlink():
        return hashlib.sha256(b"symlink:" + os.readlink(path).encode("utf-8")).digest()
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.digest()


def tree_checksum(root: Path) -> str:
    """Hash of every file under ``root`` keyed by relative path.

    Files are visited in sorted path order, so the result does not depend on
    directory iteration order.
    """
    digest = hashlib.sha256()
    for rel, path in sorted(_files(root)):
        digest.update(rel.encode("utf-8"))
        digest.update(b"\0")
        digest.update(_file_digest(path))
    return base64.b64encode(digest.digest()).decode("ascii")


def verify_checksum(name: str, kind: str, path: Path, expected: str) -> str:
    actual = tree_checksum(path)
    if actual != expected:
        raise ChecksumMismatchError(
            f"checksum for '{name}' changed in lock file: expected {expected}, got {actual}",
            details=as_json_dict(
                {
                    "dependency": name,
                    "source": kind,
                    "path": str(path),
                    "expected": expected,
                    "actual": actual,
                }
            ),
            hint="The dependency content differs from kcl.mod.lock. Restore it, or re-resolve after reviewing the change.",
        )
    return actual
