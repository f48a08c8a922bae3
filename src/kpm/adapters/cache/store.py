"""Fetch cache shared by every run in the process.

Entries live under ``<root>/<kind>/<key>``. Keys derived from immutable
locators (commit, digest, archive sha256) are reused as-is; callers holding a
mutable reference resolve it first and key the entry by the result.
"""

from __future__ import annotations

from contextlib import contextmanager
import hashlib
import os
from pathlib import Path
import shutil
import tempfile
import threading
from typing import Iterator


def cache_key(*parts: str) -> str:
    return hashlib.sha256("\0".join(parts).encode("utf-8")).hexdigest()


class FetchCache:
    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def entry(self, kind: str, key: str) -> Path:
        return self.root / kind / key

    @contextmanager
    def locked(self, kind: str, key: str) -> Iterator[Path]:
        with self._guard:
            lock = self._locks.setdefault(f"{kind}/{key}", threading.Lock())
        with lock:
            yield self.entry(kind, key)

    def stage(self, kind: str) -> Path:
        parent = self.root / kind
        parent.mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix=".stage-", dir=parent))

    def publish(self, stage: Path, dest: Path) -> Path:
        try:
            if dest.exists():
                return dest
            dest.parent.mkdir(parents=True, exist_ok=True)
            os.replace(stage, dest)
            return dest
        finally:
            if stage.exists():
                shutil.rmtree(stage, ignore_errors=True)

    def evict(self, kind: str, key: str) -> None:
        shutil.rmtree(self.entry(kind, key), ignore_errors=True)
