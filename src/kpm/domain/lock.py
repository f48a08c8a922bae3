from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from kpm.domain.dependency import Source
from kpm.domain.manifest import Manifest


class LockState(str, Enum):
    MISSING = "missing"
    STALE = "stale"
    VALID = "valid"


@dataclass(frozen=True)
class LockEntry:
    name: str
    version: str
    source: Source
    sum: str
    local_path: str


def _no_entries() -> dict[str, LockEntry]:
    return {}


@dataclass(frozen=True)
class LockFile:
    manifest_sum: str
    entries: dict[str, LockEntry] = field(default_factory=_no_entries)

    def get(self, name: str) -> LockEntry | None:
        return self.entries.get(name)


def lock_state(manifest: Manifest, lock: LockFile | None) -> LockState:
    if lock is None:
        return LockState.MISSING
    if lock.manifest_sum != manifest.sum:
        return LockState.STALE
    return LockState.VALID
