from __future__ import annotations

from dataclasses import dataclass, field

from kpm.domain.dependency import Dependency

MANIFEST_FILE = "kcl.mod"
LOCK_FILE = "kcl.mod.lock"
VENDOR_DIR = "vendor"


def _no_dependencies() -> tuple[Dependency, ...]:
    return ()


@dataclass(frozen=True)
class Manifest:
    name: str
    version: str = "0.0.1"
    edition: str | None = None
    dependencies: tuple[Dependency, ...] = field(default_factory=_no_dependencies)
    entries: tuple[str, ...] = ()
    sum: str = ""

    def dependency(self, name: str) -> Dependency | None:
        for dep in self.dependencies:
            if dep.name == name:
                return dep
        return None
