from pathlib import Path
from typing import Protocol


class WorkspacePort(Protocol):
    def begin_transaction(self) -> Path: ...
    def write_atomic(self, rel: Path, content: str) -> Path: ...
    def replace_tree(self, rel: Path, stage: Path) -> Path: ...
