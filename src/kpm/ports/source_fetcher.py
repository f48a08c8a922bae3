from dataclasses import dataclass
from pathlib import Path
import threading
from typing import Protocol

from kpm.domain.dependency import Dependency, Source


@dataclass
class FetchRequest:
    dependency: Dependency
    base_dir: Path
    cancel: threading.Event
    deadline: float | None = None


@dataclass
class FetchedSource:
    path: Path
    pinned: Source


class SourceFetcherPort(Protocol):
    def fetch(self, request: FetchRequest) -> FetchedSource: ...
