from __future__ import annotations

from pathlib import Path

from kpm.domain.dependency import LocalSource
from kpm.domain.errors import PathNotFoundError
from kpm.domain.json_types import as_json_dict
from kpm.ports.source_fetcher import FetchedSource, FetchRequest


class LocalFetcher:
    def fetch(self, request: FetchRequest) -> FetchedSource:
        source = request.dependency.source
        if not isinstance(source, LocalSource):
            raise TypeError(f"LocalFetcher cannot fetch {source.kind} sources")
        path = Path(source.path).expanduser()
        if not path.is_absolute():
            path = request.base_dir / path
        path = path.resolve()
        if not path.is_dir():
            raise PathNotFoundError(
                f"local dependency '{request.dependency.name}' not found at {path}",
                details=as_json_dict(
                    {
                        "dependency": request.dependency.name,
                        "source": "local",
                        "path": str(path),
                    }
                ),
            )
        return FetchedSource(path=path, pinned=source)
