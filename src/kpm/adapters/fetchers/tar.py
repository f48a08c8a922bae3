from __future__ import annotations

import hashlib
from pathlib import Path
import shutil
import tempfile
import urllib.error
from urllib.request import urlopen

from kpm.adapters.archive import tarball
from kpm.adapters.cache.store import FetchCache
from kpm.adapters.fetchers.base import check_cancelled, remaining, unavailable
from kpm.domain.dependency import TarSource
from kpm.domain.errors import PathNotFoundError
from kpm.domain.json_types import as_json_dict
from kpm.ports.source_fetcher import FetchedSource, FetchRequest

CHUNK_SIZE = 1 << 16


def _sha256(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


class TarFetcher:
    """Extracts a local or downloaded archive into the cache, keyed by its sha256."""

    def __init__(self, cache: FetchCache, *, retries: int = 2) -> None:
        self.cache = cache
        self.retries = retries

    def fetch(self, request: FetchRequest) -> FetchedSource:
        source = request.dependency.source
        if not isinstance(source, TarSource):
            raise TypeError(f"TarFetcher cannot fetch {source.kind} sources")
        if source.is_remote:
            with tempfile.TemporaryDirectory(prefix="kpm-tar-") as tmp:
                archive = Path(tmp) / "archive.tar"
                self._download(source.location, archive, request)
                return FetchedSource(path=self._extract(archive), pinned=source)

        archive = Path(source.location).expanduser()
        if not archive.is_absolute():
            archive = request.base_dir / archive
        if not archive.is_file():
            raise PathNotFoundError(
                f"tar dependency '{request.dependency.name}' not found at {archive}",
                details=as_json_dict(
                    {"dependency": request.dependency.name, "source": "tar", "path": str(archive)}
                ),
            )
        return FetchedSource(path=self._extract(archive), pinned=source)

    def _extract(self, archive: Path) -> Path:
        key = _sha256(archive)
        with self.cache.locked("tar", key) as dest:
            if not dest.is_dir():
                stage = self.cache.stage("tar")
                try:
                    tarball.extract(archive, stage)
                    self.cache.publish(stage, dest)
                finally:
                    shutil.rmtree(stage, ignore_errors=True)
        return tarball.single_root(dest)

    def _download(self, url: str, dest: Path, request: FetchRequest) -> None:
        attempt = 0
        while True:
            check_cancelled(request)
            try:
                with urlopen(url, timeout=remaining(request)) as response:  # noqa: S310
                    with dest.open("wb") as handle:
                        # cancellation and the deadline are rechecked after every chunk
                        for chunk in iter(lambda: response.read(CHUNK_SIZE), b""):
                            handle.write(chunk)
                            check_cancelled(request)
                return
            except urllib.error.HTTPError as e:
                if e.code in (401, 403):
                    raise unavailable(request, f"HTTP {e.code}", reason="auth", cause=e)
                if e.code == 404:
                    raise unavailable(request, "HTTP 404", reason="not_found", cause=e)
                if attempt >= self.retries:
                    raise unavailable(request, f"HTTP {e.code}", reason="transient", cause=e)
            except (urllib.error.URLError, TimeoutError, OSError) as e:
                if attempt >= self.retries:
                    raise unavailable(request, str(e), reason="transient", cause=e)
            attempt += 1
            request.cancel.wait(attempt)
