from pathlib import Path
import threading
from typing import Callable

import pytest
import yaml

from kpm.adapters.cache.store import FetchCache
from kpm.adapters.fetchers.local import LocalFetcher
from kpm.adapters.fetchers.tar import TarFetcher
from kpm.application.config import KpmConfig
from kpm.application.resolve import SourceFetchers
from kpm.application.run import RunServices
from kpm.domain.dependency import Source
from kpm.ports.command_runner import CommandResult
from kpm.ports.source_fetcher import FetchedSource, FetchRequest


def write_package(
    root: Path,
    name: str,
    dependencies: str = "",
    files: dict[str, str] | None = None,
    profile: str = "",
) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    text = f'[package]\nname = "{name}"\nedition = "v0.9.0"\nversion = "0.0.1"\n\n[dependencies]\n{dependencies}\n'
    if profile:
        text += f"\n[profile]\n{profile}\n"
    (root / "kcl.mod").write_text(text)
    for rel, content in (files if files is not None else {"main.k": f"{name}: {name}\n"}).items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return root


class RecordingFetcher:
    """Serves dependency trees from local directories, keyed by dependency name."""

    def __init__(
        self,
        trees: dict[str, Path] | None = None,
        pin: Callable[[Source], Source] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.trees = trees or {}
        self.pin = pin or (lambda source: source)
        self.error = error
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def fetch(self, request: FetchRequest) -> FetchedSource:
        with self._lock:
            self.calls.append(request.dependency.name)
        if self.error is not None:
            raise self.error
        return FetchedSource(
            path=self.trees[request.dependency.name],
            pinned=self.pin(request.dependency.source),
        )


class YamlCompiler:
    """Treats every entry as a YAML mapping and merges them in order."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.requests = []

    def compile(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        value: dict = {}
        for entry in request.entries:
            files = sorted(entry.glob("*.k")) if entry.is_dir() else [entry]
            for path in files:
                value.update(yaml.safe_load(path.read_text()) or {})
        for name, path in sorted(request.dependencies.items()):
            dep_main = path / "main.k"
            if dep_main.is_file():
                value.update(yaml.safe_load(dep_main.read_text()) or {})
        return value


class ScriptedRunner:
    """Command runner whose behaviour is a function of argv."""

    def __init__(self, handler: Callable[[list[str], Path | None], CommandResult]) -> None:
        self.handler = handler
        self.calls: list[list[str]] = []

    def run(self, args, *, cwd=None, timeout=None, cancel=None) -> CommandResult:
        self.calls.append(list(args))
        return self.handler(list(args), cwd)


def ok(stdout: str = "") -> CommandResult:
    return CommandResult(exit_code=0, stdout=stdout, stderr="")


def failed(stderr: str, exit_code: int = 1) -> CommandResult:
    return CommandResult(exit_code=exit_code, stdout="", stderr=stderr)


@pytest.fixture
def config(tmp_path: Path) -> KpmConfig:
    return KpmConfig(home=tmp_path / "kpm-home", fetch_timeout=30, fetch_retries=0, max_workers=4)


@pytest.fixture
def cache(config: KpmConfig) -> FetchCache:
    return FetchCache(config.cache_dir)


@pytest.fixture
def git_fetcher() -> RecordingFetcher:
    return RecordingFetcher()


@pytest.fixture
def oci_fetcher() -> RecordingFetcher:
    return RecordingFetcher()


@pytest.fixture
def fetchers(cache: FetchCache, git_fetcher: RecordingFetcher, oci_fetcher: RecordingFetcher) -> SourceFetchers:
    return SourceFetchers(
        local=LocalFetcher(),
        git=git_fetcher,
        oci=oci_fetcher,
        tar=TarFetcher(cache, retries=0),
    )


@pytest.fixture
def compiler() -> YamlCompiler:
    return YamlCompiler()


@pytest.fixture
def services(config: KpmConfig, fetchers: SourceFetchers, compiler: YamlCompiler) -> RunServices:
    return RunServices(config=config, fetchers=fetchers, compiler=compiler)
