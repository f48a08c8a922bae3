"""Dependency resolution against a package root.

Resolution walks the manifest breadth-first. Dependencies whose lock entry
still matches their declaration and whose materialized tree is present are
verified in place; everything else is fetched, one worker per dependency.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field, replace
from pathlib import Path
import threading
import time

from kpm.adapters.cache.store import FetchCache
from kpm.adapters.command_runner.subprocess_runner import SubprocessCommandRunner
from kpm.adapters.errors import AdapterError
from kpm.adapters.fetchers.git import GitFetcher
from kpm.adapters.fetchers.local import LocalFetcher
from kpm.adapters.fetchers.oci import OciFetcher
from kpm.adapters.fetchers.tar import TarFetcher
from kpm.application.checksum import tree_checksum, verify_checksum
from kpm.application.config import KpmConfig
from kpm.application.lock_io import read_lock, write_lock
from kpm.application.manifest_io import has_manifest, load_manifest
from kpm.application.reporting import Reporter
from kpm.application.vendor import vendor_dependencies
from kpm.domain.dependency import (
    Dependency,
    GitSource,
    LocalSource,
    OciSource,
    Source,
    TarSource,
    same_origin,
)
from kpm.domain.diagnostics import DependencyLocation, Severity
from kpm.domain.errors import KpmError, StorageError
from kpm.domain.json_types import as_json_dict
from kpm.domain.lock import LockEntry, LockFile, LockState, lock_state
from kpm.domain.manifest import VENDOR_DIR, Manifest
from kpm.ports.command_runner import CommandRunnerPort
from kpm.ports.source_fetcher import FetchRequest, SourceFetcherPort
from kpm.ports.workspace import WorkspacePort


@dataclass
class SourceFetchers:
    local: SourceFetcherPort
    git: SourceFetcherPort
    oci: SourceFetcherPort
    tar: SourceFetcherPort

    def for_source(self, source: Source) -> SourceFetcherPort:
        match source:
            case LocalSource():
                return self.local
            case GitSource():
                return self.git
            case OciSource():
                return self.oci
            case TarSource():
                return self.tar

    @classmethod
    def default(
        cls,
        config: KpmConfig,
        cache: FetchCache,
        runner: CommandRunnerPort | None = None,
    ) -> SourceFetchers:
        runner = runner or SubprocessCommandRunner()
        return cls(
            local=LocalFetcher(),
            git=GitFetcher(runner, cache, retries=config.fetch_retries),
            oci=OciFetcher(runner, cache, executable=config.oras, retries=config.fetch_retries),
            tar=TarFetcher(cache, retries=config.fetch_retries),
        )


@dataclass
class ResolvedDependency:
    name: str
    path: Path
    entry: LockEntry
    fetched: bool = False


def _no_resolved() -> dict[str, ResolvedDependency]:
    return {}


@dataclass
class ResolvedPackage:
    root: Path
    manifest: Manifest
    lock: LockFile
    lock_state: LockState
    no_sum_check: bool = False
    dependencies: dict[str, ResolvedDependency] = field(default_factory=_no_resolved)

    def dependency_paths(self) -> dict[str, Path]:
        return {name: dep.path for name, dep in self.dependencies.items()}

    @property
    def fetched(self) -> list[str]:
        return [name for name, dep in self.dependencies.items() if dep.fetched]


def display_path(root: Path, path: Path) -> str:
    try:
        return path.resolve().relative_to(root.resolve()).as_posix()
    except ValueError:
        return str(path.resolve())


def _version_of(dep: Dependency, source: Source, path: Path) -> str:
    if dep.version:
        return dep.version
    if has_manifest(path):
        try:
            return load_manifest(path).version
        except KpmError:
            pass
    match source:
        case GitSource(tag=str() as tag):
            return tag
        case GitSource(commit=str() as commit):
            return commit
        case OciSource(tag=str() as tag):
            return tag
    return "0.0.0"


class DependencyResolver:
    def __init__(
        self,
        fetchers: SourceFetchers,
        *,
        reporter: Reporter,
        config: KpmConfig,
        workspace: WorkspacePort | None = None,
    ) -> None:
        self.fetchers = fetchers
        self.reporter = reporter
        self.config = config
        self.workspace = workspace

    def resolve(self, root: Path, *, vendor: bool = False, no_sum_check: bool = False) -> ResolvedPackage:
        manifest = load_manifest(root, registry=self.config.default_oci_registry)
        existing = None if no_sum_check else read_lock(root)
        state = lock_state(manifest, existing)
        if no_sum_check:
            self.reporter.note(
                "SUM_CHECK_DISABLED",
                "sumcheck.disabled",
                "Sum-check disabled; kcl.mod.lock is neither verified nor written.",
                severity=Severity.WARN,
            )
        elif state == LockState.STALE:
            self.reporter.note("LOCK_STALE", "lock.stale", "kcl.mod changed since kcl.mod.lock was written.")

        resolved: dict[str, ResolvedDependency] = {}
        claimed: dict[str, Dependency] = {}
        level: list[tuple[Dependency, Path]] = [(dep, root) for dep in manifest.dependencies]
        while level:
            pending: list[tuple[Dependency, Path, LockEntry | None]] = []
            current: list[str] = []
            for dep, base in level:
                if dep.name in claimed:
                    if not same_origin(claimed[dep.name].source, dep.source):
                        self.reporter.note(
                            "DEPENDENCY_SHADOWED",
                            "resolve.shadowed",
                            f"'{dep.name}' from {dep.source.locator()} is shadowed by "
                            f"{claimed[dep.name].source.locator()}",
                            severity=Severity.WARN,
                            location=DependencyLocation(dep.name, dep.kind),
                        )
                    continue
                claimed[dep.name] = dep
                current.append(dep.name)
                locked = existing.get(dep.name) if existing is not None else None
                if locked is not None and not same_origin(dep.source, locked.source):
                    locked = None
                reused = self._reuse(root, dep, locked)
                if reused is not None:
                    resolved[dep.name] = reused
                else:
                    pending.append((dep, base, locked))

            for dep_resolved in self._fetch_all(root, pending):
                resolved[dep_resolved.name] = dep_resolved

            level = []
            for name in current:
                dep_path = resolved[name].path
                if has_manifest(dep_path):
                    child = load_manifest(dep_path, registry=self.config.default_oci_registry)
                    level.extend((child_dep, dep_path) for child_dep in child.dependencies)

        if vendor:
            resolved = self._vendor(root, resolved, verify=not no_sum_check)

        ordered = {name: resolved[name] for name in claimed}
        lock = LockFile(
            manifest_sum=manifest.sum,
            entries={name: dep.entry for name, dep in ordered.items()},
        )
        return ResolvedPackage(
            root=root,
            manifest=manifest,
            lock=lock,
            lock_state=state,
            no_sum_check=no_sum_check,
            dependencies=ordered,
        )

    def commit_lock(self, resolved: ResolvedPackage) -> bool:
        """Persist the resolved graph; a no-op when sum-check is disabled."""
        if resolved.no_sum_check:
            return False
        written = write_lock(resolved.root, resolved.lock, self.workspace)
        if written:
            self.reporter.note("LOCK_WRITTEN", "lock.write", f"Wrote {resolved.root / 'kcl.mod.lock'}")
        return written

    def _reuse(self, root: Path, dep: Dependency, locked: LockEntry | None) -> ResolvedDependency | None:
        if locked is None:
            return None
        candidates = [root / VENDOR_DIR / dep.name]
        if locked.local_path:
            local = Path(locked.local_path)
            candidates.append(local if local.is_absolute() else root / local)
        for path in candidates:
            if path.is_dir():
                verify_checksum(dep.name, dep.kind, path, locked.sum)
                return ResolvedDependency(name=dep.name, path=path.resolve(), entry=locked)
        return None

    def _fetch_all(
        self,
        root: Path,
        pending: list[tuple[Dependency, Path, LockEntry | None]],
    ) -> list[ResolvedDependency]:
        if not pending:
            return []
        cancel = threading.Event()
        results: list[ResolvedDependency | None] = [None] * len(pending)
        workers = min(self.config.max_workers, len(pending))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="kpm-fetch") as pool:
            futures = {
                pool.submit(self._fetch_one, root, dep, base, locked, cancel): index
                for index, (dep, base, locked) in enumerate(pending)
            }
            try:
                for future in as_completed(futures):
                    results[futures[future]] = future.result()
            except BaseException:
                cancel.set()
                for future in futures:
                    future.cancel()
                raise
        return [result for result in results if result is not None]

    def _fetch_one(
        self,
        root: Path,
        dep: Dependency,
        base: Path,
        locked: LockEntry | None,
        cancel: threading.Event,
    ) -> ResolvedDependency:
        timeout = self.config.fetch_timeout
        request = FetchRequest(
            dependency=dep,
            base_dir=base,
            cancel=cancel,
            deadline=time.monotonic() + timeout if timeout is not None else None,
        )
        try:
            if dep.kind != "local":
                self.reporter.info(f"downloading '{dep.name}' from '{dep.source.locator()}'")
            fetched = self.fetchers.for_source(dep.source).fetch(request)
            if locked is not None:
                checksum = verify_checksum(dep.name, dep.kind, fetched.path, locked.sum)
            else:
                checksum = tree_checksum(fetched.path)
        except KpmError as e:
            e.details = {"dependency": dep.name, "source": dep.kind, **(e.details or {})}
            raise
        except (AdapterError, OSError) as e:
            raise StorageError(
                f"failed to materialize '{dep.name}' from {dep.source.locator()}: {e}",
                details=as_json_dict(
                    {"package": str(root), "dependency": dep.name, "source": dep.kind}
                ),
                cause=e,
            )
        if fetched.pinned != dep.source:
            self.reporter.note(
                "DEPENDENCY_PINNED",
                "resolve.pin",
                f"'{dep.name}' {dep.source.locator()} resolved to {fetched.pinned.locator()}",
                location=DependencyLocation(dep.name, dep.kind),
            )
        entry = LockEntry(
            name=dep.name,
            version=_version_of(dep, fetched.pinned, fetched.path),
            source=fetched.pinned,
            sum=checksum,
            local_path=display_path(root, fetched.path),
        )
        return ResolvedDependency(name=dep.name, path=fetched.path, entry=entry, fetched=True)

    def _vendor(
        self,
        root: Path,
        resolved: dict[str, ResolvedDependency],
        *,
        verify: bool,
    ) -> dict[str, ResolvedDependency]:
        self.reporter.info(f"vendoring {len(resolved)} dependencies into {root / VENDOR_DIR}")
        paths = vendor_dependencies(
            root,
            {name: dep.path for name, dep in resolved.items()},
            workspace=self.workspace,
        )
        vendored: dict[str, ResolvedDependency] = {}
        for name, dep in resolved.items():
            path = paths[name]
            if verify:
                verify_checksum(name, dep.entry.source.kind, path, dep.entry.sum)
            entry = replace(dep.entry, local_path=display_path(root, path))
            vendored[name] = replace(dep, path=path, entry=entry)
        return vendored
