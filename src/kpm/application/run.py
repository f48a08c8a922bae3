"""Run pipeline: package root -> entries -> dependencies -> compiler -> result."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path

from kpm.adapters.archive import tarball
from kpm.adapters.cache.store import FetchCache
from kpm.adapters.command_runner.subprocess_runner import SubprocessCommandRunner
from kpm.adapters.compiler.kcl_cli import KclCliCompiler
from kpm.application.archive import pack_package, unpack_package
from kpm.application.config import KpmConfig
from kpm.application.entries import resolve_entries
from kpm.application.reporting import Reporter
from kpm.application.resolve import DependencyResolver, ResolvedPackage, SourceFetchers
from kpm.application.settings import load_settings
from kpm.domain.compile_result import CompileResult
from kpm.domain.errors import CompileError, KpmError, PathNotFoundError
from kpm.domain.json_types import JsonValue
from kpm.domain.options import CompileOptions, CompilerOptions
from kpm.ports.command_runner import CommandRunnerPort
from kpm.ports.compiler import CompilerPort, CompileRequest


class RunState(str, Enum):
    START = "start"
    ROOT_RESOLVED = "root_resolved"
    ENTRIES_RESOLVED = "entries_resolved"
    DEPENDENCIES_RESOLVED = "dependencies_resolved"
    COMPILED = "compiled"
    DONE = "done"
    FAILED = "failed"


@dataclass
class RunServices:
    config: KpmConfig
    fetchers: SourceFetchers
    compiler: CompilerPort

    @classmethod
    def default(
        cls,
        config: KpmConfig | None = None,
        *,
        cache: FetchCache | None = None,
        runner: CommandRunnerPort | None = None,
    ) -> RunServices:
        config = config or KpmConfig.from_env()
        runner = runner or SubprocessCommandRunner()
        cache = cache or FetchCache(config.cache_dir)
        return cls(
            config=config,
            fetchers=SourceFetchers.default(config, cache, runner),
            compiler=KclCliCompiler(runner, executable=config.compiler),
        )


class RunPipeline:
    def __init__(self, options: CompileOptions, services: RunServices) -> None:
        self.options = options
        self.services = services
        self.reporter = Reporter(options.log_writer)
        self.state = RunState.START
        self.root: Path | None = None

    def _advance(self, state: RunState) -> None:
        self.state = state

    def run(self) -> CompileResult:
        try:
            return self._run()
        except KpmError as e:
            failed_in = self.state
            self._advance(RunState.FAILED)
            context = {"stage": failed_in.value}
            if self.root is not None:
                context["package"] = str(self.root)
            e.details = {**context, **(e.details or {})}
            raise

    def _run(self) -> CompileResult:
        options = self.options
        settings_entries: list[str] = []
        settings_args: list[str] = []
        settings_dir: Path | None = None
        if options.has_settings_yaml:
            for settings_path in options.settings_files():
                settings = load_settings(Path(settings_path))
                settings_entries.extend(settings.entries)
                settings_args.extend(settings.arguments)
                settings_dir = settings_dir or settings.directory

        root = self.resolve_root(settings_dir)
        self.root = root
        self._advance(RunState.ROOT_RESOLVED)

        try:
            entries = resolve_entries(root, [*options.entries, *settings_entries])
        except PathNotFoundError as e:
            e.message = f"failed to compile the kcl package\n{e.message}"
            raise
        self._advance(RunState.ENTRIES_RESOLVED)

        resolver = DependencyResolver(self.services.fetchers, reporter=self.reporter, config=self.services.config)
        resolved = resolver.resolve(root, vendor=options.vendor, no_sum_check=options.no_sum_check)
        if not entries and not options.compiler.k_filenames:
            entries = resolve_entries(root, list(resolved.manifest.entries)) or [root]
        self._advance(RunState.DEPENDENCIES_RESOLVED)

        value = self.compile(root, entries, resolved, settings_args)
        self._advance(RunState.COMPILED)

        resolver.commit_lock(resolved)
        self._advance(RunState.DONE)
        return CompileResult(value=value, package_path=str(root), diagnostics=list(self.reporter.diagnostics))

    def resolve_root(self, settings_dir: Path | None = None) -> Path:
        options = self.options
        raw = options.package_path or options.compiler.work_dir
        path = Path(raw) if raw else (settings_dir or Path.cwd())
        path = path.absolute()
        if tarball.is_tar_path(path):
            return unpack_package(path, self.reporter)
        return path

    def compile(
        self,
        root: Path,
        entries: list[Path],
        resolved: ResolvedPackage,
        extra_arguments: list[str],
    ) -> JsonValue:
        compiler_options = replace(
            self.options.compiler,
            work_dir=self.options.compiler.work_dir or str(root),
            k_filenames=(),
            arguments=(*extra_arguments, *self.options.compiler.arguments),
        )
        request = CompileRequest(
            package_root=root,
            entries=[*entries, *(Path(name) for name in self.options.compiler.k_filenames)],
            dependencies=resolved.dependency_paths(),
            options=compiler_options,
        )
        try:
            return self.services.compiler.compile(request)
        except CompileError as e:
            if not (e.details or {}).get("package"):
                e.details = {**(e.details or {}), "package": str(root)}
            raise


def run(options: CompileOptions, *, services: RunServices | None = None) -> CompileResult:
    return RunPipeline(options, services or RunServices.default()).run()


def run_with_options(*, services: RunServices | None = None, **kwargs: object) -> CompileResult:
    """Build ``CompileOptions`` from keyword arguments and run."""
    entries = kwargs.pop("entries", ())
    compiler = kwargs.pop("compiler", None)
    options = CompileOptions(**kwargs)  # type: ignore[arg-type]
    if entries:
        options = options.with_entries(*entries)  # type: ignore[misc]
    if isinstance(compiler, CompilerOptions):
        options = options.merge(compiler)
    return run(options, services=services)


def run_package(
    package_path: str | Path,
    options: CompileOptions | None = None,
    *,
    services: RunServices | None = None,
) -> CompileResult:
    options = (options or CompileOptions()).with_package_path(str(package_path))
    return run(options, services=services)


def run_tar(
    tar_path: str | Path,
    options: CompileOptions | None = None,
    *,
    services: RunServices | None = None,
) -> CompileResult:
    return run_package(Path(tar_path).absolute(), options, services=services)


def resolve_package(
    options: CompileOptions,
    *,
    services: RunServices | None = None,
) -> ResolvedPackage:
    """Resolve (and optionally vendor) a package, then persist its lock file."""
    pipeline = RunPipeline(options, services or RunServices.default())
    root = pipeline.resolve_root()
    resolver = DependencyResolver(
        pipeline.services.fetchers,
        reporter=pipeline.reporter,
        config=pipeline.services.config,
    )
    resolved = resolver.resolve(root, vendor=options.vendor, no_sum_check=options.no_sum_check)
    resolver.commit_lock(resolved)
    return resolved


def pack(
    options: CompileOptions,
    archive: Path | None = None,
    *,
    services: RunServices | None = None,
) -> Path:
    """Tar a package; with ``options.vendor`` the vendored dependencies are included."""
    resolved = resolve_package(options, services=services)
    name = f"{resolved.manifest.name}-{resolved.manifest.version}.tar"
    target = archive or resolved.root.parent / name
    return pack_package(resolved.root, target, include_vendor=options.vendor)
