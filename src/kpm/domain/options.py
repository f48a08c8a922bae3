"""Options threaded through a single run.

``CompileOptions`` is immutable; every ``with_*`` helper and :meth:`merge`
return a new instance.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
import sys
from typing import TextIO


def _stdout() -> TextIO | None:
    return sys.stdout


@dataclass(frozen=True)
class CompilerOptions:
    """Low-level options passed straight to the compiler."""

    work_dir: str | None = None
    k_filenames: tuple[str, ...] = ()
    settings: tuple[str, ...] = ()
    arguments: tuple[str, ...] = ()

    def merge(self, other: CompilerOptions) -> CompilerOptions:
        return CompilerOptions(
            work_dir=other.work_dir or self.work_dir,
            k_filenames=self.k_filenames + other.k_filenames,
            settings=self.settings + other.settings,
            arguments=self.arguments + other.arguments,
        )


@dataclass(frozen=True)
class CompileOptions:
    entries: tuple[str, ...] = ()
    package_path: str | None = None
    vendor: bool = False
    no_sum_check: bool = False
    settings_path: str | None = None
    has_settings_yaml: bool = False
    log_writer: TextIO | None = field(default_factory=_stdout)
    compiler: CompilerOptions = field(default_factory=CompilerOptions)

    def with_entries(self, *entries: str) -> CompileOptions:
        return replace(self, entries=self.entries + tuple(entries))

    def with_package_path(self, path: str) -> CompileOptions:
        return replace(self, package_path=path)

    def with_vendor(self, vendor: bool) -> CompileOptions:
        return replace(self, vendor=vendor)

    def with_no_sum_check(self, no_sum_check: bool) -> CompileOptions:
        return replace(self, no_sum_check=no_sum_check)

    def with_settings(self, path: str) -> CompileOptions:
        return replace(self, settings_path=path, has_settings_yaml=True)

    def with_log_writer(self, writer: TextIO | None) -> CompileOptions:
        return replace(self, log_writer=writer)

    def merge(self, *others: CompilerOptions) -> CompileOptions:
        merged = self.compiler
        for other in others:
            merged = merged.merge(other)
        return replace(self, compiler=merged)

    def all_entries(self) -> tuple[str, ...]:
        return self.entries + self.compiler.k_filenames

    def settings_files(self) -> tuple[str, ...]:
        files = self.compiler.settings
        if self.settings_path and self.settings_path not in files:
            files = (self.settings_path, *files)
        return files
