from __future__ import annotations

from dataclasses import dataclass

from kpm.domain.json_types import JsonDict


@dataclass
class KpmError(Exception):
    message: str
    details: JsonDict | None = None
    hint: str | None = None
    cause: Exception | None = None

    def __str__(self) -> str:
        return self.message

    @property
    def is_execution(self) -> bool:
        return False


class ParseError(KpmError):
    pass


class ValidationError(KpmError):
    pass


class ChecksumMismatchError(KpmError):
    pass


class PathNotFoundError(KpmError):
    pass


class ManifestNotFoundError(PathNotFoundError):
    pass


class ArchiveError(KpmError):
    pass


class StorageError(KpmError):
    """Filesystem failure while writing the lock, vendor tree, cache or an unpacked archive."""

    @property
    def is_execution(self) -> bool:
        return True


class SourceUnavailableError(KpmError):
    @property
    def source(self) -> str:
        return str((self.details or {}).get("source", "unknown"))

    @property
    def is_execution(self) -> bool:
        return True


class CompileError(KpmError):
    """Compiler failure; ``message`` is the compiler output, unmodified."""

    def __str__(self) -> str:
        package = (self.details or {}).get("package")
        if package:
            return f"failed to compile the kcl package '{package}'\n{self.message}"
        return self.message

    @property
    def is_execution(self) -> bool:
        return True
