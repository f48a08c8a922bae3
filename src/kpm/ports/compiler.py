from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from kpm.domain.json_types import JsonValue
from kpm.domain.options import CompilerOptions


@dataclass
class CompileRequest:
    package_root: Path
    entries: list[Path]
    dependencies: dict[str, Path]
    options: CompilerOptions


class CompilerPort(Protocol):
    def compile(self, request: CompileRequest) -> JsonValue: ...
