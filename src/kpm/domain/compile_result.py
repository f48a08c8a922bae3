from __future__ import annotations

from dataclasses import dataclass, field
import json

import yaml

from kpm.domain.diagnostics import Diagnostic
from kpm.domain.json_types import JsonValue


def _new_diagnostics() -> list[Diagnostic]:
    return []


@dataclass
class CompileResult:
    """Evaluated output of one run, with YAML and JSON views of the same value."""

    value: JsonValue
    package_path: str
    diagnostics: list[Diagnostic] = field(default_factory=_new_diagnostics)

    @property
    def raw_yaml(self) -> str:
        if self.value is None:
            return ""
        return yaml.safe_dump(
            self.value,
            sort_keys=False,
            default_flow_style=False,
            allow_unicode=True,
        ).rstrip("\n")

    @property
    def raw_json(self) -> str:
        return json.dumps(self.value, indent=4, ensure_ascii=False)
