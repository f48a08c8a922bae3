from __future__ import annotations

from dataclasses import asdict, is_dataclass
from datetime import datetime, timezone

from kpm.domain.compile_result import CompileResult
from kpm.domain.diagnostics import Diagnostic, Location
from kpm.domain.errors import KpmError
from kpm.domain.json_types import JsonDict, as_json_dict

RESULT_SCHEMA_VERSION = 1


def _serialize_location(location: Location | None) -> JsonDict | None:
    if location is None:
        return None
    if is_dataclass(location):
        return as_json_dict(asdict(location))
    return as_json_dict({"kind": str(getattr(location, "kind", "unknown"))})


def serialize_diagnostic(diag: Diagnostic) -> JsonDict:
    return as_json_dict(
        {
            "id": diag.id,
            "code": diag.code,
            "rule": diag.rule,
            "severity": diag.severity.value,
            "message": diag.message,
            "hint": diag.hint,
            "details": diag.details,
            "location": _serialize_location(diag.location),
        }
    )


def serialize_error(error: KpmError) -> JsonDict:
    return as_json_dict(
        {
            "type": type(error).__name__,
            "message": str(error),
            "hint": error.hint,
            "details": error.details,
            "cause": str(error.cause) if error.cause is not None else None,
        }
    )


def exit_code_for(error: KpmError | None) -> int:
    if error is None:
        return 0
    return 3 if error.is_execution else 2


def serialize_result(
    command: str,
    args: list[str],
    result: CompileResult | None = None,
    error: KpmError | None = None,
) -> JsonDict:
    return as_json_dict(
        {
            "result_schema_version": RESULT_SCHEMA_VERSION,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "command": command,
            "args": args,
            "exit_code": exit_code_for(error),
            "package": result.package_path if result is not None else None,
            "value": result.value if result is not None else None,
            "diagnostics": [serialize_diagnostic(d) for d in result.diagnostics] if result else [],
            "error": serialize_error(error) if error is not None else None,
        }
    )
