from __future__ import annotations

from pathlib import Path

from kpm.domain.errors import PathNotFoundError
from kpm.domain.json_types import as_json_dict


def resolve_entry(package_path: Path, input_path: str) -> Path:
    """Map an entry to an existing absolute path.

    Order: an existing absolute path, then the path under the package root,
    then the path relative to the working directory.
    """
    candidate = Path(input_path)
    if candidate.is_absolute():
        if candidate.exists():
            return candidate
        attempted = candidate
    else:
        in_package = package_path / candidate
        if in_package.exists():
            return in_package.absolute()
        from_cwd = candidate.absolute()
        if from_cwd.exists():
            return from_cwd
        attempted = from_cwd
    raise PathNotFoundError(
        f"Cannot find the kcl file, please check the file path {attempted}",
        details=as_json_dict({"package": str(package_path), "entry": input_path, "path": str(attempted)}),
    )


def resolve_entries(package_path: Path, entries: list[str]) -> list[Path]:
    return [resolve_entry(package_path, entry) for entry in entries]
