from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from kpm.domain.errors import ParseError, PathNotFoundError, ValidationError
from kpm.domain.json_types import as_json_dict, as_json_list

CLI_FLAGS = {
    "disable_none": "--disable_none",
    "strict_range_check": "--strict_range_check",
    "sort_keys": "--sort_keys",
    "show_hidden": "--show_hidden",
    "debug": "--debug",
}


def _no_strings() -> list[str]:
    return []


@dataclass
class SettingsFile:
    path: Path
    entries: list[str] = field(default_factory=_no_strings)
    arguments: list[str] = field(default_factory=_no_strings)

    @property
    def directory(self) -> Path:
        return self.path.parent


def load_settings(path: Path) -> SettingsFile:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise PathNotFoundError(
            f"settings file not found: {path}",
            details=as_json_dict({"path": str(path)}),
            cause=e,
        )
    try:
        raw = as_json_dict(yaml.safe_load(text) or {})
    except yaml.YAMLError as e:
        raise ParseError(f"failed to parse {path}: {e}", details=as_json_dict({"path": str(path)}), cause=e)

    settings = SettingsFile(path=path.absolute())
    cli = as_json_dict(raw.get("kcl_cli_configs"))
    files = [str(item) for item in as_json_list(cli.get("files"))]
    single = cli.get("file")
    if isinstance(single, str):
        files.append(single)
    else:
        files.extend(str(item) for item in as_json_list(single))
    for item in files:
        entry = Path(item)
        settings.entries.append(str(entry if entry.is_absolute() else settings.directory / entry))

    for key, flag in CLI_FLAGS.items():
        if cli.get(key) is True:
            settings.arguments.append(flag)
    for option in as_json_list(raw.get("kcl_options")):
        table = as_json_dict(option)
        if "key" not in table:
            raise ValidationError(
                f"kcl_options entry without a key in {path}",
                details=as_json_dict({"path": str(path)}),
            )
        value = table.get("value")
        settings.arguments.extend(["-D", f"{table['key']}={'' if value is None else value}"])
    return settings
