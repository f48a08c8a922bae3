from __future__ import annotations

import re

from kpm.domain.errors import ValidationError
from kpm.domain.json_types import as_json_dict

PACKAGE_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]*$")
COMMIT_PATTERN = re.compile(r"^[0-9a-f]{7,40}$")
DIGEST_PATTERN = re.compile(r"^sha256:[0-9a-f]{64}$")

RESERVED_PACKAGE_NAMES = {"vendor", "kcl", "main"}


def validate_package_name(name: str, *, field: str = "package.name") -> None:
    if not PACKAGE_NAME_PATTERN.match(name):
        raise ValidationError(
            f"invalid package name '{name}'",
            details=as_json_dict({"field": field, "value": name}),
            hint="Package names start with a letter or '_' and contain only letters, digits, '_' and '-'.",
        )
    if name in RESERVED_PACKAGE_NAMES and field != "package.name":
        raise ValidationError(
            f"dependency name '{name}' is reserved",
            details=as_json_dict({"field": field, "value": name}),
        )


def is_commit(ref: str) -> bool:
    return bool(COMMIT_PATTERN.fullmatch(ref))


def is_digest(ref: str) -> bool:
    return bool(DIGEST_PATTERN.fullmatch(ref))
