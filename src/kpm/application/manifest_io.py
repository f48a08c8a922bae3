from __future__ import annotations

from functools import cache
from importlib import resources
import hashlib
import json
from pathlib import Path
import tomllib

import jsonschema

from kpm.application.config import DEFAULT_OCI_REGISTRY
from kpm.domain.dependency import (
    Dependency,
    GitSource,
    LocalSource,
    OciSource,
    Source,
    TarSource,
)
from kpm.domain.errors import ManifestNotFoundError, ParseError, ValidationError
from kpm.domain.json_types import JsonDict, as_json_dict, as_json_list
from kpm.domain.manifest import MANIFEST_FILE, Manifest
from kpm.domain.naming import is_commit, is_digest, validate_package_name


@cache
def manifest_schema() -> JsonDict:
    raw = resources.files("kpm").joinpath("schemas").joinpath("kcl.mod.schema.json").read_text(encoding="utf-8")
    return as_json_dict(json.loads(raw))


def manifest_sum(raw: JsonDict) -> str:
    """Checksum of the resolution-relevant part of a manifest."""
    relevant = {
        "package": as_json_dict(raw.get("package")),
        "dependencies": as_json_dict(raw.get("dependencies")),
    }
    canonical = json.dumps(relevant, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _one_of(table: JsonDict, name: str, keys: tuple[str, ...], path: Path) -> None:
    given = [key for key in keys if table.get(key) is not None]
    if len(given) > 1:
        raise ValidationError(
            f"dependency '{name}' sets more than one of {', '.join(keys)}",
            details=as_json_dict({"dependency": name, "path": str(path), "fields": given}),
        )


def parse_source(name: str, raw: object, path: Path, registry: str) -> Source:
    if isinstance(raw, str):
        return OciSource(reference=f"oci://{registry}/{name}", tag=raw)
    table = as_json_dict(raw)
    if "path" in table:
        return LocalSource(path=str(table["path"]))
    if "git" in table:
        _one_of(table, name, ("commit", "tag", "branch"), path)
        commit = table.get("commit")
        if commit is not None and not is_commit(str(commit)):
            raise ValidationError(
                f"dependency '{name}' has an invalid commit '{commit}'",
                details=as_json_dict({"dependency": name, "source": "git", "path": str(path)}),
            )
        return GitSource(
            url=str(table["git"]),
            commit=str(commit) if commit is not None else None,
            tag=str(table["tag"]) if table.get("tag") is not None else None,
            branch=str(table["branch"]) if table.get("branch") is not None else None,
        )
    if "oci" in table:
        _one_of(table, name, ("tag", "digest"), path)
        digest = table.get("digest")
        if digest is not None and not is_digest(str(digest)):
            raise ValidationError(
                f"dependency '{name}' has an invalid digest '{digest}'",
                details=as_json_dict({"dependency": name, "source": "oci", "path": str(path)}),
            )
        return OciSource(
            reference=str(table["oci"]),
            tag=str(table["tag"]) if table.get("tag") is not None else None,
            digest=str(digest) if digest is not None else None,
        )
    if "tar" in table:
        return TarSource(location=str(table["tar"]))
    raise ValidationError(
        f"dependency '{name}' declares no source",
        details=as_json_dict({"dependency": name, "path": str(path)}),
        hint="Use one of: a version string, path, git, oci or tar.",
    )


def parse_manifest(text: str, path: Path, *, registry: str = DEFAULT_OCI_REGISTRY) -> Manifest:
    try:
        raw = as_json_dict(tomllib.loads(text))
    except tomllib.TOMLDecodeError as e:
        raise ParseError(
            f"failed to parse {path}: {e}",
            details=as_json_dict({"path": str(path)}),
            cause=e,
        )
    try:
        jsonschema.validate(raw, manifest_schema())
    except jsonschema.ValidationError as e:
        location = "/".join(str(part) for part in e.absolute_path) or "<root>"
        raise ValidationError(
            f"invalid {MANIFEST_FILE} at {location}: {e.message}",
            details=as_json_dict({"path": str(path), "field": location}),
            cause=e,
        )

    package = as_json_dict(raw.get("package"))
    name = str(package.get("name"))
    validate_package_name(name)

    dependencies: list[Dependency] = []
    seen: dict[str, str] = {}
    for dep_name, dep_raw in as_json_dict(raw.get("dependencies")).items():
        validate_package_name(dep_name, field=f"dependencies.{dep_name}")
        normalized = dep_name.replace("-", "_")
        if normalized in seen:
            raise ValidationError(
                f"duplicate dependency '{dep_name}' (already declared as '{seen[normalized]}')",
                details=as_json_dict({"dependency": dep_name, "path": str(path)}),
            )
        seen[normalized] = dep_name
        version = dep_raw if isinstance(dep_raw, str) else as_json_dict(dep_raw).get("version")
        dependencies.append(
            Dependency(
                name=dep_name,
                source=parse_source(dep_name, dep_raw, path, registry),
                version=str(version) if version is not None else None,
            )
        )

    profile = as_json_dict(raw.get("profile"))
    entries = tuple(str(entry) for entry in as_json_list(profile.get("entries")))
    edition = package.get("edition")
    return Manifest(
        name=name,
        version=str(package.get("version", "0.0.1")),
        edition=str(edition) if edition is not None else None,
        dependencies=tuple(dependencies),
        entries=entries,
        sum=manifest_sum(raw),
    )


def has_manifest(root: Path) -> bool:
    return (root / MANIFEST_FILE).is_file()


def load_manifest(root: Path, *, registry: str = DEFAULT_OCI_REGISTRY) -> Manifest:
    path = root / MANIFEST_FILE
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ManifestNotFoundError(
            f"could not load '{MANIFEST_FILE}' in '{root}'",
            details=as_json_dict({"package": str(root), "path": str(path)}),
            cause=e,
        )
    return parse_manifest(text, path, registry=registry)
