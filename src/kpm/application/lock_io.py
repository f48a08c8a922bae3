from __future__ import annotations

from pathlib import Path
import threading
import tomllib

import tomli_w

from kpm.adapters.errors import AdapterError
from kpm.adapters.workspace.filesystem import FilesystemWorkspace
from kpm.domain.dependency import GitSource, LocalSource, OciSource, Source, TarSource
from kpm.domain.errors import ParseError, StorageError
from kpm.domain.json_types import JsonDict, as_json_dict
from kpm.domain.lock import LockEntry, LockFile
from kpm.domain.manifest import LOCK_FILE
from kpm.ports.workspace import WorkspacePort

LOCK_FORMAT_VERSION = 1

WRITER_STRIPES = 64

# roots hash onto a fixed pool of writer locks
_writers = tuple(threading.Lock() for _ in range(WRITER_STRIPES))


def _writer_lock(root: Path) -> threading.Lock:
    return _writers[hash(root.resolve()) % WRITER_STRIPES]


def _entry_table(entry: LockEntry) -> JsonDict:
    table: JsonDict = {
        "name": entry.name,
        "version": entry.version,
        "source": entry.source.kind,
        **entry.source.to_table(),
        "sum": entry.sum,
        "local_path": entry.local_path,
    }
    return {key: table[key] for key in sorted(table)}


def serialize_lock(lock: LockFile) -> str:
    payload: JsonDict = {
        "lock_version": LOCK_FORMAT_VERSION,
        "manifest": {"sum": lock.manifest_sum},
        "dependencies": {name: _entry_table(lock.entries[name]) for name in sorted(lock.entries)},
    }
    return tomli_w.dumps(payload)


def _required(table: JsonDict, key: str, name: str, path: Path) -> str:
    value = table.get(key)
    if not isinstance(value, str):
        raise ParseError(
            f"lock entry '{name}' is missing '{key}' in {path}",
            details=as_json_dict({"path": str(path), "dependency": name, "field": key}),
        )
    return value


def _optional(table: JsonDict, key: str) -> str | None:
    value = table.get(key)
    return value if isinstance(value, str) else None


def _parse_source(table: JsonDict, name: str, path: Path) -> Source:
    kind = _required(table, "source", name, path)
    if kind == "local":
        return LocalSource(path=_required(table, "path", name, path))
    if kind == "git":
        return GitSource(
            url=_required(table, "git", name, path),
            commit=_optional(table, "commit"),
            tag=_optional(table, "tag"),
            branch=_optional(table, "branch"),
        )
    if kind == "oci":
        return OciSource(
            reference=_required(table, "oci", name, path),
            tag=_optional(table, "tag"),
            digest=_optional(table, "digest"),
        )
    if kind == "tar":
        return TarSource(location=_required(table, "tar", name, path))
    raise ParseError(
        f"lock entry '{name}' has unknown source '{kind}' in {path}",
        details=as_json_dict({"path": str(path), "dependency": name, "source": kind}),
    )


def parse_lock(text: str, path: Path) -> LockFile:
    try:
        raw = as_json_dict(tomllib.loads(text))
    except tomllib.TOMLDecodeError as e:
        raise ParseError(f"failed to parse {path}: {e}", details=as_json_dict({"path": str(path)}), cause=e)
    manifest = as_json_dict(raw.get("manifest"))
    entries: dict[str, LockEntry] = {}
    for name, value in as_json_dict(raw.get("dependencies")).items():
        table = as_json_dict(value)
        entries[name] = LockEntry(
            name=_optional(table, "name") or name,
            version=_optional(table, "version") or "",
            source=_parse_source(table, name, path),
            sum=_required(table, "sum", name, path),
            local_path=_optional(table, "local_path") or "",
        )
    return LockFile(manifest_sum=str(manifest.get("sum", "")), entries=entries)


def read_lock(root: Path) -> LockFile | None:
    path = root / LOCK_FILE
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    return parse_lock(text, path)


def write_lock(root: Path, lock: LockFile, workspace: WorkspacePort | None = None) -> bool:
    """Atomically replace the lock file; returns False when the content is unchanged."""
    content = serialize_lock(lock)
    ws = workspace or FilesystemWorkspace(root)
    path = root / LOCK_FILE
    with _writer_lock(root):
        try:
            if path.is_file() and path.read_text(encoding="utf-8") == content:
                return False
            ws.write_atomic(Path(LOCK_FILE), content)
        except (AdapterError, OSError) as e:
            raise StorageError(
                f"failed to write {path}",
                details=as_json_dict({"package": str(root), "path": str(path)}),
                cause=e,
            )
    return True
