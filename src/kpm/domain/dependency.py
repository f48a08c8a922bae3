"""Dependency source declarations.

A dependency is exactly one of :class:`LocalSource`, :class:`GitSource`,
:class:`OciSource` or :class:`TarSource`. Declarations coming from a manifest
may carry mutable references (a git tag or branch, an OCI tag); the fetchers
return the same shape with the immutable reference filled in (the pinned
locator).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, TypeAlias

from kpm.domain.json_types import JsonDict

SourceKind = Literal["local", "git", "oci", "tar"]


@dataclass(frozen=True)
class LocalSource:
    path: str

    kind: SourceKind = field(default="local", init=False)

    def locator(self) -> str:
        return self.path

    def to_table(self) -> JsonDict:
        return {"path": self.path}


@dataclass(frozen=True)
class GitSource:
    url: str
    commit: str | None = None
    tag: str | None = None
    branch: str | None = None

    kind: SourceKind = field(default="git", init=False)

    @property
    def is_pinned(self) -> bool:
        return self.commit is not None

    @property
    def ref(self) -> str:
        return self.commit or self.tag or self.branch or "HEAD"

    def locator(self) -> str:
        return f"{self.url}@{self.ref}"

    def to_table(self) -> JsonDict:
        table: JsonDict = {"git": self.url}
        if self.commit is not None:
            table["commit"] = self.commit
        if self.tag is not None:
            table["tag"] = self.tag
        if self.branch is not None:
            table["branch"] = self.branch
        return table


@dataclass(frozen=True)
class OciSource:
    reference: str
    tag: str | None = None
    digest: str | None = None

    kind: SourceKind = field(default="oci", init=False)

    @property
    def is_pinned(self) -> bool:
        return self.digest is not None

    @property
    def repository(self) -> str:
        return self.reference.removeprefix("oci://")

    def pull_ref(self) -> str:
        if self.digest is not None:
            return f"{self.repository}@{self.digest}"
        return f"{self.repository}:{self.tag or 'latest'}"

    def locator(self) -> str:
        return self.pull_ref()

    def to_table(self) -> JsonDict:
        table: JsonDict = {"oci": self.reference}
        if self.tag is not None:
            table["tag"] = self.tag
        if self.digest is not None:
            table["digest"] = self.digest
        return table


@dataclass(frozen=True)
class TarSource:
    location: str

    kind: SourceKind = field(default="tar", init=False)

    @property
    def is_remote(self) -> bool:
        return self.location.startswith(("http://", "https://"))

    def locator(self) -> str:
        return self.location

    def to_table(self) -> JsonDict:
        return {"tar": self.location}


Source: TypeAlias = LocalSource | GitSource | OciSource | TarSource


@dataclass(frozen=True)
class Dependency:
    name: str
    source: Source
    version: str | None = None

    @property
    def kind(self) -> SourceKind:
        return self.source.kind


def same_origin(declared: Source, pinned: Source) -> bool:
    """Whether a pinned locator was produced from the given declaration."""
    match declared, pinned:
        case LocalSource(path=a), LocalSource(path=b):
            return a == b
        case TarSource(location=a), TarSource(location=b):
            return a == b
        case GitSource(), GitSource():
            if declared.url != pinned.url:
                return False
            if declared.commit is not None:
                return pinned.commit is not None and pinned.commit.startswith(declared.commit)
            return declared.tag == pinned.tag and declared.branch == pinned.branch
        case OciSource(), OciSource():
            if declared.repository != pinned.repository:
                return False
            if declared.digest is not None:
                return declared.digest == pinned.digest
            return declared.tag == pinned.tag
    return False
