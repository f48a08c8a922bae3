"""OCI artifact fetch through the ``oras`` CLI."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
import re
import shutil

from kpm.adapters.archive import tarball
from kpm.adapters.cache.store import FetchCache, cache_key
from kpm.adapters.fetchers.base import run_tool, unavailable
from kpm.domain.dependency import OciSource
from kpm.domain.json_types import as_json_dict
from kpm.domain.naming import is_digest
from kpm.ports.command_runner import CommandRunnerPort
from kpm.ports.source_fetcher import FetchedSource, FetchRequest

PULLED_DIGEST = re.compile(r"Digest:\s*(sha256:[0-9a-f]{64})")


class OciFetcher:
    def __init__(
        self,
        runner: CommandRunnerPort,
        cache: FetchCache,
        *,
        executable: str = "oras",
        retries: int = 2,
    ) -> None:
        self.runner = runner
        self.cache = cache
        self.executable = executable
        self.retries = retries

    def fetch(self, request: FetchRequest) -> FetchedSource:
        source = request.dependency.source
        if not isinstance(source, OciSource):
            raise TypeError(f"OciFetcher cannot fetch {source.kind} sources")

        digest = source.digest or self._resolve_digest(source, request)
        pinned = replace(source, digest=digest)
        with self.cache.locked("oci", cache_key(source.repository, digest)) as dest:
            if not dest.is_dir():
                self._pull(pinned, dest, request)
        return FetchedSource(path=tarball.single_root(dest), pinned=pinned)

    def _resolve_digest(self, source: OciSource, request: FetchRequest) -> str:
        output = run_tool(
            self.runner,
            [self.executable, "resolve", source.pull_ref()],
            request,
            retries=self.retries,
        )
        digest = output.strip().splitlines()[-1].strip() if output.strip() else ""
        if not is_digest(digest):
            raise unavailable(
                request,
                f"registry returned an invalid digest for {source.pull_ref()}",
                reason="manifest_not_found",
                extra=as_json_dict({"output": output}),
            )
        return digest

    def _pull(self, pinned: OciSource, dest: Path, request: FetchRequest) -> None:
        stage = self.cache.stage("oci")
        try:
            layers = stage / "layers"
            content = stage / "content"
            layers.mkdir()
            content.mkdir()
            output = run_tool(
                self.runner,
                [self.executable, "pull", pinned.pull_ref(), "--output", str(layers)],
                request,
                retries=self.retries,
            )
            match = PULLED_DIGEST.search(output)
            if match and match.group(1) != pinned.digest:
                raise unavailable(
                    request,
                    f"digest mismatch after pull: expected {pinned.digest}, got {match.group(1)}",
                    reason="digest_mismatch",
                    extra=as_json_dict({"expected": pinned.digest, "actual": match.group(1)}),
                )
            for layer in sorted(layers.rglob("*")):
                if not layer.is_file():
                    continue
                if layer.name.endswith(tarball.TAR_SUFFIXES):
                    tarball.extract(layer, content)
                else:
                    target = content / layer.relative_to(layers)
                    target.parent.mkdir(parents=True, exist_ok=True)
                    shutil.copy2(layer, target)
            self.cache.publish(content, dest)
        finally:
            shutil.rmtree(stage, ignore_errors=True)
