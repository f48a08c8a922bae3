"""Git fetch with ref pinning and a commit-keyed cache."""

from __future__ import annotations

from dataclasses import replace
import shutil

from kpm.adapters.cache.store import FetchCache, cache_key
from kpm.adapters.fetchers.base import run_tool, unavailable
from kpm.domain.dependency import GitSource
from kpm.domain.naming import is_commit
from kpm.ports.command_runner import CommandRunnerPort
from kpm.ports.source_fetcher import FetchedSource, FetchRequest

FULL_COMMIT_LENGTH = 40


class GitFetcher:
    def __init__(self, runner: CommandRunnerPort, cache: FetchCache, *, retries: int = 2) -> None:
        self.runner = runner
        self.cache = cache
        self.retries = retries

    def fetch(self, request: FetchRequest) -> FetchedSource:
        source = request.dependency.source
        if not isinstance(source, GitSource):
            raise TypeError(f"GitFetcher cannot fetch {source.kind} sources")

        commit = self._resolve_commit(source, request)
        if commit is not None:
            with self.cache.locked("git", cache_key(source.url, commit)) as dest:
                if dest.is_dir():
                    return FetchedSource(path=dest, pinned=replace(source, commit=commit))
                return self._checkout(source, commit, request)
        return self._checkout(source, source.ref, request)

    def _resolve_commit(self, source: GitSource, request: FetchRequest) -> str | None:
        """Resolve the declared ref to a full commit; ``None`` for abbreviated commits."""
        if source.commit is not None:
            if len(source.commit) == FULL_COMMIT_LENGTH and is_commit(source.commit):
                return source.commit
            return None
        if source.tag is not None:
            patterns = [f"refs/tags/{source.tag}", f"refs/tags/{source.tag}^{{}}"]
        elif source.branch is not None:
            patterns = [f"refs/heads/{source.branch}"]
        else:
            patterns = ["HEAD"]
        output = run_tool(
            self.runner,
            ["git", "ls-remote", source.url, *patterns],
            request,
            retries=self.retries,
        )
        refs: dict[str, str] = {}
        for line in output.splitlines():
            parts = line.split()
            if len(parts) == 2:
                refs[parts[1]] = parts[0]
        # annotated tags: the peeled entry names the commit
        for pattern in reversed(patterns):
            if pattern in refs:
                return refs[pattern]
        raise unavailable(request, f"ref '{source.ref}' not found", reason="not_found")

    def _checkout(self, source: GitSource, ref: str, request: FetchRequest) -> FetchedSource:
        stage = self.cache.stage("git")
        try:
            work = stage / "repo"
            run_tool(
                self.runner,
                ["git", "clone", "--quiet", source.url, str(work)],
                request,
                retries=self.retries,
            )
            run_tool(self.runner, ["git", "checkout", "--quiet", ref], request, cwd=work)
            commit = run_tool(self.runner, ["git", "rev-parse", "HEAD"], request, cwd=work)
            shutil.rmtree(work / ".git", ignore_errors=True)
            dest = self.cache.entry("git", cache_key(source.url, commit))
            self.cache.publish(work, dest)
        finally:
            shutil.rmtree(stage, ignore_errors=True)
        return FetchedSource(path=dest, pinned=replace(source, commit=commit))
