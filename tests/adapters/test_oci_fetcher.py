from pathlib import Path
import threading

import pytest

from conftest import ScriptedRunner, failed, ok, write_package
from kpm.adapters.archive import tarball
from kpm.adapters.cache.store import FetchCache
from kpm.adapters.fetchers.oci import OciFetcher
from kpm.domain.dependency import Dependency, OciSource
from kpm.domain.errors import SourceUnavailableError
from kpm.ports.source_fetcher import FetchRequest

DIGEST = "sha256:" + "2" * 64
OTHER_DIGEST = "sha256:" + "3" * 64
REFERENCE = "oci://ghcr.io/kcl-lang/helloworld"


def _request(source, tmp_path):
    return FetchRequest(dependency=Dependency("helloworld", source), base_dir=tmp_path, cancel=threading.Event())


@pytest.fixture
def layer(tmp_path):
    package = write_package(tmp_path / "artifact", "helloworld")
    return tarball.create(package, tmp_path / "helloworld_0.1.0.tar")


def _registry(layer, pulled_digest=DIGEST):
    def handler(args, cwd):
        if args[1] == "resolve":
            return ok(DIGEST + "\n")
        if args[1] == "pull":
            output = Path(args[args.index("--output") + 1])
            (output / layer.name).write_bytes(layer.read_bytes())
            return ok(f"Downloaded {layer.name}\nPulled {args[2]}\nDigest: {pulled_digest}\n")
        raise AssertionError(args)

    return handler


def test_tag_is_resolved_then_pulled_by_digest(tmp_path, layer):
    runner = ScriptedRunner(_registry(layer))
    fetcher = OciFetcher(runner, FetchCache(tmp_path / "cache"), retries=0)
    fetched = fetcher.fetch(_request(OciSource(REFERENCE, tag="0.1.0"), tmp_path))

    assert fetched.pinned == OciSource(REFERENCE, tag="0.1.0", digest=DIGEST)
    assert (fetched.path / "kcl.mod").is_file()
    assert runner.calls[0] == ["oras", "resolve", "ghcr.io/kcl-lang/helloworld:0.1.0"]
    assert runner.calls[1][:3] == ["oras", "pull", f"ghcr.io/kcl-lang/helloworld@{DIGEST}"]


def test_digest_source_hits_cache(tmp_path, layer):
    runner = ScriptedRunner(_registry(layer))
    fetcher = OciFetcher(runner, FetchCache(tmp_path / "cache"), retries=0)
    source = OciSource(REFERENCE, digest=DIGEST)
    first = fetcher.fetch(_request(source, tmp_path))
    second = fetcher.fetch(_request(source, tmp_path))
    assert first.path == second.path
    assert [call[1] for call in runner.calls] == ["pull"]


def test_pulled_digest_mismatch(tmp_path, layer):
    runner = ScriptedRunner(_registry(layer, pulled_digest=OTHER_DIGEST))
    cache = FetchCache(tmp_path / "cache")
    fetcher = OciFetcher(runner, cache, retries=0)
    with pytest.raises(SourceUnavailableError) as excinfo:
        fetcher.fetch(_request(OciSource(REFERENCE, tag="0.1.0"), tmp_path))
    assert excinfo.value.details["reason"] == "digest_mismatch"
    assert list((tmp_path / "cache" / "oci").iterdir()) == []


def test_invalid_resolve_output(tmp_path):
    runner = ScriptedRunner(lambda args, cwd: ok("not-a-digest"))
    fetcher = OciFetcher(runner, FetchCache(tmp_path / "cache"), retries=0)
    with pytest.raises(SourceUnavailableError) as excinfo:
        fetcher.fetch(_request(OciSource(REFERENCE, tag="0.1.0"), tmp_path))
    assert excinfo.value.details["reason"] == "manifest_not_found"


@pytest.mark.parametrize(
    ("stderr", "reason"),
    [
        ("Error: failed to resolve: GET https://ghcr.io/v2/x: unexpected status code 401 Unauthorized", "auth"),
        ("Error: ghcr.io/kcl-lang/helloworld:9.9.9: not found", "not_found"),
        ("Error: dial tcp: i/o timeout", "transient"),
    ],
)
def test_registry_failures_are_classified(tmp_path, stderr, reason):
    runner = ScriptedRunner(lambda args, cwd: failed(stderr))
    fetcher = OciFetcher(runner, FetchCache(tmp_path / "cache"), retries=0)
    with pytest.raises(SourceUnavailableError) as excinfo:
        fetcher.fetch(_request(OciSource(REFERENCE, tag="9.9.9"), tmp_path))
    assert excinfo.value.details["reason"] == reason
    assert excinfo.value.details["stderr"] == stderr


def test_missing_oras(tmp_path):
    from kpm.adapters.errors import CommandNotFound

    def handler(args, cwd):
        raise CommandNotFound("command not found: oras")

    fetcher = OciFetcher(ScriptedRunner(handler), FetchCache(tmp_path / "cache"), retries=0)
    with pytest.raises(SourceUnavailableError) as excinfo:
        fetcher.fetch(_request(OciSource(REFERENCE, tag="0.1.0"), tmp_path))
    assert excinfo.value.details["reason"] == "tool_missing"
