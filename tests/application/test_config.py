from pathlib import Path

from kpm.application.config import KpmConfig


def test_defaults(monkeypatch):
    for name in ("KPM_HOME", "KPM_DEFAULT_OCI_REGISTRY", "KPM_FETCH_TIMEOUT", "KPM_FETCH_RETRIES", "KPM_MAX_WORKERS", "KPM_COMPILER"):
        monkeypatch.delenv(name, raising=False)
    config = KpmConfig.from_env()
    assert config.home == Path.home() / ".kpm"
    assert config.default_oci_registry == "ghcr.io/kcl-lang"
    assert config.fetch_timeout == 300.0
    assert config.compiler == "kcl"


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("KPM_HOME", str(tmp_path))
    monkeypatch.setenv("KPM_DEFAULT_OCI_REGISTRY", "registry.example.com/kcl")
    monkeypatch.setenv("KPM_FETCH_TIMEOUT", "0")
    monkeypatch.setenv("KPM_FETCH_RETRIES", "-1")
    monkeypatch.setenv("KPM_MAX_WORKERS", "not-a-number")
    config = KpmConfig.from_env()
    assert config.cache_dir == tmp_path / "cache"
    assert config.default_oci_registry == "registry.example.com/kcl"
    assert config.fetch_timeout is None
    assert config.fetch_retries == 0
    assert config.max_workers == 4
