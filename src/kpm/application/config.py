from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path

DEFAULT_OCI_REGISTRY = "ghcr.io/kcl-lang"
DEFAULT_FETCH_TIMEOUT = 300.0
DEFAULT_FETCH_RETRIES = 2
DEFAULT_MAX_WORKERS = 4


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class KpmConfig:
    home: Path
    default_oci_registry: str = DEFAULT_OCI_REGISTRY
    fetch_timeout: float | None = DEFAULT_FETCH_TIMEOUT
    fetch_retries: int = DEFAULT_FETCH_RETRIES
    max_workers: int = DEFAULT_MAX_WORKERS
    compiler: str = "kcl"
    oras: str = "oras"

    @property
    def cache_dir(self) -> Path:
        return self.home / "cache"

    @classmethod
    def from_env(cls) -> KpmConfig:
        home = os.getenv("KPM_HOME") or str(Path.home() / ".kpm")
        timeout = _env_float("KPM_FETCH_TIMEOUT", DEFAULT_FETCH_TIMEOUT)
        return cls(
            home=Path(home).expanduser(),
            default_oci_registry=os.getenv("KPM_DEFAULT_OCI_REGISTRY") or DEFAULT_OCI_REGISTRY,
            fetch_timeout=timeout if timeout > 0 else None,
            fetch_retries=max(0, _env_int("KPM_FETCH_RETRIES", DEFAULT_FETCH_RETRIES)),
            max_workers=max(1, _env_int("KPM_MAX_WORKERS", DEFAULT_MAX_WORKERS)),
            compiler=os.getenv("KPM_COMPILER") or "kcl",
            oras=os.getenv("KPM_ORAS") or "oras",
        )
