"""Helpers shared by the network fetchers."""

from __future__ import annotations

from pathlib import Path
import re
import time

from kpm.adapters.errors import (
    CommandCancelled,
    CommandFailed,
    CommandNotFound,
    CommandTimeout,
)
from kpm.domain.errors import SourceUnavailableError
from kpm.domain.json_types import JsonDict, as_json_dict
from kpm.ports.command_runner import CommandRunnerPort
from kpm.ports.source_fetcher import FetchRequest

AUTH_PATTERN = re.compile(r"unauthorized|authentication required|\bdenied\b|\b40[13]\b", re.IGNORECASE)
NOT_FOUND_PATTERN = re.compile(
    r"not found|manifest_unknown|name_unknown|couldn.t find remote ref|\b404\b", re.IGNORECASE
)
RETRY_BACKOFF = 1.0


def remaining(request: FetchRequest) -> float | None:
    if request.deadline is None:
        return None
    return request.deadline - time.monotonic()


def classify(stderr: str) -> str:
    if AUTH_PATTERN.search(stderr):
        return "auth"
    if NOT_FOUND_PATTERN.search(stderr):
        return "not_found"
    return "transient"


def unavailable(
    request: FetchRequest,
    message: str,
    *,
    reason: str,
    cause: Exception | None = None,
    extra: JsonDict | None = None,
) -> SourceUnavailableError:
    dep = request.dependency
    details = {
        "dependency": dep.name,
        "source": dep.kind,
        "locator": dep.source.locator(),
        "reason": reason,
        **(extra or {}),
    }
    return SourceUnavailableError(
        f"failed to fetch '{dep.name}' ({dep.kind}) from {dep.source.locator()}: {message}",
        details=as_json_dict(details),
        cause=cause,
    )


def check_cancelled(request: FetchRequest) -> None:
    if request.cancel.is_set():
        raise unavailable(request, "cancelled", reason="cancelled")
    left = remaining(request)
    if left is not None and left <= 0:
        raise unavailable(request, "deadline exceeded", reason="timeout")


def run_tool(
    runner: CommandRunnerPort,
    args: list[str],
    request: FetchRequest,
    *,
    cwd: Path | None = None,
    retries: int = 0,
) -> str:
    """Run a network tool for ``request``, retrying transient failures.

    Authentication and not-found failures are never retried.
    """
    attempt = 0
    while True:
        check_cancelled(request)
        try:
            result = runner.run(args, cwd=cwd, timeout=remaining(request), cancel=request.cancel)
        except CommandNotFound as e:
            raise unavailable(request, f"'{args[0]}' is not installed", reason="tool_missing", cause=e)
        except CommandTimeout as e:
            raise unavailable(request, "deadline exceeded", reason="timeout", cause=e)
        except CommandCancelled as e:
            raise unavailable(request, "cancelled", reason="cancelled", cause=e)
        if result.exit_code == 0:
            return result.stdout.strip()

        stderr = result.stderr.strip()
        reason = classify(stderr)
        if reason != "transient" or attempt >= retries:
            failure = CommandFailed(
                f"{' '.join(args)} exited with {result.exit_code}",
                details=as_json_dict({"stderr": stderr}),
            )
            raise unavailable(
                request,
                stderr or failure.message,
                reason=reason,
                cause=failure,
                extra=as_json_dict({"stderr": stderr}),
            )
        attempt += 1
        request.cancel.wait(RETRY_BACKOFF * attempt)
