from __future__ import annotations

from pathlib import Path
import subprocess
import threading
import time

from kpm.adapters.errors import CommandCancelled, CommandNotFound, CommandTimeout
from kpm.domain.json_types import as_json_dict
from kpm.ports.command_runner import CommandResult

POLL_INTERVAL = 0.1


class SubprocessCommandRunner:
    """Runs external tools; a set ``cancel`` event terminates the child process."""

    def __init__(self, env: dict[str, str] | None = None) -> None:
        self.env = env

    def run(
        self,
        args: list[str],
        *,
        cwd: Path | None = None,
        timeout: float | None = None,
        cancel: threading.Event | None = None,
    ) -> CommandResult:
        try:
            process = subprocess.Popen(
                args,
                cwd=cwd,
                env=self.env,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                text=True,
            )
        except FileNotFoundError as e:
            raise CommandNotFound(
                f"command not found: {args[0]}",
                details=as_json_dict({"argv": " ".join(args)}),
                cause=e,
            )

        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            try:
                stdout, stderr = process.communicate(timeout=POLL_INTERVAL)
                break
            except subprocess.TimeoutExpired:
                if cancel is not None and cancel.is_set():
                    _stop(process)
                    raise CommandCancelled(
                        f"command cancelled: {' '.join(args)}",
                        details=as_json_dict({"argv": " ".join(args)}),
                    )
                if deadline is not None and time.monotonic() >= deadline:
                    _stop(process)
                    raise CommandTimeout(
                        f"command timed out after {timeout}s: {' '.join(args)}",
                        details=as_json_dict({"argv": " ".join(args), "timeout": timeout}),
                    )
        return CommandResult(exit_code=process.returncode, stdout=stdout, stderr=stderr)


def _stop(process: subprocess.Popen[str]) -> None:
    process.terminate()
    try:
        process.communicate(timeout=5)
    except subprocess.TimeoutExpired:
        process.kill()
        process.communicate()
