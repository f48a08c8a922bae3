from __future__ import annotations

from pathlib import Path

import yaml

from kpm.adapters.errors import CommandNotFound, CommandTimeout
from kpm.domain.errors import CompileError
from kpm.domain.json_types import JsonValue, as_json_dict, coerce_json_value
from kpm.ports.command_runner import CommandRunnerPort
from kpm.ports.compiler import CompileRequest


class KclCliCompiler:
    """Runs ``kcl run`` and parses the YAML it prints."""

    def __init__(
        self,
        runner: CommandRunnerPort,
        *,
        executable: str = "kcl",
        timeout: float | None = None,
    ) -> None:
        self.runner = runner
        self.executable = executable
        self.timeout = timeout

    def command(self, request: CompileRequest) -> list[str]:
        args = [self.executable, "run", *(str(entry) for entry in request.entries)]
        for name, path in sorted(request.dependencies.items()):
            args.extend(["-E", f"{name}={path}"])
        args.extend(request.options.arguments)
        return args

    def compile(self, request: CompileRequest) -> JsonValue:
        args = self.command(request)
        cwd = Path(request.options.work_dir) if request.options.work_dir else request.package_root
        details = as_json_dict({"package": str(request.package_root)})
        try:
            result = self.runner.run(args, cwd=cwd, timeout=self.timeout)
        except CommandNotFound as e:
            raise CompileError(
                f"compiler '{self.executable}' not found",
                details=details,
                hint="Install the KCL CLI or set KPM_COMPILER.",
                cause=e,
            )
        except CommandTimeout as e:
            raise CompileError(str(e), details=details, cause=e)
        if result.exit_code != 0:
            raise CompileError(result.stderr or result.stdout, details=details)
        try:
            documents = [doc for doc in yaml.safe_load_all(result.stdout) if doc is not None]
        except yaml.YAMLError as e:
            raise CompileError(f"compiler output is not valid YAML: {e}", details=details, cause=e)
        if not documents:
            return None
        if len(documents) == 1:
            return coerce_json_value(documents[0])
        return coerce_json_value(documents)
