from dataclasses import dataclass

from kpm.domain.json_types import JsonDict


@dataclass
class AdapterError(Exception):
    message: str
    details: JsonDict | None = None
    hint: str | None = None
    cause: Exception | None = None

    def __str__(self) -> str:
        return self.message


class WorkspaceCommitError(AdapterError):
    pass


class CommandNotFound(AdapterError):
    pass


class CommandFailed(AdapterError):
    @property
    def stderr(self) -> str:
        return str((self.details or {}).get("stderr", ""))


class CommandTimeout(AdapterError):
    pass


class CommandCancelled(AdapterError):
    pass
