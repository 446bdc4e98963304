"""Result values returned by the command executor and lifecycle operations."""

from __future__ import annotations

from dataclasses import dataclass, field

from .errors import OperationFailed, ToolUnavailableError
from .util import CmdResult, shell_join

OK = 'ok'
RECOVERABLE = 'recoverable'
FATAL = 'fatal'


@dataclass(frozen=True)
class StepResult:
    """Outcome of a single external command.

    ``recoverable`` means the tool ran and reported failure; ``fatal`` means
    the tool could not be launched at all.
    """

    cmd: tuple[str, ...]
    status: str
    result: CmdResult | None = None
    error: str = ''

    @property
    def ok(self) -> bool:
        return self.status == OK

    @property
    def recoverable(self) -> bool:
        return self.status == RECOVERABLE

    @property
    def fatal(self) -> bool:
        return self.status == FATAL

    @property
    def stdout(self) -> str:
        return self.result.stdout if self.result is not None else ''

    def describe(self) -> str:
        if self.ok:
            return f'ok: {shell_join(self.cmd)}'
        detail = self.error
        if not detail and self.result is not None:
            detail = (self.result.stderr or self.result.stdout).strip()
        code = self.result.code if self.result is not None else None
        return f'{self.status} (code={code}): {shell_join(self.cmd)}\n{detail}'.strip()

    def raise_for_status(self) -> 'StepResult':
        if self.fatal:
            raise ToolUnavailableError(self.error or f'Unable to execute {self.cmd[0]}')
        if self.recoverable:
            raise OperationFailed(
                f'Command failed: {self.describe()}',
                cmd=list(self.cmd),
                result=self.result,
            )
        return self


@dataclass
class SequenceResult:
    executed: list[StepResult] = field(default_factory=list)

    @property
    def failure(self) -> StepResult | None:
        if self.executed and not self.executed[-1].ok:
            return self.executed[-1]
        return None

    @property
    def ok(self) -> bool:
        return self.failure is None


@dataclass
class PowerOutcome:
    vm_name: str
    previous_state: str
    issued: str | None = None
    waited: bool = False
    final_state: str = ''
    error: str = ''


@dataclass
class SnapshotOutcome:
    vm_name: str
    snapshot: str
    attempts: list[StepResult] = field(default_factory=list)
    live: bool = False
