"""Sequential execution of VBoxManage invocations with outcome classification."""

from __future__ import annotations

import sys
from typing import Callable, Iterable, Sequence

from loguru import logger

from .config import VBoxCtlConfig
from .results import FATAL, OK, RECOVERABLE, SequenceResult, StepResult
from .runtime import vboxmanage_cmd
from .util import CmdResult, ToolNotFoundError, run_cmd, shell_join

log = logger


def _default_echo(line: str) -> None:
    print(line, file=sys.stdout, flush=True)


class Executor:
    """Runs VBoxManage commands one at a time and records each step.

    Commands are given as VBoxManage argument lists (without the binary);
    the configured binary path is prepended here.
    """

    def __init__(
        self,
        cfg: VBoxCtlConfig,
        *,
        runner: Callable[..., CmdResult] = run_cmd,
        echo: Callable[[str], None] | None = None,
        dry_run: bool = False,
    ):
        self.cfg = cfg
        self.runner = runner
        self.echo = echo if echo is not None else _default_echo
        self.dry_run = dry_run
        self.history: list[StepResult] = []

    def _invoke(self, args: Sequence[str]) -> StepResult:
        cmd = tuple(vboxmanage_cmd(self.cfg, *args))
        try:
            res = self.runner(list(cmd))
        except ToolNotFoundError as ex:
            step = StepResult(cmd, FATAL, None, str(ex))
        else:
            status = OK if res.code == 0 else RECOVERABLE
            step = StepResult(cmd, status, res)
        self.history.append(step)
        if not step.ok:
            log.debug('Step {}', step.describe())
        return step

    def run(self, args: Sequence[str]) -> StepResult:
        """Echo and execute one state-changing command."""
        cmd = vboxmanage_cmd(self.cfg, *args)
        if self.dry_run:
            self.echo(f'DRYRUN: {shell_join(cmd)}')
            step = StepResult(tuple(cmd), OK, CmdResult(0, '', ''))
            self.history.append(step)
            return step
        self.echo(f'$ {shell_join(cmd)}')
        return self._invoke(args)

    def query(self, args: Sequence[str]) -> StepResult:
        """Execute a read-only command; runs even in dry-run mode."""
        return self._invoke(args)

    def run_sequence(self, commands: Iterable[Sequence[str]]) -> SequenceResult:
        seq = SequenceResult()
        for args in commands:
            step = self.run(args)
            seq.executed.append(step)
            if not step.ok:
                break
        return seq
