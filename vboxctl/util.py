"""Shared utility helpers for subprocess execution, paths, and command formatting."""

from __future__ import annotations

import os
import shlex
import subprocess
from dataclasses import dataclass
from typing import Optional, Sequence

from loguru import logger

log = logger


@dataclass(frozen=True)
class CmdResult:
    code: int
    stdout: str
    stderr: str


class ToolNotFoundError(RuntimeError):
    """The executable could not be launched at all."""

    def __init__(self, cmd: Sequence[str], reason: str = ''):
        self.cmd = list(cmd)
        self.tool = self.cmd[0] if self.cmd else ''
        msg = f'Unable to execute {self.tool}'
        if reason:
            msg = f'{msg}: {reason}'
        super().__init__(msg)


def shell_join(cmd: Sequence[str]) -> str:
    return ' '.join(shlex.quote(c) for c in cmd)


def run_cmd(cmd: Sequence[str]) -> CmdResult:
    """
    Run ``cmd`` with captured text output and return its result.

    A non-zero exit code is returned, not raised; the caller classifies it.
    Raises ToolNotFoundError when the executable cannot be launched.
    """
    log.opt(depth=1).debug('RUN: {}', shell_join(cmd))
    try:
        p = subprocess.run(list(cmd), capture_output=True, text=True)
    except (FileNotFoundError, PermissionError) as ex:
        log.opt(depth=1).error('Cannot launch {}: {}', cmd[0], ex)
        raise ToolNotFoundError(cmd, str(ex)) from ex
    res = CmdResult(p.returncode, p.stdout or '', p.stderr or '')
    if p.returncode == 0:
        log.opt(depth=1).debug('Command ok code=0 cmd={}', shell_join(cmd))
    else:
        log.opt(depth=1).debug(
            'Command failed code={} cmd={} stderr={}',
            p.returncode,
            shell_join(cmd),
            res.stderr.strip(),
        )
    return res


def which(cmd: str) -> Optional[str]:
    from shutil import which as _which

    return _which(cmd)


def expand(path: str) -> str:
    return os.path.expandvars(os.path.expanduser(path))
