"""Runtime helpers for locating VBoxManage and constructing its argument lists."""

from __future__ import annotations

import os
from pathlib import Path

from .config import VBoxCtlConfig
from .errors import ToolUnavailableError
from .util import which


def vboxmanage_cmd(cfg: VBoxCtlConfig, *args: str) -> list[str]:
    return [cfg.tools.vboxmanage, *[str(a) for a in args]]


def require_tool(path: str) -> str:
    """Return a usable path to the tool or raise ToolUnavailableError."""
    tool = (path or '').strip()
    if not tool:
        raise ToolUnavailableError('No VBoxManage path configured (see --vbox).')
    if os.sep not in tool:
        found = which(tool)
        if found is None:
            raise ToolUnavailableError(f'{tool} was not found on PATH')
        return found
    p = Path(tool)
    if not p.exists():
        raise ToolUnavailableError(f'{tool} does not exist')
    if p.is_dir() or not os.access(p, os.X_OK):
        raise ToolUnavailableError(f'{tool} is not executable')
    return tool
