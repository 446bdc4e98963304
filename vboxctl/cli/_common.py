from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

import scriptconfig as scfg
import ubelt as ub
from loguru import logger

from ..config import VBoxCtlConfig, load
from ..directory import VMDirectory, VMIdentity, load_directory
from ..errors import UserInputError
from ..executor import Executor
from ..machineinfo import vm_state
from ..resolver import (
    TargetSelector,
    confirm_targets,
    needs_confirmation,
    resolve_targets,
)
from ..runtime import require_tool
from ..util import expand, run_cmd

log = logger


class _BaseCommand(scfg.DataConfig):
    """Base options shared by all commands."""

    vbox = scfg.Value(
        None, help='Path to the VBoxManage binary (default: /usr/bin/VBoxManage).'
    )
    config = scfg.Value(None, help='Path to config TOML.')
    verbose = scfg.Value(
        0,
        short_alias=['v'],
        isflag='counter',
        help='Increase verbosity (-v, -vv).',
    )
    yes = scfg.Value(
        False,
        isflag=True,
        help='Do not ask for confirmation before changing VM state.',
    )
    dry_run = scfg.Value(
        False, isflag=True, help='Print VBoxManage commands without running them.'
    )


class _TargetCommand(_BaseCommand):
    """Options for commands that act on a single VM."""

    uuid = scfg.Value(None, help='Target the VM with the given uuid.')
    name = scfg.Value(
        None,
        help=(
            'Target the VM with the given name (a case-insensitive regex '
            'IF the regex matches exactly one VM).'
        ),
    )
    noregex = scfg.Value(
        False, isflag=True, help='Turns off regex matching on --name argument.'
    )


def user_config_path() -> Path:
    return Path(ub.Path.appdir('vboxctl', type='config')) / 'config.toml'


def _cfg_path(p: str | None) -> Path | None:
    if p:
        return Path(expand(p)).resolve()
    default = user_config_path()
    return default if default.exists() else None


def _load_cfg(config_path: str | None) -> VBoxCtlConfig:
    path = _cfg_path(config_path)
    if path is None:
        return VBoxCtlConfig().expanded_paths()
    if not path.exists():
        raise UserInputError(f'Config not found: {path}')
    log.debug('Loading config from {}', path)
    return load(path).expanded_paths()


@dataclass
class Session:
    cfg: VBoxCtlConfig
    executor: Executor
    directory: VMDirectory


def _open_session(args) -> Session:
    """Validate the tool, then take the one inventory snapshot for this run."""
    cfg = _load_cfg(args.config)
    if args.vbox:
        cfg.tools.vboxmanage = expand(str(args.vbox))
    cfg.tools.vboxmanage = require_tool(cfg.tools.vboxmanage)
    executor = Executor(cfg, runner=run_cmd, dry_run=bool(args.dry_run))
    directory = load_directory(executor)
    return Session(cfg, executor, directory)


def _selector(args) -> TargetSelector:
    return TargetSelector(
        uuid=args.uuid or None,
        name=args.name or None,
        exact=bool(args.noregex),
    )


def _resolve(
    args,
    session: Session,
    *,
    action: str | None = None,
    allow_multiple: bool = False,
    always_confirm: bool = False,
) -> list[VMIdentity]:
    """Resolve the target options and, for state changes, confirm when needed.

    ``action`` is None for read-only commands, which never prompt.
    """
    selector = _selector(args)
    targets = resolve_targets(
        selector, session.directory, allow_multiple=allow_multiple
    )
    if action is not None and (
        always_confirm or needs_confirmation(selector, targets)
    ):
        confirm_targets(
            targets,
            action=action,
            state_of=lambda vm: vm_state(session.executor, vm),
            yes=bool(args.yes),
        )
    return targets


def _compile_filter(pattern: str | None, *, flag: str = '--regex') -> re.Pattern:
    try:
        return re.compile(pattern or '.*', re.IGNORECASE)
    except re.error as ex:
        raise UserInputError(f'Invalid {flag} {pattern!r}: {ex}') from ex


__all__ = [name for name in globals() if not name.startswith('__')]
