"""Top-level modal CLI wiring, argv normalization, and logging setup."""

from __future__ import annotations

import os
import sys

import scriptconfig as scfg
from loguru import logger

from ..errors import VBoxCtlError
from ._common import _load_cfg, log
from .config import ConfigModalCLI
from .media import MountCLI, OSTypesCLI, UnmountCLI
from .power import StopAllCLI, StopCLI, SuspendAllCLI, SuspendCLI
from .snapshot import RestoreCLI, SnapshotCLI
from .vm import (
    CloneCLI,
    CreateCLI,
    DeleteCLI,
    ImportCLI,
    InfoCLI,
    ListCLI,
    MenuCLI,
    PickCLI,
    StartCLI,
)


class VBoxCtlModalCLI(scfg.ModalCLI):
    """VirtualBox Management Utility."""

    list = ListCLI
    info = InfoCLI
    create = CreateCLI
    import_vm = ImportCLI
    clone = CloneCLI
    delete = DeleteCLI
    snapshot = SnapshotCLI
    restore = RestoreCLI
    start = StartCLI
    stop = StopCLI
    stopall = StopAllCLI
    suspend = SuspendCLI
    suspendall = SuspendAllCLI
    ostypes = OSTypesCLI
    mount = MountCLI
    unmount = UnmountCLI
    menu = MenuCLI
    pick = PickCLI
    config = ConfigModalCLI


def main(argv: list[str] | None = None) -> None:
    verbosity = 1
    config_value = None
    if argv is None:
        argv = sys.argv[1:]
    if not argv:
        print('No subcommand found', file=sys.stderr)
        print('---', file=sys.stderr)
        print(_usage(), file=sys.stderr)
        sys.exit(1)
    argv = _normalize_argv(argv)
    if '--config' in argv:
        try:
            config_value = argv[argv.index('--config') + 1]
        except IndexError:
            pass
    try:
        verbosity = _load_cfg(config_value).verbosity
    except Exception:
        verbosity = 1

    _setup_logging(_count_verbose(argv), verbosity)

    try:
        rc = VBoxCtlModalCLI.main(argv=argv, _noexit=True)
    except VBoxCtlError as ex:
        print(f'ERROR: {ex}', file=sys.stderr)
        log.debug('vboxctl error: {!r}', ex)
        sys.exit(1)
    except Exception as ex:
        print(f'ERROR: {ex}', file=sys.stderr)
        log.error('Unhandled vboxctl error: {}', ex)
        sys.exit(2)

    if any(flag in argv for flag in ('-h', '--help')):
        sys.exit(0)
    if isinstance(rc, int):
        sys.exit(rc)
    sys.exit(0)


def _setup_logging(args_verbose: int, cfg_verbosity: int) -> None:
    logger.remove()
    effective_verbosity = args_verbose if args_verbose > 0 else cfg_verbosity
    level = 'WARNING'
    if effective_verbosity == 1:
        level = 'INFO'
    elif effective_verbosity >= 2:
        level = 'DEBUG'
    colorize = sys.stderr.isatty() and os.getenv('NO_COLOR') is None
    logger.add(
        sys.stderr,
        level=level,
        colorize=colorize,
        format='<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>',
    )
    log.debug(
        'Logging configured at {} (effective_verbosity={}, colorize={})',
        level,
        effective_verbosity,
        colorize,
    )


def _normalize_argv(argv: list[str]) -> list[str]:
    """Map accepted spellings onto scriptconfig command names."""
    if not argv:
        return argv
    aliases = {
        'import': 'import_vm',
        'ls': 'list',
        'stop-all': 'stopall',
        'suspend-all': 'suspendall',
        'os-types': 'ostypes',
    }
    head = aliases.get(argv[0], argv[0])
    return [head, *argv[1:]]


def _count_verbose(argv: list[str]) -> int:
    count = 0
    for item in argv:
        if item == '--verbose':
            count += 1
        elif item.startswith('-') and not item.startswith('--'):
            short = item[1:]
            if short and set(short) <= {'v'}:
                count += len(short)
    return count


def _usage() -> str:
    lines = [
        'Usage:',
        '  vboxctl <SUBCOMMAND> [options]',
        '',
        'Available subcommands:',
    ]
    for name, sub in vars(VBoxCtlModalCLI).items():
        if isinstance(sub, type) and issubclass(
            sub, (scfg.DataConfig, scfg.ModalCLI)
        ):
            summary = (sub.__doc__ or '').strip().splitlines()[0:1]
            label = 'import' if name == 'import_vm' else name
            lines.append(f'  {label}: {" ".join(summary)}')
    return '\n'.join(lines)
