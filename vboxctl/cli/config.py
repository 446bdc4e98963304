"""CLI commands for creating and inspecting the vboxctl config file."""

from __future__ import annotations

import sys
from pathlib import Path

import scriptconfig as scfg

from ..config import VBoxCtlConfig, dump_toml, save
from ..util import expand
from ._common import _BaseCommand, _load_cfg, log, user_config_path


def _target_path(config_path: str | None) -> Path:
    if config_path:
        return Path(expand(config_path)).resolve()
    return user_config_path()


class ConfigInitCLI(_BaseCommand):
    """Write a config file populated with the default settings."""

    force = scfg.Value(
        False,
        isflag=True,
        help='Overwrite the config file if it already exists.',
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        path = _target_path(args.config)
        if path.exists() and not args.force:
            print(f'Config already exists: {path}', file=sys.stderr)
            print('Use --force to overwrite it.', file=sys.stderr)
            return 1
        cfg = VBoxCtlConfig()
        if args.vbox:
            cfg.tools.vboxmanage = str(args.vbox)
        if args.dry_run:
            print(f'DRYRUN: write {path}')
            print(dump_toml(cfg), end='')
            return 0
        path.parent.mkdir(parents=True, exist_ok=True)
        save(path, cfg)
        log.info('Wrote config {}', path)
        print(f'Wrote config: {path}')
        return 0


class ConfigShowCLI(_BaseCommand):
    """Show the effective configuration as TOML."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        if args.vbox:
            cfg.tools.vboxmanage = expand(str(args.vbox))
        path = _target_path(args.config)
        source = path if path.exists() else '(built-in defaults)'
        print(f'# Source: {source}')
        print(dump_toml(cfg), end='')
        return 0


class ConfigPathCLI(_BaseCommand):
    """Print the config file location and whether it exists."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        path = _target_path(args.config)
        print(f'{path} ({"exists" if path.exists() else "missing"})')
        return 0


class ConfigModalCLI(scfg.ModalCLI):
    """Config file management commands."""

    init = ConfigInitCLI
    show = ConfigShowCLI
    path = ConfigPathCLI
