"""CLI commands for DVD media and OS type discovery."""

from __future__ import annotations

import scriptconfig as scfg

from ..errors import UserInputError
from ..lifecycle import list_ostypes, mount_medium, unmount_medium
from ._common import _BaseCommand, _open_session, _resolve, _TargetCommand


class _DriveCommand(_TargetCommand):
    controller = scfg.Value('IDE', help='Storage controller holding the drive.')
    port = scfg.Value(0, type=int, help='Controller port.')
    device = scfg.Value(0, type=int, help='Controller device.')
    force = scfg.Value(
        False, isflag=True, help='Force the unmount of a locked medium.'
    )


class MountCLI(_DriveCommand):
    """Insert an ISO (or the guest additions) into a VM's DVD drive."""

    iso = scfg.Value(None, help='Path to the ISO image.')
    additions = scfg.Value(
        False, isflag=True, help='Insert the guest additions ISO instead.'
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        if bool(args.iso) == bool(args.additions):
            raise UserInputError('Specify exactly one of --iso or --additions')
        medium = 'additions' if args.additions else str(args.iso)
        session = _open_session(args)
        (vm,) = _resolve(args, session, action=f'mount {medium}')
        mount_medium(
            session.executor,
            vm,
            medium,
            controller=str(args.controller),
            port=int(args.port),
            device=int(args.device),
            force=bool(args.force),
        )
        return 0


class UnmountCLI(_DriveCommand):
    """Eject the medium from a VM's DVD drive."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        session = _open_session(args)
        (vm,) = _resolve(args, session, action='unmount the DVD drive')
        unmount_medium(
            session.executor,
            vm,
            controller=str(args.controller),
            port=int(args.port),
            device=int(args.device),
            force=bool(args.force),
        )
        return 0


class OSTypesCLI(_BaseCommand):
    """List the OS types VirtualBox knows about."""

    regex = scfg.Value(
        None, help='Only show OS types whose id or description matches.'
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        session = _open_session(args)
        types = list_ostypes(session.executor, args.regex or None)
        width = max((len(t.id) for t in types), default=0)
        for t in types:
            print(f'{t.id:<{width}}  {t.description}')
        return 0
