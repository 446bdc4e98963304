"""CLI commands for taking and restoring snapshots."""

from __future__ import annotations

import scriptconfig as scfg

from ..errors import UserInputError
from ..lifecycle import restore_snapshot, take_snapshot
from ._common import _open_session, _resolve, _TargetCommand


class SnapshotCLI(_TargetCommand):
    """Take a snapshot of a VM."""

    snapshot_name = scfg.Value(None, help='Name of the snapshot (required).')
    note = scfg.Value('', help='Snapshot description.')
    no_replace = scfg.Value(
        False,
        isflag=True,
        help='Do not delete an existing snapshot with the same name first.',
    )
    no_live = scfg.Value(
        False, isflag=True, help='Skip the live snapshot attempt.'
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        if not args.snapshot_name:
            raise UserInputError('Missing --snapshot_name option')
        session = _open_session(args)
        (vm,) = _resolve(args, session, action=f'snapshot {args.snapshot_name}')
        outcome = take_snapshot(
            session.executor,
            vm,
            str(args.snapshot_name),
            replace=not args.no_replace,
            live=not args.no_live,
            description=str(args.note or ''),
        )
        kind = 'live' if outcome.live else 'offline'
        print(f"Took {kind} snapshot '{outcome.snapshot}' of {vm.name}")
        return 0


class RestoreCLI(_TargetCommand):
    """Restore a snapshot of a VM."""

    snapshot_name = scfg.Value(
        None, help='Snapshot to restore (default: the current snapshot).'
    )
    start = scfg.Value(
        False, isflag=True, help='Start the VM (headless) after restoring.'
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        session = _open_session(args)
        label = args.snapshot_name or 'current snapshot'
        (vm,) = _resolve(args, session, action=f'restore {label}')
        restore_snapshot(
            session.executor,
            vm,
            args.snapshot_name or None,
            start=bool(args.start),
        )
        return 0
