"""CLI commands that stop or suspend one or many VMs."""

from __future__ import annotations

import scriptconfig as scfg

from ..errors import OperationFailed
from ..lifecycle import power_down, power_down_all
from ..resolver import TargetSelector, confirm_targets, resolve_targets
from ..machineinfo import vm_state
from ._common import _BaseCommand, _open_session, _resolve, _TargetCommand


def _report(outcome) -> None:
    if outcome.error:
        print(f'{outcome.vm_name}: FAILED')
    elif outcome.issued is None:
        print(f'{outcome.vm_name}: not running ({outcome.previous_state})')
    elif outcome.waited:
        print(f'{outcome.vm_name}: {outcome.issued} -> {outcome.final_state}')
    else:
        print(f'{outcome.vm_name}: {outcome.issued} issued')


class _PowerCommand(_TargetCommand):
    __action__ = 'poweroff'

    wait = scfg.Value(
        False, isflag=True, help='Wait until the VM has actually stopped.'
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        session = _open_session(args)
        (vm,) = _resolve(args, session, action=cls.__action__)
        _report(
            power_down(
                session.executor, vm, action=cls.__action__, wait=bool(args.wait)
            )
        )
        return 0


class _PowerAllCommand(_BaseCommand):
    __action__ = 'poweroff'

    name = scfg.Value(
        None, help='Only act on VMs whose name matches this regex.'
    )
    wait = scfg.Value(
        False, isflag=True, help='Wait until each VM has actually stopped.'
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        session = _open_session(args)
        selector = TargetSelector(name=args.name or None, all=not args.name)
        if not len(session.directory):
            print('No VMs registered')
            return 0
        targets = resolve_targets(selector, session.directory, allow_multiple=True)
        confirm_targets(
            targets,
            action=f'{cls.__action__} {len(targets)} VM(s)',
            state_of=lambda vm: vm_state(session.executor, vm),
            yes=bool(args.yes),
        )
        failed = []
        for outcome in power_down_all(
            session.executor,
            targets,
            action=cls.__action__,
            wait=bool(args.wait),
        ):
            _report(outcome)
            if outcome.error:
                failed.append(outcome.vm_name)
        if failed:
            raise OperationFailed(
                f'Could not {cls.__action__} {len(failed)} of {len(targets)} VM(s): '
                + ', '.join(failed)
            )
        return 0


class StopCLI(_PowerCommand):
    """Stop a VM."""

    __action__ = 'poweroff'


class SuspendCLI(_PowerCommand):
    """Suspend a VM (save its state)."""

    __action__ = 'savestate'


class StopAllCLI(_PowerAllCommand):
    """
    Stop all VMs.

    A failure on one VM does not stop the others; the command exits non-zero
    after listing the VMs that failed.
    """

    __action__ = 'poweroff'


class SuspendAllCLI(_PowerAllCommand):
    """
    Suspend all VMs.

    A failure on one VM does not stop the others; the command exits non-zero
    after listing the VMs that failed.
    """

    __action__ = 'savestate'
