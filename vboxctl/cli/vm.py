"""CLI commands for listing, inspecting, creating, and removing VMs."""

from __future__ import annotations

import scriptconfig as scfg

from ..errors import UserInputError
from ..lifecycle import (
    START_MODES,
    CreateRequest,
    clone_vm,
    create_vm,
    delete_vm,
    import_appliance,
    launch_ui,
    start_vm,
)
from ..machineinfo import vm_info, vm_state
from ..menu import pick_vm, render_fluxbox_menu
from ._common import (
    _BaseCommand,
    _compile_filter,
    _open_session,
    _resolve,
    _TargetCommand,
    log,
)


class ListCLI(_BaseCommand):
    """List all VMs."""

    regex = scfg.Value(
        '.*', help='Only show VMs that match the given regex (case insensitive).'
    )
    state = scfg.Value(
        False, isflag=True, help='Also show the current state of each VM.'
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        session = _open_session(args)
        regex = _compile_filter(args.regex)
        if args.state:
            print('UUID                                 State       Name')
            print('----                                 -----       ----')
        else:
            print('UUID                                 Name')
            print('----                                 ----')
        for vm in session.directory:
            if not regex.search(vm.name):
                continue
            if args.state:
                state = vm_state(session.executor, vm)
                print(f'{vm.uuid} {state:<11} {vm.name}')
            else:
                print(f'{vm.uuid} {vm.name}')
        return 0


class InfoCLI(_TargetCommand):
    """Get information on a VM."""

    key = scfg.Value(None, help='Only print the value of this info key.')

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        session = _open_session(args)
        (vm,) = _resolve(args, session)
        info = vm_info(session.executor, vm)
        if args.key:
            if args.key not in info:
                raise UserInputError(f'No info key {args.key!r} for VM {vm.name}')
            print(info[args.key])
            return 0
        width = max((len(k) for k in info), default=0)
        for k, v in info.items():
            print(f'{k:<{width}} = {v}')
        return 0


class CreateCLI(_BaseCommand):
    """Create a new VM."""

    name = scfg.Value(None, help='Name of the new VM (required).')
    iso = scfg.Value('', help='Installer ISO to attach to the DVD drive.')
    ostype = scfg.Value(
        '', help='OS type id (see `vboxctl ostypes`); detected from --iso if empty.'
    )
    memory = scfg.Value(None, type=int, help='Memory in MB.')
    cpus = scfg.Value(None, type=int, help='Number of virtual CPUs.')
    hdd_size = scfg.Value(None, type=int, help='Size of the new disk in MB.')
    bridge = scfg.Value(
        '', help='Host interface to bridge the first NIC to (default: NAT).'
    )
    share = scfg.Value('', help='Host directory to add as a shared folder.')

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        if not args.name:
            raise UserInputError('Missing --name option')
        session = _open_session(args)
        req = CreateRequest.from_defaults(
            session.cfg,
            str(args.name),
            iso=args.iso,
            ostype=args.ostype,
            memory_mb=args.memory,
            cpus=args.cpus,
            hdd_size_mb=args.hdd_size,
            bridge=args.bridge,
            share_path=args.share,
        )
        create_vm(session.executor, req, session.directory)
        print(f'Created VM {req.name}')
        return 0


class ImportCLI(_BaseCommand):
    """Import an OVF/OVA appliance."""

    file = scfg.Value(None, help='Path to the .ova / .ovf appliance (required).')
    vmname = scfg.Value(None, help='Name to give the imported VM.')

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        if not args.file:
            raise UserInputError('Missing --file option')
        session = _open_session(args)
        import_appliance(
            session.executor,
            str(args.file),
            session.directory,
            name=args.vmname or None,
        )
        return 0


class CloneCLI(_TargetCommand):
    """Clone a VM."""

    new_name = scfg.Value(None, help='Name of the clone (required).')
    snapshot = scfg.Value(None, help='Clone from this snapshot.')
    linked = scfg.Value(
        False, isflag=True, help='Create a linked clone (requires --snapshot).'
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        if not args.new_name:
            raise UserInputError('Missing --new_name option')
        session = _open_session(args)
        (vm,) = _resolve(args, session, action=f'clone into {args.new_name}')
        clone_vm(
            session.executor,
            vm,
            str(args.new_name),
            session.directory,
            snapshot=args.snapshot or None,
            linked=bool(args.linked),
        )
        return 0


class DeleteCLI(_TargetCommand):
    """Delete a VM."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        session = _open_session(args)
        (vm,) = _resolve(
            args,
            session,
            action='delete (unregister and remove all files)',
            always_confirm=True,
        )
        delete_vm(session.executor, vm)
        print(f'Deleted VM {vm.name}')
        return 0


class StartCLI(_TargetCommand):
    """Start a VM."""

    mode = scfg.Value(
        'headless', help=f'Frontend type, one of: {", ".join(START_MODES)}.'
    )
    ui = scfg.Value(
        False,
        isflag=True,
        help='Launch the VirtualBox UI in the background instead of --mode.',
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        session = _open_session(args)
        (vm,) = _resolve(args, session, action='start')
        if args.ui:
            launch_ui(session.executor, vm)
            return 0
        start_vm(session.executor, vm, mode=str(args.mode))
        return 0


class PickCLI(_BaseCommand):
    """Interactively pick a VM to boot."""

    headless = scfg.Value(
        False, isflag=True, help='Start the VM headless instead of opening the UI.'
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        session = _open_session(args)
        vm = pick_vm(session.directory)
        if vm is None:
            log.info('No VM selected')
            return 0
        if args.headless:
            start_vm(session.executor, vm)
        else:
            launch_ui(session.executor, vm)
        return 0


class MenuCLI(_BaseCommand):
    """Print a Fluxbox submenu with one entry per VM."""

    launcher = scfg.Value(
        'vboxctl', help='Command placed in each menu entry to start the VM.'
    )
    title = scfg.Value('VMs', help='Submenu title.')

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        session = _open_session(args)
        print(
            render_fluxbox_menu(
                session.directory, str(args.launcher), title=str(args.title)
            )
        )
        return 0
