"""VM lifecycle operations built from sequences of VBoxManage invocations.

Each operation decides how to treat the outcomes returned by the executor:
recoverable failures may trigger a fallback or a rollback, fatal ones (the
tool could not be launched) always propagate.
"""

from __future__ import annotations

import re
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from loguru import logger

from .config import VBoxCtlConfig
from .directory import VMDirectory, VMIdentity
from .errors import (
    MissingFileError,
    OperationFailed,
    ToolUnavailableError,
    UserInputError,
    VMAlreadyExistsError,
)
from .machineinfo import OSType, parse_machinereadable, parse_ostypes, vm_state
from .results import PowerOutcome, SnapshotOutcome, StepResult
from .util import shell_join

log = logger

POWER_ACTIONS = ('poweroff', 'savestate')
START_MODES = ('headless', 'gui', 'separate')
# States in which the machine has not yet settled after a power action.
BUSY_STATES = {'running', 'stopping', 'saving'}


def wait_while_busy(
    executor,
    vm: VMIdentity,
    *,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> str:
    """Poll the VM state until it leaves BUSY_STATES or the timeout expires.

    This is best effort: on timeout a warning is logged and the last observed
    state is returned, the caller must not assume the machine is stopped.
    """
    timeout_s = float(executor.cfg.wait.timeout_s)
    poll_s = float(executor.cfg.wait.poll_s)
    deadline = clock() + timeout_s
    state = 'unknown'
    while True:
        sleep(poll_s)
        state = vm_state(executor, vm)
        if state not in BUSY_STATES:
            log.debug('VM {} settled in state {}', vm.name, state)
            return state
        if clock() >= deadline:
            log.warning(
                'VM {} still {} after {}s; continuing anyway',
                vm.name,
                state,
                timeout_s,
            )
            return state


def power_down(
    executor,
    vm: VMIdentity,
    *,
    action: str = 'poweroff',
    wait: bool = False,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> PowerOutcome:
    if action not in POWER_ACTIONS:
        raise ValueError(f'Unknown power action {action!r}')
    state = vm_state(executor, vm)
    outcome = PowerOutcome(vm.name, state, final_state=state)
    if state != 'running':
        log.info('VM {} is not running (state={}); nothing to do', vm.name, state)
        return outcome
    executor.run(['controlvm', vm.uuid, action]).raise_for_status()
    outcome.issued = action
    if wait and not executor.dry_run:
        outcome.final_state = wait_while_busy(
            executor, vm, sleep=sleep, clock=clock
        )
        outcome.waited = True
    return outcome


def power_down_all(
    executor,
    targets: list[VMIdentity],
    *,
    action: str = 'poweroff',
    wait: bool = False,
    sleep: Callable[[float], None] = time.sleep,
) -> list[PowerOutcome]:
    """
    Power down every target, continuing past per-VM failures.

    A VM whose command fails gets an outcome with ``error`` set; callers
    decide how to report it. A fatal step (the tool cannot be launched)
    still propagates immediately.
    """
    outcomes = []
    for vm in targets:
        try:
            outcome = power_down(executor, vm, action=action, wait=wait, sleep=sleep)
        except OperationFailed as ex:
            log.error('Could not {} {}: {}', action, vm.name, ex)
            outcome = PowerOutcome(vm.name, '', error=str(ex))
        outcomes.append(outcome)
    return outcomes


def _ensure_stopped(executor, vm: VMIdentity, *, discard_saved: bool) -> str:
    state = vm_state(executor, vm)
    if state in {'running', 'paused'}:
        executor.run(['controlvm', vm.uuid, 'poweroff']).raise_for_status()
        if not executor.dry_run:
            state = wait_while_busy(executor, vm)
    if state == 'saved' and discard_saved:
        executor.run(['discardstate', vm.uuid]).raise_for_status()
        state = 'poweroff'
    return state


def take_snapshot(
    executor,
    vm: VMIdentity,
    name: str,
    *,
    replace: bool = True,
    live: bool = True,
    description: str = '',
) -> SnapshotOutcome:
    outcome = SnapshotOutcome(vm.name, name)
    if replace:
        step = executor.run(['snapshot', vm.uuid, 'delete', name])
        outcome.attempts.append(step)
        if step.fatal:
            step.raise_for_status()
        if not step.ok:
            log.info(
                "Could not delete snapshot '{}' of {} (it probably didn't exist)",
                name,
                vm.name,
            )
    extra = ['--description', description] if description else []
    if live:
        step = executor.run(['snapshot', vm.uuid, 'take', name, *extra, '--live'])
        outcome.attempts.append(step)
        if step.fatal:
            step.raise_for_status()
        if step.ok:
            outcome.live = True
            return outcome
        log.warning(
            'Live snapshot of {} failed; falling back to a non-live snapshot',
            vm.name,
        )
    step = executor.run(['snapshot', vm.uuid, 'take', name, *extra])
    outcome.attempts.append(step)
    step.raise_for_status()
    return outcome


def restore_snapshot(
    executor,
    vm: VMIdentity,
    name: str | None = None,
    *,
    start: bool = False,
) -> StepResult:
    _ensure_stopped(executor, vm, discard_saved=False)
    if name:
        args = ['snapshot', vm.uuid, 'restore', name]
    else:
        args = ['snapshot', vm.uuid, 'restorecurrent']
    step = executor.run(args).raise_for_status()
    if start:
        start_vm(executor, vm)
    return step


def start_vm(executor, vm: VMIdentity, *, mode: str = 'headless') -> StepResult | None:
    if mode not in START_MODES:
        raise UserInputError(
            f'--mode must be one of: {", ".join(START_MODES)}'
        )
    state = vm_state(executor, vm)
    if state == 'running':
        log.info('VM {} is already running', vm.name)
        return None
    if state == 'paused':
        return executor.run(['controlvm', vm.uuid, 'resume']).raise_for_status()
    return executor.run(['startvm', vm.uuid, '--type', mode]).raise_for_status()


def launch_ui(
    executor,
    vm: VMIdentity,
    *,
    popen: Callable[..., subprocess.Popen] = subprocess.Popen,
):
    """
    Start the VirtualBox UI for ``vm`` in a detached child; never waited on.

    The command is echoed like any executor step. In dry-run mode nothing is
    launched and None is returned.
    """
    ui = executor.cfg.tools.ui
    cmd = [ui, '--startvm', vm.uuid]
    if executor.dry_run:
        executor.echo(f'DRYRUN: {shell_join(cmd)}')
        return None
    executor.echo(f'$ {shell_join(cmd)}')
    log.info('Launching UI for {}', vm.name)
    try:
        return popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
    except (FileNotFoundError, PermissionError) as ex:
        raise ToolUnavailableError(f'Unable to launch {ui}: {ex}') from ex


def delete_vm(executor, vm: VMIdentity) -> StepResult:
    _ensure_stopped(executor, vm, discard_saved=True)
    return executor.run(['unregistervm', vm.uuid, '--delete']).raise_for_status()


@dataclass
class CreateRequest:
    name: str
    iso: str = ''
    ostype: str = ''
    memory_mb: int = 1024
    cpus: int = 1
    vram_mb: int = 48
    hdd_size_mb: int = 32000
    hdd_file: str = 'hdd.vdi'
    vm_dir: str = ''
    bridge: str = ''
    graphics: str = 'vmsvga'
    share_path: str = ''
    share_name: str = 'public'

    @classmethod
    def from_defaults(cls, cfg: VBoxCtlConfig, name: str, **overrides) -> 'CreateRequest':
        d = cfg.defaults
        req = cls(
            name=name,
            ostype='',
            memory_mb=d.memory_mb,
            cpus=d.cpus,
            vram_mb=d.vram_mb,
            hdd_size_mb=d.hdd_size_mb,
            hdd_file=d.hdd_file,
            vm_dir=d.vm_dir,
            bridge=d.bridge,
            graphics=d.graphics,
            share_name=d.shared_folder_name,
        )
        for k, v in overrides.items():
            if v is None or v == '':
                continue
            if not hasattr(req, k):
                raise TypeError(f'Unknown create option {k!r}')
            setattr(req, k, v)
        return req

    @property
    def hdd_path(self) -> str:
        return str(Path(self.vm_dir) / self.name / self.hdd_file)


def build_create_commands(req: CreateRequest) -> list[list[str]]:
    name = req.name
    cmds: list[list[str]] = [
        [
            'createvm',
            '--name', name,
            '--ostype', req.ostype,
            '--basefolder', req.vm_dir,
            '--register',
        ],
        [
            'modifyvm', name,
            '--memory', str(req.memory_mb),
            '--cpus', str(req.cpus),
            '--vram', str(req.vram_mb),
            '--graphicscontroller', req.graphics,
            '--ioapic', 'on',
        ],
    ]
    if req.bridge:
        cmds.append(
            ['modifyvm', name, '--nic1', 'bridged', '--bridgeadapter1', req.bridge]
        )
    else:
        cmds.append(['modifyvm', name, '--nic1', 'nat'])
    cmds += [
        ['storagectl', name, '--name', 'SATA', '--add', 'sata', '--controller', 'IntelAhci'],
        ['storagectl', name, '--name', 'IDE', '--add', 'ide'],
        ['createhd', '--filename', req.hdd_path, '--size', str(req.hdd_size_mb)],
        [
            'storageattach', name,
            '--storagectl', 'SATA', '--port', '0', '--device', '0',
            '--type', 'hdd', '--medium', req.hdd_path,
        ],
    ]
    if req.iso:
        cmds.append(
            [
                'storageattach', name,
                '--storagectl', 'IDE', '--port', '0', '--device', '0',
                '--type', 'dvddrive', '--medium', req.iso,
            ]
        )
    if req.share_path:
        cmds.append(
            [
                'sharedfolder', 'add', name,
                '--name', req.share_name,
                '--hostpath', req.share_path,
                '--automount',
            ]
        )
    return cmds


def detect_iso(executor, iso: str) -> dict[str, str]:
    step = executor.query(['unattended', 'detect', f'--iso={iso}', '--machine-readable'])
    if step.fatal:
        step.raise_for_status()
    if not step.ok:
        log.warning('Unable to detect the OS on {}: {}', iso, step.describe())
        return {}
    return parse_machinereadable(step.stdout)


def create_vm(
    executor,
    req: CreateRequest,
    directory: VMDirectory,
) -> list[StepResult]:
    if directory.lookup_name(req.name) is not None:
        raise VMAlreadyExistsError(
            f"VM '{req.name}' already exists; to remove it, run: "
            f'vboxctl delete --name {req.name} --noregex'
        )
    for label, path in (('ISO', req.iso), ('Shared folder', req.share_path)):
        if path and not Path(path).exists():
            raise MissingFileError(f'{label} not found: {path}')
    if not req.ostype:
        detected = detect_iso(executor, req.iso).get('OSTypeId', '') if req.iso else ''
        req.ostype = detected or executor.cfg.defaults.ostype
        log.info('Using OS type {} for {}', req.ostype, req.name)

    seq = executor.run_sequence(build_create_commands(req))
    if seq.ok:
        log.info('Created VM {}', req.name)
        return seq.executed
    failure = seq.failure
    if failure.fatal:
        failure.raise_for_status()

    log.error('Creating {} failed; rolling back', req.name)
    rollback = executor.run(['unregistervm', req.name, '--delete'])
    message = f'Failed to create VM {req.name}: {failure.describe()}'
    if not rollback.ok:
        log.error('Rollback of {} failed: {}', req.name, rollback.describe())
        message += f'\nRollback also failed: {rollback.describe()}'
    raise OperationFailed(message, cmd=list(failure.cmd), result=failure.result)


def _require_new_name(directory: VMDirectory, name: str) -> None:
    if not name:
        raise UserInputError('A name for the new VM is required.')
    if directory.lookup_name(name) is not None:
        raise VMAlreadyExistsError(f"VM '{name}' already exists")


def clone_vm(
    executor,
    vm: VMIdentity,
    new_name: str,
    directory: VMDirectory,
    *,
    snapshot: str | None = None,
    linked: bool = False,
) -> StepResult:
    _require_new_name(directory, new_name)
    if linked and not snapshot:
        raise UserInputError('A linked clone requires --snapshot.')
    args = ['clonevm', vm.uuid, '--name', new_name, '--register']
    if snapshot:
        args += ['--snapshot', snapshot]
    if linked:
        args += ['--options', 'link']
    return executor.run(args).raise_for_status()


def import_appliance(
    executor,
    path: str,
    directory: VMDirectory,
    *,
    name: str | None = None,
) -> StepResult:
    if not path or not Path(path).exists():
        raise MissingFileError(f'Appliance not found: {path}')
    args = ['import', path]
    if name:
        _require_new_name(directory, name)
        args += ['--vsys', '0', '--vmname', name]
    return executor.run(args).raise_for_status()


def mount_medium(
    executor,
    vm: VMIdentity,
    medium: str,
    *,
    controller: str = 'IDE',
    port: int = 0,
    device: int = 0,
    force: bool = False,
) -> StepResult:
    """Attach an ISO (or ``additions`` / ``emptydrive``) to a DVD slot."""
    if medium not in {'additions', 'emptydrive'} and not Path(medium).exists():
        raise MissingFileError(f'ISO not found: {medium}')
    args = [
        'storageattach', vm.uuid,
        '--storagectl', controller,
        '--port', str(port),
        '--device', str(device),
        '--type', 'dvddrive',
        '--medium', medium,
    ]
    if force:
        args.append('--forceunmount')
    return executor.run(args).raise_for_status()


def unmount_medium(executor, vm: VMIdentity, **kwargs) -> StepResult:
    return mount_medium(executor, vm, 'emptydrive', **kwargs)


def list_ostypes(executor, pattern: str | None = None) -> list[OSType]:
    step = executor.query(['list', 'ostypes']).raise_for_status()
    types = parse_ostypes(step.stdout)
    if pattern:
        try:
            regex = re.compile(pattern, re.IGNORECASE)
        except re.error as ex:
            raise UserInputError(f'Invalid --regex {pattern!r}: {ex}') from ex
        types = [t for t in types if regex.search(t.id) or regex.search(t.description)]
    return types
