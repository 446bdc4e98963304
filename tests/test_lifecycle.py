"""Tests for lifecycle state machines: power, snapshot, create, and friends."""

from __future__ import annotations

from pathlib import Path

import pytest

from conftest import UUID_A, UUID_B, UUID_C
from vboxctl.directory import load_directory
from vboxctl.directory import VMIdentity
from vboxctl.errors import (
    MissingFileError,
    OperationFailed,
    ToolUnavailableError,
    UserInputError,
    VMAlreadyExistsError,
)
from vboxctl.lifecycle import (
    CreateRequest,
    build_create_commands,
    clone_vm,
    create_vm,
    delete_vm,
    import_appliance,
    launch_ui,
    list_ostypes,
    mount_medium,
    power_down,
    power_down_all,
    restore_snapshot,
    start_vm,
    take_snapshot,
    unmount_medium,
    wait_while_busy,
)

WEB1 = VMIdentity('web-1', UUID_A)
WEB2 = VMIdentity('web-2', UUID_B)
DB = VMIdentity('db', UUID_C)


def test_power_down_noop_when_not_running(executor, fake_vbox) -> None:
    slept: list[float] = []
    out = power_down(executor, WEB2, wait=True, sleep=slept.append)
    assert out.issued is None
    assert out.previous_state == 'poweroff'
    assert fake_vbox.calls_of('controlvm') == []
    assert slept == []


def test_power_down_running_issues_one_command_and_waits(
    executor, fake_vbox
) -> None:
    slept: list[float] = []
    out = power_down(executor, WEB1, wait=True, sleep=slept.append)
    assert fake_vbox.calls_of('controlvm') == [['controlvm', UUID_A, 'poweroff']]
    assert out.issued == 'poweroff'
    assert out.waited is True
    assert out.final_state == 'poweroff'
    assert len(slept) >= 1


def test_power_down_without_wait_does_not_block(executor, fake_vbox) -> None:
    slept: list[float] = []
    out = power_down(executor, WEB1, wait=False, sleep=slept.append)
    assert out.issued == 'poweroff'
    assert out.waited is False
    assert slept == []


def test_suspend_uses_savestate(executor, fake_vbox) -> None:
    out = power_down(executor, WEB1, action='savestate')
    assert fake_vbox.calls_of('controlvm') == [['controlvm', UUID_A, 'savestate']]
    assert out.issued == 'savestate'
    assert fake_vbox.vms['web-1'][1] == 'saved'


def test_power_down_rejects_unknown_action(executor) -> None:
    with pytest.raises(ValueError):
        power_down(executor, WEB1, action='reset')


def test_power_down_all(executor, fake_vbox) -> None:
    outs = power_down_all(executor, [WEB1, WEB2, DB], action='poweroff')
    assert [o.issued for o in outs] == ['poweroff', None, None]
    assert len(fake_vbox.calls_of('controlvm')) == 1


def test_power_down_all_continues_after_failure(executor, fake_vbox) -> None:
    fake_vbox.vms['db'][1] = 'running'
    fake_vbox.fail.append(('controlvm', UUID_A))
    outs = power_down_all(executor, [WEB1, WEB2, DB], action='poweroff')
    assert [o.vm_name for o in outs] == ['web-1', 'web-2', 'db']
    assert 'simulated failure' in outs[0].error
    assert outs[1].issued is None
    assert outs[2].issued == 'poweroff' and not outs[2].error
    assert fake_vbox.calls_of('controlvm') == [
        ['controlvm', UUID_A, 'poweroff'],
        ['controlvm', UUID_C, 'poweroff'],
    ]


def test_wait_while_busy_times_out(executor, fake_vbox) -> None:
    # The machine never leaves "running"; the wait is best effort.
    executor.cfg.wait.timeout_s = 5
    executor.cfg.wait.poll_s = 1
    ticks = iter(range(100))
    state = wait_while_busy(
        executor, WEB1, sleep=lambda s: None, clock=lambda: next(ticks)
    )
    assert state == 'running'
    assert 3 <= len(fake_vbox.calls_of('showvminfo')) <= 7


def test_snapshot_live_succeeds(executor, fake_vbox) -> None:
    out = take_snapshot(executor, WEB1, 'base')
    assert out.live is True
    assert fake_vbox.calls_of('snapshot') == [
        ['snapshot', UUID_A, 'delete', 'base'],
        ['snapshot', UUID_A, 'take', 'base', '--live'],
    ]


def test_snapshot_falls_back_to_offline(executor, fake_vbox) -> None:
    fake_vbox.fail.append(('snapshot', UUID_A, 'delete'))
    fake_vbox.fail.append(('snapshot', UUID_A, 'take', 'base', '--live'))
    out = take_snapshot(executor, WEB1, 'base')
    assert out.live is False
    assert [s.status for s in out.attempts] == ['recoverable', 'recoverable', 'ok']
    took = [s.cmd[1:] for s in executor.history if 'take' in s.cmd]
    assert took == [
        ('snapshot', UUID_A, 'take', 'base', '--live'),
        ('snapshot', UUID_A, 'take', 'base'),
    ]


def test_snapshot_fails_when_fallback_fails(executor, fake_vbox) -> None:
    fake_vbox.fail.append(('snapshot', UUID_A, 'take'))
    with pytest.raises(OperationFailed):
        take_snapshot(executor, WEB1, 'base')


def test_snapshot_no_replace_no_live(executor, fake_vbox) -> None:
    take_snapshot(
        executor, WEB1, 'base', replace=False, live=False, description='d'
    )
    assert fake_vbox.calls_of('snapshot') == [
        ['snapshot', UUID_A, 'take', 'base', '--description', 'd'],
    ]


def test_snapshot_missing_tool_is_fatal(executor, fake_vbox) -> None:
    fake_vbox.missing = True
    with pytest.raises(ToolUnavailableError):
        take_snapshot(executor, WEB1, 'base')


def test_restore_powers_off_first(executor, fake_vbox) -> None:
    restore_snapshot(executor, WEB1, 'base', start=True)
    mutating = [c for c in fake_vbox.calls if c[0] != 'showvminfo']
    assert mutating == [
        ['controlvm', UUID_A, 'poweroff'],
        ['snapshot', UUID_A, 'restore', 'base'],
        ['startvm', UUID_A, '--type', 'headless'],
    ]


def test_restore_current(executor, fake_vbox) -> None:
    restore_snapshot(executor, WEB2)
    assert fake_vbox.calls_of('snapshot') == [['snapshot', UUID_B, 'restorecurrent']]
    assert fake_vbox.calls_of('controlvm') == []


def test_start_vm(executor, fake_vbox) -> None:
    assert start_vm(executor, WEB1) is None
    start_vm(executor, WEB2, mode='gui')
    assert fake_vbox.calls_of('startvm') == [['startvm', UUID_B, '--type', 'gui']]
    with pytest.raises(UserInputError):
        start_vm(executor, WEB2, mode='sdl')


def test_delete_vm_discards_saved_state(executor, fake_vbox) -> None:
    delete_vm(executor, DB)
    mutating = [c for c in fake_vbox.calls if c[0] != 'showvminfo']
    assert mutating == [
        ['discardstate', UUID_C],
        ['unregistervm', UUID_C, '--delete'],
    ]


def test_delete_running_vm_powers_off(executor, fake_vbox) -> None:
    delete_vm(executor, WEB1)
    assert fake_vbox.calls_of('controlvm') == [['controlvm', UUID_A, 'poweroff']]
    assert fake_vbox.calls_of('unregistervm') == [['unregistervm', UUID_A, '--delete']]


def _request(cfg, tmp_path: Path, **kw) -> CreateRequest:
    cfg.defaults.vm_dir = str(tmp_path / 'vms')
    return CreateRequest.from_defaults(cfg, 'newvm', ostype='Ubuntu_64', **kw)


def test_build_create_commands_shape(cfg, tmp_path: Path) -> None:
    iso = tmp_path / 'install.iso'
    req = _request(cfg, tmp_path, iso=str(iso), bridge='eth0', share_path='/srv')
    cmds = build_create_commands(req)
    heads = [c[0] for c in cmds]
    assert heads == [
        'createvm',
        'modifyvm',
        'modifyvm',
        'storagectl',
        'storagectl',
        'createhd',
        'storageattach',
        'storageattach',
        'sharedfolder',
    ]
    assert '--register' in cmds[0]
    assert cmds[2] == ['modifyvm', 'newvm', '--nic1', 'bridged', '--bridgeadapter1', 'eth0']
    assert cmds[5][2] == str(tmp_path / 'vms' / 'newvm' / 'hdd.vdi')
    assert cmds[-1][:3] == ['sharedfolder', 'add', 'newvm']


def test_create_vm_success(executor, fake_vbox, cfg, tmp_path: Path) -> None:
    directory = load_directory(executor)
    req = _request(cfg, tmp_path, memory_mb=2048)
    steps = create_vm(executor, req, directory)
    assert all(s.ok for s in steps)
    assert ['modifyvm', 'newvm', '--nic1', 'nat'] in fake_vbox.calls
    assert fake_vbox.calls_of('unregistervm') == []
    assert '2048' in fake_vbox.calls_of('modifyvm')[0]


def test_create_vm_rolls_back_once(executor, fake_vbox, cfg, tmp_path: Path) -> None:
    directory = load_directory(executor)
    req = _request(cfg, tmp_path)
    expected = build_create_commands(req)
    fail_at = 3  # first storagectl
    fake_vbox.fail.append(tuple(expected[fail_at]))
    with pytest.raises(OperationFailed) as exc:
        create_vm(executor, req, directory)
    issued = [c for c in fake_vbox.calls if c[:2] != ['list', 'vms']]
    assert issued[: fail_at + 1] == expected[: fail_at + 1]
    assert issued[fail_at + 1 :] == [['unregistervm', 'newvm', '--delete']]
    assert 'storagectl' in str(exc.value)
    assert exc.value.cmd[1] == 'storagectl'


def test_create_vm_reports_original_failure_when_rollback_fails(
    executor, fake_vbox, cfg, tmp_path: Path
) -> None:
    directory = load_directory(executor)
    fake_vbox.fail.append(('createhd',))
    fake_vbox.fail.append(('unregistervm',))
    with pytest.raises(OperationFailed) as exc:
        create_vm(executor, _request(cfg, tmp_path), directory)
    assert exc.value.cmd[1] == 'createhd'
    assert 'Rollback also failed' in str(exc.value)
    assert len(fake_vbox.calls_of('unregistervm')) == 1


def test_create_vm_missing_tool_no_rollback(executor, fake_vbox, cfg, tmp_path: Path) -> None:
    directory = load_directory(executor)
    fake_vbox.missing = True
    with pytest.raises(ToolUnavailableError):
        create_vm(executor, _request(cfg, tmp_path), directory)
    assert fake_vbox.calls_of('unregistervm') == []


def test_create_vm_rejects_existing_name(executor, cfg, tmp_path: Path) -> None:
    directory = load_directory(executor)
    req = CreateRequest.from_defaults(cfg, 'web-1')
    with pytest.raises(VMAlreadyExistsError):
        create_vm(executor, req, directory)


def test_create_vm_requires_iso(executor, cfg, tmp_path: Path) -> None:
    directory = load_directory(executor)
    req = _request(cfg, tmp_path, iso=str(tmp_path / 'missing.iso'))
    with pytest.raises(MissingFileError):
        create_vm(executor, req, directory)


def test_create_vm_detects_ostype(executor, fake_vbox, cfg, tmp_path: Path) -> None:
    iso = tmp_path / 'ubuntu.iso'
    iso.write_bytes(b'')
    fake_vbox.outputs[('unattended', 'detect')] = 'OSTypeId="Ubuntu_64"\nOSVersion="24.04"\n'
    directory = load_directory(executor)
    cfg.defaults.vm_dir = str(tmp_path)
    req = CreateRequest.from_defaults(cfg, 'newvm', iso=str(iso))
    create_vm(executor, req, directory)
    createvm = fake_vbox.calls_of('createvm')[0]
    assert createvm[createvm.index('--ostype') + 1] == 'Ubuntu_64'
    attach = fake_vbox.calls_of('storageattach')[-1]
    assert attach[-1] == str(iso)


def test_create_vm_detect_failure_uses_default(executor, fake_vbox, cfg, tmp_path: Path) -> None:
    iso = tmp_path / 'odd.iso'
    iso.write_bytes(b'')
    fake_vbox.fail.append(('unattended',))
    directory = load_directory(executor)
    req = CreateRequest.from_defaults(cfg, 'newvm', iso=str(iso))
    create_vm(executor, req, directory)
    createvm = fake_vbox.calls_of('createvm')[0]
    assert createvm[createvm.index('--ostype') + 1] == cfg.defaults.ostype


def test_from_defaults_rejects_unknown_option(cfg) -> None:
    with pytest.raises(TypeError):
        CreateRequest.from_defaults(cfg, 'x', colour='red')


def test_clone_vm(executor, fake_vbox) -> None:
    directory = load_directory(executor)
    clone_vm(executor, WEB1, 'web-3', directory, snapshot='base', linked=True)
    assert fake_vbox.calls_of('clonevm') == [
        [
            'clonevm', UUID_A, '--name', 'web-3', '--register',
            '--snapshot', 'base', '--options', 'link',
        ]
    ]
    with pytest.raises(VMAlreadyExistsError):
        clone_vm(executor, WEB1, 'web-2', directory)
    with pytest.raises(UserInputError, match='requires --snapshot'):
        clone_vm(executor, WEB1, 'web-4', directory, linked=True)


def test_import_appliance(executor, fake_vbox, tmp_path: Path) -> None:
    directory = load_directory(executor)
    ova = tmp_path / 'box.ova'
    with pytest.raises(MissingFileError):
        import_appliance(executor, str(ova), directory)
    ova.write_bytes(b'')
    import_appliance(executor, str(ova), directory, name='imported')
    assert fake_vbox.calls_of('import') == [
        ['import', str(ova), '--vsys', '0', '--vmname', 'imported']
    ]


def test_mount_and_unmount(executor, fake_vbox, tmp_path: Path) -> None:
    iso = tmp_path / 'tools.iso'
    with pytest.raises(MissingFileError):
        mount_medium(executor, WEB1, str(iso))
    iso.write_bytes(b'')
    mount_medium(executor, WEB1, str(iso), port=1)
    mount_medium(executor, WEB1, 'additions')
    unmount_medium(executor, WEB1, force=True)
    calls = fake_vbox.calls_of('storageattach')
    assert calls[0][-2:] == ['--medium', str(iso)]
    assert calls[0][calls[0].index('--port') + 1] == '1'
    assert calls[1][-2:] == ['--medium', 'additions']
    assert calls[2][-3:] == ['--medium', 'emptydrive', '--forceunmount']


def test_list_ostypes(executor, fake_vbox) -> None:
    fake_vbox.outputs[('list', 'ostypes')] = (
        'ID:          Other\n'
        'Description: Other/Unknown\n'
        'Family ID:   Other\n'
        '64 bit:      false\n'
        '\n'
        'ID:          Ubuntu_64\n'
        'Description: Ubuntu (64-bit)\n'
        'Family ID:   Linux\n'
        '64 bit:      true\n'
    )
    assert [t.id for t in list_ostypes(executor)] == ['Other', 'Ubuntu_64']
    got = list_ostypes(executor, 'ubuntu')
    assert [t.id for t in got] == ['Ubuntu_64']
    assert got[0].is_64bit is True
    assert got[0].family == 'Linux'


def test_launch_ui_is_detached(executor, echoed) -> None:
    seen = {}

    def fake_popen(cmd, **kwargs):
        seen['cmd'] = cmd
        seen['kwargs'] = kwargs
        return 'proc'

    assert launch_ui(executor, WEB1, popen=fake_popen) == 'proc'
    assert seen['cmd'] == [executor.cfg.tools.ui, '--startvm', UUID_A]
    assert seen['kwargs']['start_new_session'] is True
    assert echoed == [f'$ {executor.cfg.tools.ui} --startvm {UUID_A}']


def test_launch_ui_dry_run_only_echoes(executor, echoed) -> None:
    executor.dry_run = True

    def fake_popen(cmd, **kwargs):
        raise AssertionError('must not launch')

    assert launch_ui(executor, WEB1, popen=fake_popen) is None
    assert echoed == [f'DRYRUN: {executor.cfg.tools.ui} --startvm {UUID_A}']


def test_launch_ui_missing_binary(executor) -> None:
    def fake_popen(cmd, **kwargs):
        raise FileNotFoundError(cmd[0])

    with pytest.raises(ToolUnavailableError):
        launch_ui(executor, WEB1, popen=fake_popen)
