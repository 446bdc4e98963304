"""Shared fixtures: an in-memory stand-in for the VBoxManage binary."""

from __future__ import annotations

import pytest

from vboxctl.config import VBoxCtlConfig
from vboxctl.executor import Executor
from vboxctl.util import CmdResult, ToolNotFoundError

UUID_A = '11111111-2222-3333-4444-555555555555'
UUID_B = 'aaaaaaaa-bbbb-cccc-dddd-eeeeeeeeeeee'
UUID_C = '0f0f0f0f-1e1e-2d2d-3c3c-4b4b4b4b4b4b'


class FakeVBox:
    """Callable runner that behaves like a tiny VBoxManage.

    ``fail`` holds argument prefixes that should exit non-zero; ``missing``
    makes every call behave as if the binary could not be launched.
    """

    def __init__(self, vms=None):
        # name -> [uuid, state]
        self.vms: dict[str, list[str]] = {}
        for name, uuid, state in vms or []:
            self.vms[name] = [uuid, state]
        self.calls: list[list[str]] = []
        self.fail: list[tuple[str, ...]] = []
        self.missing = False
        self.outputs: dict[tuple[str, ...], str] = {}

    def _by_uuid(self, uuid):
        for name, (u, _) in self.vms.items():
            if u == uuid or name == uuid:
                return name
        return None

    def __call__(self, cmd) -> CmdResult:
        args = list(cmd[1:])
        self.calls.append(args)
        if self.missing:
            raise ToolNotFoundError(cmd, 'No such file or directory')
        for prefix in self.fail:
            if tuple(args[: len(prefix)]) == prefix:
                return CmdResult(1, '', 'VBoxManage: error: simulated failure')
        for prefix, text in self.outputs.items():
            if tuple(args[: len(prefix)]) == prefix:
                return CmdResult(0, text, '')
        if args[:2] == ['list', 'vms']:
            out = ''.join(f'"{n}" {{{u}}}\n' for n, (u, _) in self.vms.items())
            return CmdResult(0, out, '')
        if args[:1] == ['showvminfo']:
            name = self._by_uuid(args[1])
            if name is None:
                return CmdResult(1, '', 'VBoxManage: error: no such machine')
            uuid, state = self.vms[name]
            out = (
                f'name="{name}"\nUUID="{uuid}"\nmemory=1024\n'
                f'VMState="{state}"\n'
            )
            return CmdResult(0, out, '')
        if args[:1] == ['controlvm']:
            name = self._by_uuid(args[1])
            new_state = {
                'poweroff': 'poweroff',
                'savestate': 'saved',
                'resume': 'running',
            }.get(args[2])
            if name is not None and new_state is not None:
                self.vms[name][1] = new_state
        if args[:1] == ['startvm']:
            name = self._by_uuid(args[1])
            if name is not None:
                self.vms[name][1] = 'running'
        if args[:1] == ['discardstate']:
            name = self._by_uuid(args[1])
            if name is not None:
                self.vms[name][1] = 'poweroff'
        return CmdResult(0, '', '')

    def calls_of(self, *prefix: str) -> list[list[str]]:
        return [c for c in self.calls if tuple(c[: len(prefix)]) == prefix]


@pytest.fixture
def fake_vbox() -> FakeVBox:
    return FakeVBox(
        [
            ('web-1', UUID_A, 'running'),
            ('web-2', UUID_B, 'poweroff'),
            ('db', UUID_C, 'saved'),
        ]
    )


@pytest.fixture
def cfg() -> VBoxCtlConfig:
    cfg = VBoxCtlConfig()
    cfg.tools.vboxmanage = '/usr/bin/VBoxManage'
    cfg.wait.poll_s = 0
    cfg.wait.timeout_s = 0
    return cfg


@pytest.fixture
def echoed() -> list[str]:
    return []


@pytest.fixture
def executor(cfg, fake_vbox, echoed) -> Executor:
    return Executor(cfg, runner=fake_vbox, echo=echoed.append)
