"""Fluxbox menu fragment generation and a numbered VM picker."""

from __future__ import annotations

from typing import Callable

from .directory import VMDirectory, VMIdentity


def _fluxbox_label(name: str) -> str:
    # Parentheses and braces delimit fields in Fluxbox menu syntax.
    return name.replace('(', '[').replace(')', ']').replace('{', '[').replace('}', ']')


def render_fluxbox_menu(
    directory: VMDirectory,
    command: str = 'vboxctl',
    *,
    title: str = 'VMs',
    indent: str = '  ',
) -> str:
    lines = [f'{indent}[submenu] ({title})']
    for vm in directory:
        lines.append(
            f'{indent}  [exec] ({_fluxbox_label(vm.name)}) '
            f'{{{command} start --uuid {vm.uuid} --ui}}'
        )
    lines.append(f'{indent}[end]')
    return '\n'.join(lines)


def pick_vm(
    directory: VMDirectory,
    *,
    input_fn: Callable[[str], str] | None = None,
) -> VMIdentity | None:
    vms = list(directory)
    for idx, vm in enumerate(vms, start=1):
        print(f'{idx}. {vm.name}')
    print()
    print('Please select a VM to boot...')
    print()
    ask = input_fn or input
    raw = ask('> ').strip()
    if not raw.isdigit():
        return None
    choice = int(raw)
    if 1 <= choice <= len(vms):
        return vms[choice - 1]
    return None
