"""Parsers for the textual output of VBoxManage info-style subcommands."""

from __future__ import annotations

import re
from dataclasses import dataclass

from .directory import VMIdentity

_QUOTED_RE = re.compile(r'^([^=]+)="(.*)"\s*$')
_PLAIN_RE = re.compile(r'^([^=]+)=(.*)$')


def parse_machinereadable(text: str) -> dict[str, str]:
    """Parse ``KEY=VALUE`` / ``KEY="VALUE"`` lines.

    Lines without ``=`` are skipped; ``--machinereadable`` output is not
    always strictly machine readable.

    Example:
        >>> parse_machinereadable('name="web 1"\\nmemory=1024\\n\\njunk')
        {'name': 'web 1', 'memory': '1024'}
    """
    info: dict[str, str] = {}
    for line in (text or '').splitlines():
        m = _QUOTED_RE.match(line) or _PLAIN_RE.match(line)
        if m is None:
            continue
        key = m.group(1).strip().strip('"')
        info[key] = m.group(2)
    return info


@dataclass(frozen=True)
class OSType:
    id: str
    description: str
    family: str = ''
    is_64bit: bool = False


def parse_ostypes(text: str) -> list[OSType]:
    """Parse the blank-line separated ``Key: value`` blocks of ``list ostypes``."""
    blocks: list[dict[str, str]] = []
    current: dict[str, str] = {}
    for line in (text or '').splitlines():
        if not line.strip():
            if current:
                blocks.append(current)
                current = {}
            continue
        key, sep, value = line.partition(':')
        if not sep:
            continue
        current[key.strip().lower()] = value.strip()
    if current:
        blocks.append(current)
    out: list[OSType] = []
    for b in blocks:
        if 'id' not in b:
            continue
        out.append(
            OSType(
                id=b['id'],
                description=b.get('description', ''),
                family=b.get('family id', ''),
                is_64bit=b.get('64 bit', '').lower() == 'true',
            )
        )
    return out


def vm_info(executor, vm: VMIdentity) -> dict[str, str]:
    step = executor.query(['showvminfo', vm.uuid, '--machinereadable'])
    step.raise_for_status()
    return parse_machinereadable(step.stdout)


def vm_state(executor, vm: VMIdentity) -> str:
    return vm_info(executor, vm).get('VMState', 'unknown')
