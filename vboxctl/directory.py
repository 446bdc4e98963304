"""Immutable name <-> uuid mapping built from one ``VBoxManage list vms`` query."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterator, Mapping

from loguru import logger

from .errors import (
    DirectoryConsistencyError,
    EnvironmentProblem,
    InventoryParseError,
    ToolUnavailableError,
)

log = logger

UUID_PATTERN = (
    r'[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}'
)
_LIST_LINE_RE = re.compile(r'^"(.*)" \{(' + UUID_PATTERN + r')\}\s*$')


@dataclass(frozen=True)
class VMIdentity:
    name: str
    uuid: str


@dataclass(frozen=True)
class VMDirectory:
    """Snapshot of every registered VM at the moment of the inventory query.

    ``by_name`` and ``by_uuid`` are exact inverses; construction fails if
    that cannot be guaranteed.
    """

    identities: tuple[VMIdentity, ...] = ()
    by_name: Mapping[str, str] = field(default_factory=dict)
    by_uuid: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_identities(cls, identities) -> 'VMDirectory':
        items = tuple(identities)
        by_name = {vm.name: vm.uuid for vm in items}
        by_uuid = {vm.uuid: vm.name for vm in items}
        if not (len(by_name) == len(by_uuid) == len(items)):
            dup_names = _duplicates(vm.name for vm in items)
            dup_uuids = _duplicates(vm.uuid for vm in items)
            raise DirectoryConsistencyError(
                'There are multiple VMs with the same name (or same UUID): '
                f'names={dup_names} uuids={dup_uuids}'
            )
        return cls(
            identities=items,
            by_name=MappingProxyType(by_name),
            by_uuid=MappingProxyType(by_uuid),
        )

    def __len__(self) -> int:
        return len(self.identities)

    def __iter__(self) -> Iterator[VMIdentity]:
        return iter(self.identities)

    def names(self) -> list[str]:
        return [vm.name for vm in self.identities]

    def lookup_name(self, name: str) -> VMIdentity | None:
        uuid = self.by_name.get(name)
        return None if uuid is None else VMIdentity(name, uuid)

    def lookup_uuid(self, uuid: str) -> VMIdentity | None:
        name = self.by_uuid.get(uuid)
        return None if name is None else VMIdentity(name, uuid)


def _duplicates(values) -> list[str]:
    seen: set[str] = set()
    dups: list[str] = []
    for v in values:
        if v in seen and v not in dups:
            dups.append(v)
        seen.add(v)
    return dups


def parse_vm_list(text: str) -> VMDirectory:
    identities: list[VMIdentity] = []
    for line in (text or '').splitlines():
        if not line.strip():
            continue
        m = _LIST_LINE_RE.match(line)
        if m is None:
            raise InventoryParseError(
                f"Couldn't parse line from VBoxManage output: {line}"
            )
        identities.append(VMIdentity(m.group(1), m.group(2)))
    return VMDirectory.from_identities(identities)


def load_directory(executor) -> VMDirectory:
    step = executor.query(['list', 'vms'])
    if step.fatal:
        raise ToolUnavailableError(step.error)
    if not step.ok:
        raise EnvironmentProblem(f'Unable to list VMs: {step.describe()}')
    directory = parse_vm_list(step.stdout)
    log.debug('Loaded {} VMs from inventory', len(directory))
    return directory
