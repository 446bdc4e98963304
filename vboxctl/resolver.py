"""Turn --uuid / --name / --noregex selectors into concrete VM identities."""

from __future__ import annotations

import re
import sys
from dataclasses import dataclass
from typing import Callable

from loguru import logger

from .directory import VMDirectory, VMIdentity
from .errors import (
    AbortedByUser,
    AmbiguousTargetError,
    ConflictingTargetError,
    MissingTargetError,
    TargetNotFoundError,
    UserInputError,
)

log = logger


@dataclass(frozen=True)
class TargetSelector:
    uuid: str | None = None
    name: str | None = None
    exact: bool = False
    all: bool = False

    @property
    def is_pattern(self) -> bool:
        return bool(self.name) and not self.exact and not self.uuid


def _compile(pattern: str) -> re.Pattern:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as ex:
        raise UserInputError(f'Invalid --name pattern {pattern!r}: {ex}') from ex


def match_names(directory: VMDirectory, pattern: str) -> list[str]:
    regex = _compile(pattern)
    return [n for n in directory.names() if regex.search(n)]


def resolve_targets(
    selector: TargetSelector,
    directory: VMDirectory,
    *,
    allow_multiple: bool = False,
) -> list[VMIdentity]:
    """Resolve a selector against the directory snapshot.

    Raises a UserInputError subclass whenever the selector does not name a
    usable set of VMs.
    """
    uuid = selector.uuid or None
    name = selector.name or None
    if uuid and name:
        raise ConflictingTargetError(
            'Error: You must specify --uuid -or- --name, but not both!'
        )
    if uuid:
        found = directory.lookup_uuid(uuid)
        if found is None:
            raise TargetNotFoundError(f'No VM found with uuid {uuid}!')
        return [found]
    if name:
        if selector.exact:
            found = directory.lookup_name(name)
            if found is None:
                raise TargetNotFoundError(f'No VM found with name {name}!')
            return [found]
        names = match_names(directory, name)
        if not names:
            raise TargetNotFoundError(f'No VM found with name matching {name}!')
        if len(names) > 1 and not allow_multiple:
            raise AmbiguousTargetError(name, names)
        return [VMIdentity(n, directory.by_name[n]) for n in names]
    if selector.all:
        return list(directory)
    raise MissingTargetError(
        "Error: You must specify --uuid or --name! (use 'vboxctl list' to see a list)"
    )


def needs_confirmation(selector: TargetSelector, targets: list[VMIdentity]) -> bool:
    return len(targets) > 1 or selector.is_pattern


def render_targets(
    targets: list[VMIdentity], states: dict[str, str] | None = None
) -> str:
    states = states or {}
    lines = []
    for vm in targets:
        state = states.get(vm.uuid, 'unknown')
        lines.append(f'  {vm.uuid} {vm.name} ({state})')
    return '\n'.join(lines)


def confirm_targets(
    targets: list[VMIdentity],
    *,
    action: str,
    state_of: Callable[[VMIdentity], str],
    yes: bool = False,
    input_fn: Callable[[str], str] | None = None,
) -> None:
    if not targets:
        return
    if yes:
        log.debug('Confirmation for {} skipped (--yes)', action)
        return
    if not sys.stdin.isatty():
        raise UserInputError(
            f'{action} on {len(targets)} VM(s) requires confirmation, but stdin '
            'is not interactive. Re-run with --yes.'
        )
    states = {vm.uuid: state_of(vm) for vm in targets}
    print(f'About to {action}:')
    print(render_targets(targets, states))
    ask = input_fn or input
    ans = ask('Continue? [y/N]: ').strip().lower()
    if ans not in {'y', 'yes'}:
        raise AbortedByUser('Aborted by user.')
