"""Project-specific exception types."""

from __future__ import annotations


class VBoxCtlError(RuntimeError):
    """Base error for domain-level vboxctl failures."""


class UserInputError(VBoxCtlError):
    """The operator asked for something that cannot be done as stated."""


class ConflictingTargetError(UserInputError):
    """Raised when both --uuid and --name were given."""


class MissingTargetError(UserInputError):
    """Raised when a VM command was given no target selector."""


class TargetNotFoundError(UserInputError):
    """Raised when a selector matches no known VM."""


class AmbiguousTargetError(UserInputError):
    """Raised when a pattern matches several VMs but only one is allowed."""

    def __init__(self, pattern: str, names: list[str]):
        self.pattern = pattern
        self.names = list(names)
        quoted = ', '.join(f"'{n}'" for n in self.names)
        super().__init__(
            f'Multiple VMs found with names matching {pattern}: {quoted}\n'
            '(Hint: use --noregex to turn off regex matching)'
        )


class AbortedByUser(UserInputError):
    """Raised when the operator declines a confirmation prompt."""


class MissingFileError(UserInputError):
    """Raised when a required input file (ISO, appliance) does not exist."""


class VMAlreadyExistsError(UserInputError):
    """Raised when creating a VM whose name is already registered."""


class EnvironmentProblem(VBoxCtlError):
    """The host or the external tool is not in a usable state."""


class ToolUnavailableError(EnvironmentProblem):
    """Raised when the VBoxManage binary is missing or not executable."""


class InventoryParseError(EnvironmentProblem):
    """Raised when ``VBoxManage list vms`` output cannot be understood."""


class DirectoryConsistencyError(EnvironmentProblem):
    """Raised when names and uuids do not form a one-to-one mapping."""


class OperationFailed(VBoxCtlError):
    """An external command ran and reported failure, and was not recovered."""

    def __init__(self, message: str, *, cmd=None, result=None):
        self.cmd = cmd
        self.result = result
        super().__init__(message)
