"""Command-line management of VirtualBox machines through VBoxManage."""

__version__ = '0.1.0'
