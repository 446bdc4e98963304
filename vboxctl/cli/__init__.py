"""CLI package exports for top-level command entry points."""

from __future__ import annotations

from .main import VBoxCtlModalCLI, main

__all__ = ['VBoxCtlModalCLI', 'main']
