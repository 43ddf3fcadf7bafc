"""CLI package exports for top-level command entry points."""

from __future__ import annotations

from .main import SearModalCLI, main

__all__ = ['SearModalCLI', 'main']
