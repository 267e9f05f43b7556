"""Astra-Maid merge engine package.

This package exposes the deterministic merge engine surface.
Front ends should import from here to avoid mixing engine passes with
server access or user interaction.
"""

from .interface import (
    MergeResult,
    Settings,
    run_engine,
)

__all__ = [
    "MergeResult",
    "Settings",
    "run_engine",
]
