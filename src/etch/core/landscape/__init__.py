# src/etch/core/landscape/__init__.py
"""Landscape: persistent records of nodes, facts, originals and configs."""

from etch.core.landscape.database import EtchDB
from etch.core.landscape.recorder import NodeRecorder
from etch.core.landscape.schema import metadata

__all__ = [
    "EtchDB",
    "NodeRecorder",
    "metadata",
]
