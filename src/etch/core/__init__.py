# src/etch/core/__init__.py
"""Core infrastructure: Configuration, Logging, Repository, Originals, DAG, Landscape."""

from etch.core.config import (
    DatabaseSettings,
    EtchSettings,
    load_settings,
)
from etch.core.dag import (
    DependencyGraph,
    DependencyItem,
    GraphValidationError,
)
from etch.core.logging import (
    configure_logging,
    get_logger,
)
from etch.core.originals import (
    FilesystemOriginalStore,
    OriginalStore,
    sha1_hex,
)
from etch.core.repository import (
    ConfigRepository,
    Defaults,
)
from etch.core.version import compare_versions

__all__ = [
    "ConfigRepository",
    "DatabaseSettings",
    "Defaults",
    "DependencyGraph",
    "DependencyItem",
    "EtchSettings",
    "FilesystemOriginalStore",
    "GraphValidationError",
    "OriginalStore",
    "compare_versions",
    "configure_logging",
    "get_logger",
    "load_settings",
    "sha1_hex",
]
