# src/etch/contracts/__init__.py
"""Shared contracts for cross-boundary data types.

Import pattern:
    from etch.contracts import NodeContext, GenerationStatus, ConfigDocument
"""

from etch.contracts.documents import (
    ALWAYS_KEEP,
    CommandDocument,
    CommandStep,
    ConfigDocument,
    DeleteSection,
    DirectorySection,
    FileSection,
    LinkSection,
)
from etch.contracts.enums import GenerationStatus, InstructionKind, NeedKind
from etch.contracts.errors import (
    ChecksumMismatchError,
    CircularDependencyError,
    DocumentError,
    EtchError,
    ExternalProgramError,
    InconsistentEntriesError,
    KillswitchError,
    MissingDefaultError,
    RequestError,
    ServerSetupError,
    TemplateError,
)
from etch.contracts.node import NodeContext
from etch.contracts.protocol import GENERATE_ALL, FileReport, NodeRequest, NodeResponse
from etch.contracts.results import FileInput, GenerationRequest, GenerationResult

__all__ = [
    "ALWAYS_KEEP",
    "GENERATE_ALL",
    "ChecksumMismatchError",
    "CircularDependencyError",
    "CommandDocument",
    "CommandStep",
    "ConfigDocument",
    "DeleteSection",
    "DirectorySection",
    "DocumentError",
    "EtchError",
    "ExternalProgramError",
    "FileInput",
    "FileReport",
    "FileSection",
    "GenerationRequest",
    "GenerationResult",
    "GenerationStatus",
    "InconsistentEntriesError",
    "InstructionKind",
    "KillswitchError",
    "LinkSection",
    "MissingDefaultError",
    "NeedKind",
    "NodeContext",
    "NodeRequest",
    "NodeResponse",
    "RequestError",
    "ServerSetupError",
    "TemplateError",
]
