# src/etch/contracts/results.py
"""Engine inputs and outputs.

These types answer: "What did the node give us for this session, and
what did generation produce?"
"""

from dataclasses import dataclass, field
from pathlib import Path

from etch.contracts.documents import CommandDocument, ConfigDocument
from etch.contracts.enums import GenerationStatus


@dataclass(frozen=True)
class FileInput:
    """Per-path data available to the engine for this session.

    Attributes:
        original: Location of the node's original content in the
            originals store, or None if the server doesn't have it
        sha1sum: Checksum the node reported this round, if any
        local_requests: Opaque per-path data the node forwarded
    """

    original: Path | None = None
    sha1sum: str | None = None
    local_requests: tuple[str, ...] = ()


@dataclass(frozen=True)
class GenerationRequest:
    """What to generate in one session.

    An empty request (no files, no commands) means "everything in the
    repository".
    """

    files: dict[str, FileInput] = field(default_factory=dict)
    commands: tuple[str, ...] = ()

    @property
    def generate_all(self) -> bool:
        return not self.files and not self.commands

    def file_input(self, path: str) -> FileInput | None:
        return self.files.get(path)


@dataclass
class GenerationResult:
    """Everything one generation session produced.

    ``configs`` holds complete instructions and, for paths in the need
    lists, partial documents reduced to depend/setup. A path never appears
    in ``need_sums`` and ``need_origs`` at once.
    """

    configs: dict[str, ConfigDocument] = field(default_factory=dict)
    need_sums: list[str] = field(default_factory=list)
    need_origs: list[str] = field(default_factory=list)
    commands: dict[str, CommandDocument] = field(default_factory=dict)
    retry_commands: list[str] = field(default_factory=list)
    statuses: dict[str, GenerationStatus] = field(default_factory=dict)

    def needs_data(self, path: str) -> bool:
        """Whether the node must send more original data for ``path``."""
        return path in self.need_sums or path in self.need_origs
