# src/etch/core/originals.py
"""
Original-content store for managed paths.

Before etch manages a file it keeps the node's pre-existing content so
the change can be reverted. Content is addressed by its SHA-1 digest,
which is also what nodes report for files they already sent:
- Identical originals from many nodes are stored once
- A node that only sends a checksum can be matched to stored content

Writes land under a temporary name and are renamed into place, so a
stored name only ever holds complete content.

Structure: base_path/<managed path>.ORIG/<sha1>
"""

import hashlib
import os
import tempfile
from pathlib import Path
from typing import Protocol, runtime_checkable

from etch.contracts.errors import ChecksumMismatchError, RequestError


def sha1_hex(content: bytes) -> str:
    """Hex SHA-1 digest, the checksum nodes report for files."""
    return hashlib.sha1(content).hexdigest()


@runtime_checkable
class OriginalStore(Protocol):
    """Protocol for original-content backends."""

    def store(self, path: str, content: bytes) -> str:
        """Store the original content of ``path`` and return its SHA-1."""
        ...

    def store_verified(self, path: str, content: bytes, claimed: str) -> str:
        """Store content that must hash to ``claimed``.

        Raises:
            ChecksumMismatchError: If it doesn't
        """
        ...

    def exists(self, path: str, sha1sum: str) -> bool:
        """Check if content for ``path`` with ``sha1sum`` is stored."""
        ...

    def location(self, path: str, sha1sum: str) -> Path:
        """Filesystem location where the content lives (or would live)."""
        ...


class FilesystemOriginalStore:
    """Filesystem-based original store."""

    def __init__(self, base_path: Path) -> None:
        """Initialize filesystem store.

        Args:
            base_path: Root directory for originals
        """
        self.base_path = base_path
        self.base_path.mkdir(parents=True, exist_ok=True)

    def location(self, path: str, sha1sum: str) -> Path:
        relative = path.lstrip("/")
        if not relative or ".." in Path(relative).parts:
            raise RequestError(f"Invalid managed path: {path!r}")
        if not sha1sum or "/" in sha1sum or sha1sum.startswith("."):
            raise RequestError(f"Invalid checksum for {path}: {sha1sum!r}")
        return self.base_path / f"{relative}.ORIG" / sha1sum

    def store(self, path: str, content: bytes) -> str:
        sha1sum = sha1_hex(content)
        target = self.location(path, sha1sum)

        # Idempotent: skip if already exists
        if not target.exists():
            target.parent.mkdir(parents=True, exist_ok=True)
            self._write_atomic(target, content)

        return sha1sum

    @staticmethod
    def _write_atomic(target: Path, content: bytes) -> None:
        # Temp file sits beside target so os.replace stays on one filesystem.
        # Racing writers of one sum hold identical bytes; last rename wins.
        tmp_path: Path | None = None
        try:
            with tempfile.NamedTemporaryFile(
                dir=target.parent, prefix=f".{target.name}.", delete=False
            ) as tmp:
                tmp_path = Path(tmp.name)
                tmp.write(content)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_path, target)
        except BaseException:
            if tmp_path is not None:
                tmp_path.unlink(missing_ok=True)
            raise

    def store_verified(self, path: str, content: bytes, claimed: str) -> str:
        """Store content only if it matches the checksum the node claimed.

        Raises:
            ChecksumMismatchError: If the content hashes to something else
        """
        actual = sha1_hex(content)
        if actual != claimed:
            raise ChecksumMismatchError(
                f"{path} original file checksum mismatch: "
                f"node claimed {claimed}, content is {actual}"
            )
        return self.store(path, content)

    def exists(self, path: str, sha1sum: str) -> bool:
        return self.location(path, sha1sum).exists()
