# src/etch/contracts/protocol.py
"""Logical request and response documents exchanged with a node."""

import base64
import binascii
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from etch.contracts.documents import CommandDocument, ConfigDocument
from etch.contracts.errors import RequestError

# Marker some clients send in ``files`` to ask for everything
GENERATE_ALL = "GENERATEALL"


def _flag(value: Any) -> bool:
    """True for True, 1, or the strings "true" and "1" in any case."""
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1")
    return value is True or value == 1


@dataclass(frozen=True)
class FileReport:
    """What a node reported about one path's original."""

    contents: bytes | None = None
    sha1sum: str | None = None
    local_requests: tuple[str, ...] = ()


@dataclass(frozen=True)
class NodeRequest:
    """One request from a node."""

    fqdn: str
    facts: dict[str, str] = field(default_factory=dict)
    tag: str | None = None
    debug: bool = False
    files: dict[str, FileReport] = field(default_factory=dict)
    commands: tuple[str, ...] = ()

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "NodeRequest":
        """Build a request from decoded wire data.

        ``files`` maps path -> {"contents": base64, "sha1sum": hex,
        "local_requests": [...]}, ``commands`` maps bundle name -> {}.

        Raises:
            RequestError: If fqdn is missing or contents aren't base64
        """
        facts = {str(k): str(v) for k, v in (data.get("facts") or {}).items()}
        fqdn = data.get("fqdn") or facts.get("fqdn")
        if not fqdn:
            raise RequestError("fqdn fact not supplied")

        files: dict[str, FileReport] = {}
        for path, report in (data.get("files") or {}).items():
            if path == GENERATE_ALL:
                continue
            report = report or {}
            contents = None
            if report.get("contents") is not None:
                try:
                    contents = base64.b64decode(report["contents"])
                except (binascii.Error, ValueError) as e:
                    raise RequestError(f"Contents for {path} are not valid base64") from e
            local_requests = report.get("local_requests") or ()
            if isinstance(local_requests, str):
                local_requests = (local_requests,)
            files[path] = FileReport(
                contents=contents,
                sha1sum=report.get("sha1sum"),
                local_requests=tuple(local_requests),
            )

        return cls(
            fqdn=str(fqdn),
            facts=facts,
            tag=data.get("tag"),
            debug=_flag(data.get("debug")),
            files=files,
            commands=tuple(data.get("commands") or ()),
        )


@dataclass
class NodeResponse:
    """Server answer to one request."""

    configs: dict[str, ConfigDocument] = field(default_factory=dict)
    need_sums: list[str] = field(default_factory=list)
    need_origs: list[str] = field(default_factory=list)
    allcommands: dict[str, CommandDocument] = field(default_factory=dict)
    retrycommands: list[str] = field(default_factory=list)

    @property
    def converged(self) -> bool:
        """True when the node has nothing more to send."""
        return not (self.need_sums or self.need_origs or self.retrycommands)
