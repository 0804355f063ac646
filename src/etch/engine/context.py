# src/etch/engine/context.py
"""Who is asking: killswitch, tag, tagged base and group membership."""

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from etch.contracts.errors import KillswitchError, RequestError
from etch.contracts.node import NodeContext
from etch.core.logging import get_logger
from etch.core.repository import ConfigRepository
from etch.engine.external import run_program


def check_killswitch(configbase: Path) -> None:
    """Refuse all service while ``<configbase>/killswitch`` exists.

    Raises:
        KillswitchError: Carrying the killswitch file's contents
    """
    killswitch = configbase / "killswitch"
    if killswitch.exists():
        raise KillswitchError(f"killswitch activated: {killswitch.read_text().strip()}")


def run_node_tagger(
    configbase: Path, fqdn: str, *, timeout: float | None = None, logger: Any = None
) -> str:
    """Ask ``<configbase>/nodetagger`` which tag a node gets.

    Returns:
        The first line of the tagger's output, or "" without a tagger

    Raises:
        ExternalProgramError: If the tagger exits non-zero
    """
    log = logger or get_logger(__name__)
    tagger = configbase / "nodetagger"
    if not os.access(tagger, os.X_OK):
        log.debug("no nodetagger, using untagged base", nodetagger=str(tagger))
        return ""
    output = run_program([str(tagger), fqdn], cwd=configbase, timeout=timeout)
    lines = output.splitlines()
    tag = lines[0].strip() if lines else ""
    log.debug("tagged node", tag=tag)
    return tag


def resolve_tagbase(configbase: Path, tag: str) -> Path:
    """Directory of the repository slice for ``tag``.

    Raises:
        RequestError: If the tag escapes the config base or has no directory
    """
    if ".." in tag:
        raise RequestError(f"Tag {tag!r} must not contain '..'")
    tagbase = configbase / tag.lstrip("/") if tag else configbase
    if not tagbase.is_dir():
        raise RequestError(f"Tagged base {tagbase} doesn't exist")
    return tagbase


class NodeContextResolver:
    """Compute a node's full group membership.

    Groups come from three places, unioned:
    1. nodes.yml/nodes.xml, the node's native groups
    2. nodegroups.yml/nodegroups.xml, every ancestor of a native group
    3. the tagged base's nodegrouper program, one group per output line
    """

    def __init__(
        self,
        repository: ConfigRepository,
        *,
        timeout: float | None = None,
        logger: Any = None,
    ) -> None:
        self._repository = repository
        self._timeout = timeout
        self._log = logger or get_logger(__name__)

    def resolve(self, fqdn: str, facts: Mapping[str, str]) -> NodeContext:
        """Build the immutable context for one request.

        Raises:
            ExternalProgramError: If the nodegrouper exits non-zero
        """
        native = self.native_groups(fqdn)
        ancestors = self.hierarchy_groups(native)
        external = self.external_groups(fqdn)
        return NodeContext(fqdn=fqdn, facts=facts, groups=(*native, *ancestors, *external))

    def native_groups(self, fqdn: str) -> list[str]:
        nodes, source = self._repository.load_nodes()
        if fqdn not in nodes:
            self._log.warning("node not listed in nodes file", fqdn=fqdn, nodes_file=source)
            return []
        groups = nodes[fqdn]
        self._log.debug("native groups", groups=groups)
        return groups

    def hierarchy_groups(self, groups: list[str]) -> list[str]:
        """Every ancestor of ``groups`` in the nodegroups hierarchy.

        Hierarchy cycles are harmless: a group already collected is
        not walked again.
        """
        parents: dict[str, list[str]] = {}
        for parent, children in self._repository.load_nodegroups().items():
            for child in children:
                parents.setdefault(child, []).append(parent)

        found: list[str] = []
        seen = set(groups)
        pending = list(groups)
        while pending:
            group = pending.pop()
            for parent in parents.get(group, []):
                if parent not in seen:
                    seen.add(parent)
                    found.append(parent)
                    pending.append(parent)
        self._log.debug("hierarchy groups", groups=found)
        return found

    def external_groups(self, fqdn: str) -> list[str]:
        grouper = self._repository.nodegrouper
        if not grouper.exists():
            self._log.debug("no nodegrouper", nodegrouper=str(grouper))
            return []
        # One that exists but cannot run is fatal, like a nonzero exit
        output = run_program(
            [str(grouper), fqdn], cwd=self._repository.tagbase, timeout=self._timeout
        )
        groups = [line.strip() for line in output.splitlines() if line.strip()]
        self._log.debug("external groups", groups=groups)
        return groups
