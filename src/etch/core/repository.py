# src/etch/core/repository.py
"""Read access to one tagged configuration repository.

Layout under the tagged base:

    source/<path>/config.xml      per-path config documents
    commands/<name>/commands.xml  command bundles
    sitelibs/                     shared template includes
    defaults.yml | defaults.xml   fallback owner/group/perms, warning banner
    nodes.yml | nodes.xml         node -> native groups
    nodegroups.yml | nodegroups.xml  parent group -> child groups
    nodegrouper                   external grouper executable
    config.dtd, commands.dtd      optional, packaged DTDs used otherwise
"""

from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml
from lxml import etree
from pydantic import BaseModel, Field, ValidationError, field_validator

from etch.contracts.documents import CommandDocument, ConfigDocument
from etch.contracts.errors import DocumentError
from etch.core.xmldoc import (
    commands_from_xml,
    config_from_xml,
    element_children,
    load_dtd,
    load_xml,
    text,
    validate,
)

ElementFilter = Callable[[etree._Element], None]


def _as_text(value: Any) -> Any:
    # YAML turns owner: 0 or perms: 644 into ints; the node wants text
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, int | float):
        return str(value)
    return value


class InstructionDefaults(BaseModel):
    """Fallback ownership and permissions for one instruction kind."""

    model_config = {"frozen": True, "extra": "ignore"}

    owner: str | None = None
    group: str | None = None
    perms: str | None = None

    @field_validator("owner", "group", "perms", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> Any:
        return _as_text(v)


class FileDefaults(InstructionDefaults):
    """File defaults also carry the warning banner format."""

    warning_file: str | None = None
    comment_open: str | None = None
    comment_line: str | None = None
    comment_close: str | None = None


class Defaults(BaseModel):
    """Repository-wide defaults document."""

    model_config = {"frozen": True, "extra": "ignore"}

    file: FileDefaults = Field(default_factory=FileDefaults)
    link: InstructionDefaults = Field(default_factory=InstructionDefaults)
    directory: InstructionDefaults = Field(default_factory=InstructionDefaults)

    @field_validator("file", "link", "directory", mode="before")
    @classmethod
    def empty_section(cls, v: Any) -> Any:
        return {} if v is None else v


def _load_yaml(path: Path) -> Any:
    try:
        return yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError) as e:
        raise DocumentError(f"Unable to load {path}: {e}") from e


class ConfigRepository:
    """Documents and metadata for one tagged base."""

    def __init__(self, tagbase: Path) -> None:
        self.tagbase = tagbase
        self.sourcebase = tagbase / "source"
        self.commandsbase = tagbase / "commands"
        self.sitelibbase = tagbase / "sitelibs"
        self._config_dtd: etree.DTD | None = None
        self._commands_dtd: etree.DTD | None = None

    # === Locations ===

    @staticmethod
    def _below(base: Path, name: str) -> Path:
        relative = name.lstrip("/")
        if not relative or ".." in Path(relative).parts:
            raise DocumentError(f"Invalid repository item name: {name!r}")
        return base / relative

    def source_dir(self, path: str) -> Path:
        """Directory holding config.xml and sources for a managed path."""
        return self._below(self.sourcebase, path)

    def command_dir(self, name: str) -> Path:
        return self._below(self.commandsbase, name)

    @property
    def nodegrouper(self) -> Path:
        return self.tagbase / "nodegrouper"

    def list_paths(self) -> list[str]:
        """Every managed path, i.e. every source dir with a config.xml."""
        if not self.sourcebase.exists():
            return []
        return sorted(
            "/" + str(config.parent.relative_to(self.sourcebase))
            for config in self.sourcebase.rglob("config.xml")
        )

    def list_commands(self) -> list[str]:
        """Every command bundle name."""
        if not self.commandsbase.exists():
            return []
        return sorted(
            entry.name
            for entry in self.commandsbase.iterdir()
            if (entry / "commands.xml").exists()
        )

    # === Metadata documents ===

    def load_defaults(self) -> Defaults:
        """Load defaults.yml, or defaults.xml if there is no YAML form.

        Raises:
            DocumentError: If neither exists or the content is invalid
        """
        yaml_path = self.tagbase / "defaults.yml"
        xml_path = self.tagbase / "defaults.xml"
        if yaml_path.exists():
            raw = _load_yaml(yaml_path) or {}
        elif xml_path.exists():
            raw = {}
            for section in element_children(load_xml(xml_path).getroot()):
                raw[section.tag] = {
                    entry.tag: text(entry) for entry in element_children(section)
                }
        else:
            raise DocumentError("Neither defaults.yml nor defaults.xml exists")
        try:
            return Defaults.model_validate(raw)
        except ValidationError as e:
            raise DocumentError(f"Invalid defaults: {e}") from e

    def load_nodes(self) -> tuple[dict[str, list[str]], str]:
        """Load the node -> native groups mapping.

        Returns:
            (mapping, name of the file it came from or '<none>')
        """
        yaml_path = self.tagbase / "nodes.yml"
        xml_path = self.tagbase / "nodes.xml"
        if yaml_path.exists():
            raw = _load_yaml(yaml_path) or {}
            return (
                {str(node): [str(g) for g in groups or []] for node, groups in raw.items()},
                yaml_path.name,
            )
        if xml_path.exists():
            nodes: dict[str, list[str]] = {}
            for node in load_xml(xml_path).getroot().findall("node"):
                groups = nodes.setdefault(node.get("name", ""), [])
                groups.extend(text(group) for group in node.findall("group"))
            return nodes, xml_path.name
        return {}, "<none>"

    def load_nodegroups(self) -> dict[str, list[str]]:
        """Load the parent group -> child groups hierarchy."""
        yaml_path = self.tagbase / "nodegroups.yml"
        xml_path = self.tagbase / "nodegroups.xml"
        if yaml_path.exists():
            raw = _load_yaml(yaml_path) or {}
            return {
                str(parent): [str(c) for c in children or []]
                for parent, children in raw.items()
            }
        if xml_path.exists():
            hierarchy: dict[str, list[str]] = {}
            root = load_xml(xml_path).getroot()
            for parent in root.findall("nodegroup"):
                children = hierarchy.setdefault(parent.get("name", ""), [])
                children.extend(text(child) for child in parent.findall("child"))
            return hierarchy
        return {}

    # === Config and command documents ===

    def _load_filtered(
        self,
        xml_path: Path,
        kind: str,
        item: str,
        dtd: etree.DTD,
        element_filter: ElementFilter | None,
    ) -> etree._Element:
        if not xml_path.exists():
            raise DocumentError(f"{kind} for {item} does not exist")
        try:
            tree = load_xml(xml_path)
        except DocumentError as e:
            raise DocumentError(f"Error loading {kind} for {item}:\n{e}") from e
        root = tree.getroot()
        if element_filter is not None:
            try:
                element_filter(root)
            except DocumentError as e:
                raise DocumentError(f"Error filtering {kind} for {item}:\n{e}") from e
        try:
            validate(tree, dtd)
        except DocumentError as e:
            raise DocumentError(
                f"Filtered {kind} for {item} fails validation:\n{e}"
            ) from e
        return root

    def load_config(
        self, path: str, element_filter: ElementFilter | None = None
    ) -> ConfigDocument:
        """Load, filter and validate the config document for ``path``.

        Args:
            path: Managed path, e.g. "/etc/motd"
            element_filter: Applied to the root before validation; None
                loads the document unfiltered

        Raises:
            DocumentError: Missing, malformed, or invalid after filtering
        """
        if self._config_dtd is None:
            self._config_dtd = load_dtd(self.tagbase / "config.dtd", "config.dtd")
        root = self._load_filtered(
            self.source_dir(path) / "config.xml",
            "config.xml",
            path,
            self._config_dtd,
            element_filter,
        )
        return config_from_xml(root)

    def load_commands(
        self, name: str, element_filter: ElementFilter | None = None
    ) -> CommandDocument:
        """Load, filter and validate the command bundle ``name``."""
        if self._commands_dtd is None:
            self._commands_dtd = load_dtd(
                self.tagbase / "commands.dtd", "commands.dtd"
            )
        root = self._load_filtered(
            self.command_dir(name) / "commands.xml",
            "commands.xml",
            name,
            self._commands_dtd,
            element_filter,
        )
        return commands_from_xml(root)
