# src/etch/core/xmldoc.py
"""XML document capability built on lxml.

Loads repository documents strictly (malformed XML is an error, never
silently recovered), validates them against a DTD, and converts between
the XML trees and the ConfigDocument / CommandDocument forms the engine
works with.
"""

from importlib import resources
from pathlib import Path

from lxml import etree

from etch.contracts.documents import (
    CommandDocument,
    CommandStep,
    ConfigDocument,
    DeleteSection,
    DirectorySection,
    FileSection,
    LinkSection,
)
from etch.contracts.errors import DocumentError

_PARSER = etree.XMLParser(
    recover=False,
    resolve_entities=False,
    no_network=True,
    remove_comments=True,
)


def load_xml(path: Path) -> etree._ElementTree:
    """Parse an XML file.

    Raises:
        DocumentError: If the file can't be read or isn't well formed
    """
    try:
        return etree.parse(str(path), _PARSER)
    except (OSError, etree.XMLSyntaxError) as e:
        raise DocumentError(f"Unable to parse {path}: {e}") from e


def parse_xml(data: str | bytes) -> etree._Element:
    """Parse an XML string and return its root element."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    try:
        return etree.fromstring(data, _PARSER)
    except etree.XMLSyntaxError as e:
        raise DocumentError(f"Unable to parse XML: {e}") from e


def load_dtd(path: Path | None, packaged_name: str) -> etree.DTD:
    """Load a DTD from ``path`` if it exists, else the packaged copy.

    Args:
        path: Repository DTD location (may not exist)
        packaged_name: File name under etch/schemas to fall back on
    """
    try:
        if path is not None and path.exists():
            return etree.DTD(str(path))
        packaged = resources.files("etch.schemas").joinpath(packaged_name)
        with packaged.open("rb") as f:
            return etree.DTD(f)
    except (OSError, etree.DTDParseError) as e:
        raise DocumentError(f"Unable to load DTD {path or packaged_name}: {e}") from e


def validate(tree: etree._ElementTree | etree._Element, dtd: etree.DTD) -> None:
    """Validate a document against a DTD.

    Raises:
        DocumentError: With every validation error joined by '|'
    """
    if not dtd.validate(tree):
        errors = [str(entry.message) for entry in dtd.error_log.filter_from_errors()]
        raise DocumentError("|".join(errors) or "Validation failed")


def element_children(element: etree._Element) -> list[etree._Element]:
    """Child elements only, skipping comments and processing instructions."""
    return [child for child in element if isinstance(child.tag, str)]


def text(element: etree._Element) -> str:
    return element.text or ""


def _texts(root: etree._Element, path: str) -> list[str]:
    return [text(e) for e in root.findall(path)]


def _first_text(root: etree._Element, path: str) -> str | None:
    found = root.find(path)
    return None if found is None else text(found)


def _has(root: etree._Element, path: str) -> bool:
    return root.find(path) is not None


def config_from_xml(root: etree._Element) -> ConfigDocument:
    """Convert a filtered, validated <config> tree."""
    config = ConfigDocument(
        revert=_has(root, "revert"),
        depend=_texts(root, "depend"),
        dependcommand=_texts(root, "dependcommand"),
        server_setup=_texts(root, "server_setup/exec"),
        setup=_texts(root, "setup/exec"),
        pre=_texts(root, "pre/exec"),
        test_before_post=_texts(root, "test_before_post/exec"),
        post=_texts(root, "post/exec"),
        post_once=_texts(root, "post/exec_once"),
        post_once_per_run=_texts(root, "post/exec_once_per_run"),
        test=_texts(root, "test/exec"),
    )

    if _has(root, "file"):
        config.file = FileSection(
            owner=_first_text(root, "file/owner"),
            group=_first_text(root, "file/group"),
            perms=_first_text(root, "file/perms"),
            warning_file=_first_text(root, "file/warning_file"),
            comment_open=_first_text(root, "file/comment_open"),
            comment_line=_first_text(root, "file/comment_line"),
            comment_close=_first_text(root, "file/comment_close"),
            always_manage_metadata=_has(root, "file/always_manage_metadata"),
            warning_on_second_line=_has(root, "file/warning_on_second_line"),
            no_space_around_warning=_has(root, "file/no_space_around_warning"),
            allow_empty=_has(root, "file/allow_empty"),
            overwrite_directory=_has(root, "file/overwrite_directory"),
            plain=_texts(root, "file/source/plain"),
            template=_texts(root, "file/source/template"),
            script=_texts(root, "file/source/script"),
        )

    if _has(root, "link"):
        config.link = LinkSection(
            owner=_first_text(root, "link/owner"),
            group=_first_text(root, "link/group"),
            perms=_first_text(root, "link/perms"),
            allow_nonexistent_dest=_has(root, "link/allow_nonexistent_dest"),
            overwrite_directory=_has(root, "link/overwrite_directory"),
            dest=_texts(root, "link/dest"),
            script=_texts(root, "link/script"),
        )

    if _has(root, "directory"):
        config.directory = DirectorySection(
            owner=_first_text(root, "directory/owner"),
            group=_first_text(root, "directory/group"),
            perms=_first_text(root, "directory/perms"),
            create=_has(root, "directory/create"),
            script=_texts(root, "directory/script"),
        )

    if _has(root, "delete"):
        config.delete = DeleteSection(
            overwrite_directory=_has(root, "delete/overwrite_directory"),
            proceed=_has(root, "delete/proceed"),
            script=_texts(root, "delete/script"),
        )

    return config


def _sub(parent: etree._Element, tag: str, value: str | None = None) -> etree._Element:
    elem = etree.SubElement(parent, tag)
    if value is not None:
        elem.text = value
    return elem


def _exec_block(root: etree._Element, tag: str, commands: list[str]) -> None:
    if commands:
        block = _sub(root, tag)
        for cmd in commands:
            _sub(block, "exec", cmd)


def config_to_xml(config: ConfigDocument, path: str) -> etree._Element:
    """Render a config document for the node, tagged with its path."""
    root = etree.Element("config", filename=path)
    if config.revert:
        _sub(root, "revert")
    for depend in config.depend:
        _sub(root, "depend", depend)
    for dependcommand in config.dependcommand:
        _sub(root, "dependcommand", dependcommand)
    _exec_block(root, "setup", config.setup)
    _exec_block(root, "pre", config.pre)

    if config.file is not None:
        file_elem = _sub(root, "file")
        for name in ("owner", "group", "perms"):
            value = getattr(config.file, name)
            if value is not None:
                _sub(file_elem, name, value)
        if config.file.overwrite_directory:
            _sub(file_elem, "overwrite_directory")
        if config.file.contents is not None:
            _sub(file_elem, "contents", config.file.contents)

    if config.link is not None:
        link_elem = _sub(root, "link")
        for name in ("owner", "group", "perms"):
            value = getattr(config.link, name)
            if value is not None:
                _sub(link_elem, name, value)
        if config.link.allow_nonexistent_dest:
            _sub(link_elem, "allow_nonexistent_dest")
        if config.link.overwrite_directory:
            _sub(link_elem, "overwrite_directory")
        if config.link.dest:
            _sub(link_elem, "dest", config.link.dest[0])

    if config.directory is not None:
        dir_elem = _sub(root, "directory")
        for name in ("owner", "group", "perms"):
            value = getattr(config.directory, name)
            if value is not None:
                _sub(dir_elem, name, value)
        if config.directory.create:
            _sub(dir_elem, "create")

    if config.delete is not None:
        delete_elem = _sub(root, "delete")
        if config.delete.overwrite_directory:
            _sub(delete_elem, "overwrite_directory")
        if config.delete.proceed:
            _sub(delete_elem, "proceed")

    _exec_block(root, "test_before_post", config.test_before_post)
    if config.post_once or config.post_once_per_run or config.post:
        post_elem = _sub(root, "post")
        for cmd in config.post_once:
            _sub(post_elem, "exec_once", cmd)
        for cmd in config.post_once_per_run:
            _sub(post_elem, "exec_once_per_run", cmd)
        for cmd in config.post:
            _sub(post_elem, "exec", cmd)
    _exec_block(root, "test", config.test)
    return root


def commands_from_xml(root: etree._Element) -> CommandDocument:
    """Convert a filtered, validated <commands> tree."""
    return CommandDocument(
        depend=_texts(root, "depend"),
        dependfile=_texts(root, "dependfile"),
        steps=[
            CommandStep(
                guard=_texts(step, "guard/exec"),
                command=_texts(step, "command/exec"),
            )
            for step in root.findall("step")
        ],
    )


def commands_to_xml(commands: CommandDocument, name: str) -> etree._Element:
    """Render a command bundle for the node, tagged with its name."""
    root = etree.Element("commands", commandname=name)
    for depend in commands.depend:
        _sub(root, "depend", depend)
    for dependfile in commands.dependfile:
        _sub(root, "dependfile", dependfile)
    for step in commands.steps:
        step_elem = _sub(root, "step")
        _exec_block(step_elem, "guard", step.guard)
        _exec_block(step_elem, "command", step.command)
    return root


def to_bytes(element: etree._Element) -> bytes:
    """Serialize deterministically (same tree, same bytes)."""
    return etree.tostring(element, encoding="UTF-8", xml_declaration=False)
