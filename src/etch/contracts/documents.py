# src/etch/contracts/documents.py
"""In-memory forms of the per-path config document and per-bundle command document.

Both are built from an XML tree only after attribute filtering and DTD
validation, so they carry no filter attributes. The engine mutates them
while generating (filling defaults, attaching contents, stripping
server-only sections) before they are serialized back for the node.
"""

from dataclasses import dataclass, field, fields

# Sections that travel with any emitted instruction
ALWAYS_KEEP = (
    "depend",
    "setup",
    "pre",
    "test_before_post",
    "post",
    "post_once",
    "post_once_per_run",
    "test",
)


@dataclass
class FileSection:
    """The <file> instruction: regular file contents and metadata."""

    owner: str | None = None
    group: str | None = None
    perms: str | None = None
    # None means absent (use the default); "" means explicitly disabled
    warning_file: str | None = None
    comment_open: str | None = None
    comment_line: str | None = None
    comment_close: str | None = None
    always_manage_metadata: bool = False
    warning_on_second_line: bool = False
    no_space_around_warning: bool = False
    allow_empty: bool = False
    overwrite_directory: bool = False
    plain: list[str] = field(default_factory=list)
    template: list[str] = field(default_factory=list)
    script: list[str] = field(default_factory=list)
    # Base64-encoded generated contents, set by the engine
    contents: str | None = None

    def strip_server_directives(self) -> None:
        """Drop source and warning configuration the node must not see."""
        self.plain = []
        self.template = []
        self.script = []
        self.warning_file = None
        self.warning_on_second_line = False
        self.no_space_around_warning = False
        self.comment_open = None
        self.comment_line = None
        self.comment_close = None


@dataclass
class LinkSection:
    """The <link> instruction: a symbolic link and its destination."""

    owner: str | None = None
    group: str | None = None
    perms: str | None = None
    allow_nonexistent_dest: bool = False
    overwrite_directory: bool = False
    dest: list[str] = field(default_factory=list)
    script: list[str] = field(default_factory=list)


@dataclass
class DirectorySection:
    """The <directory> instruction."""

    owner: str | None = None
    group: str | None = None
    perms: str | None = None
    create: bool = False
    script: list[str] = field(default_factory=list)


@dataclass
class DeleteSection:
    """The <delete> instruction."""

    overwrite_directory: bool = False
    proceed: bool = False
    script: list[str] = field(default_factory=list)


@dataclass
class ConfigDocument:
    """A filtered config.xml for one managed path."""

    revert: bool = False
    depend: list[str] = field(default_factory=list)
    dependcommand: list[str] = field(default_factory=list)
    server_setup: list[str] = field(default_factory=list)
    setup: list[str] = field(default_factory=list)
    pre: list[str] = field(default_factory=list)
    file: FileSection | None = None
    link: LinkSection | None = None
    directory: DirectorySection | None = None
    delete: DeleteSection | None = None
    test_before_post: list[str] = field(default_factory=list)
    post: list[str] = field(default_factory=list)
    post_once: list[str] = field(default_factory=list)
    post_once_per_run: list[str] = field(default_factory=list)
    test: list[str] = field(default_factory=list)

    def keep_only(self, *sections: str) -> None:
        """Reset every section not named in ``sections`` to its empty value."""
        empty = ConfigDocument()
        for f in fields(self):
            if f.name not in sections:
                setattr(self, f.name, getattr(empty, f.name))

    def keep_instruction(self, section: str) -> None:
        """Keep one instruction section plus the control sections."""
        self.keep_only(section, *ALWAYS_KEEP)

    def is_empty(self) -> bool:
        """True when filtering and stripping left nothing for the node."""
        return self == ConfigDocument()


@dataclass
class CommandStep:
    """One guard/command pair. The node runs ``command`` only if ``guard`` fails."""

    guard: list[str] = field(default_factory=list)
    command: list[str] = field(default_factory=list)


@dataclass
class CommandDocument:
    """A filtered commands.xml for one named command bundle."""

    depend: list[str] = field(default_factory=list)
    dependfile: list[str] = field(default_factory=list)
    steps: list[CommandStep] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.depend or self.dependfile or self.steps)
