# src/etch/engine/generator.py
"""GenerationEngine: dependency-aware generation of instructions for one node.

Every managed path and command bundle ends in one of three outcomes:

- SUCCESS: an instruction was produced
- FAILURE: the node must send more original data first (not an error)
- UNKNOWN: nothing applies to this node

Fatal conditions raise EtchError subclasses and abort the request.
"""

from __future__ import annotations

import base64
from functools import cached_property
from pathlib import Path
from typing import Any

from etch.contracts.documents import (
    CommandDocument,
    ConfigDocument,
    DeleteSection,
    DirectorySection,
    FileSection,
    LinkSection,
)
from etch.contracts.enums import GenerationStatus, InstructionKind
from etch.contracts.errors import DocumentError, InconsistentEntriesError, MissingDefaultError
from etch.contracts.node import NodeContext
from etch.contracts.results import GenerationRequest, GenerationResult
from etch.core.dag import DependencyItem
from etch.core.logging import get_logger
from etch.core.repository import ConfigRepository, Defaults
from etch.engine.external import (
    ScriptRunner,
    SourceContext,
    SubprocessScriptRunner,
    TemplateRenderer,
    run_server_setup,
)
from etch.engine.filter import AttributeFilter
from etch.engine.session import GenerationSession

_METADATA = ("owner", "group", "perms")


def _single(entries: list[str], what: str, path: str) -> str:
    """The one value repeated entries agree on.

    Raises:
        InconsistentEntriesError: If the entries differ
    """
    first = entries[0]
    if any(entry != first for entry in entries):
        raise InconsistentEntriesError(f"Inconsistent '{what}' entries for {path}")
    return first


class GenerationEngine:
    """Generate configs and command bundles for one node.

    Example:
        engine = GenerationEngine(repository, context)
        result = engine.generate(GenerationRequest(files={"/etc/motd": FileInput(...)}))
    """

    def __init__(
        self,
        repository: ConfigRepository,
        context: NodeContext,
        *,
        renderer: TemplateRenderer | None = None,
        script_runner: ScriptRunner | None = None,
        timeout: float | None = None,
        logger: Any = None,
    ) -> None:
        self.repository = repository
        self.context = context
        self._filter = AttributeFilter(context)
        self._renderer = renderer or TemplateRenderer()
        self._scripts = script_runner or SubprocessScriptRunner(timeout=timeout)
        self._timeout = timeout
        self._log = logger or get_logger(__name__, fqdn=context.fqdn)

    @cached_property
    def defaults(self) -> Defaults:
        return self.repository.load_defaults()

    def generate(self, request: GenerationRequest) -> GenerationResult:
        """Resolve every requested path and bundle.

        An empty request generates everything in the repository.

        Raises:
            EtchError: On any fatal condition
        """
        # Missing defaults are fatal even for requests that never need them
        _ = self.defaults

        session = GenerationSession(request)
        if request.generate_all:
            paths = self.repository.list_paths()
            commands = self.repository.list_commands()
        else:
            paths = list(request.files)
            commands = list(request.commands)
        self._log.debug("generating", files=len(paths), commands=len(commands))

        for path in paths:
            self.resolve_file(path, session)
        for name in commands:
            self.resolve_command(name, session)
        return session.result()

    # === Files ===

    def resolve_file(self, path: str, session: GenerationSession) -> GenerationStatus:
        """Resolve one managed path, memoized per session.

        Raises:
            CircularDependencyError: If ``path`` is already being resolved
        """
        item = DependencyItem("file", path)
        previous = session.outcome(item)
        if previous is not None:
            self._log.debug("skipping already generated", path=path)
            return previous

        session.enter(item)
        config = self.repository.load_config(path, self._filter)
        status = self._generate_file(item, config, session)

        # Failed configs are kept too: their setup commands may be what
        # creates the original the node still has to send
        if status is not GenerationStatus.UNKNOWN and not config.is_empty():
            session.configs[path] = config
        return session.finish(item, status)

    def _generate_file(
        self, item: DependencyItem, config: ConfigDocument, session: GenerationSession
    ) -> GenerationStatus:
        path = item.name
        proceed = True
        for depend in config.depend:
            self._log.debug("generating dependency", path=path, depend=depend)
            session.depends(item, DependencyItem("file", depend))
            proceed = self.resolve_file(depend, session).satisfied and proceed
        for dependcommand in config.dependcommand:
            self._log.debug("generating command dependency", path=path, command=dependcommand)
            session.depends(item, DependencyItem("command", dependcommand))
            proceed = self.resolve_command(dependcommand, session).satisfied and proceed
        if not proceed:
            self._log.debug("dependencies need data from node", path=path)

        file_input = session.request.file_input(path)
        original = file_input.original if file_input is not None else None
        if original is None:
            self._log.debug("need original from node", path=path)
            proceed = False

        if not proceed:
            # Ask again for the whole dependency tree, otherwise node and
            # server can keep trading partial answers forever
            for depend in config.depend:
                session.flag_need(depend)
            session.flag_need(path)
            config.keep_only("depend", "setup")
            return GenerationStatus.FAILURE

        source_dir = self.repository.source_dir(path)

        if config.revert:
            config.keep_instruction(InstructionKind.REVERT.value)
            return GenerationStatus.SUCCESS

        if config.server_setup:
            self._log.debug("running server setup", path=path, commands=config.server_setup)
            run_server_setup(config.server_setup, cwd=source_dir, timeout=self._timeout)

        source = SourceContext(
            file=path,
            original_file=original,
            facts=self.context.facts,
            groups=self.context.groups,
            source_dir=source_dir,
            sourcebase=self.repository.sourcebase,
            commandsbase=self.repository.commandsbase,
            sitelibbase=self.repository.sitelibbase,
            local_requests=file_input.local_requests if file_input is not None else (),
        )

        if config.file is not None and self._generate_regular_file(config.file, source):
            config.keep_instruction(InstructionKind.FILE.value)
            return GenerationStatus.SUCCESS
        if config.link is not None and self._generate_link(config.link, source):
            config.keep_instruction(InstructionKind.LINK.value)
            return GenerationStatus.SUCCESS
        if config.directory is not None and self._generate_directory(config.directory, source):
            config.keep_instruction(InstructionKind.DIRECTORY.value)
            return GenerationStatus.SUCCESS
        if config.delete is not None and self._generate_delete(config.delete, source):
            config.keep_instruction(InstructionKind.DELETE.value)
            return GenerationStatus.SUCCESS

        return GenerationStatus.UNKNOWN

    def _generate_regular_file(self, section: FileSection, source: SourceContext) -> bool:
        path = source.file
        kinds = [
            (name, entries)
            for name, entries in (
                ("plain", section.plain),
                ("template", section.template),
                ("script", section.script),
            )
            if entries
        ]
        if len(kinds) > 1:
            names = ", ".join(name for name, _ in kinds)
            raise InconsistentEntriesError(f"Multiple content sources ({names}) for {path}")

        contents = b""
        if kinds:
            kind, entries = kinds[0]
            name = _single(entries, kind, path)
            if kind == "plain":
                contents = self._read_plain(name, source)
            elif kind == "template":
                contents = self._renderer.render(name, source).encode("utf-8")
            else:
                contents = self._scripts.run(name, source).encode("utf-8")
        elif not section.always_manage_metadata:
            self._log.debug("no source for file contents, doing nothing", path=path)

        if not contents and not (section.allow_empty or section.always_manage_metadata):
            self._log.debug("file contents empty, doing nothing", path=path)
            return False

        # Metadata-only management never touches the contents
        if contents or not section.always_manage_metadata:
            banner = self._warning_banner(section, source)
            if banner is not None:
                contents = self._insert_warning(section, contents, banner)
            section.contents = base64.b64encode(contents).decode("ascii")

        section.strip_server_directives()
        self._fill_defaults(section, "file")
        return True

    def _read_plain(self, name: str, source: SourceContext) -> bytes:
        plain = Path(name)
        if not plain.is_absolute():
            plain = source.source_dir / plain
        try:
            return plain.read_bytes()
        except OSError as e:
            raise DocumentError(f"Unable to read plain source {name} for {source.file}: {e}") from e

    def _warning_banner(self, section: FileSection, source: SourceContext) -> bytes | None:
        """Build the comment block warning that the file is managed.

        Returns:
            The banner, or None if disabled or the warning file is missing
        """
        defaults = self.defaults.file
        if section.warning_file is None:
            warning_file = defaults.warning_file
        else:
            # An empty <warning_file/> turns the default off
            warning_file = section.warning_file
        if not warning_file:
            return None

        warning_path = Path(warning_file)
        if not warning_path.is_absolute():
            local = source.source_dir / warning_path
            warning_path = local if local.exists() else self.repository.tagbase / warning_path
        if not warning_path.is_file():
            self._log.debug("warning file missing", path=source.file, warning_file=str(warning_path))
            return None

        comment_open = section.comment_open or defaults.comment_open
        comment_line = section.comment_line or defaults.comment_line or "# "
        comment_close = section.comment_close or defaults.comment_close

        banner = b""
        if comment_open:
            banner += comment_open.encode("utf-8") + b"\n"
        prefix = comment_line.encode("utf-8")
        for line in warning_path.read_bytes().splitlines(keepends=True):
            banner += prefix + line
        if comment_close:
            banner += comment_close.encode("utf-8") + b"\n"
        return banner

    @staticmethod
    def _insert_warning(section: FileSection, contents: bytes, banner: bytes) -> bytes:
        if not section.warning_on_second_line:
            if section.no_space_around_warning:
                return banner + contents
            return banner + b"\n" + contents
        # Files such as scripts need their first line kept first
        first, _, rest = contents.partition(b"\n")
        if section.no_space_around_warning:
            return first + b"\n" + banner + rest
        return first + b"\n\n" + banner + b"\n" + rest

    def _generate_link(self, section: LinkSection, source: SourceContext) -> bool:
        path = source.file
        dest: str | None = None
        if section.dest:
            dest = _single(section.dest, "dest", path)
        elif section.script:
            script = _single(section.script, "script", path)
            dest = self._scripts.run(script, source).strip()
            section.script = []
        else:
            self._log.debug("no link destination, doing nothing", path=path)

        if not dest:
            self._log.debug("link destination empty, doing nothing", path=path)
            return False
        section.dest = [dest]
        self._fill_defaults(section, "link")
        return True

    def _generate_directory(self, section: DirectorySection, source: SourceContext) -> bool:
        path = source.file
        create = section.create
        if not create and section.script:
            script = _single(section.script, "script", path)
            create = bool(self._scripts.run(script, source).strip())
            section.script = []
        if not create:
            self._log.debug("no directive to create directory, doing nothing", path=path)
            return False
        section.create = True
        self._fill_defaults(section, "directory")
        return True

    def _generate_delete(self, section: DeleteSection, source: SourceContext) -> bool:
        proceed = section.proceed
        if not proceed and section.script:
            script = _single(section.script, "script", source.file)
            proceed = bool(self._scripts.run(script, source).strip())
            section.script = []
        if not proceed:
            self._log.debug("no directive to delete, doing nothing", path=source.file)
            return False
        section.proceed = True
        return True

    def _fill_defaults(
        self, section: FileSection | LinkSection | DirectorySection, kind: str
    ) -> None:
        """Fill owner/group/perms the document left out from the defaults.

        Raises:
            MissingDefaultError: If the defaults lack a needed value
        """
        defaults = getattr(self.defaults, kind)
        for name in _METADATA:
            if getattr(section, name) is not None:
                continue
            value = getattr(defaults, name)
            if not value:
                raise MissingDefaultError(f"defaults needs {kind}->{name}")
            setattr(section, name, value)

    # === Command bundles ===

    def resolve_command(self, name: str, session: GenerationSession) -> GenerationStatus:
        """Resolve one command bundle, memoized per session.

        Raises:
            CircularDependencyError: If ``name`` is already being resolved
        """
        item = DependencyItem("command", name)
        previous = session.outcome(item)
        if previous is not None:
            self._log.debug("skipping already generated command", command=name)
            return previous

        session.enter(item)
        commands = self.repository.load_commands(name, self._filter)
        status = self._generate_commands(item, commands, session)
        if status is GenerationStatus.SUCCESS and not commands.is_empty():
            session.commands[name] = commands
        return session.finish(item, status)

    def _generate_commands(
        self, item: DependencyItem, commands: CommandDocument, session: GenerationSession
    ) -> GenerationStatus:
        name = item.name
        proceed = True
        for depend in commands.depend:
            self._log.debug("generating command dependency", command=name, depend=depend)
            session.depends(item, DependencyItem("command", depend))
            proceed = self.resolve_command(depend, session).satisfied and proceed
        for dependfile in commands.dependfile:
            self._log.debug("generating file dependency", command=name, depend=dependfile)
            session.depends(item, DependencyItem("file", dependfile))
            proceed = self.resolve_file(dependfile, session).satisfied and proceed

        if not proceed:
            self._log.debug("dependencies need data from node", command=name)
            for dependfile in commands.dependfile:
                session.flag_need(dependfile)
            session.retry_commands[name] = None
            return GenerationStatus.FAILURE

        status = GenerationStatus.UNKNOWN
        kept = []
        for step in commands.steps:
            if not step.guard and not step.command:
                continue
            if not step.guard:
                raise InconsistentEntriesError(
                    f"Filtering removed guard, but left command: {';'.join(step.command)}"
                )
            if not step.command:
                raise InconsistentEntriesError(
                    f"Filtering removed command, but left guard: {';'.join(step.guard)}"
                )
            kept.append(step)
            status = GenerationStatus.SUCCESS
        commands.steps = kept
        return status
