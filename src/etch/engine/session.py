# src/etch/engine/session.py
"""Per-generation mutable state.

A GenerationSession lives for exactly one ``GenerationEngine.generate``
call and is threaded through every recursive resolution. Nothing here
is shared between requests.
"""

from dataclasses import dataclass, field

from etch.contracts.documents import CommandDocument, ConfigDocument
from etch.contracts.enums import GenerationStatus, NeedKind
from etch.contracts.errors import CircularDependencyError
from etch.contracts.results import GenerationRequest, GenerationResult
from etch.core.dag import DependencyGraph, DependencyItem


@dataclass
class GenerationSession:
    """Accumulator for one generation call.

    Attributes:
        request: What the node asked for and supplied
        outcomes: Terminal outcome per resolved file or bundle (memo)
        stack: Items currently being resolved, outermost first
        graph: Dependency edges discovered so far
        configs: Documents to send, per path, in resolution order
        needs: Paths whose original data the node must still send
        commands: Bundles to send, per name
        retry_commands: Bundles the node should ask for again
    """

    request: GenerationRequest
    outcomes: dict[DependencyItem, GenerationStatus] = field(default_factory=dict)
    stack: list[DependencyItem] = field(default_factory=list)
    graph: DependencyGraph = field(default_factory=DependencyGraph)
    configs: dict[str, ConfigDocument] = field(default_factory=dict)
    needs: dict[str, NeedKind] = field(default_factory=dict)
    commands: dict[str, CommandDocument] = field(default_factory=dict)
    retry_commands: dict[str, None] = field(default_factory=dict)

    def outcome(self, item: DependencyItem) -> GenerationStatus | None:
        return self.outcomes.get(item)

    def enter(self, item: DependencyItem) -> None:
        """Push ``item`` onto the in-progress stack.

        Raises:
            CircularDependencyError: If ``item`` is already being resolved
        """
        if item in self.stack:
            cycle = self.graph.find_cycle()
            if cycle is None:
                start = self.stack.index(item)
                cycle = [i.name for i in self.stack[start:]] + [item.name]
            raise CircularDependencyError(item.name, cycle)
        self.stack.append(item)

    def depends(self, dependent: DependencyItem, dependency: DependencyItem) -> None:
        self.graph.add_dependency(dependent, dependency)

    def finish(self, item: DependencyItem, status: GenerationStatus) -> GenerationStatus:
        """Pop ``item`` off the stack and memoize its outcome."""
        self.stack.remove(item)
        self.outcomes[item] = status
        return status

    def flag_need(self, path: str) -> None:
        """Ask the node for ``path``'s original.

        A node that already reported a checksum this round is asked for
        content; otherwise it is asked for the checksum first.
        """
        file_input = self.request.file_input(path)
        if file_input is not None and file_input.sha1sum:
            self.needs[path] = NeedKind.ORIG
        else:
            self.needs[path] = NeedKind.SUM

    def result(self) -> GenerationResult:
        """Assemble the session's output.

        Configs of paths that still need data are reduced to the parts the
        node uses to prepare its original (depend and setup).
        """
        configs: dict[str, ConfigDocument] = {}
        for path, config in self.configs.items():
            if path in self.needs:
                config.keep_only("depend", "setup")
                if config.is_empty():
                    continue
            configs[path] = config

        return GenerationResult(
            configs=configs,
            need_sums=[p for p, kind in self.needs.items() if kind is NeedKind.SUM],
            need_origs=[p for p, kind in self.needs.items() if kind is NeedKind.ORIG],
            commands=dict(self.commands),
            retry_commands=list(self.retry_commands),
            statuses={
                item.name: status
                for item, status in self.outcomes.items()
                if item.kind == "file"
            },
        )
