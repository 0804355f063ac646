# src/etch/contracts/node.py
"""Per-request identity of the node being served."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType


@dataclass(frozen=True)
class NodeContext:
    """Immutable node identity used to filter documents.

    Created once per request by NodeContextResolver and never mutated
    while the generation engine walks the repository.

    Attributes:
        fqdn: Fully qualified name the node reported
        facts: Facts the node reported (name -> value)
        groups: Sorted, deduplicated group memberships
    """

    fqdn: str
    facts: Mapping[str, str] = field(default_factory=dict)
    groups: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "facts", MappingProxyType(dict(self.facts)))
        object.__setattr__(self, "groups", tuple(sorted(set(self.groups))))

    def comparables(self, name: str) -> tuple[str, ...]:
        """Values an attribute named ``name`` is compared against.

        ``group`` compares against every group; any other name compares
        against the fact of that name, if the node reported one.
        """
        if name == "group":
            return self.groups
        if name in self.facts:
            return (self.facts[name],)
        return ()
