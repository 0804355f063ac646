# src/etch/contracts/enums.py
"""Enumerations shared across the generation engine and its callers."""

from enum import Enum


class GenerationStatus(str, Enum):
    """Terminal outcome of resolving one path or command bundle.

    Values:
        SUCCESS: A valid instruction was produced for the node
        FAILURE: Data is missing (generally an original file), either for
            this item or for one of its dependencies. Not an error.
        UNKNOWN: Nothing to do, usually because filtering removed all
            actionable content. Counts as satisfied for dependents.
    """

    SUCCESS = "success"
    FAILURE = "failure"
    UNKNOWN = "unknown"

    @property
    def satisfied(self) -> bool:
        """Whether dependents may proceed past an item with this outcome."""
        return self is not GenerationStatus.FAILURE


class InstructionKind(str, Enum):
    """Instruction kinds a config document can carry, in evaluation order."""

    REVERT = "revert"
    FILE = "file"
    LINK = "link"
    DIRECTORY = "directory"
    DELETE = "delete"


class NeedKind(str, Enum):
    """What the server asks a node to send for a path on the next request."""

    SUM = "need_sum"
    ORIG = "need_orig"
