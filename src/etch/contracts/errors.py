# src/etch/contracts/errors.py
"""Fatal error taxonomy.

Every exception here aborts the whole request. Missing original data is
not an error: it is reported through the response's need lists.
"""


class EtchError(Exception):
    """Base class for all request-aborting errors."""


class RequestError(EtchError):
    """The request itself is unusable (no fqdn, bad tag, missing base)."""


class KillswitchError(EtchError):
    """The config base carries a killswitch file."""


class DocumentError(EtchError):
    """A repository document is missing, malformed or fails validation."""


class CircularDependencyError(EtchError):
    """A path or command bundle depends on itself, directly or not."""

    def __init__(self, item: str, cycle: list[str]) -> None:
        self.item = item
        self.cycle = cycle
        super().__init__(
            f"Circular dependency detected for {item}: {' -> '.join(cycle)}"
        )


class InconsistentEntriesError(EtchError):
    """Repeated source/destination/guard entries disagree after filtering."""


class ServerSetupError(EtchError):
    """A server_setup command exited with a non-zero status."""


class MissingDefaultError(EtchError):
    """The defaults document lacks a value an instruction requires."""


class ExternalProgramError(EtchError):
    """nodetagger, nodegrouper or a script failed or timed out."""


class TemplateError(EtchError):
    """A template failed to load or render."""


class ChecksumMismatchError(EtchError):
    """Content sent by a node does not hash to the checksum it claimed."""
