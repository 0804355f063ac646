# src/etch/engine/external.py
"""Running code outside the engine: external programs, templates, scripts.

Templates and scripts see the same narrow context (``SourceContext``)
and return a string. Templates render in a Jinja2 sandbox; scripts run
as child processes, so no repository code executes inside the server.
"""

from __future__ import annotations

import json
import os
import subprocess
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from jinja2 import (
    FileSystemLoader,
    StrictUndefined,
    TemplateNotFound,
    TemplateSyntaxError,
    UndefinedError,
)
from jinja2.exceptions import SecurityError
from jinja2.sandbox import SandboxedEnvironment

from etch.contracts.errors import ExternalProgramError, ServerSetupError, TemplateError


def run_program(
    argv: Sequence[str],
    *,
    cwd: Path | None = None,
    timeout: float | None = None,
    input_text: str | None = None,
    env: Mapping[str, str] | None = None,
) -> str:
    """Run an external program and return its stdout.

    Raises:
        ExternalProgramError: If it can't start, times out, or exits non-zero
    """
    name = argv[0]
    try:
        completed = subprocess.run(
            list(argv),
            cwd=cwd,
            input=input_text,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=dict(env) if env is not None else None,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        raise ExternalProgramError(f"{name} timed out after {timeout} seconds") from e
    except OSError as e:
        raise ExternalProgramError(f"{name} could not be run: {e}") from e
    if completed.returncode != 0:
        stderr = completed.stderr.strip()
        raise ExternalProgramError(
            f"{name} exited with status {completed.returncode}"
            + (f": {stderr}" if stderr else "")
        )
    return completed.stdout


def run_server_setup(
    commands: Sequence[str], *, cwd: Path, timeout: float | None = None
) -> None:
    """Run ``server_setup`` commands in order through /bin/sh.

    Raises:
        ServerSetupError: On the first command that fails
    """
    for command in commands:
        try:
            run_program(["/bin/sh", "-c", command], cwd=cwd, timeout=timeout)
        except ExternalProgramError as e:
            raise ServerSetupError(f"server_setup command {command!r} failed: {e}") from e


@dataclass(frozen=True)
class SourceContext:
    """Everything a template or script may see.

    Attributes:
        file: Managed path being generated, e.g. "/etc/motd"
        original_file: Stored copy of the node's original, if known
        source_dir: The path's directory under source/
    """

    file: str
    original_file: Path | None
    facts: Mapping[str, str]
    groups: tuple[str, ...]
    source_dir: Path
    sourcebase: Path
    commandsbase: Path
    sitelibbase: Path
    local_requests: tuple[str, ...] = field(default_factory=tuple)

    def variables(self) -> dict[str, Any]:
        """Template variables."""
        return {
            "file": self.file,
            "original_file": str(self.original_file) if self.original_file else None,
            "facts": dict(self.facts),
            "groups": list(self.groups),
            "local_requests": list(self.local_requests),
            "sourcebase": str(self.sourcebase),
            "commandsbase": str(self.commandsbase),
            "sitelibbase": str(self.sitelibbase),
        }

    def environment(self) -> dict[str, str]:
        """Environment for script processes, layered over the server's own."""
        env = dict(os.environ)
        env.update(
            {
                "ETCH_FILE": self.file,
                "ETCH_ORIGINAL_FILE": str(self.original_file) if self.original_file else "",
                "ETCH_SOURCEBASE": str(self.sourcebase),
                "ETCH_COMMANDSBASE": str(self.commandsbase),
                "ETCH_SITELIBBASE": str(self.sitelibbase),
            }
        )
        return env


class TemplateRenderer:
    """Render repository templates in a sandbox.

    Templates load from the path's source directory first, then from
    sitelibs/, so shared snippets can be included by name.
    """

    def render(self, name: str, context: SourceContext) -> str:
        """Render template ``name`` for ``context``.

        Raises:
            TemplateError: If the template is missing, invalid, uses an
                undefined variable, or violates the sandbox
        """
        env = SandboxedEnvironment(
            loader=FileSystemLoader([str(context.source_dir), str(context.sitelibbase)]),
            undefined=StrictUndefined,
            autoescape=False,
            keep_trailing_newline=True,
        )
        where = f"template {name} for {context.file}"
        try:
            return env.get_template(name).render(**context.variables())
        except TemplateNotFound as e:
            raise TemplateError(f"{where} not found") from e
        except TemplateSyntaxError as e:
            raise TemplateError(f"Invalid syntax in {where}: {e}") from e
        except UndefinedError as e:
            raise TemplateError(f"Undefined variable in {where}: {e}") from e
        except SecurityError as e:
            raise TemplateError(f"Sandbox violation in {where}: {e}") from e
        except Exception as e:
            raise TemplateError(f"Rendering {where} failed: {e}") from e


class ScriptRunner(Protocol):
    """Pluggable execution of repository scripts."""

    def run(self, name: str, context: SourceContext) -> str:
        """Run script ``name`` for ``context`` and return its output."""
        ...


class SubprocessScriptRunner:
    """Run scripts as child processes.

    A ``.py`` script runs under the server's interpreter; anything else
    must be executable. The context arrives as JSON on stdin and as
    ETCH_* environment variables; stdout is the result.
    """

    def __init__(self, timeout: float | None = None) -> None:
        self.timeout = timeout

    def run(self, name: str, context: SourceContext) -> str:
        script = Path(name)
        if not script.is_absolute():
            script = context.source_dir / script
        if not script.is_file():
            raise ExternalProgramError(f"Script {name} for {context.file} does not exist")
        if script.suffix == ".py":
            argv = [sys.executable, str(script)]
        else:
            argv = [str(script)]
        try:
            return run_program(
                argv,
                cwd=context.source_dir,
                timeout=self.timeout,
                input_text=json.dumps(context.variables()),
                env=context.environment(),
            )
        except ExternalProgramError as e:
            raise ExternalProgramError(f"Script {name} for {context.file}: {e}") from e
