# tests/conftest.py
"""Shared test fixtures and helpers.

This module provides a builder for throwaway config repositories so
tests can describe just the documents they care about.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/
"""

import os
import stat
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
import structlog
from hypothesis import Phase, Verbosity, settings

from etch.contracts import FileInput, GenerationRequest, NodeContext
from etch.core.config import EtchSettings
from etch.core.repository import ConfigRepository
from etch.engine.generator import GenerationEngine

# =============================================================================
# Hypothesis Configuration
# =============================================================================

# CI profile: Fast tests for continuous integration
settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,  # Disable deadline for CI (timing varies)
)

# Nightly profile: Thorough testing for scheduled runs
settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Debug profile: Minimal examples with verbose output for debugging
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Load profile from environment, default to "ci"
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


DEFAULTS_YML = """\
file:
  owner: root
  group: root
  perms: '0644'
link:
  owner: root
  group: root
  perms: '0777'
directory:
  owner: root
  group: root
  perms: '0755'
"""

FQDN = "node1.example.com"


class RepoBuilder:
    """Write a config base with one (possibly tagged) repository.

    Usage:
        repo.add_file("/etc/motd", "<config><file>...</file></config>",
                      sources={"motd": "hello\\n"})
        repo.add_command("restart", "<commands>...</commands>")
    """

    def __init__(self, configbase: Path, tag: str = "") -> None:
        self.configbase = configbase
        self.tagbase = configbase / tag if tag else configbase
        (self.tagbase / "source").mkdir(parents=True, exist_ok=True)
        (self.tagbase / "commands").mkdir(parents=True, exist_ok=True)
        self.write("defaults.yml", DEFAULTS_YML)

    @property
    def repository(self) -> ConfigRepository:
        return ConfigRepository(self.tagbase)

    def write(self, relative: str, content: str | bytes, *, executable: bool = False) -> Path:
        """Write a file below the tagged base."""
        target = self.tagbase / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            target.write_bytes(content)
        else:
            target.write_text(content)
        if executable:
            target.chmod(target.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return target

    def program(self, relative: str, body: str) -> Path:
        """Write an executable shell stub."""
        return self.write(relative, f"#!/bin/sh\n{body}\n", executable=True)

    def add_file(
        self, path: str, config_xml: str, sources: dict[str, str | bytes] | None = None
    ) -> Path:
        """Add a managed path with its config.xml and source files."""
        source_dir = self.tagbase / "source" / path.lstrip("/")
        relative = f"source/{path.lstrip('/')}"
        self.write(f"{relative}/config.xml", config_xml)
        for name, content in (sources or {}).items():
            self.write(f"{relative}/{name}", content)
        return source_dir

    def add_command(self, name: str, commands_xml: str) -> Path:
        return self.write(f"commands/{name}/commands.xml", commands_xml)


@pytest.fixture(autouse=True)
def _reset_structlog() -> Any:
    """Undo process-wide logging configuration done by a test (e.g. the CLI)."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def repo(tmp_path: Path) -> RepoBuilder:
    return RepoBuilder(tmp_path / "etchserver")


@pytest.fixture
def original(tmp_path: Path) -> Path:
    """A stand-in for a stored original file."""
    path = tmp_path / "original"
    path.write_text("original contents\n")
    return path


@pytest.fixture
def etch_settings(repo: RepoBuilder, tmp_path: Path) -> EtchSettings:
    return EtchSettings(
        configbase=repo.configbase,
        origbase=tmp_path / "orig",
        record_results=False,
    )


@pytest.fixture
def make_engine(repo: RepoBuilder) -> Callable[..., GenerationEngine]:
    """Factory for an engine serving FQDN with the given groups and facts."""

    def _make(
        groups: tuple[str, ...] = (), facts: dict[str, str] | None = None
    ) -> GenerationEngine:
        context = NodeContext(fqdn=FQDN, facts=facts or {}, groups=groups)
        return GenerationEngine(repo.repository, context)

    return _make


@pytest.fixture
def make_request(original: Path) -> Callable[..., GenerationRequest]:
    """Factory for a request where the node supplied an original for every path."""

    def _make(
        *paths: str,
        commands: tuple[str, ...] = (),
        with_original: bool = True,
        sha1sum: str | None = "da39a3ee5e6b4b0d3255bfef95601890afd80709",
    ) -> GenerationRequest:
        stored = original if with_original else None
        return GenerationRequest(
            files={p: FileInput(original=stored, sha1sum=sha1sum) for p in paths},
            commands=commands,
        )

    return _make


@pytest.fixture
def make_repo(repo: RepoBuilder) -> Callable[[str], RepoBuilder]:
    """Factory for another tagged tree under the same config base."""

    def _make(tag: str) -> RepoBuilder:
        return RepoBuilder(repo.configbase, tag=tag)

    return _make
