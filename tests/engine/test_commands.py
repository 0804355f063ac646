# tests/engine/test_commands.py
"""Tests for command bundle generation."""

from typing import Any

import pytest

STEP = (
    "<step><guard><exec>test -f /run/{name}</exec></guard>"
    "<command><exec>touch /run/{name}</exec></command></step>"
)


def _bundle(name: str, extra: str = "") -> str:
    return f"<commands>{extra}{STEP.format(name=name)}</commands>"


class TestCommandBundles:
    """Guard/command steps and bundle dependencies."""

    def test_single_bundle(self, repo: Any, make_engine: Any, make_request: Any) -> None:
        repo.add_command("restart", _bundle("restart"))

        result = make_engine().generate(make_request(commands=("restart",)))

        steps = result.commands["restart"].steps
        assert len(steps) == 1
        assert steps[0].guard == ["test -f /run/restart"]
        assert steps[0].command == ["touch /run/restart"]
        assert result.retry_commands == []

    def test_dependency_resolved_first(
        self, repo: Any, make_engine: Any, make_request: Any
    ) -> None:
        repo.add_command("a", _bundle("a"))
        repo.add_command("b", _bundle("b", "<depend>a</depend>"))

        result = make_engine().generate(make_request(commands=("b",)))

        assert list(result.commands) == ["a", "b"]
        assert result.commands["b"].depend == ["a"]

    def test_filtered_step_dropped(self, repo: Any, make_engine: Any, make_request: Any) -> None:
        repo.add_command(
            "restart",
            "<commands><step group=\"web\"><guard><exec>true</exec></guard>"
            "<command><exec>restart web</exec></command></step>"
            f"{STEP.format(name='all')}</commands>",
        )

        result = make_engine(groups=()).generate(make_request(commands=("restart",)))

        assert [s.command for s in result.commands["restart"].steps] == [["touch /run/all"]]

    def test_everything_filtered_is_noop(
        self, repo: Any, make_engine: Any, make_request: Any
    ) -> None:
        repo.add_command(
            "restart",
            '<commands><step><guard group="web"><exec>true</exec></guard>'
            '<command group="web"><exec>restart</exec></command></step></commands>',
        )

        result = make_engine(groups=()).generate(make_request(commands=("restart",)))

        assert result.commands == {}

    def test_guard_removed_command_left(
        self, repo: Any, make_engine: Any, make_request: Any
    ) -> None:
        from etch.contracts.errors import InconsistentEntriesError

        repo.add_command(
            "restart",
            '<commands><step><guard group="web"><exec>true</exec></guard>'
            "<command><exec>restart</exec></command></step></commands>",
        )

        with pytest.raises(InconsistentEntriesError, match="removed guard, but left command: restart"):
            make_engine(groups=()).generate(make_request(commands=("restart",)))

    def test_command_removed_guard_left(
        self, repo: Any, make_engine: Any, make_request: Any
    ) -> None:
        from etch.contracts.errors import InconsistentEntriesError

        repo.add_command(
            "restart",
            "<commands><step><guard><exec>true</exec></guard>"
            '<command group="web"><exec>restart</exec></command></step></commands>',
        )

        with pytest.raises(InconsistentEntriesError, match="removed command, but left guard"):
            make_engine(groups=()).generate(make_request(commands=("restart",)))

    def test_cycle_is_fatal(self, repo: Any, make_engine: Any, make_request: Any) -> None:
        from etch.contracts.errors import CircularDependencyError

        repo.add_command("a", _bundle("a", "<depend>b</depend>"))
        repo.add_command("b", _bundle("b", "<depend>a</depend>"))

        with pytest.raises(CircularDependencyError, match="Circular dependency detected for a"):
            make_engine().generate(make_request(commands=("a",)))

    def test_missing_bundle_is_fatal(self, repo: Any, make_engine: Any, make_request: Any) -> None:
        from etch.contracts.errors import DocumentError

        with pytest.raises(DocumentError, match="nothing"):
            make_engine().generate(make_request(commands=("nothing",)))

    def test_invalid_bundle_is_fatal(self, repo: Any, make_engine: Any, make_request: Any) -> None:
        from etch.contracts.errors import DocumentError

        repo.add_command("restart", "<commands><bogus/></commands>")

        with pytest.raises(DocumentError, match="fails validation"):
            make_engine().generate(make_request(commands=("restart",)))


class TestFileDependencies:
    """dependfile ties a bundle to managed paths."""

    def test_dependfile_without_original_retries(
        self, repo: Any, make_engine: Any, make_request: Any
    ) -> None:
        repo.add_file(
            "/etc/app.conf",
            "<config><file><source><plain>conf</plain></source></file></config>",
            sources={"conf": "x=1\n"},
        )
        repo.add_command("restart", _bundle("restart", "<dependfile>/etc/app.conf</dependfile>"))

        result = make_engine().generate(make_request(commands=("restart",)))

        assert result.retry_commands == ["restart"]
        assert result.need_sums == ["/etc/app.conf"]
        assert result.commands == {}

    def test_dependfile_satisfied(self, repo: Any, make_engine: Any, make_request: Any) -> None:
        repo.add_file(
            "/etc/app.conf",
            "<config><file><source><plain>conf</plain></source></file></config>",
            sources={"conf": "x=1\n"},
        )
        repo.add_command("restart", _bundle("restart", "<dependfile>/etc/app.conf</dependfile>"))

        result = make_engine().generate(make_request("/etc/app.conf", commands=("restart",)))

        assert result.retry_commands == []
        assert "restart" in result.commands
        assert "/etc/app.conf" in result.configs

    def test_file_waits_on_retried_bundle(
        self, repo: Any, make_engine: Any, make_request: Any
    ) -> None:
        from etch.contracts.enums import GenerationStatus

        repo.add_file(
            "/etc/app.conf",
            "<config><file><source><plain>conf</plain></source></file></config>",
            sources={"conf": "x=1\n"},
        )
        repo.add_file(
            "/etc/motd",
            "<config><dependcommand>restart</dependcommand>"
            "<file><source><plain>motd</plain></source></file></config>",
            sources={"motd": "hi\n"},
        )
        repo.add_command("restart", _bundle("restart", "<dependfile>/etc/app.conf</dependfile>"))

        result = make_engine().generate(make_request("/etc/motd"))

        assert result.statuses["/etc/motd"] is GenerationStatus.FAILURE
        assert result.retry_commands == ["restart"]
        assert set(result.need_sums) == {"/etc/app.conf"}
        assert result.need_origs == ["/etc/motd"]
