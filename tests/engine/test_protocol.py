# tests/engine/test_protocol.py
"""Tests for the original-content protocol and the wire renderings."""

import base64
import hashlib
import json
from pathlib import Path
from typing import Any

import pytest
from lxml import etree

CONTENT = b"original contents\n"
SUM = hashlib.sha1(CONTENT).hexdigest()


class _MemoryStore:
    """Dict-backed originals store with a fake location per entry."""

    def __init__(self) -> None:
        self.contents: dict[tuple[str, str], bytes] = {}

    def store(self, path: str, content: bytes) -> str:
        sha1sum = hashlib.sha1(content).hexdigest()
        self.contents[(path, sha1sum)] = content
        return sha1sum

    def store_verified(self, path: str, content: bytes, claimed: str) -> str:
        assert hashlib.sha1(content).hexdigest() == claimed
        return self.store(path, content)

    def exists(self, path: str, sha1sum: str) -> bool:
        return (path, sha1sum) in self.contents

    def location(self, path: str, sha1sum: str) -> Path:
        return Path("/memory") / path.lstrip("/") / sha1sum


class TestNodeRequest:
    """Decoding wire data into a NodeRequest."""

    def test_fqdn_from_facts(self) -> None:
        from etch.contracts.protocol import NodeRequest

        request = NodeRequest.from_mapping({"facts": {"fqdn": "node1", "os": "Linux"}})

        assert request.fqdn == "node1"
        assert request.facts["os"] == "Linux"

    def test_missing_fqdn(self) -> None:
        from etch.contracts.errors import RequestError
        from etch.contracts.protocol import NodeRequest

        with pytest.raises(RequestError, match="fqdn"):
            NodeRequest.from_mapping({"facts": {}})

    def test_files_decoded(self) -> None:
        from etch.contracts.protocol import NodeRequest

        request = NodeRequest.from_mapping(
            {
                "fqdn": "node1",
                "files": {
                    "/etc/motd": {
                        "contents": base64.b64encode(CONTENT).decode(),
                        "sha1sum": SUM,
                        "local_requests": "extra",
                    },
                    "GENERATEALL": {},
                },
                "commands": {"restart": {}},
            }
        )

        report = request.files["/etc/motd"]
        assert report.contents == CONTENT
        assert report.sha1sum == SUM
        assert report.local_requests == ("extra",)
        assert list(request.files) == ["/etc/motd"]
        assert request.commands == ("restart",)

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("true", True), ("TRUE", True), ("1", True), (True, True), (1, True),
         ("false", False), ("0", False), ("", False), (False, False), (None, False)],
    )
    def test_debug_flag_parsed_from_form_values(self, value: Any, expected: bool) -> None:
        from etch.contracts.protocol import NodeRequest

        request = NodeRequest.from_mapping({"fqdn": "node1", "debug": value})

        assert request.debug is expected

    def test_bad_base64(self) -> None:
        from etch.contracts.errors import RequestError
        from etch.contracts.protocol import NodeRequest

        with pytest.raises(RequestError, match="base64"):
            NodeRequest.from_mapping(
                {"fqdn": "node1", "files": {"/etc/motd": {"contents": "!!not base64!!"}}}
            )


class TestIngest:
    """Folding node-supplied originals into a generation request."""

    @pytest.fixture
    def store(self, tmp_path: Path) -> Any:
        from etch.core.originals import FilesystemOriginalStore

        return FilesystemOriginalStore(tmp_path / "orig")

    def test_any_original_store_accepted(self) -> None:
        from etch.contracts.protocol import FileReport, NodeRequest
        from etch.core.originals import OriginalStore
        from etch.engine.protocol import OriginalContentProtocol

        store = _MemoryStore()
        assert isinstance(store, OriginalStore)

        request = OriginalContentProtocol(store).ingest(
            NodeRequest(
                fqdn="node1",
                files={"/etc/motd": FileReport(contents=CONTENT, sha1sum=SUM)},
            )
        )

        assert store.contents == {("/etc/motd", SUM): CONTENT}
        assert request.files["/etc/motd"].original == Path("/memory/etc/motd") / SUM

    def test_nothing_sent(self, store: Any) -> None:
        from etch.contracts.protocol import FileReport, NodeRequest
        from etch.engine.protocol import OriginalContentProtocol

        request = OriginalContentProtocol(store).ingest(
            NodeRequest(fqdn="node1", files={"/etc/motd": FileReport()})
        )

        assert request.files["/etc/motd"].original is None
        assert request.files["/etc/motd"].sha1sum is None

    def test_sum_without_stored_content(self, store: Any) -> None:
        from etch.contracts.protocol import FileReport, NodeRequest
        from etch.engine.protocol import OriginalContentProtocol

        request = OriginalContentProtocol(store).ingest(
            NodeRequest(fqdn="node1", files={"/etc/motd": FileReport(sha1sum=SUM)})
        )

        assert request.files["/etc/motd"].original is None
        assert request.files["/etc/motd"].sha1sum == SUM

    def test_contents_stored(self, store: Any) -> None:
        from etch.contracts.protocol import FileReport, NodeRequest
        from etch.engine.protocol import OriginalContentProtocol

        request = OriginalContentProtocol(store).ingest(
            NodeRequest(
                fqdn="node1",
                files={"/etc/motd": FileReport(contents=CONTENT, sha1sum=SUM)},
            )
        )

        original = request.files["/etc/motd"].original
        assert original is not None
        assert original.read_bytes() == CONTENT
        assert store.exists("/etc/motd", SUM)

    def test_sum_with_stored_content(self, store: Any) -> None:
        from etch.contracts.protocol import FileReport, NodeRequest
        from etch.engine.protocol import OriginalContentProtocol

        store.store("/etc/motd", CONTENT)

        request = OriginalContentProtocol(store).ingest(
            NodeRequest(fqdn="node1", files={"/etc/motd": FileReport(sha1sum=SUM)})
        )

        assert request.files["/etc/motd"].original == store.location("/etc/motd", SUM)

    def test_checksum_mismatch(self, store: Any) -> None:
        from etch.contracts.errors import ChecksumMismatchError
        from etch.contracts.protocol import FileReport, NodeRequest
        from etch.engine.protocol import OriginalContentProtocol

        with pytest.raises(ChecksumMismatchError, match="/etc/motd"):
            OriginalContentProtocol(store).ingest(
                NodeRequest(
                    fqdn="node1",
                    files={"/etc/motd": FileReport(contents=CONTENT, sha1sum="0" * 40)},
                )
            )
        assert not store.exists("/etc/motd", "0" * 40)

    def test_contents_without_sum(self, store: Any) -> None:
        from etch.contracts.errors import ChecksumMismatchError
        from etch.contracts.protocol import FileReport, NodeRequest
        from etch.engine.protocol import OriginalContentProtocol

        with pytest.raises(ChecksumMismatchError, match="without a SHA1 sum"):
            OriginalContentProtocol(store).ingest(
                NodeRequest(fqdn="node1", files={"/etc/motd": FileReport(contents=CONTENT)})
            )

    def test_records_reported_sum(self, store: Any) -> None:
        from etch.contracts.protocol import FileReport, NodeRequest
        from etch.core.landscape import EtchDB, NodeRecorder
        from etch.engine.protocol import OriginalContentProtocol

        recorder = NodeRecorder(EtchDB.in_memory())
        client_id = recorder.upsert_client("node1")

        OriginalContentProtocol(store, recorder=recorder, client_id=client_id).ingest(
            NodeRequest(fqdn="node1", files={"/etc/motd": FileReport(sha1sum=SUM)})
        )

        assert recorder.get_original_sum(client_id, "/etc/motd") == SUM


class TestRespond:
    """Turning a generation result into the node response."""

    def _result(self) -> Any:
        from etch.contracts.documents import (
            CommandDocument,
            CommandStep,
            ConfigDocument,
            FileSection,
        )
        from etch.contracts.results import GenerationResult

        return GenerationResult(
            configs={
                "/etc/motd": ConfigDocument(
                    file=FileSection(owner="root", group="root", perms="0644", contents="aGkK")
                ),
                "/etc/app.conf": ConfigDocument(setup=["mkdir -p /etc/app"]),
            },
            need_origs=["/etc/app.conf"],
            commands={
                "restart": CommandDocument(
                    steps=[CommandStep(guard=["test -f x"], command=["touch x"])]
                )
            },
            retry_commands=["later"],
        )

    def test_response_fields(self, tmp_path: Path) -> None:
        from etch.core.originals import FilesystemOriginalStore
        from etch.engine.protocol import OriginalContentProtocol

        response = OriginalContentProtocol(FilesystemOriginalStore(tmp_path)).respond(
            self._result()
        )

        assert set(response.configs) == {"/etc/motd", "/etc/app.conf"}
        assert response.need_origs == ["/etc/app.conf"]
        assert list(response.allcommands) == ["restart"]
        assert response.retrycommands == ["later"]
        assert not response.converged

    def test_partial_configs_not_recorded(self, tmp_path: Path) -> None:
        from etch.core.landscape import EtchDB, NodeRecorder
        from etch.core.originals import FilesystemOriginalStore
        from etch.engine.protocol import OriginalContentProtocol

        recorder = NodeRecorder(EtchDB.in_memory())
        client_id = recorder.upsert_client("node1")

        OriginalContentProtocol(
            FilesystemOriginalStore(tmp_path), recorder=recorder, client_id=client_id
        ).respond(self._result())

        recorded = recorder.get_config(client_id, "/etc/motd")
        assert recorded is not None
        assert "<contents>aGkK</contents>" in recorded
        assert recorder.get_config(client_id, "/etc/app.conf") is None
        assert "touch x" in (recorder.get_config(client_id, "restart") or "")

    def test_render_xml(self, tmp_path: Path) -> None:
        from etch.core.originals import FilesystemOriginalStore
        from etch.engine.protocol import OriginalContentProtocol, render_xml

        response = OriginalContentProtocol(FilesystemOriginalStore(tmp_path)).respond(
            self._result()
        )
        root = etree.fromstring(render_xml(response))

        assert root.tag == "files"
        assert [c.get("filename") for c in root.findall("configs/config")] == [
            "/etc/motd",
            "/etc/app.conf",
        ]
        assert root.findtext("configs/config/file/contents") == "aGkK"
        assert [e.text for e in root.findall("need_origs/need_orig")] == ["/etc/app.conf"]
        assert root.find("need_sums") is None
        assert root.find("allcommands/commands").get("commandname") == "restart"
        assert [e.text for e in root.findall("retrycommands/retrycommand")] == ["later"]

    def test_render_empty_response(self) -> None:
        from etch.contracts.protocol import NodeResponse
        from etch.engine.protocol import render_xml

        root = etree.fromstring(render_xml(NodeResponse()))

        assert root.tag == "files"
        assert len(root) == 0

    def test_render_json(self, tmp_path: Path) -> None:
        from etch.core.originals import FilesystemOriginalStore
        from etch.engine.protocol import OriginalContentProtocol, render_json

        response = OriginalContentProtocol(FilesystemOriginalStore(tmp_path)).respond(
            self._result()
        )
        data = json.loads(render_json(response))

        assert data["need_origs"] == ["/etc/app.conf"]
        assert data["retrycommands"] == ["later"]
        config = etree.fromstring(data["configs"]["/etc/motd"].encode())
        assert config.get("filename") == "/etc/motd"
