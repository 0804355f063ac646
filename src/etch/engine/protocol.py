# src/etch/engine/protocol.py
"""OriginalContentProtocol: negotiating original files with a node.

A node may need several rounds before it converges:

    1. node sends nothing          -> server answers need_sum
    2. node sends sha1sum          -> server has no content: need_orig
    3. node sends contents+sha1sum -> server stores it, emits the config

Content is kept in the originals store, so a later request carrying
only the checksum skips step 3.
"""

from __future__ import annotations

import json
from typing import Any

from lxml import etree

from etch.contracts.errors import ChecksumMismatchError
from etch.contracts.protocol import NodeRequest, NodeResponse
from etch.contracts.results import FileInput, GenerationRequest, GenerationResult
from etch.core.landscape.recorder import NodeRecorder
from etch.core.logging import get_logger
from etch.core.originals import OriginalStore
from etch.core.xmldoc import commands_to_xml, config_to_xml, to_bytes


class OriginalContentProtocol:
    """Fold node-supplied originals in, and turn results into a response.

    Args:
        store: Originals store
        recorder: Optional record store; nothing is recorded without one
        client_id: The node's client row, required with ``recorder``
    """

    def __init__(
        self,
        store: OriginalStore,
        *,
        recorder: NodeRecorder | None = None,
        client_id: int | None = None,
        logger: Any = None,
    ) -> None:
        self._store = store
        self._recorder = recorder
        self._client_id = client_id
        self._log = logger or get_logger(__name__)

    def ingest(self, request: NodeRequest) -> GenerationRequest:
        """Store what the node sent and describe it to the engine.

        Raises:
            ChecksumMismatchError: If sent contents don't match the claimed sum
        """
        files: dict[str, FileInput] = {}
        for path, report in request.files.items():
            original = None
            if report.contents is not None:
                if not report.sha1sum:
                    raise ChecksumMismatchError(f"Contents for {path} sent without a SHA1 sum")
                self._store.store_verified(path, report.contents, report.sha1sum)
                self._log.debug("stored original", path=path, sha1sum=report.sha1sum)
            if report.sha1sum:
                if self._recorder is not None and self._client_id is not None:
                    self._recorder.record_original(self._client_id, path, report.sha1sum)
                if self._store.exists(path, report.sha1sum):
                    original = self._store.location(path, report.sha1sum)
            files[path] = FileInput(
                original=original,
                sha1sum=report.sha1sum,
                local_requests=report.local_requests,
            )
        return GenerationRequest(files=files, commands=request.commands)

    def respond(self, result: GenerationResult) -> NodeResponse:
        """Build the response and record the complete configs sent.

        Partial configs (paths still needing data) are not recorded.
        """
        if self._recorder is not None and self._client_id is not None:
            for path, config in result.configs.items():
                if result.needs_data(path):
                    continue
                self._recorder.record_config(
                    self._client_id, path, to_bytes(config_to_xml(config, path)).decode("utf-8")
                )
            for name, commands in result.commands.items():
                self._recorder.record_config(
                    self._client_id, name, to_bytes(commands_to_xml(commands, name)).decode("utf-8")
                )
        return NodeResponse(
            configs=result.configs,
            need_sums=result.need_sums,
            need_origs=result.need_origs,
            allcommands=result.commands,
            retrycommands=result.retry_commands,
        )


def _name_list(root: etree._Element, tag: str, item: str, names: list[str]) -> None:
    if names:
        block = etree.SubElement(root, tag)
        for name in names:
            etree.SubElement(block, item).text = name


def render_xml(response: NodeResponse) -> bytes:
    """Render the wire document, omitting empty sections."""
    root = etree.Element("files")
    if response.configs:
        configs = etree.SubElement(root, "configs")
        for path, config in response.configs.items():
            configs.append(config_to_xml(config, path))
    _name_list(root, "need_sums", "need_sum", response.need_sums)
    _name_list(root, "need_origs", "need_orig", response.need_origs)
    if response.allcommands:
        allcommands = etree.SubElement(root, "allcommands")
        for name, commands in response.allcommands.items():
            allcommands.append(commands_to_xml(commands, name))
    _name_list(root, "retrycommands", "retrycommand", response.retrycommands)
    return to_bytes(root)


def render_json(response: NodeResponse) -> str:
    """Render the response as JSON, each document as its XML text."""
    return json.dumps(
        {
            "configs": {
                path: to_bytes(config_to_xml(config, path)).decode("utf-8")
                for path, config in response.configs.items()
            },
            "need_sums": response.need_sums,
            "need_origs": response.need_origs,
            "allcommands": {
                name: to_bytes(commands_to_xml(commands, name)).decode("utf-8")
                for name, commands in response.allcommands.items()
            },
            "retrycommands": response.retrycommands,
        },
        indent=2,
    )
