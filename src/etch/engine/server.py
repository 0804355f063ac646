# src/etch/engine/server.py
"""EtchServer: one node request, end to end.

    killswitch -> tag -> tagged base -> node context -> originals in
    -> generation -> response (and records)
"""

from __future__ import annotations

from typing import Self

from etch.contracts.errors import RequestError
from etch.contracts.protocol import NodeRequest, NodeResponse
from etch.core.config import EtchSettings
from etch.core.landscape.database import EtchDB
from etch.core.landscape.recorder import NodeRecorder
from etch.core.logging import request_logger
from etch.core.originals import FilesystemOriginalStore, OriginalStore
from etch.core.repository import ConfigRepository
from etch.engine.context import (
    NodeContextResolver,
    check_killswitch,
    resolve_tagbase,
    run_node_tagger,
)
from etch.engine.external import ScriptRunner, SubprocessScriptRunner, TemplateRenderer
from etch.engine.generator import GenerationEngine
from etch.engine.protocol import OriginalContentProtocol


class EtchServer:
    """Serve node requests against one config base.

    The settings are fixed at construction; each ``handle`` call builds
    its own context, engine and session, so concurrent requests share
    only the originals store and the record database.

    Example:
        server = EtchServer.from_settings(load_settings(Path("etch.yaml")))
        response = server.handle(NodeRequest.from_mapping(payload))
    """

    def __init__(
        self,
        settings: EtchSettings,
        *,
        recorder: NodeRecorder | None = None,
        script_runner: ScriptRunner | None = None,
        renderer: TemplateRenderer | None = None,
        store: OriginalStore | None = None,
    ) -> None:
        self.settings = settings
        self._recorder = recorder
        self._scripts = script_runner or SubprocessScriptRunner(
            timeout=settings.external_timeout_seconds
        )
        self._renderer = renderer or TemplateRenderer()
        self._store = store

    @classmethod
    def from_settings(cls, settings: EtchSettings) -> Self:
        """Build a server, with a record database if recording is enabled."""
        recorder = None
        if settings.record_results:
            db = EtchDB.from_settings(settings.database)
            recorder = NodeRecorder(db)
        return cls(settings, recorder=recorder)

    @property
    def store(self) -> OriginalStore:
        if self._store is None:
            self._store = FilesystemOriginalStore(self.settings.originals_path)
        return self._store

    def handle(self, request: NodeRequest) -> NodeResponse:
        """Generate the response to one node request.

        Raises:
            EtchError: On any fatal condition; nothing partial is returned
        """
        log = request_logger(request.fqdn, debug=request.debug)
        timeout = self.settings.external_timeout_seconds

        client_id = None
        if self._recorder is not None:
            client_id = self._recorder.upsert_client(request.fqdn)
            self._recorder.sync_facts(client_id, request.facts)

        configbase = self.settings.configbase
        log.debug("using config base", configbase=str(configbase))
        if not configbase.is_dir():
            raise RequestError(f"Config base {configbase} doesn't exist")
        check_killswitch(configbase)

        # A client-supplied tag overrides the nodetagger
        if request.tag:
            tag = request.tag
            log.debug("tag supplied by node", tag=tag)
        else:
            tag = run_node_tagger(configbase, request.fqdn, timeout=timeout, logger=log)
        tagbase = resolve_tagbase(configbase, tag)
        log.debug("using tagged base", tagbase=str(tagbase))

        repository = ConfigRepository(tagbase)
        context = NodeContextResolver(repository, timeout=timeout, logger=log).resolve(
            request.fqdn, request.facts
        )
        log.debug("node groups", groups=list(context.groups))

        protocol = OriginalContentProtocol(
            self.store, recorder=self._recorder, client_id=client_id, logger=log
        )
        generation_request = protocol.ingest(request)
        engine = GenerationEngine(
            repository,
            context,
            renderer=self._renderer,
            script_runner=self._scripts,
            timeout=timeout,
            logger=log,
        )
        result = engine.generate(generation_request)
        response = protocol.respond(result)
        log.info(
            "request complete",
            configs=len(response.configs),
            need_sums=len(response.need_sums),
            need_origs=len(response.need_origs),
            commands=len(response.allcommands),
        )
        return response
