# src/etch/engine/__init__.py
"""Generation engine: filtering, node context, generation, originals protocol."""

from etch.engine.context import (
    NodeContextResolver,
    check_killswitch,
    resolve_tagbase,
    run_node_tagger,
)
from etch.engine.external import (
    ScriptRunner,
    SourceContext,
    SubprocessScriptRunner,
    TemplateRenderer,
)
from etch.engine.filter import AttributeFilter, check_attribute, strip_attributes
from etch.engine.generator import GenerationEngine
from etch.engine.protocol import OriginalContentProtocol, render_json, render_xml
from etch.engine.server import EtchServer
from etch.engine.session import GenerationSession

__all__ = [
    "AttributeFilter",
    "EtchServer",
    "GenerationEngine",
    "GenerationSession",
    "NodeContextResolver",
    "OriginalContentProtocol",
    "ScriptRunner",
    "SourceContext",
    "SubprocessScriptRunner",
    "TemplateRenderer",
    "check_attribute",
    "check_killswitch",
    "render_json",
    "render_xml",
    "resolve_tagbase",
    "run_node_tagger",
    "strip_attributes",
]
