# src/etch/engine/filter.py
"""Per-node attribute filtering of configuration documents.

Any element in a config.xml or commands.xml may carry attributes that
restrict it to some nodes:

    <plain group="webservers">httpd.conf</plain>
    <plain operatingsystem="!/BSD/">generic.conf</plain>
    <plain operatingsystemrelease=">=5.8">new.conf</plain>

An attribute named ``group`` matches against every group of the node,
any other name against the fact of that name. Values are an exact
string, ``/regex/`` (searched), or a version comparison ``<``, ``<=``,
``>=`` or ``>`` followed by a dotted version. A leading ``!`` negates
the test. An element whose attributes all match is kept with the
attributes removed; otherwise the element and its subtree are dropped.
"""

import operator
import re
from collections.abc import Callable
from functools import lru_cache

from lxml import etree

from etch.contracts.errors import DocumentError
from etch.contracts.node import NodeContext
from etch.core.version import compare_versions

_VERSION_TEST = re.compile(r"^(<|<=|>=|>)\s*([\d.]+)$")
_REGEX_TEST = re.compile(r"^/(.*)/$", re.DOTALL)

_OPERATORS: dict[str, Callable[[int, int], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">=": operator.ge,
    ">": operator.gt,
}


@lru_cache(maxsize=512)
def _compile(pattern: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as e:
        raise DocumentError(f"Invalid regular expression /{pattern}/: {e}") from e


def matches(value: str, comparable: str) -> bool:
    """Test one un-negated attribute value against one comparable.

    Version tests read ``comparable OP threshold``, so ``>=5.8`` matches
    a comparable of "5.10".
    """
    version = _VERSION_TEST.match(value)
    if version is not None:
        op, threshold = version.groups()
        return _OPERATORS[op](compare_versions(comparable, threshold), 0)
    regex = _REGEX_TEST.match(value)
    if regex is not None:
        return _compile(regex.group(1)).search(comparable) is not None
    return comparable == value


def check_attribute(name: str, value: str, context: NodeContext) -> bool:
    """Whether an element attribute ``name="value"`` applies to the node.

    Args:
        name: "group" or a fact name
        value: Attribute value, optionally negated with a leading "!"
        context: The node being served

    Returns:
        True if the element should be kept

    Raises:
        DocumentError: If a /regex/ value does not compile
    """
    negate = value.startswith("!")
    if negate:
        value = value[1:]
    result = any(matches(value, c) for c in context.comparables(name))
    return result != negate


class AttributeFilter:
    """Remove the parts of a document that don't apply to one node.

    Example:
        node_filter = AttributeFilter(context)
        node_filter(tree.getroot())
    """

    def __init__(self, context: NodeContext) -> None:
        self.context = context

    def __call__(self, root: etree._Element) -> None:
        self.filter_element(root)

    def element_applies(self, element: etree._Element) -> bool:
        """Check every attribute of ``element``, stopping at the first failure."""
        return all(
            check_attribute(str(name), str(value), self.context)
            for name, value in element.attrib.items()
        )

    def filter_element(self, element: etree._Element) -> None:
        """Filter the children of ``element`` in place, depth first.

        ``element`` itself is never removed or stripped; the document root
        keeps attributes such as ``filename``.
        """
        for child in list(element):
            if not isinstance(child.tag, str):
                # comments and processing instructions
                element.remove(child)
                continue
            if not self.element_applies(child):
                element.remove(child)
                continue
            child.attrib.clear()
            self.filter_element(child)


def strip_attributes(root: etree._Element) -> None:
    """Keep every element but drop filter attributes, for structural checks.

    The result is the union of what any node could receive. Regex values
    are still compiled so a broken pattern is reported.

    Raises:
        DocumentError: If a /regex/ value does not compile
    """
    for child in list(root):
        if not isinstance(child.tag, str):
            root.remove(child)
            continue
        for value in child.attrib.values():
            regex = _REGEX_TEST.match(str(value).removeprefix("!"))
            if regex is not None:
                _compile(regex.group(1))
        child.attrib.clear()
        strip_attributes(child)
