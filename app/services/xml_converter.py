"""XML to JSON-able conversion for upstream responses.

The upstream API answers in XML unless ``format=json`` is requested.  The
converted shape keys the root element by its tag, prefixes attributes with
``@_``, turns repeated child elements into lists and keeps text-only
elements as plain strings::

    <posts user="alice"><post href="a"/><post href="b"/></posts>

becomes::

    {"posts": {"@_user": "alice", "post": [{"@_href": "a"}, {"@_href": "b"}]}}
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import Any

ATTRIBUTE_PREFIX = "@_"
TEXT_KEY = "#text"


class XMLConversionError(ValueError):
    """Raised when an upstream payload is not well-formed XML."""


def _convert(element: ET.Element) -> Any:
    node: dict[str, Any] = {
        f"{ATTRIBUTE_PREFIX}{name}": value for name, value in element.attrib.items()
    }

    for child in element:
        value = _convert(child)
        if child.tag not in node:
            node[child.tag] = value
        elif isinstance(node[child.tag], list):
            node[child.tag].append(value)
        else:
            node[child.tag] = [node[child.tag], value]

    text = (element.text or "").strip()
    if text:
        if not node:
            return text
        node[TEXT_KEY] = text
    return node if node else ""


def xml_to_dict(payload: str | bytes) -> dict[str, Any]:
    try:
        root = ET.fromstring(payload)
    except ET.ParseError as exc:
        raise XMLConversionError(str(exc)) from exc
    return {root.tag: _convert(root)}
