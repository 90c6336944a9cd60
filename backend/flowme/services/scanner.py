"""
Find the diagram names referenced by FlowMe macros on a page.

Confluence may hold a page body in either of two encodings depending on
the editor that last touched it, so both are scanned:
- storage: XHTML with <ac:structured-macro> elements
- atlas_doc_format (ADF): a JSON document tree with extension nodes

A name found in either encoding counts as referenced. When both fetches
fail the result is marked not ok; callers must never read that as
"nothing is referenced".
"""

from __future__ import annotations

import html
import json
import logging
import re
from typing import Any, Iterator

from flowme.models import ScanResult
from flowme.services.confluence import ConfluenceClient, segment

logger = logging.getLogger(__name__)

MACRO_KEY = "flowmecloud-diagram"
NAME_PARAM = "diagramName"

# Forge registers macros as "<app>/<env>/static/<key>"; older installs use "<prefix>/<key>".
MACRO_KEY_SUFFIXES = (f"static/{MACRO_KEY}", f"/{MACRO_KEY}")
EXTENSION_NODE_TYPES = {"extension", "bodiedExtension", "inlineExtension"}
ALTERNATE_NAME_KEYS = ("diagram_name", "name")
MAX_SEARCH_DEPTH = 12

_MACRO_RE = re.compile(
    r'<ac:structured-macro[^>]*ac:name="' + re.escape(MACRO_KEY) + r'"[^>]*>([\s\S]*?)</ac:structured-macro>',
    re.IGNORECASE,
)
_PARAM_RE = re.compile(
    r'<ac:parameter[^>]*ac:name="' + re.escape(NAME_PARAM) + r'"[^>]*>([\s\S]*?)</ac:parameter>',
    re.IGNORECASE,
)


# ---------------------------------------------------------------------------
# Storage format
# ---------------------------------------------------------------------------

def names_from_storage(markup: str) -> tuple[set[str], bool]:
    """Return (names, macro_found) for a storage-format body."""
    names: set[str] = set()
    macro_found = False
    for macro in _MACRO_RE.finditer(markup or ""):
        macro_found = True
        param = _PARAM_RE.search(macro.group(1))
        if param:
            value = html.unescape(param.group(1).strip())
            if value:
                names.add(value)
    return names, macro_found


# ---------------------------------------------------------------------------
# ADF format
# ---------------------------------------------------------------------------

def is_flowme_extension_key(key: Any) -> bool:
    if not isinstance(key, str) or not key:
        return False
    return key == MACRO_KEY or key.endswith(MACRO_KEY_SUFFIXES)


def _scalar(value: Any) -> str | None:
    """Parameter values are either plain strings or {"value": "..."} wrappers."""
    if isinstance(value, dict):
        value = value.get("value")
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def find_key(node: Any, key: str, depth: int = 0) -> str | None:
    """Depth-first search for the first non-empty value stored under key."""
    if depth > MAX_SEARCH_DEPTH:
        return None
    if isinstance(node, dict):
        if key in node:
            found = _scalar(node[key])
            if found:
                return found
        children = node.values()
    elif isinstance(node, list):
        children = node
    else:
        return None
    for child in children:
        found = find_key(child, key, depth + 1)
        if found:
            return found
    return None


def extension_name(attrs: dict[str, Any]) -> str | None:
    """Pull the diagram name out of an extension node's attrs."""
    params = attrs.get("parameters")
    if isinstance(params, dict):
        for bag_key in ("guestParams", "macroParams"):
            bag = params.get(bag_key)
            if isinstance(bag, dict):
                found = _scalar(bag.get(NAME_PARAM))
                if found:
                    return found
        found = _scalar(params.get(NAME_PARAM))
        if found:
            return found
        for key in ALTERNATE_NAME_KEYS:
            for bag in (params.get("guestParams"), params.get("macroParams"), params):
                if isinstance(bag, dict):
                    found = _scalar(bag.get(key))
                    if found:
                        return found
    return find_key(attrs, NAME_PARAM)


def iter_extension_nodes(node: Any) -> Iterator[dict[str, Any]]:
    """Yield every FlowMe extension node in an ADF tree."""
    stack = [node]
    while stack:
        current = stack.pop()
        if isinstance(current, list):
            stack.extend(reversed(current))
            continue
        if not isinstance(current, dict):
            continue
        if current.get("type") in EXTENSION_NODE_TYPES:
            attrs = current.get("attrs")
            if isinstance(attrs, dict) and is_flowme_extension_key(attrs.get("extensionKey")):
                yield current
        for value in current.values():
            if isinstance(value, (dict, list)):
                stack.append(value)


def names_from_adf(document: Any) -> tuple[set[str], bool]:
    """Return (names, macro_found) for an ADF document (parsed or JSON text)."""
    if isinstance(document, str):
        if not document.strip():
            return set(), False
        document = json.loads(document)
    names: set[str] = set()
    macro_found = False
    for node in iter_extension_nodes(document):
        macro_found = True
        name = extension_name(node["attrs"])
        if name:
            names.add(name)
    return names, macro_found


# ---------------------------------------------------------------------------
# Page scan
# ---------------------------------------------------------------------------

async def _fetch_body(client: ConfluenceClient, page_id: str, body_format: str) -> Any:
    data = await client.request_json(
        f"/wiki/api/v2/pages/{segment(page_id)}",
        mode="app",
        params={"body-format": body_format},
    )
    body = data.get("body") if isinstance(data, dict) else None
    if not isinstance(body, dict):
        return ""
    representation = body.get(body_format)
    if isinstance(representation, dict) and representation.get("value") is not None:
        return representation["value"]
    return body.get("value") or ""


async def scan_page(client: ConfluenceClient, page_id: str) -> ScanResult:
    """Collect referenced diagram names from both body encodings of a page."""
    result = ScanResult()
    succeeded = 0

    try:
        storage = await _fetch_body(client, page_id, "storage")
        names, found = names_from_storage(str(storage))
        result.names |= names
        result.macro_found = result.macro_found or found
        succeeded += 1
    except Exception as e:
        logger.warning(f"Storage body scan failed for page {page_id}: {e}")

    try:
        adf = await _fetch_body(client, page_id, "atlas_doc_format")
        names, found = names_from_adf(adf)
        result.names |= names
        result.macro_found = result.macro_found or found
        succeeded += 1
    except Exception as e:
        logger.warning(f"ADF body scan failed for page {page_id}: {e}")

    result.ok = succeeded > 0
    logger.info(
        f"Scanned page {page_id}: names={sorted(result.names)} "
        f"macro_found={result.macro_found} ok={result.ok}"
    )
    return result
