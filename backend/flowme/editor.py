"""
Decoding of payloads emitted by the embedded draw.io editor.

The editor's export/save messages carry XML and SVG either as plain
markup or as data URLs, depending on the export format requested.
"""

import base64
import binascii
import logging
from urllib.parse import unquote

logger = logging.getLogger(__name__)

SVG_BASE64_PREFIX = "data:image/svg+xml;base64,"
SVG_UTF8_PREFIX = "data:image/svg+xml;utf8,"


def _decode_base64(data: str) -> str:
    try:
        return base64.b64decode(data, validate=False).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return ""


def extract_svg(payload: str | None) -> str | None:
    """
    SVG markup from a plain or data-URL payload; None if unrecognized.

    Plain markup may carry leading whitespace and an XML prolog or DOCTYPE.
    """
    if not payload:
        return None
    head = payload.lstrip()
    if head.startswith(("<svg", "<?xml", "<!DOCTYPE")) and "<svg" in head:
        return payload
    if payload.startswith(SVG_BASE64_PREFIX):
        return _decode_base64(payload[len(SVG_BASE64_PREFIX):]) or None
    if payload.startswith(SVG_UTF8_PREFIX):
        return unquote(payload[len(SVG_UTF8_PREFIX):])
    return None


def extract_xml(payload: str | None) -> str | None:
    """
    Diagram XML from a plain, data-URL or bare base64 payload.

    Unrecognized payloads are returned as-is so callers can still store them.
    """
    if not payload or not isinstance(payload, str):
        return None
    if payload.startswith("<"):
        return payload
    if payload.startswith("data:"):
        marker = "base64,"
        index = payload.find(marker)
        if index != -1:
            decoded = _decode_base64(payload[index + len(marker):])
            if decoded:
                return decoded
    decoded = _decode_base64(payload)
    if decoded and "<mxfile" in decoded:
        return decoded
    return payload
