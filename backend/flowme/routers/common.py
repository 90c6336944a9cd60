"""
Shared pieces for the resolver-style routes used by the macro UI.

These routes always answer with a JSON envelope: {"ok": true, ...} on
success and {"ok": false, "error": "..."} on any failure.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Optional

from fastapi import Header

from flowme.exceptions import DiagramConflictError, FlowMeError
from flowme.services.confluence import ConfluenceClient, get_confluence_client

logger = logging.getLogger(__name__)


def error_envelope(error: Exception, fallback: str) -> dict[str, Any]:
    """Turn any exception into the UI's error envelope."""
    body: dict[str, Any] = {"ok": False, "error": str(error) or fallback}
    if isinstance(error, DiagramConflictError):
        body["status"] = DiagramConflictError.status_code
    return body


def get_confluence(
    x_confluence_user_token: Annotated[Optional[str], Header()] = None,
) -> ConfluenceClient | None:
    """
    Dependency: Confluence client acting for the calling user where needed.

    Returns None when Confluence is not configured; routes report that
    through their error envelope.
    """
    try:
        base = get_confluence_client()
    except ValueError as e:
        logger.error(f"Confluence client unavailable: {e}")
        return None
    return base.with_user_token(x_confluence_user_token)


def require_client(client: ConfluenceClient | None) -> ConfluenceClient:
    if client is None:
        raise FlowMeError("Confluence is not configured.")
    return client
