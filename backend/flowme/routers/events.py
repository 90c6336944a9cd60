"""
Webhook for Confluence page-update events.

The event is acknowledged immediately and orphan cleanup runs in the
background; failures are logged, never returned to the dispatcher.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Body

from flowme.services.cleanup import extract_page_id, handle_page_updated
from flowme.services.confluence import get_confluence_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["events"])


async def run_cleanup(event: dict[str, Any]) -> None:
    """Background task wrapper; never raises."""
    try:
        client = get_confluence_client()
    except Exception as e:
        logger.error(f"Cleanup not run, Confluence client unavailable: {e}")
        return
    await handle_page_updated(client, event)


@router.post("/page-updated")
async def page_updated(
    background_tasks: BackgroundTasks,
    event: Optional[dict[str, Any]] = Body(default=None),
) -> dict[str, Any]:
    """Accept a page-update event and schedule cleanup."""
    event = event or {}
    page_id = extract_page_id(event)
    logger.info(f"Page update event received (page={page_id or 'unknown'})")
    background_tasks.add_task(run_cleanup, event)
    return {"status": "accepted", "pageId": page_id or None}
