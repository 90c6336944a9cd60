"""
Orphan diagram cleanup, triggered by page-update events.

A diagram attachment is an orphan when no FlowMe macro on its page
references its name any more. Deleting a live diagram cannot be undone
from the user's side, while a missed cleanup only leaves clutter until
the next update, so every uncertain state results in no deletions:
- the page scan failed
- the page has no macros and an unpublished draft exists
- macros were found but no names could be read from them
"""

from __future__ import annotations

import logging
from typing import Any

from flowme.models import Attachment, CleanupResult
from flowme.services import attachments
from flowme.services.attachments import DRAWIO_SVG_SUFFIX, DRAWIO_XML_SUFFIX
from flowme.services.confluence import ConfluenceClient, segment
from flowme.services.diagrams import FLOWME_ATTACHMENT_MARKER
from flowme.services.scanner import scan_page

logger = logging.getLogger(__name__)

EDIT_PAGE_TRIGGER = "edit_page"
USER_TRIGGER = "user"


def diagram_name_for(attachment: Attachment) -> str | None:
    """Diagram name of a FlowMe-managed attachment, or None if it is not one."""
    if not attachment.title or not attachment.comment.startswith(FLOWME_ATTACHMENT_MARKER):
        return None
    for suffix in (DRAWIO_XML_SUFFIX, DRAWIO_SVG_SUFFIX):
        if attachment.title.endswith(suffix):
            return attachment.title[: -len(suffix)]
    return None


async def has_draft(client: ConfluenceClient, page_id: str) -> bool:
    """True if the page has an unpublished draft. Errors count as no draft."""
    try:
        response = await client.request(
            "GET",
            f"/wiki/api/v2/pages/{segment(page_id)}",
            mode="app",
            params={"get-draft": "true", "status": "draft"},
        )
    except Exception as e:
        logger.warning(f"Draft check failed for page {page_id}: {e}")
        return False
    if not response.is_success:
        return False
    try:
        data = response.json()
    except ValueError:
        return False
    return isinstance(data, dict) and str(data.get("status", "")).lower() == "draft"


async def reconcile(client: ConfluenceClient, page_id: str) -> CleanupResult:
    """Delete FlowMe attachments on a page whose diagram is no longer referenced."""
    all_attachments = await attachments.list_attachments(client, page_id, mode="app")
    result = CleanupResult(total=len(all_attachments))

    candidates: list[tuple[Attachment, str]] = []
    for attachment in all_attachments:
        name = diagram_name_for(attachment)
        if name is not None:
            candidates.append((attachment, name))
    result.candidates = len(candidates)
    if not candidates:
        result.skipped_reason = "no_candidates"
        logger.info(f"Cleanup skipped for page {page_id}: no FlowMe attachments")
        return result

    scan = await scan_page(client, page_id)
    if not scan.ok:
        result.skipped_reason = "scan_failed"
        logger.warning(f"Cleanup skipped for page {page_id}: page scan failed")
        return result

    if not scan.macro_found and await has_draft(client, page_id):
        result.skipped_reason = "draft_in_progress"
        logger.info(f"Cleanup skipped for page {page_id}: no macros and a draft is open")
        return result

    if scan.macro_found and not scan.names:
        result.skipped_reason = "empty_reference_set"
        logger.warning(f"Cleanup skipped for page {page_id}: macros found but no names read")
        return result

    for attachment, name in candidates:
        if name in scan.names:
            result.kept += 1
            continue
        if attachment.id:
            await attachments.delete(client, attachment.id, mode="app")
            result.deleted += 1
            logger.info(f"Deleted orphan attachment {attachment.title!r} ({attachment.id}) on page {page_id}")

    logger.info(
        f"Cleanup done for page {page_id}: deleted={result.deleted} kept={result.kept} "
        f"candidates={result.candidates} total={result.total}"
    )
    return result


def extract_page_id(event: Any) -> str:
    """Page id from a page-update event payload."""
    if not isinstance(event, dict):
        return ""
    content = event.get("content") if isinstance(event.get("content"), dict) else {}
    page = event.get("page") if isinstance(event.get("page"), dict) else {}
    page_id = (
        event.get("contentId")
        or content.get("id")
        or page.get("id")
        or event.get("objectId")
        or event.get("id")
        or ""
    )
    return str(page_id)


def extract_update_trigger(event: Any) -> str:
    if not isinstance(event, dict):
        return ""
    content = event.get("content") if isinstance(event.get("content"), dict) else {}
    trigger = event.get("updateTrigger") or content.get("updateTrigger") or ""
    return str(trigger).strip().lower()


async def should_run_cleanup(client: ConfluenceClient, page_id: str, trigger: str) -> bool:
    """
    Decide whether an update event should trigger cleanup.

    Autosaves during editing arrive as "edit_page"; those only count once
    the draft is gone.
    """
    if not trigger or trigger == USER_TRIGGER:
        return True
    if trigger == EDIT_PAGE_TRIGGER:
        return not await has_draft(client, page_id)
    return False


async def handle_page_updated(client: ConfluenceClient, event: Any) -> CleanupResult | None:
    """
    Entry point for page-update events. Never raises.

    Returns the cleanup result, or None when the event was skipped or failed.
    """
    try:
        page_id = extract_page_id(event)
        if not page_id:
            keys = sorted(event.keys()) if isinstance(event, dict) else None
            logger.warning(f"Page update event without page id, keys={keys}")
            return None

        trigger = extract_update_trigger(event)
        if not await should_run_cleanup(client, page_id, trigger):
            logger.info(f"Cleanup not run for page {page_id} (trigger={trigger!r})")
            return None

        logger.info(f"Running cleanup for page {page_id} (trigger={trigger or 'none'})")
        return await reconcile(client, page_id)
    except Exception as e:
        logger.error(f"Page update handler failed: {e}")
        return None
