"""
Page attachment access on top of the Confluence REST API.

Listing and lookups use the v2 API; download and upload use the v1
content API because v2 has no multipart upload endpoint.
"""

import logging
import re
from urllib.parse import parse_qs, urljoin, urlparse

from flowme.exceptions import AttachmentUploadError
from flowme.models import Attachment
from flowme.services.confluence import ConfluenceClient, Mode, segment

logger = logging.getLogger(__name__)

PAGE_SIZE = 200
MAX_PAGES = 20  # ~4000 attachments

DRAWIO_XML_SUFFIX = ".mxfile"
DRAWIO_SVG_SUFFIX = ".svg"


def _next_cursor(next_link: str) -> str | None:
    """Pull the cursor query parameter out of a (possibly relative) next link."""
    if not next_link:
        return None
    url = urlparse(urljoin("https://example.com", next_link))
    values = parse_qs(url.query).get("cursor")
    return values[0] if values else None


async def list_attachments(
    client: ConfluenceClient,
    page_id: str,
    mode: Mode = "app",
) -> list[Attachment]:
    """
    List all attachments on a page, following cursor pagination.

    Stops after MAX_PAGES pages, when no next link is returned, or when the
    next cursor repeats the current one.
    """
    results: list[Attachment] = []
    cursor: str | None = None
    path = f"/wiki/api/v2/pages/{segment(page_id)}/attachments"

    for _ in range(MAX_PAGES):
        params = {"limit": PAGE_SIZE}
        if cursor:
            params["cursor"] = cursor
        data = await client.request_json(path, mode=mode, params=params)

        items = data.get("results") if isinstance(data, dict) else None
        if isinstance(items, list):
            results.extend(Attachment.from_api(item) for item in items if isinstance(item, dict))

        links = data.get("_links") if isinstance(data, dict) else None
        next_link = str(links.get("next") or "") if isinstance(links, dict) else ""
        next_cursor = _next_cursor(next_link)
        if not next_cursor or next_cursor == cursor:
            break
        cursor = next_cursor
    else:
        logger.warning(f"Attachment listing for page {page_id} stopped at {MAX_PAGES} pages")

    return results


async def find_by_name(
    client: ConfluenceClient,
    page_id: str,
    filename: str,
    mode: Mode = "app",
) -> Attachment | None:
    """Return the attachment with this exact filename, or None."""
    data = await client.request_json(
        f"/wiki/api/v2/pages/{segment(page_id)}/attachments",
        mode=mode,
        params={"filename": filename, "limit": 1},
    )
    items = data.get("results") if isinstance(data, dict) else None
    if not items:
        return None
    return Attachment.from_api(items[0])


async def download(
    client: ConfluenceClient,
    page_id: str,
    attachment_id: str,
    version: int | str | None = None,
    mode: Mode = "app",
) -> str:
    """Download attachment content as text; a version pins a historical revision."""
    path = (
        f"/wiki/rest/api/content/{segment(page_id)}"
        f"/child/attachment/{segment(attachment_id)}/download"
    )
    params = {"version": str(version)} if version else None
    return await client.request_text(path, mode=mode, params=params)


def _normalize_id(attachment_id: str | None) -> str:
    """Attachment ids come as "att123" from v2 and "123" from v1; keep the digits."""
    if not attachment_id:
        return ""
    match = re.search(r"\d+", str(attachment_id))
    return match.group(0) if match else ""


async def upload(
    client: ConfluenceClient,
    page_id: str,
    filename: str,
    content_type: str,
    content: str,
    existing_id: str | None = None,
    comment: str | None = None,
    mode: Mode = "app",
) -> dict:
    """
    Create an attachment, or update it in place when existing_id is given.

    When an update is rejected with a "same file name" error the request is
    retried once as PUT, which Confluence treats as an explicit replace.
    """
    normalized_id = _normalize_id(existing_id)
    path = f"/wiki/rest/api/content/{segment(page_id)}/child/attachment"
    params = {"id": normalized_id} if normalized_id else None

    def build_form():
        files = [("file", (filename, content.encode("utf-8"), content_type))]
        if comment:
            files.append(("comment", (None, comment.encode("utf-8"), "text/plain; charset=utf-8")))
        data = {"id": normalized_id} if normalized_id else None
        return files, data

    files, data = build_form()
    response = await client.request(
        "POST",
        path,
        mode=mode,
        params=params,
        headers={"X-Atlassian-Token": "no-check"},
        data=data,
        files=files,
    )
    if response.is_success:
        return response.json()

    text = response.text
    if normalized_id and "same file name" in text:
        logger.info(f"Upload of {filename} hit a name collision, retrying as replace")
        files, data = build_form()
        retry = await client.request(
            "PUT",
            path,
            mode=mode,
            params=params,
            headers={"X-Atlassian-Token": "no-check"},
            data=data,
            files=files,
        )
        if retry.is_success:
            return retry.json()
        raise AttachmentUploadError(retry.status_code, retry.text, retried=True)

    logger.error(
        f"Attachment upload failed: page={page_id} file={filename} "
        f"update={bool(normalized_id)} size={len(content)} status={response.status_code}"
    )
    raise AttachmentUploadError(response.status_code, text)


async def delete(client: ConfluenceClient, attachment_id: str, mode: Mode = "app") -> None:
    """Delete an attachment. Failures raise so callers never count a failed delete."""
    await client.request_text(
        f"/wiki/api/v2/attachments/{segment(attachment_id)}",
        mode=mode,
        method="DELETE",
    )


async def list_diagram_names(client: ConfluenceClient, page_id: str) -> list[str]:
    """Sorted names of every diagram with a source file on the page."""
    attachments = await list_attachments(client, page_id, mode="app")
    names = {
        a.title[: -len(DRAWIO_XML_SUFFIX)]
        for a in attachments
        if a.title.endswith(DRAWIO_XML_SUFFIX)
    }
    return sorted(names)
