"""
Diagram naming, loading, saving and version history.

A diagram named "X" on a page is stored as two attachments:
- X.mxfile: the draw.io source document (application/xml)
- X.svg: a rendered snapshot for previews (image/svg+xml)

Either file may exist without the other. Every write tags the attachment
comment with the FlowMe marker so orphan cleanup can tell our files apart
from unrelated attachments.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any

from flowme.exceptions import DiagramConflictError, InvalidRequestError
from flowme.models import Attachment, DiagramFiles, DiagramVersion, LoadedDiagram
from flowme.services import attachments
from flowme.services.attachments import DRAWIO_SVG_SUFFIX, DRAWIO_XML_SUFFIX
from flowme.services.confluence import ConfluenceClient, segment

logger = logging.getLogger(__name__)

FLOWME_ATTACHMENT_MARKER = "FlowMe diagram:"

XML_CONTENT_TYPE = "application/xml"
SVG_CONTENT_TYPE = "image/svg+xml"

MAX_VERSIONS = 50

_SAVED_BY_RE = re.compile(r"savedBy:([^|]+)", re.IGNORECASE)
_MOJIBAKE_HINT_RE = re.compile("[ÃÅÂ]")


def xml_filename(diagram_name: str) -> str:
    return f"{diagram_name}{DRAWIO_XML_SUFFIX}"


def svg_filename(diagram_name: str) -> str:
    return f"{diagram_name}{DRAWIO_SVG_SUFFIX}"


def build_comment(diagram_name: str, display_name: str | None = None) -> str:
    """Provenance comment written on every diagram attachment."""
    base = f"{FLOWME_ATTACHMENT_MARKER} {diagram_name}"
    if not display_name:
        return base
    return f"{base} | savedBy:{display_name}"


def fix_mojibake(value: str | None) -> str:
    """
    Repair UTF-8 text that was decoded as Latin-1 somewhere upstream.

    "JosÃ©" becomes "José". Text without the tell-tale characters, or
    that does not survive the round trip, is returned unchanged.
    """
    if not value:
        return ""
    if not _MOJIBAKE_HINT_RE.search(value):
        return value
    try:
        return value.encode("latin-1").decode("utf-8")
    except (UnicodeEncodeError, UnicodeDecodeError):
        return value


async def get_actor_display_name(client: ConfluenceClient) -> str | None:
    """Display name of the current user; None if it cannot be determined."""
    try:
        data = await client.request_json("/wiki/rest/api/user/current", mode="user")
    except Exception as e:
        logger.info(f"Actor lookup failed, saving anonymously: {e}")
        return None
    if not isinstance(data, dict):
        return None
    return data.get("displayName") or data.get("publicName") or None


async def resolve(client: ConfluenceClient, page_id: str, diagram_name: str) -> DiagramFiles:
    """Look up both files of a diagram; either may be missing."""
    xml_meta, svg_meta = await asyncio.gather(
        attachments.find_by_name(client, page_id, xml_filename(diagram_name)),
        attachments.find_by_name(client, page_id, svg_filename(diagram_name)),
    )
    return DiagramFiles(xml=xml_meta, svg=svg_meta)


async def load(
    client: ConfluenceClient,
    page_id: str,
    diagram_name: str,
    version: int | str | None = None,
) -> LoadedDiagram:
    """
    Download whichever diagram files exist.

    A version applies to both files; they are always saved together so
    their version numbers move in step.
    """
    files = await resolve(client, page_id, diagram_name)
    result = LoadedDiagram()

    if files.xml and files.xml.id:
        result.xml = await attachments.download(
            client, files.xml.page_id or page_id, files.xml.id, version
        )
    if files.svg and files.svg.id:
        result.svg = await attachments.download(
            client, files.svg.page_id or page_id, files.svg.id, version
        )
        if version:
            result.svg_version = int(version)
        else:
            result.svg_version = files.svg.version

    logger.info(
        f"Loaded diagram {diagram_name!r} on page {page_id} "
        f"(xml={result.has_xml}, svg={result.has_svg}, version={version or 'latest'})"
    )
    return result


async def save(
    client: ConfluenceClient,
    page_id: str,
    diagram_name: str,
    xml: str | None = None,
    svg: str | None = None,
    create_only: bool = False,
) -> None:
    """
    Write the diagram's source and/or render file.

    Existing files are updated in place. With create_only, an existing file
    of either kind raises DiagramConflictError before anything is written.
    Both uploads run concurrently; any failure fails the whole save.
    """
    if not page_id or not diagram_name:
        raise InvalidRequestError("Missing pageId or diagramName.")
    if not xml and not svg:
        raise InvalidRequestError("No diagram content provided.")

    existing = await resolve(client, page_id, diagram_name)
    if create_only and existing.exists:
        logger.info(f"Create-only save refused: {diagram_name!r} already exists on page {page_id}")
        raise DiagramConflictError(diagram_name)

    display_name = await get_actor_display_name(client)
    comment = build_comment(diagram_name, display_name)

    uploads = []
    if xml:
        uploads.append(
            attachments.upload(
                client,
                page_id,
                xml_filename(diagram_name),
                XML_CONTENT_TYPE,
                xml,
                existing_id=existing.xml.id if existing.xml else None,
                comment=comment,
                mode="app",
            )
        )
    if svg:
        uploads.append(
            attachments.upload(
                client,
                page_id,
                svg_filename(diagram_name),
                SVG_CONTENT_TYPE,
                svg,
                existing_id=existing.svg.id if existing.svg else None,
                comment=comment,
                mode="app",
            )
        )

    await asyncio.gather(*uploads)
    logger.info(f"Saved diagram {diagram_name!r} on page {page_id} ({len(uploads)} file(s))")


def _first(item: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = item.get(key)
        if value:
            return value
    return None


async def _lookup_display_names(client: ConfluenceClient, account_ids: set[str]) -> dict[str, str]:
    """Resolve account ids to display names; individual failures are dropped."""

    async def lookup(account_id: str) -> tuple[str, str | None]:
        try:
            user = await client.request_json(
                "/wiki/rest/api/user", mode="app", params={"accountId": account_id}
            )
        except Exception as e:
            logger.debug(f"User lookup failed for {account_id}: {e}")
            return account_id, None
        name = user.get("displayName") if isinstance(user, dict) else None
        return account_id, name

    pairs = await asyncio.gather(*(lookup(account_id) for account_id in sorted(account_ids)))
    return {account_id: name for account_id, name in pairs if name}


async def list_versions(
    client: ConfluenceClient,
    page_id: str,
    diagram_name: str,
) -> list[DiagramVersion]:
    """
    Version history of a diagram, oldest first as returned by Confluence.

    The author shown for each version is, in order of preference: the
    savedBy name in the version comment, the author's display name, or a
    lookup of the author's account id.
    """
    files = await resolve(client, page_id, diagram_name)
    attachment: Attachment | None = files.xml if files.xml and files.xml.id else files.svg
    if not attachment or not attachment.id:
        logger.info(f"No attachment for diagram {diagram_name!r} on page {page_id}, no versions")
        return []

    data = await client.request_json(
        f"/wiki/api/v2/attachments/{segment(attachment.id)}/versions",
        mode="app",
        params={"limit": MAX_VERSIONS},
    )
    results = data.get("results") if isinstance(data, dict) else None
    if not isinstance(results, list):
        results = []

    raw_versions = []
    unresolved_ids: set[str] = set()
    for item in results:
        if not isinstance(item, dict) or not item.get("number"):
            continue
        author = _first(item, "createdBy", "by", "author", "user")
        author = author if isinstance(author, dict) else {}
        author_id = author.get("accountId") or _first(item, "authorId", "userId")
        display_name = author.get("displayName") or author.get("publicName")

        nested = item.get("version") if isinstance(item.get("version"), dict) else {}
        comment = _first(item, "message", "comment") or nested.get("message") or ""
        saved_by = ""
        match = _SAVED_BY_RE.search(str(comment))
        if match:
            saved_by = fix_mojibake(match.group(1).strip())

        if not display_name and author_id:
            unresolved_ids.add(str(author_id))

        raw_versions.append({
            "number": item["number"],
            "when": item.get("createdAt") or item.get("when"),
            "by": saved_by or display_name or "",
            "author_id": str(author_id) if author_id else None,
        })

    names = await _lookup_display_names(client, unresolved_ids) if unresolved_ids else {}

    versions = [
        DiagramVersion(
            number=v["number"],
            when=v["when"],
            by=v["by"] or names.get(v["author_id"] or "", ""),
        )
        for v in raw_versions
    ]
    logger.info(f"Listed {len(versions)} versions for diagram {diagram_name!r} on page {page_id}")
    return versions
