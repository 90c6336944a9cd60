"""
Diagram endpoints called by the macro UI: list, load, save and version history.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from flowme.editor import extract_svg, extract_xml
from flowme.exceptions import InvalidRequestError
from flowme.routers.common import error_envelope, get_confluence, require_client
from flowme.services import attachments, diagrams
from flowme.services.confluence import ConfluenceClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/diagrams", tags=["diagrams"])


class PageRequest(BaseModel):
    pageId: str | int = ""


class DiagramRequest(PageRequest):
    diagramName: str = ""


class LoadDiagramRequest(DiagramRequest):
    version: Optional[int | str] = None


class SaveDiagramRequest(DiagramRequest):
    xml: Optional[str] = None
    svg: Optional[str] = None
    createOnly: bool = False


def _require_diagram(request: DiagramRequest) -> tuple[str, str]:
    page_id = str(request.pageId or "")
    diagram_name = request.diagramName or ""
    if not page_id or not diagram_name:
        raise InvalidRequestError("Missing pageId or diagramName.")
    return page_id, diagram_name


@router.post("/list")
async def list_diagrams(
    request: PageRequest,
    client: ConfluenceClient | None = Depends(get_confluence),
) -> dict[str, Any]:
    """Names of all diagrams stored on a page, sorted."""
    page_id = str(request.pageId or "")
    if not page_id:
        return {"ok": False, "error": "Missing pageId.", "names": []}
    try:
        names = await attachments.list_diagram_names(require_client(client), page_id)
        return {"ok": True, "names": names}
    except Exception as e:
        logger.error(f"List diagrams failed for page {page_id}: {e}")
        return error_envelope(e, "Failed to list diagrams.")


@router.post("/load")
async def load_diagram(
    request: LoadDiagramRequest,
    client: ConfluenceClient | None = Depends(get_confluence),
) -> dict[str, Any]:
    """Source and render of a diagram, optionally at a given version."""
    try:
        page_id, diagram_name = _require_diagram(request)
        loaded = await diagrams.load(require_client(client), page_id, diagram_name, request.version or None)
        return {
            "ok": True,
            "xml": loaded.xml,
            "svg": loaded.svg,
            "hasXml": loaded.has_xml,
            "hasSvg": loaded.has_svg,
            "svgVersion": loaded.svg_version,
        }
    except Exception as e:
        logger.error(f"Load diagram failed: {e}")
        return error_envelope(e, "Failed to load diagram.")


@router.post("/save")
async def save_diagram(
    request: SaveDiagramRequest,
    client: ConfluenceClient | None = Depends(get_confluence),
) -> dict[str, Any]:
    """
    Save a diagram's source and/or render.

    Payloads may be forwarded straight from the editor, data URLs included.
    """
    try:
        page_id, diagram_name = _require_diagram(request)
        xml = extract_xml(request.xml) if request.xml else None
        svg = (extract_svg(request.svg) or request.svg) if request.svg else None
        await diagrams.save(
            require_client(client),
            page_id,
            diagram_name,
            xml=xml,
            svg=svg,
            create_only=request.createOnly,
        )
        return {"ok": True}
    except Exception as e:
        logger.error(f"Save diagram failed: {e}")
        return error_envelope(e, "Failed to save diagram.")


@router.post("/versions")
async def list_diagram_versions(
    request: DiagramRequest,
    client: ConfluenceClient | None = Depends(get_confluence),
) -> dict[str, Any]:
    """Version history of a diagram with a display author per version."""
    try:
        page_id, diagram_name = _require_diagram(request)
        versions = await diagrams.list_versions(require_client(client), page_id, diagram_name)
        return {
            "ok": True,
            "versions": [{"number": v.number, "when": v.when, "by": v.by} for v in versions],
        }
    except Exception as e:
        logger.error(f"List versions failed: {e}")
        return error_envelope(e, "Failed to list versions.")
