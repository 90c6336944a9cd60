"""
AI generation endpoints: text or image in, draw.io XML out.

Generation is synchronous; results come back with status "done".
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from flowme.routers.common import error_envelope
from flowme.services.ai_gateway import ai_png_to_diagram, ai_text_to_diagram
from flowme.services.config_store import ConfigRepository, get_config_repository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["ai"])


class AiTextRequest(BaseModel):
    pageId: Optional[str | int] = None
    diagramName: Optional[str] = None
    text: str = ""
    mode: Optional[str] = None


class AiImageRequest(BaseModel):
    pageId: Optional[str | int] = None
    diagramName: Optional[str] = None
    imageDataUrl: str = ""


@router.post("/text-to-diagram")
async def text_to_diagram(
    request: AiTextRequest,
    repo: ConfigRepository = Depends(get_config_repository),
) -> dict[str, Any]:
    """Generate a diagram from a text description."""
    try:
        xml = await ai_text_to_diagram(repo, request.text, request.mode)
        return {"ok": True, "status": "done", "xml": xml}
    except Exception as e:
        logger.error(f"AI text-to-diagram failed (diagram={request.diagramName!r}): {e}")
        return error_envelope(e, "AI request failed.")


@router.post("/png-to-diagram")
async def png_to_diagram(
    request: AiImageRequest,
    repo: ConfigRepository = Depends(get_config_repository),
) -> dict[str, Any]:
    """Reconstruct a diagram from a screenshot."""
    try:
        xml = await ai_png_to_diagram(repo, request.imageDataUrl)
        return {"ok": True, "status": "done", "xml": xml}
    except Exception as e:
        logger.error(f"AI image-to-diagram failed (diagram={request.diagramName!r}): {e}")
        return error_envelope(e, "AI request failed.")
