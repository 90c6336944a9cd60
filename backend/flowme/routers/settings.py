"""
AI settings endpoints for the admin settings form.
The stored secret is never returned; clients only see whether one is set.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends

from flowme.exceptions import InvalidRequestError
from flowme.routers.auth import verify_admin_token
from flowme.routers.common import error_envelope
from flowme.services.config_store import ConfigRepository, get_config_repository, load_config, update_config

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/config", tags=["config"])


@router.get("")
async def get_config(
    admin_code: str = Depends(verify_admin_token),
    repo: ConfigRepository = Depends(get_config_repository),
) -> dict[str, Any]:
    """Current AI configuration with the secret removed."""
    try:
        config = await load_config(repo)
        return config.to_public()
    except Exception as e:
        logger.error(f"Get config failed: {e}")
        return error_envelope(e, "Failed to load configuration.")


@router.post("")
async def set_config(
    payload: Any = Body(default=None),
    admin_code: str = Depends(verify_admin_token),
    repo: ConfigRepository = Depends(get_config_repository),
) -> dict[str, Any]:
    """
    Merge an update from the settings form into the stored AI configuration.

    Omitted or null fields keep their stored value.
    """
    logger.info(f"Admin {admin_code[:8]}... updating AI configuration")
    try:
        if not isinstance(payload, dict):
            raise InvalidRequestError("Invalid configuration payload.")
        incoming = {key: value for key, value in payload.items() if value is not None}
        config = await update_config(repo, incoming)
        return {"ok": True, "config": config.to_public()}
    except Exception as e:
        logger.error(f"Set config failed: {e}")
        return error_envelope(e, "Failed to save configuration.")
