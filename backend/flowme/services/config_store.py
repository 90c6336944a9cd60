"""
Persisted AI configuration.

One record under a fixed key, edited only through the admin settings form
and read on every AI request. The secret is write-only: it is never
returned to clients, and an update that omits it keeps the stored one.
Concurrent writers are last-writer-wins.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from flowme.config import get_settings
from flowme.database import get_value, init_db, set_value
from flowme.exceptions import FlowMeError, InvalidRequestError

logger = logging.getLogger(__name__)

CONFIG_KEY = "flowme.config"
DEFAULT_TIMEOUT_SECONDS = 360


class AiConfig(BaseModel):
    """Stored shape: {enabled, aiProvider, secretValue, model, apiBaseUrl, allowedAiHosts, timeoutSeconds}."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    enabled: bool = False
    ai_provider: str = "openai"
    secret_value: str = ""
    model: str = ""
    api_base_url: str = ""
    allowed_ai_hosts: str | list[str] = ""
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS

    @field_validator("timeout_seconds", mode="before")
    @classmethod
    def _coerce_timeout(cls, value: Any) -> int:
        try:
            seconds = int(str(value).strip())
        except (TypeError, ValueError):
            return DEFAULT_TIMEOUT_SECONDS
        return seconds if seconds > 0 else DEFAULT_TIMEOUT_SECONDS

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)

    def to_public(self) -> dict[str, Any]:
        """Client view: secret removed, presence reported as a flag."""
        data = self.model_dump(by_alias=True, exclude={"secret_value"})
        data["secretConfigured"] = bool(self.secret_value)
        return data


def default_config() -> AiConfig:
    settings = get_settings()
    return AiConfig(
        model=settings.ai_default_model,
        api_base_url=settings.ai_default_base_url,
        allowed_ai_hosts=settings.ai_default_allowed_hosts,
        timeout_seconds=settings.ai_default_timeout_seconds,
    )


class ConfigRepository(Protocol):
    """Single-record store for the AI configuration."""

    async def get(self) -> dict[str, Any] | None: ...

    async def set(self, value: dict[str, Any]) -> None: ...


class SqliteConfigRepository:
    """ConfigRepository backed by the app_storage table."""

    def __init__(self, db_path: str, key: str = CONFIG_KEY):
        self._db_path = db_path
        self._key = key
        self._initialized = False

    async def _ensure_db(self):
        if not self._initialized:
            await init_db(self._db_path)
            self._initialized = True

    async def get(self) -> dict[str, Any] | None:
        await self._ensure_db()
        value = await get_value(self._db_path, self._key)
        return value if isinstance(value, dict) else None

    async def set(self, value: dict[str, Any]) -> None:
        await self._ensure_db()
        await set_value(self._db_path, self._key, value)


async def load_config(repo: ConfigRepository) -> AiConfig:
    """Stored configuration layered over the defaults."""
    stored = await repo.get()
    config = default_config()
    if not stored:
        return config
    merged = {**config.to_storage(), **stored}
    try:
        return AiConfig.model_validate(merged)
    except ValidationError as e:
        logger.error(f"Stored AI config is invalid: {e}")
        raise FlowMeError("Stored AI configuration is invalid.") from e


async def update_config(repo: ConfigRepository, incoming: dict[str, Any]) -> AiConfig:
    """
    Merge an update into the stored record.

    An empty or missing secretValue keeps the stored secret.
    """
    existing = await repo.get() or {}
    merged = {**existing, **incoming}
    if not incoming.get("secretValue") and existing.get("secretValue"):
        merged["secretValue"] = existing["secretValue"]
    try:
        config = AiConfig.model_validate({**default_config().to_storage(), **merged})
    except ValidationError as e:
        logger.warning(f"Rejected AI config update: {e}")
        raise InvalidRequestError("Invalid configuration payload.") from e
    await repo.set(config.to_storage())
    logger.info(
        f"AI config updated: enabled={config.enabled} provider={config.ai_provider} "
        f"model={config.model} secret_changed={bool(incoming.get('secretValue'))}"
    )
    return config


# Module-level singleton
_repository: SqliteConfigRepository | None = None


def get_config_repository() -> ConfigRepository:
    """FastAPI dependency: the configured repository. Override in tests."""
    global _repository
    if _repository is None:
        _repository = SqliteConfigRepository(get_settings().storage_path)
    return _repository
