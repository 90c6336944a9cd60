"""
AI diagram generation through an OpenAI-compatible Responses API.

Each call is self-contained:
1. Validate the stored configuration (fail closed)
2. Check input limits
3. POST the prompt with a hard timeout
4. Pull a draw.io <mxfile> document out of the model's free-form answer
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from enum import Enum
from typing import Any
from urllib.parse import urlparse

import httpx

from flowme.exceptions import (
    AiConfigError,
    AiRequestError,
    AiResponseError,
    AiTimeoutError,
    InvalidRequestError,
)
from flowme.services.config_store import AiConfig, ConfigRepository, load_config
from flowme.services.prompts import IMAGE_USER_INSTRUCTION, get_prompt

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDER = "openai"

# Limits
MAX_TEXT_CHARS = 12000
MAX_IMAGE_DATA_URL_CHARS = 4_000_000

DOC_OPEN = "<mxfile"
DOC_CLOSE = "</mxfile>"

_FENCE_RE = re.compile(r"```[\w+-]*[ \t]*\r?\n?([\s\S]*?)```")
_COMMENT_RE = re.compile(r"<!--[\s\S]*?-->")
_HOST_SPLIT_RE = re.compile(r"[\s,]+")


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

def parse_allowed_hosts(value: str | list[str] | None) -> list[str]:
    """Allowlist entries from a comma/whitespace separated string or a list."""
    if not value:
        return []
    parts = value if isinstance(value, list) else _HOST_SPLIT_RE.split(value)
    return [p.strip().lower() for p in parts if p and p.strip()]


def is_host_allowed(host: str, allowed: list[str]) -> bool:
    """
    Exact match, or "*.domain" for the domain and any of its subdomains.

    A wildcard entry also admits the bare domain: "*.openai.com" allows
    "openai.com" as well as "api.openai.com".

    An empty allowlist allows nothing.
    """
    host = (host or "").strip().lower().rstrip(".")
    if not host:
        return False
    for pattern in allowed:
        if pattern.startswith("*."):
            domain = pattern[2:]
            if domain and (host == domain or host.endswith("." + domain)):
                return True
        elif host == pattern:
            return True
    return False


def validate_config(config: AiConfig) -> None:
    """Raise AiConfigError unless the configuration is usable."""
    if not config.enabled:
        raise AiConfigError("AI features are disabled.")
    if (config.ai_provider or "").strip().lower() != SUPPORTED_PROVIDER:
        raise AiConfigError(f"Unsupported AI provider: {config.ai_provider or 'none'}.")
    if not config.secret_value:
        raise AiConfigError("AI API key is not configured.")

    try:
        parsed = urlparse(config.api_base_url or "")
    except ValueError:
        raise AiConfigError("AI base URL is invalid.")
    if not parsed.scheme or not parsed.hostname:
        raise AiConfigError("AI base URL is invalid.")
    if parsed.scheme.lower() != "https":
        raise AiConfigError("AI base URL must use HTTPS.")
    if not is_host_allowed(parsed.hostname, parse_allowed_hosts(config.allowed_ai_hosts)):
        raise AiConfigError(f"AI host {parsed.hostname} is not in the allowed hosts list.")


async def assert_config(repo: ConfigRepository) -> AiConfig:
    """Load the stored configuration and validate it."""
    config = await load_config(repo)
    validate_config(config)
    return config


# ---------------------------------------------------------------------------
# Request construction and dispatch
# ---------------------------------------------------------------------------

def responses_url(base_url: str) -> str:
    base = base_url.rstrip("/")
    if base.endswith("/v1"):
        return f"{base}/responses"
    return f"{base}/v1/responses"


def build_text_payload(config: AiConfig, text: str, mode: str | None) -> dict[str, Any]:
    return {
        "model": config.model,
        "input": [
            {"role": "system", "content": [{"type": "input_text", "text": get_prompt(mode)}]},
            {"role": "user", "content": [{"type": "input_text", "text": text}]},
        ],
    }


def build_image_payload(config: AiConfig, image_data_url: str) -> dict[str, Any]:
    return {
        "model": config.model,
        "input": [
            {"role": "system", "content": [{"type": "input_text", "text": get_prompt("image")}]},
            {
                "role": "user",
                "content": [
                    {"type": "input_text", "text": IMAGE_USER_INSTRUCTION},
                    {"type": "input_image", "image_url": image_data_url},
                ],
            },
        ],
    }


async def post_request(
    config: AiConfig,
    payload: dict[str, Any],
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    """
    POST the payload and return the response body.

    The call is cancelled after config.timeout_seconds. There is no retry.
    """
    url = responses_url(config.api_base_url)
    timeout = config.timeout_seconds
    headers = {
        "Authorization": f"Bearer {config.secret_value}",
        "Content-Type": "application/json",
    }

    logger.info(f"AI request: model={config.model} url={url} timeout={timeout}s")

    try:
        async with httpx.AsyncClient(timeout=timeout + 5, transport=transport) as client:
            response = await asyncio.wait_for(
                client.post(url, headers=headers, json=payload),
                timeout=timeout,
            )
    except (asyncio.TimeoutError, httpx.TimeoutException):
        logger.error(f"AI request timed out after {timeout}s")
        raise AiTimeoutError(f"AI request timed out after {timeout} seconds.")
    except httpx.HTTPError as e:
        logger.error(f"AI request transport error: {e}")
        raise AiRequestError(f"AI request failed: {e}")

    if not response.is_success:
        logger.error(f"AI request failed: HTTP {response.status_code} {response.text[:500]}")
        raise AiRequestError(
            f"AI request failed with status {response.status_code}.",
            status_code=response.status_code,
        )
    return response.text


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

class ResponseShape(Enum):
    FLAT_TEXT = "flat_text"          # {"output_text": "..."}
    TEXT_ARRAY = "text_array"        # {"output_text": ["...", {"text": "..."}]}
    OUTPUT_ITEMS = "output_items"    # {"output": [{"content": [{"text": "..."}]}]}


def response_shapes(data: Any) -> list[ResponseShape]:
    """Shapes present in a provider response, in the order they are read."""
    if not isinstance(data, dict):
        return []
    shapes = []
    output_text = data.get("output_text")
    if isinstance(output_text, str):
        shapes.append(ResponseShape.FLAT_TEXT)
    elif isinstance(output_text, list):
        shapes.append(ResponseShape.TEXT_ARRAY)
    if isinstance(data.get("output"), list):
        shapes.append(ResponseShape.OUTPUT_ITEMS)
    return shapes


def _chunk_text(chunk: Any) -> str | None:
    if isinstance(chunk, str):
        return chunk
    if isinstance(chunk, dict):
        text = chunk.get("text")
        if isinstance(text, dict):
            text = text.get("value")
        if isinstance(text, str):
            return text
    return None


def collect_text(data: Any) -> str:
    """Concatenate every text fragment found in the response."""
    fragments: list[str] = []
    for shape in response_shapes(data):
        if shape is ResponseShape.FLAT_TEXT:
            fragments.append(data["output_text"])
        elif shape is ResponseShape.TEXT_ARRAY:
            fragments.extend(t for t in map(_chunk_text, data["output_text"]) if t)
        elif shape is ResponseShape.OUTPUT_ITEMS:
            for item in data["output"]:
                if not isinstance(item, dict):
                    continue
                content = item.get("content")
                if isinstance(content, str):
                    fragments.append(content)
                elif isinstance(content, list):
                    fragments.extend(t for t in map(_chunk_text, content) if t)
                elif isinstance(item.get("text"), str):
                    fragments.append(item["text"])
    return "".join(fragments)


def clean_model_text(text: str) -> str:
    """Strip the wrappers models like to put around documents."""
    cleaned = (text or "").replace("\ufeff", "").strip()
    cleaned = _FENCE_RE.sub(lambda m: m.group(1), cleaned).strip()
    for quote in ('"""', "'''"):
        if len(cleaned) >= 6 and cleaned.startswith(quote) and cleaned.endswith(quote):
            cleaned = cleaned[3:-3].strip()
    if (
        len(cleaned) >= 2
        and cleaned[0] == cleaned[-1]
        and cleaned[0] in "\"'"
        and DOC_OPEN in cleaned[1:-1]
    ):
        cleaned = cleaned[1:-1].strip()
    return cleaned


def extract_mxfile(text: str) -> str | None:
    """First <mxfile ...>...</mxfile> in text with XML comments removed."""
    start = text.find(DOC_OPEN)
    if start == -1:
        return None
    end = text.find(DOC_CLOSE, start)
    if end == -1:
        return None
    document = text[start:end + len(DOC_CLOSE)]
    return _COMMENT_RE.sub("", document).strip()


def extract_diagram(body: str) -> str:
    """
    Find the diagram document in a provider response body.

    The parsed text is tried first, then the raw body.
    """
    try:
        data = json.loads(body)
    except ValueError:
        data = None

    document = extract_mxfile(clean_model_text(collect_text(data)))
    if document is None:
        document = extract_mxfile(clean_model_text(body))
    if document is None:
        raise AiResponseError("AI response did not contain a draw.io <mxfile> document.")
    return document


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

def check_text_input(text: str | None) -> str:
    trimmed = (text or "").strip()
    if not trimmed:
        raise InvalidRequestError("Please describe the workflow to generate the diagram.")
    if len(trimmed) > MAX_TEXT_CHARS:
        raise InvalidRequestError("Text is too long. Please shorten the workflow description.")
    return trimmed


def check_image_input(image_data_url: str | None) -> str:
    value = (image_data_url or "").strip()
    if not value.startswith("data:image/"):
        raise InvalidRequestError("Image must be provided as a data:image/ URL.")
    if len(value) > MAX_IMAGE_DATA_URL_CHARS:
        raise InvalidRequestError("Image is too large to send. Please use a smaller screenshot.")
    return value


async def ai_text_to_diagram(
    repo: ConfigRepository,
    text: str | None,
    mode: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    """Generate diagram XML from a text description."""
    trimmed = check_text_input(text)
    config = await assert_config(repo)
    body = await post_request(config, build_text_payload(config, trimmed, mode), transport)
    document = extract_diagram(body)
    logger.info(f"AI text-to-diagram done: mode={mode or 'workflow'} chars={len(document)}")
    return document


async def ai_png_to_diagram(
    repo: ConfigRepository,
    image_data_url: str | None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    """Reconstruct diagram XML from an image data URL."""
    value = check_image_input(image_data_url)
    config = await assert_config(repo)
    body = await post_request(config, build_image_payload(config, value), transport)
    document = extract_diagram(body)
    logger.info(f"AI image-to-diagram done: chars={len(document)}")
    return document
