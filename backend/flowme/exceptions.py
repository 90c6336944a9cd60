"""
Error types raised by FlowMe services.

Resolver routes turn any of these into an {"ok": false, "error": ...}
envelope; the cleanup event handler logs them.
"""

from __future__ import annotations


class FlowMeError(Exception):
    """Base class for all FlowMe errors."""


class InvalidRequestError(FlowMeError):
    """A required field is missing or malformed. Raised before any network call."""


class ConfluenceApiError(FlowMeError):
    """Non-2xx response from the Confluence REST API."""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Confluence API error {status_code}: {body}")


class AttachmentUploadError(ConfluenceApiError):
    """Attachment create/replace failed, including after the PUT retry."""

    def __init__(self, status_code: int, body: str, retried: bool = False):
        self.status_code = status_code
        self.body = body
        self.retried = retried
        prefix = "Attachment upload retry failed" if retried else "Attachment upload failed"
        FlowMeError.__init__(self, f"{prefix} {status_code}: {body}")


class DiagramConflictError(FlowMeError):
    """Create-only save hit an existing diagram name."""

    status_code = 409

    def __init__(self, diagram_name: str):
        self.diagram_name = diagram_name
        super().__init__("Diagram already exists.")


class AiConfigError(FlowMeError):
    """AI settings are disabled, incomplete or point at a disallowed host."""


class AiRequestError(FlowMeError):
    """The AI provider answered with a non-2xx status or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class AiTimeoutError(AiRequestError):
    """The AI provider did not answer within the configured timeout."""


class AiResponseError(FlowMeError):
    """The AI response did not contain a usable diagram document."""
