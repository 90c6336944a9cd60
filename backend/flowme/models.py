"""
Data types shared by the FlowMe services.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class Attachment:
    """Attachment metadata as returned by the Confluence API."""
    id: str
    title: str
    comment: str = ""
    page_id: str | None = None
    version: int | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Attachment":
        version = data.get("version") or {}
        number = version.get("number") if isinstance(version, dict) else None
        page_id = data.get("pageId")
        return cls(
            id=str(data.get("id") or ""),
            title=str(data.get("title") or ""),
            comment=str(data.get("comment") or ""),
            page_id=str(page_id) if page_id else None,
            version=number if isinstance(number, int) else None,
        )


@dataclass
class DiagramFiles:
    """The two attachments backing one diagram; either may be missing."""
    xml: Attachment | None = None
    svg: Attachment | None = None

    @property
    def exists(self) -> bool:
        return self.xml is not None or self.svg is not None


@dataclass
class LoadedDiagram:
    xml: str = ""
    svg: str = ""
    svg_version: int | None = None

    @property
    def has_xml(self) -> bool:
        return bool(self.xml)

    @property
    def has_svg(self) -> bool:
        return bool(self.svg)


@dataclass
class DiagramVersion:
    number: int
    when: str | None
    by: str


@dataclass
class ScanResult:
    """Diagram names referenced by a page's macros."""
    names: set[str] = field(default_factory=set)
    macro_found: bool = False
    ok: bool = True


@dataclass
class CleanupResult:
    deleted: int = 0
    kept: int = 0
    candidates: int = 0
    total: int = 0
    skipped_reason: str | None = None
