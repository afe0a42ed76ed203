"""Render/export service contract.

Rendering a document into PDF bytes or a Google Doc happens outside this
package; jobs talk to it through :class:`Renderer`.
"""

from __future__ import annotations

import io
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from curriculum_bundles.core.logging import get_logger
from curriculum_bundles.models import ContentPresenter

logger = get_logger(__name__)


@dataclass(frozen=True)
class RemoteDocument:
    """Handle to a document the render service created remotely."""

    url: str
    file_id: str | None = None


@runtime_checkable
class Renderer(Protocol):
    def export_pdf(self, presenter: ContentPresenter, options: Mapping[str, Any]) -> bytes:
        """Render ``presenter`` to PDF bytes."""
        ...

    def export_gdoc(self, presenter: ContentPresenter, options: Mapping[str, Any]) -> RemoteDocument:
        """Create a Google Doc for ``presenter`` (in ``options["folder_id"]`` if given)."""
        ...

    def thumbnail(self, pdf: bytes) -> bytes:
        """JPEG preview of the first page of ``pdf``."""
        ...


def count_pages(pdf: bytes) -> int:
    """Number of pages in ``pdf``; 0 when the bytes cannot be parsed."""
    try:
        return len(PdfReader(io.BytesIO(pdf)).pages)
    except (PdfReadError, ValueError, OSError) as e:
        logger.warning("pdf_page_count_failed", error=str(e))
        return 0


__all__ = ["RemoteDocument", "Renderer", "count_pages"]
