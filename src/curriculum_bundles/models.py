"""Curriculum entities as seen by the bundle jobs.

The hierarchy service owns these records; jobs only read them. A unit
holds an ordered list of lessons (documents) and materials.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

PDF_EXT = ".pdf"
THUMB_EXT = ".jpg"

# Suffix appended to a lesson PDF name per content type.
PDF_SUBTITLES = {
    "full": "",
    "unit_bundle": "",
    "sm": "_student_materials",
    "tm": "_teacher_materials",
}


def result_key(entity_type: str, entity_id: Any) -> str:
    """Result store key of an entity, e.g. ``material:12``."""
    return f"{entity_type}:{entity_id}"


def _short_breadcrumb(pieces: tuple[str, ...]) -> str:
    return "_".join(p for p in pieces if p)


@dataclass(frozen=True)
class Lesson:
    """A lesson document.

    ``breadcrumbs`` are the short hierarchy pieces down to the lesson,
    e.g. ``("ela", "g2", "m1", "u1", "l8")``.
    """

    id: Any
    name: str
    breadcrumbs: tuple[str, ...] = ()
    version: int | None = None

    @property
    def display_name(self) -> str:
        return self.name

    @property
    def result_key(self) -> str:
        return result_key("document", self.id)

    def pdf_filename(self, content_type: str = "full") -> str:
        name = _short_breadcrumb(self.breadcrumbs) + PDF_SUBTITLES.get(content_type, "")
        return f"{name}_v{self.version or 1}{PDF_EXT}"


@dataclass(frozen=True)
class Material:
    """A material (worksheet, handout...) attached to a unit.

    ``document_id`` is the lesson the material was collected for, if any;
    its file names are grouped under that id.
    """

    id: Any
    identifier: str
    breadcrumbs: tuple[str, ...] = ()
    version: int | None = None
    document_id: Any = None

    @property
    def display_name(self) -> str:
        return self.identifier

    @property
    def result_key(self) -> str:
        return result_key("material", self.id)

    def base_filename(self, with_version: bool = True) -> str:
        name = "_".join(p for p in (_short_breadcrumb(self.breadcrumbs), self.identifier) if p)
        return f"{name}_v{self.version or 1}" if with_version else name

    def pdf_filename(self, content_type: str = "full") -> str:
        name = f"{self.base_filename()}{PDF_EXT}"
        if self.document_id is not None:
            return f"{self.document_id}/{name}"
        return name

    def thumb_filename(self) -> str:
        return f"{self.base_filename()}{THUMB_EXT}"


@dataclass(frozen=True)
class Unit:
    """A unit: the composite entity a bundle is built for."""

    id: Any
    name: str
    breadcrumbs: tuple[str, ...] = ()
    lessons: tuple[Lesson, ...] = field(default_factory=tuple)
    materials: tuple[Material, ...] = field(default_factory=tuple)

    @property
    def display_name(self) -> str:
        return self.name

    @property
    def result_key(self) -> str:
        return result_key("unit", self.id)

    @property
    def folder_name(self) -> str:
        """Breadcrumb-derived folder name, e.g. ``ela_g2_m1_u1``."""
        return _short_breadcrumb(self.breadcrumbs) or f"unit-{self.id}"

    def bundle_folder(self, root: str, bundle_type: str | None = None) -> str:
        """Object storage prefix for this unit's bundle of ``bundle_type``."""
        parts = [root.rstrip("/")]
        if bundle_type:
            parts.append(bundle_type)
        parts.append(self.folder_name)
        return "/".join(parts)


@dataclass(frozen=True)
class ContentPresenter:
    """An entity rendered for one content type; what the render service receives."""

    entity: Lesson | Material
    content_type: str

    @property
    def id(self) -> Any:
        return self.entity.id

    @property
    def display_name(self) -> str:
        return self.entity.display_name

    @property
    def pdf_filename(self) -> str:
        return self.entity.pdf_filename(self.content_type)

    @property
    def result_key(self) -> str:
        return self.entity.result_key


__all__ = [
    "PDF_EXT",
    "PDF_SUBTITLES",
    "THUMB_EXT",
    "ContentPresenter",
    "Lesson",
    "Material",
    "Unit",
    "result_key",
]
