"""Curriculum hierarchy lookups (read-only from the jobs' point of view)."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, Protocol, runtime_checkable

from curriculum_bundles.core.errors import EntityNotFoundError
from curriculum_bundles.models import Lesson, Material, Unit


@runtime_checkable
class HierarchyService(Protocol):
    def unit(self, entity_id: Any) -> Unit:
        ...

    def document(self, entity_id: Any) -> Lesson:
        ...

    def material(self, entity_id: Any) -> Material:
        ...


class InMemoryHierarchy:
    """Hierarchy built from a list of units; lessons and materials are indexed from them."""

    def __init__(self, units: Iterable[Unit] = ()):
        self._units: dict[Any, Unit] = {}
        self._lessons: dict[Any, Lesson] = {}
        self._materials: dict[Any, Material] = {}
        for unit in units:
            self.add(unit)

    def add(self, unit: Unit) -> None:
        self._units[unit.id] = unit
        self._lessons.update({lesson.id: lesson for lesson in unit.lessons})
        self._materials.update({material.id: material for material in unit.materials})

    def unit(self, entity_id: Any) -> Unit:
        try:
            return self._units[entity_id]
        except KeyError:
            raise EntityNotFoundError("Unit", entity_id) from None

    def document(self, entity_id: Any) -> Lesson:
        try:
            return self._lessons[entity_id]
        except KeyError:
            raise EntityNotFoundError("Document", entity_id) from None

    def material(self, entity_id: Any) -> Material:
        try:
            return self._materials[entity_id]
        except KeyError:
            raise EntityNotFoundError("Material", entity_id) from None


__all__ = ["HierarchyService", "InMemoryHierarchy"]
