"""Child artifact jobs - one document or one material, one artifact.

Each job renders its entity for a content type, persists the artifact and
records the link in the entity's result map::

    {"<content_type>": {"<pdf|gdoc>": {"url": ..., "timestamp": ..., "pages": ...}}}

Preview requests (``options["preview"]``) write to ``preview_links``
instead and skip page counting (``pages = -1``).

Failure handling
────────────────
A child never swallows its own failure. Before re-raising it:

1. (not preview) replaces its partial link with
   ``{"status": "failed", "errors": [display name, message], "timestamp": ...}``,
   keeping only a nested ``preview`` key
2. (not preview) records the failure in its logical request's slot
3. notifies the monitoring sink

The exception then reaches the worker, whose fixed-attempt retry decides
whether the job runs again. A later successful attempt replaces the
failure entry.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, ClassVar

from curriculum_bundles.core.errors import HookNotImplementedError, QueueError
from curriculum_bundles.core.logging import LogContext, get_logger
from curriculum_bundles.models import ContentPresenter, Lesson, Material, result_key
from curriculum_bundles.queue.descriptor import JobKind
from curriculum_bundles.results import LINKS, PREVIEW_LINKS
from curriculum_bundles.services.render import count_pages
from curriculum_bundles.services.storage import JPEG_CONTENT_TYPE, PDF_CONTENT_TYPE

from .base import Job

logger = get_logger(__name__)

NOT_COUNTED = -1

# nested data a rewritten link entry carries over from the previous one
KEPT_ON_REWRITE = ("preview",)


def storage_key(options: Mapping[str, Any], prefix: str, filename: str) -> str:
    """``[<folder>/]<prefix>/<filename>``."""
    return "/".join(part for part in (options.get("folder"), prefix, filename) if part)


class ChildArtifactJob(Job):
    """Base for the four child jobs.

    Subclasses set ``ENTITY_TYPE`` (``"document"`` or ``"material"``) and
    ``LINK_KEY`` (``"pdf"`` or ``"gdoc"``) and implement :meth:`generate`.
    """

    ENTITY_TYPE: ClassVar[str | None] = None
    LINK_KEY: ClassVar[str | None] = None

    def load_entity(self, entity_id: Any) -> Lesson | Material:
        if self.ENTITY_TYPE == "document":
            return self.context.hierarchy.document(entity_id)
        if self.ENTITY_TYPE == "material":
            return self.context.hierarchy.material(entity_id)
        raise HookNotImplementedError(type(self).__name__, "ENTITY_TYPE")

    def generate(self, presenter: ContentPresenter, options: Mapping[str, Any]) -> dict[str, Any]:
        """Produce and persist the artifact; return its link entry (without timestamp)."""
        raise HookNotImplementedError(type(self).__name__, "generate")

    def perform(self, entity_id: Any, options: Mapping[str, Any]) -> str:
        if self.LINK_KEY is None:
            raise HookNotImplementedError(type(self).__name__, "LINK_KEY")
        options = dict(options)
        content_type = options.get("content_type")
        if not content_type:
            raise QueueError(f"{type(self).__name__} requires a content_type option").with_context(
                job_kind=self.kind.value, job_id=self.job_id, entity_id=entity_id
            )
        preview = bool(options.get("preview"))

        with LogContext(
            job_kind=self.kind.value,
            job_id=self.job_id,
            initial_request_id=self.request_id_for(options),
            entity_id=entity_id,
        ):
            entity = None
            try:
                entity = self.load_entity(entity_id)
                presenter = ContentPresenter(entity, str(content_type))
                entry = self.generate(presenter, options)
                entry["timestamp"] = self.context.now()
                self.context.results.put_link(
                    entity.result_key,
                    str(content_type),
                    self.LINK_KEY,
                    entry,
                    PREVIEW_LINKS if preview else LINKS,
                    keep=KEPT_ON_REWRITE,
                )
            except HookNotImplementedError:
                raise
            except Exception as e:
                self.handle_failure(e, entity_id, entity, options)
                raise

            if not preview:
                self.store_request_result({"ok": True, "link": entry["url"]}, options)
            logger.info("child_artifact_completed", url=entry["url"], pages=entry.get("pages"), preview=preview)
            return entry["url"]

    def handle_failure(
        self,
        error: Exception,
        entity_id: Any,
        entity: Lesson | Material | None,
        options: Mapping[str, Any],
    ) -> None:
        logger.warning(
            "child_artifact_failed",
            error=str(error),
            error_type=type(error).__name__,
            attempt=self.descriptor.attempt,
        )
        if not options.get("preview"):
            key = entity.result_key if entity is not None else result_key(self.ENTITY_TYPE, entity_id)
            name = entity.display_name if entity is not None else str(entity_id)
            errors = [name, str(error)]
            self.context.results.put_link(
                key,
                str(options["content_type"]),
                self.LINK_KEY,
                {"status": "failed", "errors": errors, "timestamp": self.context.now()},
                keep=KEPT_ON_REWRITE,
            )
            self.store_request_result({"ok": False, "link": key, "errors": errors}, options)
        self.context.monitor.notify(
            error,
            {
                "job_kind": self.kind.value,
                "job_options": dict(options),
                f"{self.ENTITY_TYPE}_id": entity_id,
            },
        )


class DocumentPdfJob(ChildArtifactJob):
    """PDF of a lesson document, uploaded under ``[<folder>/]documents/``."""

    kind = JobKind.DOCUMENT_PDF
    ENTITY_TYPE = "document"
    LINK_KEY = "pdf"

    def generate(self, presenter: ContentPresenter, options: Mapping[str, Any]) -> dict[str, Any]:
        pdf = self.context.renderer.export_pdf(presenter, options)
        key = storage_key(options, "documents", presenter.pdf_filename)
        url = self.context.storage.upload(key, pdf, PDF_CONTENT_TYPE)
        pages = NOT_COUNTED if options.get("preview") else count_pages(pdf)
        return {"url": url, "pages": pages}


class MaterialPdfJob(ChildArtifactJob):
    """PDF of a material plus a JPEG thumbnail, uploaded under ``[<folder>/]materials/``."""

    kind = JobKind.MATERIAL_PDF
    ENTITY_TYPE = "material"
    LINK_KEY = "pdf"

    def generate(self, presenter: ContentPresenter, options: Mapping[str, Any]) -> dict[str, Any]:
        pdf = self.context.renderer.export_pdf(presenter, options)
        thumb = self.context.renderer.thumbnail(pdf)

        pdf_url = self.context.storage.upload(
            storage_key(options, "materials", presenter.pdf_filename), pdf, PDF_CONTENT_TYPE
        )
        thumb_url = self.context.storage.upload(
            storage_key(options, "materials", presenter.entity.thumb_filename()), thumb, JPEG_CONTENT_TYPE
        )
        pages = NOT_COUNTED if options.get("preview") else count_pages(pdf)
        return {"url": pdf_url, "pages": pages, "thumb_url": thumb_url}


class DocumentGdocJob(ChildArtifactJob):
    """Google Doc of a lesson document, created in ``options["folder_id"]`` if given."""

    kind = JobKind.DOCUMENT_GDOC
    ENTITY_TYPE = "document"
    LINK_KEY = "gdoc"

    def generate(self, presenter: ContentPresenter, options: Mapping[str, Any]) -> dict[str, Any]:
        document = self.context.renderer.export_gdoc(presenter, options)
        return {"url": document.url, "pages": NOT_COUNTED}


class MaterialGdocJob(ChildArtifactJob):
    kind = JobKind.MATERIAL_GDOC
    ENTITY_TYPE = "material"
    LINK_KEY = "gdoc"

    def generate(self, presenter: ContentPresenter, options: Mapping[str, Any]) -> dict[str, Any]:
        document = self.context.renderer.export_gdoc(presenter, options)
        return {"url": document.url, "pages": NOT_COUNTED}


__all__ = [
    "ChildArtifactJob",
    "DocumentGdocJob",
    "DocumentPdfJob",
    "MaterialGdocJob",
    "MaterialPdfJob",
    "storage_key",
]
