"""External collaborators: rendering, object storage, Drive, monitoring, hierarchy.

Each collaborator is a ``typing.Protocol``; jobs receive concrete
instances through :class:`~curriculum_bundles.jobs.base.JobContext`.
"""

from .drive import DriveService, MemoryDrive, drive_folder_url
from .hierarchy import HierarchyService, InMemoryHierarchy
from .monitoring import LoggingMonitor, MonitoringSink, RecordingMonitor
from .render import RemoteDocument, Renderer, count_pages
from .storage import JPEG_CONTENT_TYPE, PDF_CONTENT_TYPE, LocalStorage, ObjectStorage, S3Storage

__all__ = [
    "JPEG_CONTENT_TYPE",
    "PDF_CONTENT_TYPE",
    "DriveService",
    "HierarchyService",
    "InMemoryHierarchy",
    "LocalStorage",
    "LoggingMonitor",
    "MemoryDrive",
    "MonitoringSink",
    "ObjectStorage",
    "RecordingMonitor",
    "RemoteDocument",
    "Renderer",
    "S3Storage",
    "count_pages",
    "drive_folder_url",
]
