"""Jobs: child artifact jobs and bundle orchestrators."""

from .base import Job, JobContext
from .bundle import DEFERRALS, BaseBundleJob, DeferralPolicy, UnitBundleGdocJob, UnitBundlePdfJob
from .child import ChildArtifactJob, DocumentGdocJob, DocumentPdfJob, MaterialGdocJob, MaterialPdfJob

__all__ = [
    "DEFERRALS",
    "BaseBundleJob",
    "ChildArtifactJob",
    "DeferralPolicy",
    "DocumentGdocJob",
    "DocumentPdfJob",
    "Job",
    "JobContext",
    "MaterialGdocJob",
    "MaterialPdfJob",
    "UnitBundleGdocJob",
    "UnitBundlePdfJob",
]
