# model/job.py
from typing import Optional
from pydantic import BaseModel
from util.enums import JobStatus, MediaKind, SourceProfile


class Job(BaseModel):
    id: str
    sourceUrl: str
    mediaKind: MediaKind
    qualitySelector: str = "best"
    containerExtension: str
    title: str = ""
    sourceProfile: SourceProfile = SourceProfile.generic
    status: JobStatus = JobStatus.created
    createdAt: float
    completedAt: Optional[float] = None
    bytesForwarded: int = 0
    error: Optional[str] = None
