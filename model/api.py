# model/api.py
from typing import Optional
from pydantic import BaseModel, Field
from util.enums import MediaKind, SourceProfile


class CreateJobRequest(BaseModel):
    sourceUrl: str = Field(min_length=1)
    mediaKind: MediaKind = MediaKind.video
    qualitySelector: Optional[str] = None
    containerExtension: Optional[str] = None


class CreateJobResponse(BaseModel):
    id: str
    title: str
    sourceProfile: SourceProfile
    streamUrl: str


class FormatInfo(BaseModel):
    videoQualities: list[str]
    audioQualities: list[str]
    videoFormats: list[str]
    audioFormats: list[str]


class ServiceInfo(BaseModel):
    status: str
    message: str
    version: str
