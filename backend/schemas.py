from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Union
from datetime import datetime

from constants import ROOT_PARENT_ID, FailureCategory


# Request bodies: every field optional so missing ones give the
# service's 400 messages instead of a framework 422
class UserCreate(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class FileCreate(BaseModel):
    name: Optional[str] = None
    type: Optional[str] = None
    parentId: Optional[Union[str, int]] = ROOT_PARENT_ID
    isPublic: bool = False
    data: Optional[str] = None  # base64 content, required unless type == folder


# Responses
class UserResponse(BaseModel):
    id: str
    email: str

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    token: str


class StatusResponse(BaseModel):
    db: bool
    storage: bool


class StatsResponse(BaseModel):
    users: int
    files: int


class FileResponse(BaseModel):
    """Catalog entry as clients see it; storage paths are never exposed"""
    id: str
    userId: str
    name: str
    type: str
    isPublic: bool
    parentId: str
    thumbnails: List[int] = Field(default_factory=list)

    @classmethod
    def from_entry(cls, entry) -> "FileResponse":
        return cls(
            id=entry.id,
            userId=entry.owner_id,
            name=entry.name,
            type=entry.kind,
            isPublic=entry.is_public,
            parentId=entry.parent_id,
            thumbnails=sorted(entry.thumbnail_refs, reverse=True),
        )


class DeadLetterResponse(BaseModel):
    id: str
    fileId: Optional[str] = None
    userId: Optional[str] = None
    retries: int
    deliveries: int
    errorMessage: Optional[str] = None
    failureCategory: Optional[str] = None
    failureLabel: Optional[str] = None
    createdAt: datetime
    deadLetteredAt: Optional[datetime] = None

    @classmethod
    def from_job(cls, job) -> "DeadLetterResponse":
        label = None
        if job.failure_category:
            label = FailureCategory.get_ui_label(FailureCategory(job.failure_category))
        return cls(
            id=job.id,
            fileId=job.file_id,
            userId=job.user_id,
            retries=job.retries,
            deliveries=job.deliveries,
            errorMessage=job.error_message,
            failureCategory=job.failure_category,
            failureLabel=label,
            createdAt=job.created_at,
            deadLetteredAt=job.dead_lettered_at,
        )


class QueueStatsResponse(BaseModel):
    counts: Dict[str, int]
