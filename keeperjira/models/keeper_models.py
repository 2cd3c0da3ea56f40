"""Pydantic models for the Keeper Commander async job queue (API v2)."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class JobStatus(str, Enum):
    """Request states reported by ``GET /status/{request_id}``."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.EXPIRED)


class SubmitResponse(BaseModel):
    """Body of ``POST /executecommand-async``."""
    model_config = ConfigDict(extra="ignore")

    success: bool = False
    request_id: Optional[str] = None
    status: Optional[str] = None
    message: Optional[str] = None


class AsyncJob(BaseModel):
    """One submitted command as seen through the status endpoint.

    The remote service owns this record; the client only ever reads it.
    """
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    request_id: Optional[str] = None
    command: Optional[str] = None
    status: JobStatus
    submitted_at: Optional[str] = Field(None, alias="created_at")
    started_at: Optional[str] = None
    completed_at: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal
