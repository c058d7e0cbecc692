"""Job record data model for async scraping."""

import re
import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

JOB_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_job_id() -> str:
    """Timestamp plus random suffix. Unique enough, not a secret."""
    return f"job-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


def is_valid_job_id(job_id: Any) -> bool:
    return isinstance(job_id, str) and bool(JOB_ID_PATTERN.match(job_id))


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


_STATUS_RANK = {
    JobStatus.PENDING: 0,
    JobStatus.PROCESSING: 1,
    JobStatus.COMPLETED: 2,
    JobStatus.FAILED: 2,
}


class JobProgress(BaseModel):
    message: str = ""
    percent: Optional[int] = Field(default=None, ge=0, le=100)


class JobRecord(BaseModel):
    """Tracks the lifecycle of one scrape request."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(default_factory=new_job_id)
    status: JobStatus = JobStatus.PENDING
    url: Optional[str] = None
    mode: Optional[str] = None
    progress: Optional[JobProgress] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, raw) -> "JobRecord":
        return cls.model_validate_json(raw)
