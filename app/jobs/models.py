"""Job record data model for async composition."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobRecord(BaseModel):
    """Tracks the lifecycle of a composition job.

    Records are immutable snapshots: every transition produces a new record,
    so a reader never observes a half-applied update.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    status: JobStatus = JobStatus.PROCESSING
    progress: int = Field(default=0, ge=0, le=100)
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    output_ref: Optional[str] = None
    error_detail: Optional[str] = None

    layout: str
    audio_mix_policy: str
    input_a_path: str
    input_b_path: str
    output_path: str
    inputs_released: bool = False

    @model_validator(mode="after")
    def _check_terminal_fields(self) -> "JobRecord":
        completed = self.status == JobStatus.COMPLETED
        failed = self.status == JobStatus.FAILED
        if (self.output_ref is not None) != completed or (self.completed_at is not None) != completed:
            raise ValueError("output_ref/completed_at must be set iff status is completed")
        if (self.error_detail is not None) != failed or (self.failed_at is not None) != failed:
            raise ValueError("error_detail/failed_at must be set iff status is failed")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status != JobStatus.PROCESSING

    @property
    def reference_time(self) -> datetime:
        """Timestamp retention measures age from."""
        return self.completed_at or self.failed_at or self.created_at

    def with_progress(self, percent: int) -> "JobRecord":
        percent = max(self.progress, min(100, max(0, int(percent))))
        if self.is_terminal or percent == self.progress:
            return self
        return self.model_copy(update={"progress": percent})

    def complete(self, output_ref: str, at: Optional[datetime] = None) -> "JobRecord":
        self._require_processing(JobStatus.COMPLETED)
        return self.model_copy(update={
            "status": JobStatus.COMPLETED,
            "progress": 100,
            "completed_at": at or utcnow(),
            "output_ref": output_ref,
        })

    def fail(self, detail: str, at: Optional[datetime] = None) -> "JobRecord":
        self._require_processing(JobStatus.FAILED)
        return self.model_copy(update={
            "status": JobStatus.FAILED,
            "failed_at": at or utcnow(),
            "error_detail": detail or "Processing failed",
        })

    def release_inputs(self) -> "JobRecord":
        return self.model_copy(update={"inputs_released": True})

    def _require_processing(self, target: JobStatus) -> None:
        if self.is_terminal:
            raise InvalidStateTransitionError(self.status, target)

    def to_public(self) -> Dict[str, Any]:
        """Status payload exposed to callers (no local paths)."""
        response = {
            "jobId": self.id,
            "status": self.status.value,
            "progress": self.progress,
            "layout": self.layout,
            "audioMixPolicy": self.audio_mix_policy,
            "createdAt": self.created_at.isoformat(),
        }
        if self.status == JobStatus.COMPLETED:
            response["completedAt"] = self.completed_at.isoformat()
            response["outputRef"] = self.output_ref
        if self.status == JobStatus.FAILED:
            response["failedAt"] = self.failed_at.isoformat()
            response["errorDetail"] = self.error_detail
        return response


class InvalidStateTransitionError(Exception):
    """Raised when attempting to leave a terminal state."""

    def __init__(self, current: JobStatus, target: JobStatus):
        self.current = current
        self.target = target
        super().__init__(f"Invalid job state transition: {current.value} -> {target.value}")


class CompositionRequest(BaseModel):
    """Caller intent. Not persisted beyond request handling."""
    model_config = ConfigDict(populate_by_name=True)

    input_a: Optional[str] = Field(default=None, alias="inputA")
    input_b: Optional[str] = Field(default=None, alias="inputB")
    # Any value is accepted; the builder resolves unrecognized ones to defaults
    layout: Any = None
    per_input_settings: Optional[Dict[str, Any]] = Field(default_factory=dict, alias="perInputSettings")
    audio_mix_policy: Any = Field(default=None, alias="audioMixPolicy")

    @field_validator("per_input_settings", mode="before")
    @classmethod
    def null_settings_are_empty(cls, v):
        return {} if v is None else v
