# model/job.py
from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, field_validator
from util.functions import utcnow


class JobStatus(str, Enum):
    submitted = "submitted"
    processing = "processing"
    completed = "completed"
    failed = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.completed, JobStatus.failed)


class Answer(BaseModel):
    model_config = ConfigDict(frozen=True)

    question_number: int | None = None
    question_label: str | None = None
    extracted_text: str | None = None
    latex_formula: str | None = None
    confidence: float | None = None

    @field_validator("confidence")
    @classmethod
    def _confidence_range(cls, v: float | None) -> float | None:
        if v is not None and not 0.0 <= v <= 1.0:
            raise ValueError("confidence must be between 0.0 and 1.0")
        return v


class ResultMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    image_quality: str = "MEDIUM"
    processing_time_ms: int | None = Field(default=None, ge=0)
    total_questions_detected: int | None = Field(default=None, ge=0)
    model_version: str = "unknown"


class JobResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    answers: tuple[Answer, ...] = ()
    metadata: ResultMetadata = Field(default_factory=ResultMetadata)


class SourceMeta(BaseModel):
    filename: str
    size: int
    content_type: str | None = None


class JobRecord(BaseModel):
    """
    Snapshot of one recognition job. Frozen: JobRepository swaps whole
    records on transition, so a snapshot handed out never changes under
    the caller.
    """

    model_config = ConfigDict(frozen=True)

    job_id: str
    external_job_id: str | None = None
    status: JobStatus = JobStatus.submitted
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None
    source: SourceMeta
    callback_url: str
    priority: int = 5
    use_cache: bool = True
    result: JobResult | None = None
    error_message: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal
