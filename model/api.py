# model/api.py
import json
import logging
from datetime import datetime
from typing import Any, Literal
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from model.batch import BatchRecord
from model.job import Answer, JobRecord, JobResult, ResultMetadata
from util.functions import iso, utcnow
from util.types import TERMINAL_EVENTS, EventType

logger = logging.getLogger(__name__)


class JobSubmitResponse(BaseModel):
    jobId: str
    status: str
    estimatedCompletionTime: datetime
    callbackUrl: str
    submittedAt: datetime


class JobStatusResponse(BaseModel):
    jobId: str
    status: str
    createdAt: datetime
    completedAt: datetime | None = None

    @classmethod
    def of(cls, job: JobRecord) -> "JobStatusResponse":
        return cls(
            jobId=job.job_id,
            status=job.status.value,
            createdAt=job.created_at,
            completedAt=job.completed_at,
        )


class AnswerOut(BaseModel):
    questionNumber: int | None = None
    questionLabel: str | None = None
    extractedText: str | None = None
    latexFormula: str | None = None
    confidence: float | None = None


class MetadataOut(BaseModel):
    imageQuality: str
    processingTimeMs: int | None = None
    totalQuestionsDetected: int | None = None
    modelVersion: str


class JobResultResponse(BaseModel):
    answers: list[AnswerOut]
    metadata: MetadataOut

    @classmethod
    def of(cls, result: JobResult) -> "JobResultResponse":
        return cls(
            answers=[
                AnswerOut(
                    questionNumber=a.question_number,
                    questionLabel=a.question_label,
                    extractedText=a.extracted_text,
                    latexFormula=a.latex_formula,
                    confidence=a.confidence,
                )
                for a in result.answers
            ],
            metadata=MetadataOut(
                imageQuality=result.metadata.image_quality,
                processingTimeMs=result.metadata.processing_time_ms,
                totalQuestionsDetected=result.metadata.total_questions_detected,
                modelVersion=result.metadata.model_version,
            ),
        )


class WorkerStatusResponse(BaseModel):
    jobId: str
    externalJobId: str | None = None
    workerStatus: str


class WorkerAnswer(BaseModel):
    """One recognized answer as the worker sends it (callback or result fetch)."""

    model_config = ConfigDict(extra="ignore")

    questionNumber: int | None = Field(
        default=None, validation_alias=AliasChoices("questionNumber", "question_number")
    )
    questionLabel: str | None = Field(
        default=None, validation_alias=AliasChoices("questionLabel", "question_label")
    )
    extractedText: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "extractedText", "extracted_text", "recognizedText", "recognized_text"
        ),
    )
    latexFormula: str | None = Field(
        default=None, validation_alias=AliasChoices("latexFormula", "latex_formula")
    )
    finalAnswer: dict[str, Any] | None = Field(
        default=None, validation_alias=AliasChoices("finalAnswer", "final_answer")
    )
    confidence: float | None = None

    def to_answer(self) -> Answer:
        text = self.extractedText
        latex = self.latexFormula
        if self.finalAnswer:
            text = text or self.finalAnswer.get("extracted_text")
            latex = latex or self.finalAnswer.get("latex_formula")
        label = self.questionLabel
        if label is None:
            label = str(self.questionNumber) if self.questionNumber is not None else "N/A"
        confidence = self.confidence
        if confidence is not None:
            confidence = min(1.0, max(0.0, confidence))
        return Answer(
            question_number=self.questionNumber,
            question_label=label,
            extracted_text=text,
            latex_formula=latex if latex is not None else text,
            confidence=confidence,
        )


def parse_metadata(raw: Any, answer_count: int) -> ResultMetadata:
    """
    Accepts metadata as an object or a JSON string, camelCase or snake_case.
    Anything unreadable falls back to defaults.
    """
    if isinstance(raw, str):
        try:
            raw = json.loads(raw) if raw.strip() else {}
        except ValueError:
            logger.warning("metadata.parse.error len=%d", len(raw))
            raw = {}
    if not isinstance(raw, dict):
        raw = {}

    def _pick(*keys: str) -> Any:
        for k in keys:
            if raw.get(k) is not None:
                return raw[k]
        return None

    def _int(v: Any) -> int | None:
        try:
            n = int(v)
        except (TypeError, ValueError):
            return None
        return n if n >= 0 else None

    total = _int(_pick("totalQuestionsDetected", "total_questions_detected"))
    return ResultMetadata(
        image_quality=str(_pick("imageQuality", "image_quality") or "MEDIUM"),
        processing_time_ms=_int(_pick("processingTimeMs", "processing_time_ms")),
        total_questions_detected=total if total is not None else answer_count,
        model_version=str(_pick("modelVersion", "model_version") or "unknown"),
    )


def parse_result(answers: list[WorkerAnswer] | None, metadata: Any) -> JobResult:
    converted = tuple(a.to_answer() for a in answers or [])
    return JobResult(
        answers=converted, metadata=parse_metadata(metadata, len(converted))
    )


def parse_result_payload(payload: dict[str, Any]) -> JobResult:
    raw_answers = payload.get("answers") or []
    answers = [WorkerAnswer.model_validate(a) for a in raw_answers if isinstance(a, dict)]
    return parse_result(answers, payload.get("metadata"))


class CallbackRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: str
    answers: list[WorkerAnswer] | None = None
    metadata: dict[str, Any] | str | None = None
    errorMessage: str | None = Field(
        default=None, validation_alias=AliasChoices("errorMessage", "error_message")
    )


class CallbackAck(BaseModel):
    ok: bool = True


class BatchSubmitResponse(BaseModel):
    batchId: str
    progressStreamUrl: str
    totalItems: int
    status: str


class HealthResponse(BaseModel):
    ok: bool
    activeJobs: int
    activeBatches: int
    connections: int


class StreamEvent(BaseModel):
    """One SSE event; `terminal` events end the stream after delivery."""

    model_config = ConfigDict(frozen=True)

    type: EventType
    payload: dict[str, Any]

    @property
    def terminal(self) -> bool:
        if self.type in TERMINAL_EVENTS:
            return True
        return self.type == "progress" and self.payload.get("status") == "completed"

    @classmethod
    def connection(cls, subject_id: str) -> "StreamEvent":
        return cls(
            type="connection",
            payload={
                "id": subject_id,
                "message": "Stream connected",
                "timestamp": iso(utcnow()),
            },
        )

    @classmethod
    def status_change(cls, job_id: str, status: str, message: str) -> "StreamEvent":
        return cls(
            type="status_change",
            payload={
                "jobId": job_id,
                "status": status,
                "message": message,
                "timestamp": iso(utcnow()),
            },
        )

    @classmethod
    def completed(cls, job_id: str, result: JobResult) -> "StreamEvent":
        body = JobResultResponse.of(result).model_dump()
        return cls(
            type="completed",
            payload={
                "jobId": job_id,
                "status": "completed",
                "answers": body["answers"],
                "metadata": body["metadata"],
                "timestamp": iso(utcnow()),
            },
        )

    @classmethod
    def failed(cls, job_id: str, error_message: str) -> "StreamEvent":
        return cls(
            type="failed",
            payload={
                "jobId": job_id,
                "status": "failed",
                "errorMessage": error_message,
                "timestamp": iso(utcnow()),
            },
        )

    @classmethod
    def for_terminal_job(cls, job: JobRecord) -> "StreamEvent":
        if job.result is not None:
            return cls.completed(job.job_id, job.result)
        return cls.failed(job.job_id, job.error_message or "Job failed")

    @classmethod
    def batch_progress(cls, batch: BatchRecord) -> "StreamEvent":
        return cls(
            type="progress",
            payload={
                "batchId": batch.batch_id,
                "progressPercentage": batch.progress_percentage,
                "completedItems": batch.completed_items,
                "failedItems": batch.failed_items,
                "totalItems": batch.total_items,
                "status": batch.status.value,
            },
        )
