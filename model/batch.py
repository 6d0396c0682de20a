# model/batch.py
from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from util.functions import progress_percentage, utcnow


class BatchStatus(str, Enum):
    processing = "processing"
    completed = "completed"


class BatchRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    batch_id: str
    external_batch_id: str
    total_items: int = Field(ge=0)
    completed_items: int = 0
    failed_items: int = 0
    status: BatchStatus = BatchStatus.processing
    priority: int = 1
    use_cache: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def finished_items(self) -> int:
        return self.completed_items + self.failed_items

    @property
    def progress_percentage(self) -> float:
        return progress_percentage(
            self.completed_items, self.failed_items, self.total_items
        )
