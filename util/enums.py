# util/enums.py
from enum import Enum
from typing import NamedTuple
from fastapi import status


class Color(str, Enum):
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"
    CYAN = "\033[36m"
    BOLD = "\033[1m"

    def __str__(self):
        return self.value


class Environment(str, Enum):
    DEV = "dev"
    PROD = "prod"


class ErrorInfo(NamedTuple):
    message: str
    http_status: int


class ErrorMessage(Enum):
    EMPTY_FILE = ErrorInfo("File is empty", status.HTTP_400_BAD_REQUEST)
    FILE_TOO_LARGE = ErrorInfo(
        "File is too large", status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    )
    UNSUPPORTED_FILE_TYPE = ErrorInfo(
        "Unsupported file type (JPEG, PNG, WEBP, GIF only)",
        status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
    )
    INVALID_PRIORITY = ErrorInfo("Priority out of range", status.HTTP_400_BAD_REQUEST)
    INVALID_BATCH_SIZE = ErrorInfo(
        "Batch must contain between 1 and the maximum number of files",
        status.HTTP_400_BAD_REQUEST,
    )
    JOB_NOT_FOUND = ErrorInfo("Job not found", status.HTTP_404_NOT_FOUND)
    BATCH_NOT_FOUND = ErrorInfo("Batch not found", status.HTTP_404_NOT_FOUND)
    RESULT_NOT_READY = ErrorInfo("Job has not completed", status.HTTP_409_CONFLICT)
    WORKER_UNAVAILABLE = ErrorInfo(
        "Recognition worker unavailable", status.HTTP_502_BAD_GATEWAY
    )
