# service/validation.py
from util.constants import ACCEPTED_IMAGE_TYPES
from util.enums import ErrorMessage
from util.errors import JobValidationError


def validate_image(
    *, data: bytes, filename: str, content_type: str | None, max_bytes: int
) -> None:
    """Raise JobValidationError unless `data` is a non-empty accepted image within size."""
    if not data:
        raise JobValidationError.of(ErrorMessage.EMPTY_FILE, filename)
    if len(data) > max_bytes:
        raise JobValidationError.of(
            ErrorMessage.FILE_TOO_LARGE,
            f"{filename} (max {max_bytes // (1024 * 1024)} MB)",
        )
    ctype = (content_type or "").split(";")[0].strip().lower()
    if ctype not in ACCEPTED_IMAGE_TYPES:
        raise JobValidationError.of(ErrorMessage.UNSUPPORTED_FILE_TYPE, ctype or "unknown")


def validate_priority(priority: int, bounds: tuple[int, int]) -> None:
    lo, hi = bounds
    if not lo <= priority <= hi:
        raise JobValidationError.of(ErrorMessage.INVALID_PRIORITY, f"{priority} not in {lo}-{hi}")


def validate_batch_size(count: int, max_files: int) -> None:
    if not 1 <= count <= max_files:
        raise JobValidationError.of(ErrorMessage.INVALID_BATCH_SIZE, f"got {count}, max {max_files}")
