from typing import Final, FrozenSet


class InternalURIs:
    API = "/api"
    V1 = API + "/v1"
    JOBS = V1 + "/jobs"
    JOB = JOBS + "/{job_id}"
    JOB_RESULT = JOB + "/result"
    JOB_STREAM = JOB + "/stream"
    JOB_CALLBACK = JOB + "/callback"
    JOB_WORKER_STATUS = JOB + "/worker-status"
    BATCHES = V1 + "/batches"
    BATCH_PROGRESS = BATCHES + "/{batch_id}/progress"
    HEALTHZ = "/healthz"


class ExternalURIs:
    SUBMIT = "/text-recognition/async/submit"
    STATUS = "/text-recognition/async/ai-server-status/{job_id}"
    RESULT = "/text-recognition/async/result/{job_id}"
    BATCH = "/text-recognition/batch"
    BATCH_PROGRESS = "/text-recognition/batch/{batch_id}/progress"


ACCEPTED_IMAGE_TYPES: Final[FrozenSet[str]] = frozenset(
    {"image/jpeg", "image/jpg", "image/png", "image/webp", "image/gif"}
)

JOB_PRIORITY_RANGE: Final[tuple[int, int]] = (1, 10)
BATCH_PRIORITY_RANGE: Final[tuple[int, int]] = (1, 5)
