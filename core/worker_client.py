# core/worker_client.py
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple
import httpx
from pydantic import ValidationError
from config.settings import Settings, settings as default_settings
from model.api import parse_result_payload
from model.job import JobResult
from util.constants import ExternalURIs
from util.errors import SubmissionError, TransientQueryError
from util.timing import timed

logger = logging.getLogger(__name__)

FilePart = Tuple[str, bytes, str]  # (filename, data, content_type)


@dataclass(frozen=True)
class WorkerJobStatus:
    status: str
    result: Optional[JobResult] = None
    error_message: Optional[str] = None


@dataclass(frozen=True)
class WorkerBatchProgress:
    completed: int
    failed: int


def _form_value(v: Any) -> str:
    return str(v).lower() if isinstance(v, bool) else str(v)


class WorkerClient:
    """
    httpx client for the external recognition worker.
    Every call carries its own short timeout, independent of job clocks.
    """

    def __init__(
        self,
        config: Settings = default_settings,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._max_attempts = max(1, config.SUBMIT_MAX_ATTEMPTS)
        self._backoff = config.SUBMIT_BACKOFF_SECONDS
        self._client = client or httpx.AsyncClient(
            base_url=config.WORKER_BASE_URL,
            timeout=httpx.Timeout(
                config.WORKER_TIMEOUT_SECONDS,
                connect=config.WORKER_CONNECT_TIMEOUT_SECONDS,
            ),
            headers={"accept": "application/json"},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # ---------------- Submission ----------------

    async def submit(
        self,
        *,
        data: bytes,
        filename: str,
        content_type: str,
        callback_url: str,
        priority: int,
        use_cache: bool,
    ) -> str:
        """
        Submit one image. Returns the worker's job id.
        Transport errors and 5xx are retried with exponential backoff;
        a 4xx is final.
        """
        form = {
            "callback_url": callback_url,
            "priority": _form_value(priority),
            "use_cache": _form_value(use_cache),
        }
        files = {"file": (filename, data, content_type)}
        body = await self._post_with_retry(ExternalURIs.SUBMIT, form, files)
        external_id = body.get("job_id") or body.get("jobId")
        if not external_id:
            raise SubmissionError("worker response did not include a job id")
        return str(external_id)

    async def submit_batch(
        self, *, files: Sequence[FilePart], priority: int, use_cache: bool
    ) -> str:
        form = {"priority": _form_value(priority), "use_cache": _form_value(use_cache)}
        parts = [("files", (name, data, ctype)) for name, data, ctype in files]
        body = await self._post_with_retry(ExternalURIs.BATCH, form, parts)
        batch_id = body.get("batch_id") or body.get("batchId")
        if not batch_id:
            raise SubmissionError("worker response did not include a batch id")
        return str(batch_id)

    async def _post_with_retry(self, path: str, form: Dict[str, str], files: Any) -> Dict[str, Any]:
        last_error: Optional[Exception] = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                with timed(logger, "worker.submit", path=path, attempt=attempt):
                    res = await self._client.post(path, data=form, files=files)
            except httpx.RequestError as e:
                last_error = e
                logger.warning(
                    "worker.submit.request_error err=%s attempt=%d/%d",
                    type(e).__name__,
                    attempt,
                    self._max_attempts,
                )
            else:
                if res.status_code // 100 == 2:
                    return _json_body(res)
                if res.status_code < 500:
                    logger.error("worker.submit.rejected status=%d", res.status_code)
                    raise SubmissionError(f"worker rejected submission ({res.status_code})")
                last_error = SubmissionError(f"worker error ({res.status_code})")
                logger.warning(
                    "worker.submit.bad_status status=%d attempt=%d/%d",
                    res.status_code,
                    attempt,
                    self._max_attempts,
                )

            if attempt < self._max_attempts:
                await asyncio.sleep(self._backoff * (2 ** (attempt - 1)))

        raise SubmissionError(
            f"worker unreachable after {self._max_attempts} attempt(s): {last_error}"
        )

    # ---------------- Queries ----------------

    async def get_status(self, external_job_id: str) -> WorkerJobStatus:
        body = await self._get_json(ExternalURIs.STATUS.format(job_id=external_job_id))
        status = str(body.get("overall_status") or body.get("status") or "unknown").lower()
        result = None
        inline = body.get("result")
        if status == "completed" and isinstance(inline, dict) and "answers" in inline:
            result = _parse_result(inline)
        error = body.get("error_message") or body.get("errorMessage")
        return WorkerJobStatus(status=status, result=result, error_message=error)

    async def get_result(self, external_job_id: str) -> JobResult:
        body = await self._get_json(ExternalURIs.RESULT.format(job_id=external_job_id))
        return _parse_result(body)

    async def get_batch_progress(self, external_batch_id: str) -> WorkerBatchProgress:
        body = await self._get_json(
            ExternalURIs.BATCH_PROGRESS.format(batch_id=external_batch_id)
        )
        try:
            completed = int(body.get("completed_items", body.get("completedItems", 0)) or 0)
            failed = int(body.get("failed_items", body.get("failedItems", 0)) or 0)
        except (TypeError, ValueError) as e:
            raise TransientQueryError(f"malformed batch progress: {e}") from e
        return WorkerBatchProgress(completed=completed, failed=failed)

    async def _get_json(self, path: str) -> Dict[str, Any]:
        try:
            with timed(logger, "worker.get", level=logging.DEBUG, path=path):
                res = await self._client.get(path)
                res.raise_for_status()
        except httpx.HTTPError as e:
            raise TransientQueryError(f"{type(e).__name__}: {e}") from e
        body = _json_body(res)
        if not body:
            raise TransientQueryError(f"empty or non-JSON response from {path}")
        return body


def _json_body(res: httpx.Response) -> Dict[str, Any]:
    try:
        body = res.json()
    except ValueError:
        return {}
    if isinstance(body, dict) and isinstance(body.get("data"), dict):
        # Some worker endpoints wrap payloads in {"success": ..., "data": {...}}
        return body["data"]
    return body if isinstance(body, dict) else {}


def _parse_result(body: Dict[str, Any]) -> JobResult:
    try:
        return parse_result_payload(body)
    except ValidationError as e:
        raise TransientQueryError(f"malformed result: {e.error_count()} error(s)") from e
