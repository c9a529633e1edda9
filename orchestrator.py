"""Submission and polling state machine for a single generation job."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import httpx

from backends import ModelId, TuningOptions, build_payload, resolve
from constants import DEFAULT_POLL_INTERVAL, ERROR_CONFIGURATION, NOT_SUBMITTED, POLL_PATH
from constants import TERMINAL_STATUSES
from errors import (
    ConfigurationError,
    GenerationError,
    GenerationFailed,
    InvalidTransition,
    MalformedResult,
    PollTimeout,
    TransportError,
    UpstreamRejection,
    ValidationError,
)
from logging_config import get_logger

logger = get_logger("orchestrator")

EMPTY_PROMPT_MESSAGE = "Please enter a description for your video"
SUBMIT_FALLBACK = "Failed to start video generation"
POLL_FALLBACK = "Failed to poll status"

Sleep = Callable[[float], Awaitable[Any]]
StatusCallback = Callable[[str], None]


class JobState(str, Enum):
    """Orchestrator lifecycle states."""

    IDLE = "idle"
    SUBMITTING = "submitting"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


_TRANSITIONS: Dict[JobState, frozenset] = {
    JobState.IDLE: frozenset({JobState.SUBMITTING}),
    JobState.SUBMITTING: frozenset(
        {JobState.SUBMITTING, JobState.POLLING, JobState.SUCCEEDED, JobState.FAILED}
    ),
    JobState.POLLING: frozenset(
        {JobState.SUBMITTING, JobState.POLLING, JobState.SUCCEEDED, JobState.FAILED}
    ),
    JobState.SUCCEEDED: frozenset({JobState.SUBMITTING}),
    JobState.FAILED: frozenset({JobState.SUBMITTING}),
}


def can_transition(current: JobState, target: JobState) -> bool:
    """Return True if ``current -> target`` is a legal state change."""
    return target in _TRANSITIONS[current]


@dataclass
class Job:
    """One submitted prediction as last reported by the upstream."""

    model_id: str
    id: Optional[str] = None
    status: str = NOT_SUBMITTED
    output: Union[str, List[str], None] = None
    media_url: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        """Return True once the upstream reports a final status."""
        return self.status in TERMINAL_STATUSES

    def apply(self, prediction: Dict[str, Any]) -> None:
        """Update the job from a submission or poll response."""
        if prediction.get("id"):
            self.id = str(prediction["id"])
        self.status = str(prediction.get("status") or self.status)
        self.output = prediction.get("output")
        self.error = prediction.get("error") or None


def extract_media_url(output: Any) -> str:
    """Resolve the media location from a succeeded job's output."""
    if isinstance(output, (list, tuple)):
        output = output[0] if output else None
    if not output:
        raise MalformedResult("Generation succeeded but returned no output")
    return str(output)


def _error_detail(response: httpx.Response, fallback: str) -> tuple[Optional[str], str]:
    try:
        body = response.json()
    except ValueError:
        return None, fallback
    if not isinstance(body, dict):
        return None, fallback
    detail = body.get("detail")
    return body.get("error"), str(detail) if detail else fallback


class JobOrchestrator:  # pylint: disable=too-many-instance-attributes
    """Drive submit -> poll -> result for one job at a time.

    ``client`` must be pointed at the proxy gateway (its ``base_url`` is the
    proxy prefix). A new :meth:`submit` supersedes any loop still in flight;
    the superseded loop stops at its next suspension point without touching
    shared state.
    """

    def __init__(  # pylint: disable=too-many-arguments
        self,
        client: httpx.AsyncClient,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_poll_attempts: Optional[int] = None,
        max_poll_seconds: Optional[float] = None,
        sleep: Sleep = asyncio.sleep,
        on_status: Optional[StatusCallback] = None,
    ) -> None:
        self._client = client
        self._poll_interval = poll_interval
        self._max_poll_attempts = max_poll_attempts
        self._max_poll_seconds = max_poll_seconds
        self._sleep = sleep
        self._on_status = on_status
        self._generation = 0
        self.state = JobState.IDLE
        self.job: Optional[Job] = None
        self.status = ""
        self.error: Optional[str] = None

    @property
    def media_url(self) -> Optional[str]:
        """Return the resolved media URL of the active job, if any."""
        return self.job.media_url if self.job else None

    def _transition(self, target: JobState) -> None:
        if not can_transition(self.state, target):
            raise InvalidTransition(f"{self.state.value} -> {target.value}")
        self.state = target

    def _report(self, message: str) -> None:
        self.status = message
        if self._on_status is not None:
            self._on_status(message)

    def _is_stale(self, generation: int) -> bool:
        return generation != self._generation

    async def _request(
        self,
        method: str,
        path: str,
        fallback: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, path, json=payload)
        except httpx.RequestError as exc:
            raise TransportError(f"Failed to reach proxy: {exc}") from exc

        if response.is_error:
            error, detail = _error_detail(response, fallback)
            if error == ERROR_CONFIGURATION:
                raise ConfigurationError(detail)
            raise UpstreamRejection(status_code=response.status_code, detail=detail)

        try:
            body = response.json()
        except ValueError as exc:
            raise MalformedResult("Proxy returned invalid JSON") from exc
        if not isinstance(body, dict):
            raise MalformedResult("Proxy returned an unexpected payload")
        return body

    def _check_poll_budget(self, attempts: int, started: float) -> None:
        if self._max_poll_attempts is not None and attempts >= self._max_poll_attempts:
            raise PollTimeout(f"Generation did not finish after {attempts} polls")
        if self._max_poll_seconds is not None:
            elapsed = time.monotonic() - started
            if elapsed >= self._max_poll_seconds:
                raise PollTimeout(f"Generation did not finish within {elapsed:.0f}s")

    async def submit(
        self,
        prompt: str,
        model_id: Union[str, ModelId],
        options: Optional[TuningOptions] = None,
    ) -> Job:
        """Submit a prompt and poll until the job reaches a terminal status.

        Raises the matching :class:`GenerationError` on failure after moving
        to ``FAILED``. A call that has been superseded returns its own job
        quietly instead.
        """
        if not prompt or not prompt.strip():
            self.error = EMPTY_PROMPT_MESSAGE
            raise ValidationError(EMPTY_PROMPT_MESSAGE)
        try:
            config = resolve(model_id)
        except GenerationError as exc:
            self.error = str(exc)
            raise
        payload = build_payload(config.id, prompt, options or config.default_options())

        self._generation += 1
        generation = self._generation
        job = Job(model_id=config.id.value)
        self.job = job
        self.error = None
        self._transition(JobState.SUBMITTING)
        self._report("Starting generation...")
        logger.info("Submitting %s job", config.id.value)

        try:
            prediction = await self._request("POST", config.endpoint, SUBMIT_FALLBACK, payload)
            if self._is_stale(generation):
                return job
            job.apply(prediction)
            if not job.is_terminal and not job.id:
                raise MalformedResult("Submission response carried no job id")
            self._report(f"Generation {job.status}...")

            attempts = 0
            started = time.monotonic()
            while not job.is_terminal:
                self._transition(JobState.POLLING)
                self._check_poll_budget(attempts, started)
                await self._sleep(self._poll_interval)
                if self._is_stale(generation):
                    return job
                prediction = await self._request(
                    "GET", POLL_PATH.format(job_id=job.id), POLL_FALLBACK
                )
                if self._is_stale(generation):
                    return job
                attempts += 1
                job.apply(prediction)
                logger.debug("Job %s is %s", job.id, job.status)
                self._report(f"Generation {job.status}...")

            if job.status != "succeeded":
                raise GenerationFailed(job.status, job.error)
            job.media_url = extract_media_url(job.output)
        except GenerationError as exc:
            if self._is_stale(generation):
                logger.debug("Dropping error from superseded job: %s", exc)
                return job
            self._fail(str(exc))
            raise

        # A rejected pre-flight submit may have set error while this job ran.
        self.error = None
        self._transition(JobState.SUCCEEDED)
        self._report("")
        logger.info("Job %s succeeded: %s", job.id, job.media_url)
        return job

    def _fail(self, message: str) -> None:
        logger.error("Generation failed: %s", message)
        self.error = message
        self._report("")
        self._transition(JobState.FAILED)
