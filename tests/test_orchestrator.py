"""Job orchestrator state machine tests with a mocked proxy."""

# pylint: disable=protected-access

import asyncio
import json
from typing import Any, Callable, List, cast

import httpx
import pytest

from backends import TuningOptions
from errors import (
    ConfigurationError,
    GenerationFailed,
    InvalidTransition,
    MalformedResult,
    PollTimeout,
    TransportError,
    UnknownModel,
    UpstreamRejection,
    ValidationError,
)
from orchestrator import JobOrchestrator, JobState, can_transition, extract_media_url

PROXY_BASE = "http://proxy/api/replicate"


def _client(handler: Callable[..., Any]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=PROXY_BASE)


class SleepRecorder:  # pylint: disable=too-few-public-methods
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)


@pytest.mark.asyncio
async def test_submit_and_poll_until_succeeded() -> None:
    """Submission followed by one succeeded poll resolves the first output URL."""
    requests: List[httpx.Request] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.method == "POST":
            return httpx.Response(201, json={"id": "abc", "status": "starting"})
        return httpx.Response(
            200,
            json={"id": "abc", "status": "succeeded", "output": ["https://cdn/x.mp4"]},
        )

    sleep = SleepRecorder()
    messages: List[str] = []
    async with _client(handler) as client:
        orchestrator = JobOrchestrator(client, sleep=sleep, on_status=messages.append)
        job = await orchestrator.submit("a cat riding a bicycle", "ltx-video")

    assert job.media_url == "https://cdn/x.mp4"
    assert orchestrator.media_url == "https://cdn/x.mp4"
    assert orchestrator.state is JobState.SUCCEEDED
    assert orchestrator.error is None
    assert sleep.calls == [2.0]

    submit, poll = requests
    assert submit.url.path == "/api/replicate/predictions"
    body = json.loads(submit.content)
    assert body["input"]["prompt"] == "a cat riding a bicycle"
    assert "version" in body
    assert poll.method == "GET"
    assert poll.url.path == "/api/replicate/predictions/abc"
    assert messages == [
        "Starting generation...",
        "Generation starting...",
        "Generation succeeded...",
        "",
    ]


@pytest.mark.asyncio
async def test_submission_rejected_uses_upstream_detail() -> None:
    """A non-2xx submission fails with the upstream detail message."""

    async def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(402, json={"detail": "insufficient credit"})

    async with _client(handler) as client:
        orchestrator = JobOrchestrator(client, sleep=SleepRecorder())
        with pytest.raises(UpstreamRejection) as exc:
            await orchestrator.submit("a cat", "ltx-video")

    assert exc.value.status_code == 402
    assert str(exc.value) == "insufficient credit"
    assert orchestrator.state is JobState.FAILED
    assert orchestrator.error == "insufficient credit"
    assert orchestrator.status == ""


@pytest.mark.asyncio
async def test_submission_rejected_without_detail_uses_fallback() -> None:
    """Missing detail falls back to a generic message."""

    async def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="oops")

    async with _client(handler) as client:
        orchestrator = JobOrchestrator(client, sleep=SleepRecorder())
        with pytest.raises(UpstreamRejection):
            await orchestrator.submit("a cat", "ltx-video")
    assert orchestrator.error == "Failed to start video generation"


@pytest.mark.asyncio
@pytest.mark.parametrize("prompt", ["", "   \n"])
async def test_empty_prompt_makes_no_network_call(prompt: str) -> None:
    """Blank prompts are rejected before anything is sent."""
    calls: List[httpx.Request] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    async with _client(handler) as client:
        orchestrator = JobOrchestrator(client, sleep=SleepRecorder())
        with pytest.raises(ValidationError):
            await orchestrator.submit(prompt, "ltx-video")

    assert calls == []
    assert orchestrator.state is JobState.IDLE
    assert orchestrator.error == "Please enter a description for your video"


@pytest.mark.asyncio
async def test_unknown_model_makes_no_network_call() -> None:
    """Unknown identifiers are rejected before anything is sent."""
    calls: List[httpx.Request] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    async with _client(handler) as client:
        orchestrator = JobOrchestrator(client, sleep=SleepRecorder())
        with pytest.raises(UnknownModel):
            await orchestrator.submit("a cat", "not-a-model")
    assert calls == []


@pytest.mark.asyncio
async def test_succeeded_without_output_is_malformed() -> None:
    """A succeeded status with no output fails the job."""

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(201, json={"id": "abc", "status": "starting"})
        return httpx.Response(200, json={"id": "abc", "status": "succeeded"})

    async with _client(handler) as client:
        orchestrator = JobOrchestrator(client, sleep=SleepRecorder())
        with pytest.raises(MalformedResult):
            await orchestrator.submit("a cat", "ltx-video")
    assert orchestrator.state is JobState.FAILED


@pytest.mark.asyncio
async def test_poll_loop_stops_on_nth_poll() -> None:
    """Polling continues through non-terminal statuses and stops at the first terminal one."""
    polls = {"count": 0}

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(201, json={"id": "abc", "status": "starting"})
        polls["count"] += 1
        if polls["count"] < 5:
            return httpx.Response(200, json={"id": "abc", "status": "processing"})
        return httpx.Response(
            200, json={"id": "abc", "status": "succeeded", "output": "https://cdn/y.mp4"}
        )

    sleep = SleepRecorder()
    async with _client(handler) as client:
        orchestrator = JobOrchestrator(client, poll_interval=0.5, sleep=sleep)
        job = await orchestrator.submit("a cat", "wan-2.5", TuningOptions(guidance_scale=5))

    assert polls["count"] == 5
    assert sleep.calls == [0.5] * 5
    assert job.media_url == "https://cdn/y.mp4"


@pytest.mark.asyncio
async def test_already_terminal_submission_skips_polling() -> None:
    """A submission that comes back succeeded is never polled."""

    async def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        return httpx.Response(
            201, json={"id": "abc", "status": "succeeded", "output": ["https://cdn/z.mp4"]}
        )

    sleep = SleepRecorder()
    async with _client(handler) as client:
        orchestrator = JobOrchestrator(client, sleep=sleep)
        job = await orchestrator.submit("a cat", "ltx-video")
    assert job.media_url == "https://cdn/z.mp4"
    assert sleep.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["failed", "canceled"])
async def test_failed_or_canceled_status(status: str) -> None:
    """Terminal failure statuses surface the upstream status."""

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(201, json={"id": "abc", "status": "starting"})
        return httpx.Response(200, json={"id": "abc", "status": status, "error": "nsfw"})

    async with _client(handler) as client:
        orchestrator = JobOrchestrator(client, sleep=SleepRecorder())
        with pytest.raises(GenerationFailed) as exc:
            await orchestrator.submit("a cat", "ltx-video")

    assert str(exc.value) == f"Generation failed with status: {status}"
    assert exc.value.reason == "nsfw"
    assert orchestrator.state is JobState.FAILED


@pytest.mark.asyncio
async def test_poll_rejection_fails_job() -> None:
    """A non-2xx poll ends the loop immediately."""

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(201, json={"id": "abc", "status": "starting"})
        return httpx.Response(404, json={})

    async with _client(handler) as client:
        orchestrator = JobOrchestrator(client, sleep=SleepRecorder())
        with pytest.raises(UpstreamRejection):
            await orchestrator.submit("a cat", "ltx-video")
    assert orchestrator.error == "Failed to poll status"


@pytest.mark.asyncio
async def test_proxy_configuration_error_is_distinct() -> None:
    """The proxy's configuration error maps to ConfigurationError."""

    async def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            500, json={"error": "configuration_error", "detail": "Missing API Token"}
        )

    async with _client(handler) as client:
        orchestrator = JobOrchestrator(client, sleep=SleepRecorder())
        with pytest.raises(ConfigurationError):
            await orchestrator.submit("a cat", "ltx-video")


@pytest.mark.asyncio
async def test_transport_error() -> None:
    """Network failures reaching the proxy surface as TransportError."""

    async def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with _client(handler) as client:
        orchestrator = JobOrchestrator(client, sleep=SleepRecorder())
        with pytest.raises(TransportError):
            await orchestrator.submit("a cat", "ltx-video")
    assert orchestrator.state is JobState.FAILED


@pytest.mark.asyncio
async def test_poll_attempt_limit() -> None:
    """A configured attempt budget ends a job that never finishes."""
    polls = {"count": 0}

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(201, json={"id": "abc", "status": "starting"})
        polls["count"] += 1
        return httpx.Response(200, json={"id": "abc", "status": "processing"})

    async with _client(handler) as client:
        orchestrator = JobOrchestrator(client, max_poll_attempts=3, sleep=SleepRecorder())
        with pytest.raises(PollTimeout):
            await orchestrator.submit("a cat", "ltx-video")
    assert polls["count"] == 3
    assert orchestrator.state is JobState.FAILED


@pytest.mark.asyncio
async def test_errors_are_not_sticky() -> None:
    """A failed job does not block the next submission."""
    responses = iter(
        [
            httpx.Response(402, json={"detail": "insufficient credit"}),
            httpx.Response(
                201, json={"id": "b", "status": "succeeded", "output": "https://cdn/b.mp4"}
            ),
        ]
    )

    async def handler(_request: httpx.Request) -> httpx.Response:
        return next(responses)

    async with _client(handler) as client:
        orchestrator = JobOrchestrator(client, sleep=SleepRecorder())
        with pytest.raises(UpstreamRejection):
            await orchestrator.submit("a cat", "ltx-video")
        job = await orchestrator.submit("a cat", "ltx-video")

    assert job.media_url == "https://cdn/b.mp4"
    assert orchestrator.state is JobState.SUCCEEDED
    assert orchestrator.error is None


@pytest.mark.asyncio
async def test_new_submission_supersedes_in_flight_loop() -> None:
    """A stale loop resolving late never overwrites the newer job."""
    old_poll_started = asyncio.Event()
    release_old_poll = asyncio.Event()

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            prompt = json.loads(request.content)["input"]["prompt"]
            job_id = "old" if prompt == "first" else "new"
            return httpx.Response(201, json={"id": job_id, "status": "starting"})
        if request.url.path.endswith("/old"):
            old_poll_started.set()
            await release_old_poll.wait()
            return httpx.Response(
                200, json={"id": "old", "status": "succeeded", "output": ["https://cdn/old.mp4"]}
            )
        return httpx.Response(
            200, json={"id": "new", "status": "succeeded", "output": ["https://cdn/new.mp4"]}
        )

    async with _client(handler) as client:
        orchestrator = JobOrchestrator(client, sleep=SleepRecorder())
        first = asyncio.create_task(orchestrator.submit("first", "ltx-video"))
        await old_poll_started.wait()

        new_job = await orchestrator.submit("second", "ltx-video")
        release_old_poll.set()
        old_job = await first

    assert old_job.id == "old"
    assert old_job.media_url is None
    assert orchestrator.job is new_job
    assert orchestrator.media_url == "https://cdn/new.mp4"
    assert orchestrator.state is JobState.SUCCEEDED


@pytest.mark.asyncio
async def test_rejected_submit_during_loop_does_not_taint_success() -> None:
    """A blank prompt sent mid-job leaves the running job's success error-free."""
    poll_started = asyncio.Event()
    release_poll = asyncio.Event()

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(201, json={"id": "a", "status": "starting"})
        poll_started.set()
        await release_poll.wait()
        return httpx.Response(
            200, json={"id": "a", "status": "succeeded", "output": ["https://cdn/a.mp4"]}
        )

    async with _client(handler) as client:
        orchestrator = JobOrchestrator(client, sleep=SleepRecorder())
        running = asyncio.create_task(orchestrator.submit("a cat", "ltx-video"))
        await poll_started.wait()

        with pytest.raises(ValidationError):
            await orchestrator.submit("", "ltx-video")
        assert orchestrator.state is JobState.POLLING

        release_poll.set()
        job = await running

    assert job.media_url == "https://cdn/a.mp4"
    assert orchestrator.state is JobState.SUCCEEDED
    assert orchestrator.error is None


def test_transition_table() -> None:
    """Only submit leaves Idle and terminal states; terminal states never self-loop."""
    assert can_transition(JobState.IDLE, JobState.SUBMITTING)
    assert not can_transition(JobState.IDLE, JobState.POLLING)
    assert not can_transition(JobState.IDLE, JobState.SUCCEEDED)
    for terminal in (JobState.SUCCEEDED, JobState.FAILED):
        assert can_transition(terminal, JobState.SUBMITTING)
        assert not can_transition(terminal, terminal)
        assert not can_transition(terminal, JobState.POLLING)
    assert can_transition(JobState.POLLING, JobState.POLLING)


def test_illegal_transition_raises() -> None:
    """The orchestrator refuses transitions outside the table."""
    orchestrator = JobOrchestrator(cast(Any, object()))
    with pytest.raises(InvalidTransition):
        orchestrator._transition(JobState.POLLING)
    assert orchestrator.state is JobState.IDLE


def test_extract_media_url() -> None:
    """Sequences resolve to their first element, scalars to themselves."""
    assert extract_media_url(["a", "b"]) == "a"
    assert extract_media_url("a") == "a"
    for empty in (None, [], ""):
        with pytest.raises(MalformedResult):
            extract_media_url(empty)
