import httpx
import pytest

from src.videoanalysis.remote.result_poller import PollOutcome, ResultPoller


def build_poller(handler, sleep, **kwargs) -> ResultPoller:
    return ResultPoller(
        base_url="http://analysis.test",
        sleep=sleep,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_poll_returns_payload_once_completed(recorded_sleep) -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) <= 10:
            return httpx.Response(200, json={"status": "processing"})
        return httpx.Response(200, json={"status": "completed", "result": {"wpm_avg": 130}})

    poller = build_poller(handler, recorded_sleep)

    result = await poller.poll("job-1", "remote-1")

    assert result.outcome is PollOutcome.COMPLETED
    assert result.payload == {"wpm_avg": 130}
    assert result.attempts == 11
    assert len(calls) == 11
    assert calls[0].url.path == "/result/remote-1"
    assert recorded_sleep.calls == [5.0] * 10


@pytest.mark.asyncio
async def test_poll_reports_remote_error(recorded_sleep) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": "error", "error": "bad codec"})

    result = await build_poller(handler, recorded_sleep).poll("job-2", "remote-2")

    assert result.outcome is PollOutcome.ERROR
    assert result.error == "bad codec"
    assert result.attempts == 1
    assert recorded_sleep.calls == []


@pytest.mark.asyncio
async def test_poll_error_without_message(recorded_sleep) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": "error"})

    result = await build_poller(handler, recorded_sleep).poll("job-2", "remote-2")

    assert result.error == "unknown error"


@pytest.mark.asyncio
async def test_poll_reports_not_found(recorded_sleep) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": "not_found"})

    result = await build_poller(handler, recorded_sleep).poll("job-3", "remote-3")

    assert result.outcome is PollOutcome.NOT_FOUND


@pytest.mark.asyncio
async def test_poll_times_out_after_exactly_max_attempts(recorded_sleep) -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"status": "processing"})

    result = await build_poller(handler, recorded_sleep).poll("job-4", "remote-4")

    assert result.outcome is PollOutcome.TIMEOUT
    assert result.attempts == 240
    assert len(calls) == 240
    assert len(recorded_sleep.calls) == 239


@pytest.mark.asyncio
async def test_failed_requests_count_as_attempts(recorded_sleep) -> None:
    responses = iter(
        [
            "raise",
            httpx.Response(503, json={"detail": "busy"}),
            httpx.Response(200, content=b"not json"),
            httpx.Response(200, json=["unexpected"]),
            httpx.Response(200, json={"status": "queued"}),
            httpx.Response(200, json={"status": "completed", "result": {"ok": True}}),
        ]
    )

    def handler(request: httpx.Request) -> httpx.Response:
        response = next(responses)
        if response == "raise":
            raise httpx.ConnectError("refused", request=request)
        return response

    result = await build_poller(handler, recorded_sleep, interval_seconds=1.0).poll("job-5", "remote-5")

    assert result.outcome is PollOutcome.COMPLETED
    assert result.attempts == 6
    assert recorded_sleep.calls == [1.0] * 5


@pytest.mark.asyncio
async def test_transport_failures_still_time_out(recorded_sleep) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    result = await build_poller(handler, recorded_sleep, max_attempts=3).poll("job-6", "remote-6")

    assert result.outcome is PollOutcome.TIMEOUT
    assert result.attempts == 3
    assert recorded_sleep.calls == [5.0, 5.0]


@pytest.mark.asyncio
async def test_completed_without_result_yields_empty_payload(recorded_sleep) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": "completed", "result": None})

    result = await build_poller(handler, recorded_sleep).poll("job-7", "remote-7")

    assert result.outcome is PollOutcome.COMPLETED
    assert result.payload == {}
