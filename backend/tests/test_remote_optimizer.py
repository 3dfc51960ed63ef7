import json

import httpx
import pytest

from app.services.events import REMOTE_OPTIMIZER_FAILED
from app.services.remote_optimizer import RemoteOptimizerClient

URL = "http://optimizer.test/optimize"
PAYLOAD = {"courses": [{"id": "c1"}], "rooms": [{"id": "r1"}], "lecturers": [{"id": "l1"}], "constraints": []}
ENTRY = {"course_id": "c1", "room_id": "r1", "lecturer_id": "l1", "day": "MONDAY", "time_slot_id": "s1"}


def make_client(handler, event_hub):
    return RemoteOptimizerClient(URL, timeout=5, events=event_hub, transport=httpx.MockTransport(handler))


def collect_failures(event_hub):
    received = []
    event_hub.subscribe(REMOTE_OPTIMIZER_FAILED, received.append)
    return received


def test_successful_response_is_returned_and_body_shape_is_sent(event_hub):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=[ENTRY])

    failures = collect_failures(event_hub)
    result = make_client(handler, event_hub).optimize(PAYLOAD, job_id="job-1")

    assert result == [ENTRY]
    assert seen["method"] == "POST"
    assert set(seen["body"]) == {"courses", "rooms", "lecturers", "constraints"}
    assert failures == []


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, json={"error": "boom"}),
        httpx.Response(404),
        httpx.Response(200, json=[]),
        httpx.Response(200, content=b""),
        httpx.Response(200, content=b"not json"),
        httpx.Response(200, json={"entries": [ENTRY]}),
        httpx.Response(200, json=[{"course_id": "c1"}]),
    ],
    ids=["http-500", "http-404", "empty-array", "empty-body", "invalid-json", "object-body", "no-complete-entry"],
)
def test_failures_return_none_and_publish_event(response, event_hub):
    failures = collect_failures(event_hub)

    result = make_client(lambda request: response, event_hub).optimize(
        PAYLOAD,
        job_id="job-2",
        context={"academic_year": "2025/2026", "semester": 1},
    )

    assert result is None
    assert len(failures) == 1
    assert failures[0].payload["job_id"] == "job-2"
    assert failures[0].payload["academic_year"] == "2025/2026"


def test_network_error_returns_none(event_hub):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    failures = collect_failures(event_hub)

    assert make_client(handler, event_hub).optimize(PAYLOAD, job_id="job-3") is None
    assert "ConnectTimeout" in failures[0].payload["reason"]


def test_incomplete_items_pass_through_when_one_entry_is_complete(event_hub):
    body = [ENTRY, {"course_id": "c2", "room_id": "r1"}]
    client = make_client(lambda request: httpx.Response(200, json=body), event_hub)

    assert client.optimize(PAYLOAD) == body


def test_unconfigured_client_skips_without_event(event_hub):
    failures = collect_failures(event_hub)
    client = RemoteOptimizerClient(None, events=event_hub)

    assert not client.configured
    assert client.optimize(PAYLOAD) is None
    assert failures == []


def test_listener_failure_does_not_escape(event_hub):
    def broken_listener(event):
        raise RuntimeError("listener down")

    event_hub.subscribe(REMOTE_OPTIMIZER_FAILED, broken_listener)
    client = make_client(lambda request: httpx.Response(503), event_hub)

    assert client.optimize(PAYLOAD) is None
