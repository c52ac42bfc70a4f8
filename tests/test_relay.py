import asyncio
import json

import httpx

from trip_assistant.errors import UpstreamError
from trip_assistant.relay import GENERIC_ERROR, RelayState, StreamRelay
from trip_assistant.tool_calls import ToolCallBuffer

from conftest import COMPLETED, function_call_events, text_events


ACTIVITY_ARGS = json.dumps({"name": "Dinner", "address": "12 Rue X", "start_time": "2024-06-02T19:00:00Z"})


async def _source(events, fail_with=None):
    for event in events:
        yield event
    if fail_with is not None:
        raise fail_with


def _run(proposals, clock, events, fail_with=None):
    relay = StreamRelay(proposals, ToolCallBuffer("trip1", clock=clock))

    async def collect():
        return [payload async for payload in relay.relay(_source(events, fail_with))]

    return relay, asyncio.run(collect())


def _assert_single_terminal(payloads):
    terminal = [p for p in payloads if p["type"] in {"proposal", "done", "error"}]
    assert len(terminal) == 1
    assert payloads[-1] is terminal[0]


def test_text_only_turn(proposals, clock):
    relay, payloads = _run(proposals, clock, text_events("Hel", "lo") + [COMPLETED])
    assert payloads == [
        {"type": "delta", "text": "Hel"},
        {"type": "delta", "text": "lo"},
        {"type": "done"},
    ]
    assert relay.state is RelayState.COMPLETED


def test_create_activity_happy_path(proposals, clock):
    fragments = [ACTIVITY_ARGS[:10], ACTIVITY_ARGS[10:25], ACTIVITY_ARGS[25:]]
    events = text_events("Sure, ") + function_call_events("create_activity", fragments) + [COMPLETED]
    relay, payloads = _run(proposals, clock, events)

    _assert_single_terminal(payloads)
    assert payloads[0] == {"type": "delta", "text": "Sure, "}
    proposal = payloads[-1]["proposal"]
    assert proposal["tool"] == "create_activity"
    assert proposal["arguments"]["name"] == "Dinner"
    assert proposal["expiresAt"] == "2024-06-01T12:02:00Z"
    assert proposal["id"] in proposals
    assert relay.state is RelayState.PROPOSAL_EMITTED


def test_nothing_follows_a_proposal(proposals, clock):
    events = (
        function_call_events("create_activity", [ACTIVITY_ARGS])
        + text_events("after")
        + function_call_events("delete_activity", ['{"record_id": "act_late"}'], item_id="fc_2")
        + [COMPLETED]
    )
    _, payloads = _run(proposals, clock, events)
    assert [p["type"] for p in payloads] == ["proposal"]
    assert len(proposals) == 1


def test_malformed_function_arguments(proposals, clock):
    events = function_call_events("create_activity", ['{"name": "Din', "ner"]) + text_events("ok") + [COMPLETED]
    relay, payloads = _run(proposals, clock, events)
    assert [p["type"] for p in payloads] == ["delta", "done"]
    assert len(proposals) == 0
    assert relay.state is RelayState.COMPLETED


def test_provider_error_event(proposals, clock):
    events = text_events("partial") + [
        {"type": "response.failed", "response": {"error": {"message": "quota exceeded"}}},
        COMPLETED,
    ]
    relay, payloads = _run(proposals, clock, events)
    assert payloads == [{"type": "delta", "text": "partial"}, {"type": "error", "message": GENERIC_ERROR}]
    assert relay.state is RelayState.ERRORED


def test_error_event_without_detail(proposals, clock):
    _, payloads = _run(proposals, clock, [{"type": "error", "response": "boom"}])
    assert payloads == [{"type": "error", "message": GENERIC_ERROR}]


def test_upstream_failure_during_stream(proposals, clock):
    _, payloads = _run(proposals, clock, text_events("a"), fail_with=UpstreamError("bad gateway"))
    assert [p["type"] for p in payloads] == ["delta", "error"]


def test_transport_failure_during_stream(proposals, clock):
    _, payloads = _run(proposals, clock, [], fail_with=httpx.ReadTimeout("timed out"))
    assert payloads == [{"type": "error", "message": GENERIC_ERROR}]


def test_exhausted_source_ends_with_done(proposals, clock):
    events = text_events("x") + function_call_events("create_activity", [ACTIVITY_ARGS])[:2]
    _, payloads = _run(proposals, clock, events)
    assert [p["type"] for p in payloads] == ["delta", "done"]
    assert len(proposals) == 0


def test_unrelated_events_are_ignored(proposals, clock):
    events = [
        {"type": "response.created"},
        {"type": "response.web_search_call.searching"},
        {"type": "response.output_text.delta", "delta": ""},
        COMPLETED,
    ]
    _, payloads = _run(proposals, clock, events)
    assert payloads == [{"type": "done"}]
