import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List

import httpx
import pytest
from fastapi.testclient import TestClient

from trip_assistant.config import CONFIG
from trip_assistant.main import create_app
from trip_assistant.proposals import ProposalStore
from trip_assistant.store import ACTIVITIES, LODGINGS, TRANSPORTATIONS, TRIPS, MemoryRecordStore


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def proposals(clock: FakeClock) -> ProposalStore:
    return ProposalStore(clock=clock)


@pytest.fixture
def store() -> MemoryRecordStore:
    s = MemoryRecordStore()
    s.save(TRIPS, {
        "id": "trip1",
        "name": "Paris in June",
        "description": "Food and museums",
        "startDate": "2024-06-01 00:00:00.000Z",
        "endDate": "2024-06-07 00:00:00.000Z",
        "budget": json.dumps({"value": 3000, "currency": "EUR"}),
        "destinations": [{"name": "Paris", "countryName": "France", "timezone": "Europe/Paris"}],
        "participants": '[{"name": "Sam", "email": "sam@example.com"}]',
    })
    s.save(TRIPS, {"id": "trip2", "name": "Other trip"})
    s.save(ACTIVITIES, {
        "id": "act_late", "trip": "trip1", "name": "Louvre",
        "startDate": "2024-06-03 10:00:00.000Z", "address": "Rue de Rivoli",
    })
    s.save(ACTIVITIES, {
        "id": "act_early", "trip": "trip1", "name": "Walking tour",
        "startDate": "2024-06-02 09:00:00.000Z",
        "cost": {"value": 25, "currency": "EUR"},
    })
    s.save(ACTIVITIES, {"id": "act_other", "trip": "trip2", "name": "Not yours"})
    s.save(LODGINGS, {
        "id": "lod1", "trip": "trip1", "name": "Hotel Lutetia", "type": "hotel",
        "startDate": "2024-06-01 15:00:00.000Z", "endDate": "2024-06-07 11:00:00.000Z",
    })
    s.save(TRANSPORTATIONS, {
        "id": "tr1", "trip": "trip1", "type": "flight", "origin": "JFK", "destination": "CDG",
        "departureTime": "2024-05-31 22:00:00.000Z",
    })
    return s


def sse_body(events: Iterable[Dict[str, Any]], done: bool = False) -> bytes:
    frames = [f"event: {e.get('type', 'message')}\ndata: {json.dumps(e)}\n\n" for e in events]
    if done:
        frames.append("data: [DONE]\n\n")
    return "".join(frames).encode("utf-8")


def text_events(*parts: str) -> List[Dict[str, Any]]:
    return [{"type": "response.output_text.delta", "item_id": "msg_1", "delta": p} for p in parts]


def function_call_events(name: str, fragments: Iterable[str], item_id: str = "fc_1") -> List[Dict[str, Any]]:
    events: List[Dict[str, Any]] = [{
        "type": "response.output_item.added",
        "item": {"type": "function_call", "id": item_id, "name": name, "call_id": "call_1", "arguments": ""},
    }]
    events.extend(
        {"type": "response.function_call_arguments.delta", "item_id": item_id, "delta": f}
        for f in fragments
    )
    events.append({"type": "response.function_call_arguments.done", "item_id": item_id})
    return events


COMPLETED = {"type": "response.completed", "response": {"status": "completed"}}


class FakeResponsesApi:
    """MockTransport handler standing in for the provider's /responses endpoint."""

    def __init__(self) -> None:
        self.requests: List[Dict[str, Any]] = []
        self.headers: List[httpx.Headers] = []
        self.status_code = 200
        self.stream_body = sse_body([COMPLETED])
        self.json_body: Dict[str, Any] = {"output_text": "Here is your plan."}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        self.requests.append(payload)
        self.headers.append(request.headers)
        if self.status_code >= 400:
            return httpx.Response(self.status_code, json=self.json_body)
        if payload.get("stream"):
            return httpx.Response(200, content=self.stream_body, headers={"Content-Type": "text/event-stream"})
        return httpx.Response(200, json=self.json_body)


@pytest.fixture
def upstream() -> FakeResponsesApi:
    return FakeResponsesApi()


@pytest.fixture
def service_config(monkeypatch):
    monkeypatch.setattr(CONFIG, "openai_api_key", "sk-test")
    monkeypatch.setattr(CONFIG, "api_key", "secret")
    monkeypatch.setattr(CONFIG, "reply_format", "message")
    monkeypatch.setattr(CONFIG, "proposal_ttl_sec", 120.0)
    return CONFIG


@pytest.fixture
def client(store, proposals, upstream, service_config):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(upstream))
    app = create_app(records=store, proposals=proposals, http_client=http_client)
    with TestClient(app, headers={"X-API-KEY": "secret"}) as c:
        yield c
