import json
from datetime import datetime

from trip_assistant.context import build_trip_context, decode_json_field, format_date, parse_datetime
from trip_assistant.store import ACTIVITIES, TRIPS, MemoryRecordStore


def test_parse_datetime_formats():
    assert parse_datetime("2024-06-02 19:00:00.000Z") == datetime(2024, 6, 2, 19, 0)
    assert parse_datetime("2024-06-02T21:00:00+02:00") == datetime(2024, 6, 2, 19, 0)
    assert parse_datetime("") is None
    assert parse_datetime("not a date") is None
    assert parse_datetime(None) is None


def test_format_date():
    assert format_date("2024-06-02 19:00:00.000Z") == "2024-06-02T19:00:00"
    assert format_date(None) == ""


def test_decode_json_field_malformed_is_none():
    assert decode_json_field({"id": "x", "budget": "{not json"}, "budget") is None
    assert decode_json_field({"id": "x", "budget": '{"value": 1}'}, "budget") == {"value": 1}
    assert decode_json_field({"id": "x"}, "budget") is None


def test_snapshot_contents(store):
    snapshot = build_trip_context(store, store.get(TRIPS, "trip1"))
    assert snapshot.trip.id == "trip1"
    assert snapshot.trip.name == "Paris in June"
    assert snapshot.trip.start_date == "2024-06-01T00:00:00"
    assert snapshot.notes == "Food and museums"
    assert snapshot.budget.value == 3000
    assert snapshot.budget.currency == "EUR"
    assert snapshot.destinations[0].name == "Paris"
    assert snapshot.destinations[0].country == "France"
    assert snapshot.participants[0].email == "sam@example.com"
    assert [t.id for t in snapshot.transportations] == ["tr1"]
    assert [lod.check_in for lod in snapshot.lodgings] == ["2024-06-01T15:00:00"]
    assert snapshot.generated_at.endswith("Z")


def test_activities_sorted_and_scoped_to_trip(store):
    snapshot = build_trip_context(store, store.get(TRIPS, "trip1"))
    assert [a.id for a in snapshot.activities] == ["act_early", "act_late"]
    assert snapshot.activities[0].cost.currency == "EUR"


def test_missing_dates_sort_first():
    store = MemoryRecordStore()
    trip = store.save(TRIPS, {"id": "t", "name": "T"})
    store.save(ACTIVITIES, {"id": "dated", "trip": "t", "startDate": "2024-01-01T10:00:00Z"})
    store.save(ACTIVITIES, {"id": "undated", "trip": "t"})
    snapshot = build_trip_context(store, trip)
    assert [a.id for a in snapshot.activities] == ["undated", "dated"]
    assert snapshot.activities[0].start == ""


def test_malformed_optional_fields_are_skipped():
    store = MemoryRecordStore()
    trip = store.save(TRIPS, {
        "id": "t", "name": "T", "budget": "{oops", "destinations": "nope", "participants": "[",
    })
    store.save(ACTIVITIES, {"id": "a", "trip": "t", "name": "A", "cost": "{bad", "metadata": "[]"})
    snapshot = build_trip_context(store, trip)
    assert snapshot.budget is None
    assert snapshot.destinations == []
    assert snapshot.participants == []
    assert snapshot.activities[0].cost is None
    assert snapshot.activities[0].metadata is None


def test_prompt_json_uses_camel_case_and_omits_empty():
    store = MemoryRecordStore()
    trip = store.save(TRIPS, {"id": "t", "name": "T", "startDate": "2024-06-01T00:00:00Z"})
    data = json.loads(build_trip_context(store, trip).to_prompt_json())
    assert data["trip"]["startDate"] == "2024-06-01T00:00:00"
    assert "generatedAt" in data
    assert "activities" not in data
    assert "budget" not in data
    assert "notes" not in data
