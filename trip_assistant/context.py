import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .store import ACTIVITIES, LODGINGS, TRANSPORTATIONS, Record, RecordStore


class _ContextModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CostSummary(_ContextModel):
    value: float = 0.0
    currency: str = ""


class BasicTrip(_ContextModel):
    id: str
    name: str = ""
    description: str = ""
    start_date: str = ""
    end_date: str = ""


class TripDestination(_ContextModel):
    name: str = ""
    country: Optional[str] = None
    state: Optional[str] = None
    timezone: Optional[str] = None
    latitude: Optional[str] = None
    longitude: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None


class TripParticipant(_ContextModel):
    name: str = ""
    email: Optional[str] = None


class TransportationSummary(_ContextModel):
    id: str
    type: str = ""
    origin: str = ""
    destination: str = ""
    departure: str = ""
    arrival: Optional[str] = None
    cost: Optional[CostSummary] = None
    metadata: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None


class LodgingSummary(_ContextModel):
    id: str
    type: str = ""
    name: str = ""
    address: Optional[str] = None
    check_in: str = ""
    check_out: str = ""
    confirmation: Optional[str] = None
    cost: Optional[CostSummary] = None
    metadata: Optional[Dict[str, Any]] = None
    reservation_by: Optional[str] = None


class ActivitySummary(_ContextModel):
    id: str
    name: str = ""
    description: Optional[str] = None
    address: Optional[str] = None
    start: str = ""
    end: Optional[str] = None
    cost: Optional[CostSummary] = None
    metadata: Optional[Dict[str, Any]] = None


class TripContextSnapshot(_ContextModel):
    trip: BasicTrip
    notes: Optional[str] = None
    destinations: List[TripDestination] = []
    participants: List[TripParticipant] = []
    budget: Optional[CostSummary] = None
    transportations: List[TransportationSummary] = []
    lodgings: List[LodgingSummary] = []
    activities: List[ActivitySummary] = []
    generated_at: str = ""

    def to_prompt_json(self) -> str:
        data = self.model_dump(by_alias=True, exclude_none=True)
        # Empty sections carry no information for the model
        data = {k: v for k, v in data.items() if v not in ([], "")}
        return json.dumps(data, indent=2, ensure_ascii=False)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse stored date values ("2024-06-02 19:00:00.000Z", ISO 8601) to naive UTC."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        text = value.strip().replace(" ", "T", 1)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def format_date(value: Any) -> str:
    dt = parse_datetime(value)
    if dt is None:
        return ""
    return dt.strftime("%Y-%m-%dT%H:%M:%S")


def _sort_key(field: str):
    def key(record: Record) -> datetime:
        return parse_datetime(record.get(field)) or datetime.min
    return key


def decode_json_field(record: Record, field: str) -> Any:
    """Return the decoded JSON sub-field, or None if it is absent or malformed."""
    raw = record.get(field)
    if raw is None or isinstance(raw, (dict, list)):
        return raw
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        logging.warning("Unable to parse %s for record %s: %s", field, record.get("id"), e)
        return None


def _string(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


def _optional(value: Any) -> Optional[str]:
    return _string(value) or None


def _cost(record: Record, field: str = "cost") -> Optional[CostSummary]:
    raw = decode_json_field(record, field)
    if not isinstance(raw, dict):
        return None
    try:
        value = float(raw.get("value") or 0)
    except (TypeError, ValueError):
        logging.warning("Ignoring malformed %s on record %s", field, record.get("id"))
        return None
    currency = _string(raw.get("currency"))
    if value == 0 and not currency:
        return None
    return CostSummary(value=value, currency=currency)


def _metadata(record: Record) -> Optional[Dict[str, Any]]:
    raw = decode_json_field(record, "metadata")
    if isinstance(raw, dict) and raw:
        return raw
    return None


def parse_destinations(trip: Record) -> List[TripDestination]:
    raw = decode_json_field(trip, "destinations")
    if not isinstance(raw, list):
        return []
    return [
        TripDestination(
            name=_string(d.get("name")),
            country=_optional(d.get("countryName")),
            state=_optional(d.get("stateName")),
            timezone=_optional(d.get("timezone")),
            latitude=_optional(d.get("latitude")),
            longitude=_optional(d.get("longitude")),
            category=_optional(d.get("category")),
            description=_optional(d.get("description")),
        )
        for d in raw
        if isinstance(d, dict)
    ]


def parse_participants(trip: Record) -> List[TripParticipant]:
    raw = decode_json_field(trip, "participants")
    if not isinstance(raw, list):
        return []
    return [
        TripParticipant(name=_string(p.get("name")), email=_optional(p.get("email")))
        for p in raw
        if isinstance(p, dict)
    ]


def collect_transportations(store: RecordStore, trip_id: str) -> List[TransportationSummary]:
    records = sorted(store.find(TRANSPORTATIONS, trip=trip_id), key=_sort_key("departureTime"))
    return [
        TransportationSummary(
            id=r["id"],
            type=_string(r.get("type")),
            origin=_string(r.get("origin")),
            destination=_string(r.get("destination")),
            departure=format_date(r.get("departureTime")),
            arrival=format_date(r.get("arrivalTime")) or None,
            cost=_cost(r),
            metadata=_metadata(r),
            notes=_optional(r.get("notes")),
        )
        for r in records
    ]


def collect_lodgings(store: RecordStore, trip_id: str) -> List[LodgingSummary]:
    records = sorted(store.find(LODGINGS, trip=trip_id), key=_sort_key("startDate"))
    return [
        LodgingSummary(
            id=r["id"],
            type=_string(r.get("type")),
            name=_string(r.get("name")),
            address=_optional(r.get("address")),
            check_in=format_date(r.get("startDate")),
            check_out=format_date(r.get("endDate")),
            confirmation=_optional(r.get("confirmationCode")),
            cost=_cost(r),
            metadata=_metadata(r),
            reservation_by=_optional(r.get("reservationName")),
        )
        for r in records
    ]


def collect_activities(store: RecordStore, trip_id: str) -> List[ActivitySummary]:
    records = sorted(store.find(ACTIVITIES, trip=trip_id), key=_sort_key("startDate"))
    return [
        ActivitySummary(
            id=r["id"],
            name=_string(r.get("name")),
            description=_optional(r.get("description")),
            address=_optional(r.get("address")),
            start=format_date(r.get("startDate")),
            end=format_date(r.get("endDate")) or None,
            cost=_cost(r),
            metadata=_metadata(r),
        )
        for r in records
    ]


def build_trip_context(store: RecordStore, trip: Record) -> TripContextSnapshot:
    """
    Assemble a fresh snapshot of the trip for the assistant prompt.

    Store failures propagate; malformed optional JSON fields are logged and
    left out of the snapshot.
    """
    trip_id = trip["id"]
    return TripContextSnapshot(
        trip=BasicTrip(
            id=trip_id,
            name=_string(trip.get("name")),
            description=_string(trip.get("description")),
            start_date=format_date(trip.get("startDate")),
            end_date=format_date(trip.get("endDate")),
        ),
        notes=_optional(trip.get("notes")) or _optional(trip.get("description")),
        destinations=parse_destinations(trip),
        participants=parse_participants(trip),
        budget=_cost(trip, "budget"),
        transportations=collect_transportations(store, trip_id),
        lodgings=collect_lodgings(store, trip_id),
        activities=collect_activities(store, trip_id),
        generated_at=datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
    )
