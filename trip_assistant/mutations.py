from typing import Any, Callable, Dict, Optional

from .proposals import Proposal
from .store import ACTIVITIES, LODGINGS, TRANSPORTATIONS, Record, RecordStore
from .tools import (
    ArgumentsModel,
    CreateActivityArguments,
    CreateLodgingArguments,
    CreateTransportationArguments,
    DeleteActivityArguments,
    DeleteLodgingArguments,
    DeleteTransportationArguments,
    PlaceArguments,
    ToolName,
    UpdateActivityArguments,
    UpdateLodgingArguments,
    UpdateTransportationArguments,
)


class OwnershipError(Exception):
    """A record targeted by a proposal belongs to another trip."""


def _s(value: Optional[str]) -> str:
    return value or ""


def ensure_trip_record(store: RecordStore, collection: str, record_id: str, trip_id: str) -> Record:
    if not record_id:
        raise ValueError("missing record id")
    record = store.get(collection, record_id)
    if record.get("trip") != trip_id:
        raise OwnershipError("record does not belong to this trip")
    return record


def _set_if(record: Record, field: str, value: Optional[str]) -> None:
    if value:
        record[field] = value


def place_metadata(place: Optional[PlaceArguments]) -> Dict[str, Any]:
    if place is None:
        return {}
    renamed = {
        "name": place.name,
        "countryName": place.country,
        "stateName": place.state,
        "latitude": place.latitude,
        "longitude": place.longitude,
        "timezone": place.timezone,
        "category": place.category,
        "id": place.place_id,
    }
    return {k: v for k, v in renamed.items() if v}


def activity_metadata(args: Any) -> Dict[str, Any]:
    place = place_metadata(args.destination)
    return {"place": place} if place else {}


def _cost(value: Optional[float], currency: Optional[str]) -> Optional[Dict[str, Any]]:
    if value is not None and value > 0 and currency:
        return {"value": value, "currency": currency}
    return None


# --- Activities ---

def create_activity(store: RecordStore, trip_id: str, args: CreateActivityArguments) -> str:
    record: Record = {
        "trip": trip_id,
        "name": args.name,
        "description": _s(args.description),
        "address": args.address,
        "notes": _s(args.notes),
    }
    _set_if(record, "startDate", args.start_time)
    _set_if(record, "endDate", args.end_time)
    cost = _cost(args.cost_value, args.cost_currency)
    if cost:
        record["cost"] = cost
    metadata = activity_metadata(args)
    if metadata:
        record["metadata"] = metadata
    store.save(ACTIVITIES, record)
    return f"Added activity \"{args.name}\" on {args.start_time}."


def update_activity(store: RecordStore, trip_id: str, args: UpdateActivityArguments) -> str:
    record = ensure_trip_record(store, ACTIVITIES, args.record_id, trip_id)
    _set_if(record, "name", args.name)
    _set_if(record, "description", args.description)
    _set_if(record, "address", args.address)
    _set_if(record, "notes", args.notes)
    _set_if(record, "startDate", args.start_time)
    _set_if(record, "endDate", args.end_time)
    metadata = activity_metadata(args)
    if metadata:
        record["metadata"] = metadata
    # Either cost field present means the cost was addressed; clear it when incomplete
    if {"cost_value", "cost_currency"} & args.model_fields_set:
        record["cost"] = _cost(args.cost_value, args.cost_currency)
    store.save(ACTIVITIES, record)
    return f"Updated activity \"{record.get('name', '')}\"."


def delete_activity(store: RecordStore, trip_id: str, args: DeleteActivityArguments) -> str:
    record = ensure_trip_record(store, ACTIVITIES, args.record_id, trip_id)
    name = record.get("name", "")
    store.delete(ACTIVITIES, record["id"])
    return f"Removed activity \"{name}\"."


# --- Lodgings ---

def create_lodging(store: RecordStore, trip_id: str, args: CreateLodgingArguments) -> str:
    record: Record = {
        "trip": trip_id,
        "name": args.name,
        "type": _s(args.type),
        "address": _s(args.address),
        "confirmationCode": _s(args.confirmation),
    }
    _set_if(record, "startDate", args.start_time)
    _set_if(record, "endDate", args.end_time)
    _set_if(record, "notes", args.notes)
    store.save(LODGINGS, record)
    return f"Added lodging \"{args.name}\" for {args.start_time} to {args.end_time}."


def update_lodging(store: RecordStore, trip_id: str, args: UpdateLodgingArguments) -> str:
    record = ensure_trip_record(store, LODGINGS, args.record_id, trip_id)
    _set_if(record, "name", args.name)
    _set_if(record, "type", args.type)
    _set_if(record, "address", args.address)
    _set_if(record, "startDate", args.start_time)
    _set_if(record, "endDate", args.end_time)
    _set_if(record, "confirmationCode", args.confirmation)
    _set_if(record, "notes", args.notes)
    store.save(LODGINGS, record)
    return f"Updated lodging \"{record.get('name', '')}\"."


def delete_lodging(store: RecordStore, trip_id: str, args: DeleteLodgingArguments) -> str:
    record = ensure_trip_record(store, LODGINGS, args.record_id, trip_id)
    name = record.get("name", "")
    store.delete(LODGINGS, record["id"])
    return f"Removed lodging \"{name}\"."


# --- Transportations ---

def create_transportation(store: RecordStore, trip_id: str, args: CreateTransportationArguments) -> str:
    record: Record = {
        "trip": trip_id,
        "type": args.type,
        "provider": _s(args.provider),
        "origin": args.origin,
        "destination": _s(args.destination),
        "notes": _s(args.notes),
    }
    _set_if(record, "departureTime", args.departure_time)
    _set_if(record, "arrivalTime", args.arrival_time)
    store.save(TRANSPORTATIONS, record)
    return f"Added {args.type} from {args.origin} to {_s(args.destination)} departing {args.departure_time}."


def update_transportation(store: RecordStore, trip_id: str, args: UpdateTransportationArguments) -> str:
    record = ensure_trip_record(store, TRANSPORTATIONS, args.record_id, trip_id)
    _set_if(record, "type", args.type)
    _set_if(record, "provider", args.provider)
    _set_if(record, "origin", args.origin)
    _set_if(record, "destination", args.destination)
    _set_if(record, "departureTime", args.departure_time)
    _set_if(record, "arrivalTime", args.arrival_time)
    _set_if(record, "notes", args.notes)
    store.save(TRANSPORTATIONS, record)
    return f"Updated {record.get('type', '')} on {record.get('departureTime', '')}."


def delete_transportation(store: RecordStore, trip_id: str, args: DeleteTransportationArguments) -> str:
    record = ensure_trip_record(store, TRANSPORTATIONS, args.record_id, trip_id)
    label = f"{record.get('type', '')} from {record.get('origin', '')} to {record.get('destination', '')}"
    store.delete(TRANSPORTATIONS, record["id"])
    return f"Removed {label}."


MUTATIONS: Dict[ToolName, Callable[[RecordStore, str, Any], str]] = {
    ToolName.CREATE_ACTIVITY: create_activity,
    ToolName.UPDATE_ACTIVITY: update_activity,
    ToolName.DELETE_ACTIVITY: delete_activity,
    ToolName.CREATE_LODGING: create_lodging,
    ToolName.UPDATE_LODGING: update_lodging,
    ToolName.DELETE_LODGING: delete_lodging,
    ToolName.CREATE_TRANSPORTATION: create_transportation,
    ToolName.UPDATE_TRANSPORTATION: update_transportation,
    ToolName.DELETE_TRANSPORTATION: delete_transportation,
}


def apply_proposal(store: RecordStore, trip_id: str, proposal: Proposal) -> str:
    """Apply an approved proposal to the trip and return the confirmation."""
    handler = MUTATIONS.get(proposal.tool)
    if handler is None:
        raise ValueError("unsupported proposal type")
    arguments: ArgumentsModel = proposal.arguments
    return handler(store, trip_id, arguments)
