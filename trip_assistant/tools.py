"""
The nine mutation tools the assistant may call.

Arguments arrive as untyped JSON from the model. They are decoded into one
model per tool through a discriminated union on the tool name, so an unknown
tool or a malformed argument set never reaches mutation dispatch.
"""

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, TypeAdapter

from .errors import UnknownToolError


class ToolName(str, Enum):
    CREATE_ACTIVITY = "create_activity"
    UPDATE_ACTIVITY = "update_activity"
    DELETE_ACTIVITY = "delete_activity"
    CREATE_LODGING = "create_lodging"
    UPDATE_LODGING = "update_lodging"
    DELETE_LODGING = "delete_lodging"
    CREATE_TRANSPORTATION = "create_transportation"
    UPDATE_TRANSPORTATION = "update_transportation"
    DELETE_TRANSPORTATION = "delete_transportation"


def _to_text(value: Any) -> Any:
    # Models occasionally send coordinates or codes as numbers
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


Text = Annotated[Optional[str], BeforeValidator(_to_text)]
RequiredText = Annotated[str, BeforeValidator(_to_text)]


class ArgumentsModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude={"tool"})


class PlaceArguments(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Text = None
    country: Text = None
    state: Text = None
    latitude: Text = None
    longitude: Text = None
    timezone: Text = None
    category: Text = None
    place_id: Text = None


class CreateActivityArguments(ArgumentsModel):
    tool: Literal[ToolName.CREATE_ACTIVITY] = ToolName.CREATE_ACTIVITY
    name: RequiredText
    address: RequiredText
    start_time: RequiredText
    description: Text = None
    destination: Optional[PlaceArguments] = None
    end_time: Text = None
    notes: Text = None
    cost_value: Optional[float] = None
    cost_currency: Text = None


class UpdateActivityArguments(ArgumentsModel):
    tool: Literal[ToolName.UPDATE_ACTIVITY] = ToolName.UPDATE_ACTIVITY
    record_id: RequiredText
    name: Text = None
    description: Text = None
    address: Text = None
    destination: Optional[PlaceArguments] = None
    start_time: Text = None
    end_time: Text = None
    notes: Text = None
    cost_value: Optional[float] = None
    cost_currency: Text = None


class DeleteActivityArguments(ArgumentsModel):
    tool: Literal[ToolName.DELETE_ACTIVITY] = ToolName.DELETE_ACTIVITY
    record_id: RequiredText
    reason: Text = None


class CreateLodgingArguments(ArgumentsModel):
    tool: Literal[ToolName.CREATE_LODGING] = ToolName.CREATE_LODGING
    name: RequiredText
    start_time: RequiredText
    end_time: RequiredText
    type: Text = None
    address: Text = None
    confirmation: Text = None
    notes: Text = None


class UpdateLodgingArguments(ArgumentsModel):
    tool: Literal[ToolName.UPDATE_LODGING] = ToolName.UPDATE_LODGING
    record_id: RequiredText
    name: Text = None
    type: Text = None
    address: Text = None
    start_time: Text = None
    end_time: Text = None
    confirmation: Text = None
    notes: Text = None


class DeleteLodgingArguments(ArgumentsModel):
    tool: Literal[ToolName.DELETE_LODGING] = ToolName.DELETE_LODGING
    record_id: RequiredText
    reason: Text = None


class CreateTransportationArguments(ArgumentsModel):
    tool: Literal[ToolName.CREATE_TRANSPORTATION] = ToolName.CREATE_TRANSPORTATION
    type: RequiredText
    origin: RequiredText
    departure_time: RequiredText
    provider: Text = None
    destination: Text = None
    arrival_time: Text = None
    notes: Text = None


class UpdateTransportationArguments(ArgumentsModel):
    tool: Literal[ToolName.UPDATE_TRANSPORTATION] = ToolName.UPDATE_TRANSPORTATION
    record_id: RequiredText
    type: Text = None
    provider: Text = None
    origin: Text = None
    destination: Text = None
    departure_time: Text = None
    arrival_time: Text = None
    notes: Text = None


class DeleteTransportationArguments(ArgumentsModel):
    tool: Literal[ToolName.DELETE_TRANSPORTATION] = ToolName.DELETE_TRANSPORTATION
    record_id: RequiredText
    reason: Text = None


ToolArguments = Annotated[
    Union[
        CreateActivityArguments,
        UpdateActivityArguments,
        DeleteActivityArguments,
        CreateLodgingArguments,
        UpdateLodgingArguments,
        DeleteLodgingArguments,
        CreateTransportationArguments,
        UpdateTransportationArguments,
        DeleteTransportationArguments,
    ],
    Field(discriminator="tool"),
]

_ARGUMENTS_ADAPTER: TypeAdapter = TypeAdapter(ToolArguments)


def parse_tool_arguments(tool: str, arguments: Mapping[str, Any]) -> ArgumentsModel:
    """Decode a model-supplied argument mapping for ``tool``.

    Raises UnknownToolError for names outside ToolName and pydantic's
    ValidationError when the arguments do not fit the tool.
    """
    try:
        name = ToolName(tool)
    except ValueError:
        raise UnknownToolError(f"unsupported tool {tool!r}")
    payload = {k: v for k, v in arguments.items() if k != "tool"}
    payload["tool"] = name
    return _ARGUMENTS_ADAPTER.validate_python(payload)


# --- Provider tool schemas ---

def _string(description: Optional[str] = None) -> Dict[str, Any]:
    prop: Dict[str, Any] = {"type": "string"}
    if description:
        prop["description"] = description
    return prop


def _place_schema(description: Optional[str] = None) -> Dict[str, Any]:
    schema: Dict[str, Any] = {
        "type": "object",
        "properties": {
            key: _string()
            for key in ("name", "country", "state", "latitude", "longitude", "timezone", "category", "place_id")
        },
    }
    if description:
        schema["description"] = description
    return schema


def _function(name: ToolName, description: str, properties: Dict[str, Any], required: List[str]) -> Dict[str, Any]:
    return {
        "type": "function",
        "name": name.value,
        "description": description,
        "parameters": {
            "type": "object",
            "properties": properties,
            "required": required,
            "additionalProperties": False,
        },
    }


def _delete_properties() -> Dict[str, Any]:
    return {
        "record_id": _string(),
        "reason": _string("Optional reason/reminder"),
    }


def function_tools() -> List[Dict[str, Any]]:
    return [
        _function(
            ToolName.CREATE_ACTIVITY,
            "Propose creating a new activity or itinerary item for this trip. Infer missing details "
            "(location, end time, etc.) from the trip context when the user leaves gaps, and clearly "
            "mention any assumptions you make.",
            {
                "name": _string("Activity title"),
                "description": _string("Optional notes or details"),
                "address": _string("Location or address"),
                "destination": _place_schema("Destination/place metadata"),
                "start_time": _string("Start time in RFC3339 format (local time of the location)."),
                "end_time": _string("End time in RFC3339 format (local time)."),
                "notes": _string("Internal notes/reminders"),
                "cost_value": {"type": "number", "description": "Estimated cost numeric value"},
                "cost_currency": _string("Currency code for the cost (e.g., USD, EUR)"),
            },
            ["name", "address", "start_time"],
        ),
        _function(
            ToolName.UPDATE_ACTIVITY,
            "Update an existing activity. Always include the record_id shown in the trip context and "
            "provide only the fields that should change. Mention assumptions if you infer details.",
            {
                "record_id": _string("Activity ID"),
                "name": _string(),
                "description": _string(),
                "address": _string(),
                "destination": _place_schema(),
                "start_time": _string(),
                "end_time": _string(),
                "notes": _string(),
                "cost_value": {"type": "number"},
                "cost_currency": _string(),
            },
            ["record_id"],
        ),
        _function(
            ToolName.DELETE_ACTIVITY,
            "Delete an existing activity by record_id when the traveler asks to remove it.",
            _delete_properties(),
            ["record_id"],
        ),
        _function(
            ToolName.CREATE_LODGING,
            "Propose adding a lodging or stay (hotel, rental, etc.) to this trip.",
            {
                "name": _string("Property name"),
                "type": _string("Lodging type (hotel, rental, etc.)"),
                "address": _string("Address or area"),
                "start_time": _string("Check-in time/date in RFC3339"),
                "end_time": _string("Check-out time/date in RFC3339"),
                "confirmation": _string("Confirmation number or reservation code"),
                "notes": _string("Extra notes or reminders"),
            },
            ["name", "start_time", "end_time"],
        ),
        _function(
            ToolName.UPDATE_LODGING,
            "Update an existing lodging entry. Always include record_id.",
            {
                key: _string()
                for key in ("record_id", "name", "type", "address", "start_time", "end_time", "confirmation", "notes")
            },
            ["record_id"],
        ),
        _function(
            ToolName.DELETE_LODGING,
            "Delete an existing lodging entry.",
            _delete_properties(),
            ["record_id"],
        ),
        _function(
            ToolName.CREATE_TRANSPORTATION,
            "Propose a transportation segment (flight, train, transfer, etc.). Infer missing destination "
            "or arrival details from the context when the traveler is vague, and mention assumptions.",
            {
                "type": _string("Transportation type, e.g., flight, train"),
                "provider": _string("Carrier or provider"),
                "origin": _string("Origin city or location"),
                "destination": _string("Destination city or location"),
                "departure_time": _string("Departure time in RFC3339"),
                "arrival_time": _string("Arrival time in RFC3339"),
                "notes": _string("Extra notes (confirmation, seats, etc.)"),
            },
            ["type", "origin", "departure_time"],
        ),
        _function(
            ToolName.UPDATE_TRANSPORTATION,
            "Update an existing transportation entry. Include the record_id and any fields that need to change.",
            {
                key: _string()
                for key in (
                    "record_id", "type", "provider", "origin", "destination",
                    "departure_time", "arrival_time", "notes",
                )
            },
            ["record_id"],
        ),
        _function(
            ToolName.DELETE_TRANSPORTATION,
            "Delete a transportation entry by record_id.",
            _delete_properties(),
            ["record_id"],
        ),
    ]


def assistant_tools(web_search: bool = True) -> List[Dict[str, Any]]:
    tools: List[Dict[str, Any]] = [{"type": "web_search"}] if web_search else []
    tools.extend(function_tools())
    return tools
