import json
import logging
from datetime import timedelta
from enum import Enum
from typing import Any, List, Mapping, Optional

from pydantic import ValidationError as ArgumentsValidationError

from .errors import UnknownToolError
from .proposals import PROPOSAL_TTL, Clock, Proposal, utc_now
from .tools import ToolName, parse_tool_arguments


class BufferState(str, Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"
    CONSUMED = "consumed"


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


class ToolCallBuffer:
    """
    Accumulates one streamed function call for a single assistant turn.

    idle -> accumulating on a function_call output item, accumulating ->
    consumed once the arguments parse into a proposal. Only the first call is
    tracked; fragments for any other item id are ignored, and nothing more is
    produced once a proposal has been made.
    """

    def __init__(self, trip_id: str, ttl: timedelta = PROPOSAL_TTL, clock: Clock = utc_now) -> None:
        self.trip_id = trip_id
        self.ttl = ttl
        self.clock = clock
        self.state = BufferState.IDLE
        self.name = ""
        self.item_id = ""
        self._parts: List[str] = []

    @property
    def arguments_text(self) -> str:
        return "".join(self._parts)

    def reset(self) -> None:
        if self.state is BufferState.ACCUMULATING:
            self.state = BufferState.IDLE
        self.name = ""
        self.item_id = ""
        self._parts = []

    def start(self, item: Mapping[str, Any]) -> bool:
        if self.state is not BufferState.IDLE or _text(item.get("type")) != "function_call":
            return False
        self.state = BufferState.ACCUMULATING
        self.name = _text(item.get("name"))
        self.item_id = _text(item.get("id"))
        self._parts = []
        return True

    def _matches(self, event: Mapping[str, Any]) -> bool:
        item_id = _text(event.get("item_id"))
        return not item_id or item_id == self.item_id

    def append(self, event: Mapping[str, Any]) -> None:
        if self.state is not BufferState.ACCUMULATING or not self._matches(event):
            return
        delta = event.get("delta")
        if isinstance(delta, str) and delta:
            self._parts.append(delta)

    def finalize_proposal(self, event: Mapping[str, Any]) -> Optional[Proposal]:
        """Turn the buffered call into a Proposal, or None if it cannot be used."""
        if self.state is not BufferState.ACCUMULATING or not self._matches(event):
            return None

        text = self.arguments_text.strip()
        name = self.name
        self.reset()
        if not text:
            return None
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as e:
            logging.warning("Discarding %s call with malformed arguments: %s", name, e)
            return None
        if not isinstance(raw, dict):
            logging.warning("Discarding %s call: arguments are not an object", name)
            return None
        try:
            arguments = parse_tool_arguments(name, raw)
        except (UnknownToolError, ArgumentsValidationError) as e:
            logging.warning("Discarding %s call: %s", name, e)
            return None

        self.state = BufferState.CONSUMED
        return Proposal.create(
            trip_id=self.trip_id,
            tool=ToolName(name),
            arguments=arguments,
            ttl=self.ttl,
            clock=self.clock,
        )
