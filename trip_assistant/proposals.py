import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterator, Optional

from .tools import ArgumentsModel, ToolName


Clock = Callable[[], datetime]

PROPOSAL_TTL = timedelta(minutes=2)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(frozen=True)
class Proposal:
    trip_id: str
    tool: ToolName
    arguments: ArgumentsModel
    created_at: datetime
    expires_at: datetime
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @classmethod
    def create(
        cls,
        trip_id: str,
        tool: ToolName,
        arguments: ArgumentsModel,
        ttl: timedelta = PROPOSAL_TTL,
        clock: Clock = utc_now,
    ) -> "Proposal":
        now = clock()
        return cls(trip_id=trip_id, tool=tool, arguments=arguments, created_at=now, expires_at=now + ttl)

    def expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def to_event(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tool": self.tool.value,
            "arguments": self.arguments.to_payload(),
            "summary": summarize_proposal(self),
            "expiresAt": format_timestamp(self.expires_at),
        }


class RWLock:
    """Readers-writer lock. Writers are preferred so a steady stream of
    readers cannot starve a pending pop."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class ProposalStore:
    """
    Pending proposals keyed by id.

    Expiry is lazy: there is no sweeper, a lookup that finds an expired
    proposal evicts it and reports it as missing.
    """

    def __init__(self, clock: Clock = utc_now) -> None:
        self.clock = clock
        self._lock = RWLock()
        self._items: Dict[str, Proposal] = {}

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._items)

    def __contains__(self, proposal_id: object) -> bool:
        with self._lock.read():
            return proposal_id in self._items

    def put(self, proposal: Proposal) -> None:
        with self._lock.write():
            self._items[proposal.id] = proposal

    def get(self, proposal_id: str) -> Optional[Proposal]:
        with self._lock.read():
            proposal = self._items.get(proposal_id)
            if proposal is None:
                return None
            if not proposal.expired(self.clock()):
                return proposal
        with self._lock.write():
            current = self._items.get(proposal_id)
            if current is not None and current.expired(self.clock()):
                del self._items[proposal_id]
        return None

    def pop(self, proposal_id: str) -> Optional[Proposal]:
        with self._lock.write():
            proposal = self._items.pop(proposal_id, None)
        if proposal is None or proposal.expired(self.clock()):
            return None
        return proposal


def summarize_proposal(proposal: Proposal) -> str:
    args = proposal.arguments.to_payload()

    def arg(key: str) -> str:
        value = args.get(key)
        return "" if value is None else str(value)

    tool = proposal.tool
    if tool is ToolName.CREATE_ACTIVITY:
        return f"I'll add an activity \"{arg('name')}\" starting {arg('start_time')}."
    if tool is ToolName.UPDATE_ACTIVITY:
        return f"I'll update activity {arg('record_id')}."
    if tool is ToolName.DELETE_ACTIVITY:
        return f"I'll delete activity {arg('record_id')}."
    if tool is ToolName.CREATE_LODGING:
        return f"I'll add lodging \"{arg('name')}\" from {arg('start_time')} to {arg('end_time')}."
    if tool is ToolName.UPDATE_LODGING:
        return f"I'll update lodging {arg('record_id')}."
    if tool is ToolName.DELETE_LODGING:
        return f"I'll delete lodging {arg('record_id')}."
    if tool is ToolName.CREATE_TRANSPORTATION:
        return (
            f"I'll add {arg('type')} from {arg('origin')} to {arg('destination')} "
            f"departing {arg('departure_time')}."
        )
    if tool is ToolName.UPDATE_TRANSPORTATION:
        return f"I'll update transportation {arg('record_id')}."
    if tool is ToolName.DELETE_TRANSPORTATION:
        return f"I'll delete transportation {arg('record_id')}."
    return "I have a change ready to apply."
