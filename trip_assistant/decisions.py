import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from .errors import MutationError, ProposalForbiddenError, ProposalGoneError
from .mutations import OwnershipError, apply_proposal
from .proposals import ProposalStore
from .store import RecordStore, StoreError


class Decision(str, Enum):
    APPROVE = "approve"
    DECLINE = "decline"
    TIMEOUT = "timeout"


DECLINED_MESSAGE = "Okay, I will skip that change."
TIMEOUT_MESSAGE = "The request expired. Ask again if you'd like me to re-create it."


@dataclass(frozen=True)
class DecisionResult:
    status: str  # approved | declined | timeout
    message: str


class DecisionHandler:
    """
    Applies or discards a pending proposal.

    The proposal leaves the store before anything else happens, so every id
    is single use: a failed apply is not restored and a repeated decision is
    reported as gone.
    """

    def __init__(self, proposals: ProposalStore, store: RecordStore) -> None:
        self.proposals = proposals
        self.store = store

    def decide(self, proposal_id: str, trip_id: str, decision: Decision) -> DecisionResult:
        started = time.monotonic()
        proposal = self.proposals.pop(proposal_id)
        if proposal is None:
            self._log(proposal_id, None, decision, False, started)
            raise ProposalGoneError("proposal expired")
        if proposal.trip_id != trip_id:
            self._log(proposal_id, proposal.tool.value, decision, False, started)
            raise ProposalForbiddenError("proposal does not belong to this trip")

        if decision is Decision.APPROVE:
            try:
                message = apply_proposal(self.store, trip_id, proposal)
            except (StoreError, OwnershipError, ValueError) as e:
                self._log(proposal_id, proposal.tool.value, decision, False, started)
                logging.error("Applying proposal %s failed for trip %s: %s", proposal_id, trip_id, e)
                raise MutationError(
                    f"Unable to apply the change ({e}). Ask the assistant to try again."
                ) from e
            result = DecisionResult(status="approved", message=message)
        elif decision is Decision.DECLINE:
            result = DecisionResult(status="declined", message=DECLINED_MESSAGE)
        else:
            result = DecisionResult(status="timeout", message=TIMEOUT_MESSAGE)

        self._log(proposal_id, proposal.tool.value, decision, True, started)
        return result

    @staticmethod
    def _log(proposal_id: str, tool: str | None, decision: Decision, ok: bool, started: float) -> None:
        latency_ms = (time.monotonic() - started) * 1000
        log_data = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "tool": "assistant-proposals",
            "fn": "decide",
            "proposal_id": proposal_id,
            "proposal_tool": tool,
            "decision": decision.value,
            "latency_ms": f"{latency_ms:.2f}",
            "ok": ok,
        }
        logging.info(json.dumps(log_data))
