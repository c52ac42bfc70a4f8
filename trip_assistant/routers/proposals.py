from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..decisions import Decision, DecisionHandler
from ..deps import get_api_key, get_proposal_store, get_record_store, get_trip
from ..errors import ValidationError
from ..proposals import ProposalStore
from ..store import Record, RecordStore


router = APIRouter(dependencies=[Depends(get_api_key)])


class DecisionRequest(BaseModel):
    decision: str


class DecisionResponse(BaseModel):
    status: str
    message: str


def parse_decision(value: str) -> Decision:
    try:
        return Decision(value.strip().lower())
    except ValueError:
        raise ValidationError("decision must be approve, decline, or timeout")


@router.post("/assistant/proposals/{proposal_id}", response_model=DecisionResponse)
def decide_proposal(
    proposal_id: str,
    req: DecisionRequest,
    trip: Record = Depends(get_trip),
    records: RecordStore = Depends(get_record_store),
    proposals: ProposalStore = Depends(get_proposal_store),
) -> DecisionResponse:
    decision = parse_decision(req.decision)
    result = DecisionHandler(proposals, records).decide(proposal_id, trip["id"], decision)
    return DecisionResponse(status=result.status, message=result.message)
