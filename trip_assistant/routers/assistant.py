import logging
from contextlib import aclosing
from datetime import timedelta
from typing import List

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from ..config import CONFIG
from ..context import TripContextSnapshot, build_trip_context
from ..deps import get_api_key, get_proposal_store, get_provider, get_record_store, get_trip
from ..errors import AssistantError, UpstreamError, ValidationError
from ..prompts import ConversationMessage, assemble_turns
from ..proposals import ProposalStore
from ..provider import ResponsesClient
from ..relay import StreamRelay
from ..sse import format_event
from ..store import Record, RecordStore, StoreError
from ..tool_calls import ToolCallBuffer


router = APIRouter(dependencies=[Depends(get_api_key)])


class AssistantRequest(BaseModel):
    messages: List[ConversationMessage] = []


class AssistantMessage(BaseModel):
    role: str = "assistant"
    content: str


async def _load_context(records: RecordStore, trip: Record) -> TripContextSnapshot:
    try:
        return await run_in_threadpool(build_trip_context, records, trip)
    except StoreError as e:
        logging.error("Building assistant context failed for trip %s: %s", trip.get("id"), e)
        raise AssistantError("unable to load the latest trip context")


def _require_messages(req: AssistantRequest) -> None:
    if not req.messages:
        raise ValidationError("at least one message is required")


@router.post("/assistant")
async def assistant_reply(
    req: AssistantRequest,
    provider: ResponsesClient = Depends(get_provider),
    trip: Record = Depends(get_trip),
    records: RecordStore = Depends(get_record_store),
):
    _require_messages(req)
    snapshot = await _load_context(records, trip)
    turns = assemble_turns(req.messages, snapshot, history_limit=CONFIG.history_limit or None)
    try:
        reply = await provider.complete(turns)
    except UpstreamError as e:
        logging.error("Assistant call failed for trip %s: %s", trip["id"], e.message)
        raise UpstreamError(f"assistant request failed: {e.message}")

    if CONFIG.reply_format == "reply":
        return {"reply": reply}
    return {"message": AssistantMessage(content=reply).model_dump()}


@router.post("/assistant/stream")
async def assistant_stream(
    req: AssistantRequest,
    provider: ResponsesClient = Depends(get_provider),
    trip: Record = Depends(get_trip),
    records: RecordStore = Depends(get_record_store),
    proposals: ProposalStore = Depends(get_proposal_store),
):
    _require_messages(req)
    snapshot = await _load_context(records, trip)
    turns = assemble_turns(req.messages, snapshot)
    buffer = ToolCallBuffer(
        trip["id"],
        ttl=timedelta(seconds=CONFIG.proposal_ttl_sec),
        clock=proposals.clock,
    )
    relay = StreamRelay(proposals, buffer)

    async def event_stream():
        async with aclosing(provider.stream_events(turns)) as events:
            async for payload in relay.relay(events):
                yield format_event(payload)

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
