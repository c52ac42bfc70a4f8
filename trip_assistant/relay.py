import json
import logging
from enum import Enum
from typing import Any, AsyncIterator, Dict

import httpx

from .errors import UpstreamError
from .proposals import ProposalStore
from .tool_calls import ToolCallBuffer


GENERIC_ERROR = "assistant request failed"

ERROR_EVENTS = {"error", "response.error", "response.failed"}


class RelayState(str, Enum):
    STREAMING = "streaming"
    PROPOSAL_EMITTED = "proposal_emitted"
    COMPLETED = "completed"
    ERRORED = "errored"


def _provider_error_text(event: Dict[str, Any]) -> str:
    candidates = [event, event.get("error")]
    response = event.get("response")
    if isinstance(response, dict):
        candidates.append(response.get("error"))
    for source in candidates:
        if isinstance(source, dict) and source.get("message"):
            return str(source["message"])
    return json.dumps(event)[:500]


class StreamRelay:
    """
    Normalizes one assistant turn of provider events for the client.

    Text deltas are forwarded in arrival order. The turn always ends with
    exactly one of: a proposal, done, or error; nothing follows it.
    """

    def __init__(self, proposals: ProposalStore, buffer: ToolCallBuffer) -> None:
        self.proposals = proposals
        self.buffer = buffer
        self.state = RelayState.STREAMING

    @property
    def trip_id(self) -> str:
        return self.buffer.trip_id

    def _error(self, detail: str) -> Dict[str, Any]:
        self.buffer.reset()
        self.state = RelayState.ERRORED
        logging.error("Assistant stream failed for trip %s: %s", self.trip_id, detail)
        return {"type": "error", "message": GENERIC_ERROR}

    async def relay(self, events: AsyncIterator[Dict[str, Any]]) -> AsyncIterator[Dict[str, Any]]:
        try:
            async for event in events:
                etype = event.get("type")
                if etype == "response.output_item.added":
                    item = event.get("item")
                    if isinstance(item, dict):
                        self.buffer.start(item)
                elif etype == "response.function_call_arguments.delta":
                    self.buffer.append(event)
                elif etype == "response.function_call_arguments.done":
                    proposal = self.buffer.finalize_proposal(event)
                    if proposal is None:
                        continue
                    self.proposals.put(proposal)
                    self.state = RelayState.PROPOSAL_EMITTED
                    logging.info(json.dumps({
                        "tool": "assistant-relay",
                        "fn": "proposal",
                        "proposal_id": proposal.id,
                        "proposal_tool": proposal.tool.value,
                        "trip_id": self.trip_id,
                    }))
                    yield {"type": "proposal", "proposal": proposal.to_event()}
                    return
                elif etype == "response.output_text.delta":
                    delta = event.get("delta")
                    if isinstance(delta, str) and delta:
                        yield {"type": "delta", "text": delta}
                elif etype == "response.completed":
                    self.state = RelayState.COMPLETED
                    yield {"type": "done"}
                    return
                elif etype in ERROR_EVENTS:
                    yield self._error(_provider_error_text(event))
                    return
        except (UpstreamError, httpx.HTTPError) as e:
            yield self._error(str(e) or e.__class__.__name__)
            return

        self.buffer.reset()
        self.state = RelayState.COMPLETED
        yield {"type": "done"}
