from dataclasses import dataclass
from typing import Iterable, List, Optional

from pydantic import BaseModel

from .context import TripContextSnapshot


SYSTEM_PROMPT = (
    "You are an AI-powered itinerary assistant for a shared trip. "
    "Use the trip context to answer questions, reference actual plans, and offer proactive suggestions when helpful. "
    "Keep answers concise, organized, and grounded in the provided data unless the user explicitly asks for speculation. "
    "Use the 12-hour time format with AM/PM instead of 24-hour times, for anything you read, edit, or add. "
    "For dates use the format MM-DD and do not include the year. "
    "When the traveler asks you to add, adjust, or remove something, call the matching function "
    "(create/update/delete activity/lodging/transportation). "
    "Always include the record_id from the trip context when editing or deleting. "
    "Never assume the change is saved until the traveler approves it, "
    "and mention any assumptions you make when inferring missing details."
)

CONTEXT_PREFIX = "Latest trip context:\n"

CONVERSATION_ROLES = {"user", "assistant"}


class ConversationMessage(BaseModel):
    role: str
    content: str = ""


@dataclass(frozen=True)
class Turn:
    role: str  # "developer" | "user" | "assistant"
    text: str


def filter_messages(messages: Iterable[ConversationMessage], history_limit: Optional[int] = None) -> List[Turn]:
    turns = [
        Turn(role=m.role, text=m.content)
        for m in messages
        if m.role in CONVERSATION_ROLES and m.content
    ]
    if history_limit:
        turns = turns[-history_limit:]
    return turns


def assemble_turns(
    messages: Iterable[ConversationMessage],
    snapshot: TripContextSnapshot,
    history_limit: Optional[int] = None,
) -> List[Turn]:
    """
    Build the provider input: the behaviour prompt, the serialized trip
    context, then the caller's conversation. Messages with other roles or no
    content are dropped. ``history_limit`` keeps only the most recent
    messages; the streaming path leaves it unset.
    """
    turns = [
        Turn(role="developer", text=SYSTEM_PROMPT),
        Turn(role="developer", text=CONTEXT_PREFIX + snapshot.to_prompt_json()),
    ]
    turns.extend(filter_messages(messages, history_limit))
    return turns
