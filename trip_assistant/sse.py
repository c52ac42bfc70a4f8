"""
Server-sent event framing.

``EventStreamParser`` is fed raw chunks as they come off the wire. Chunk
boundaries are arbitrary: a record, a line, or a multi-byte character may be
split across reads, so incomplete data is carried forward until the blank line
that terminates the record arrives.
"""

import codecs
import json
from dataclasses import dataclass
from typing import Any, List, Optional, Union


@dataclass(frozen=True)
class ServerSentEvent:
    data: str
    event: Optional[str] = None
    id: Optional[str] = None

    def json(self) -> Any:
        return json.loads(self.data)


class EventStreamParser:
    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._pending_cr = False

    def feed(self, chunk: Union[bytes, str]) -> List[ServerSentEvent]:
        text = self._decoder.decode(chunk) if isinstance(chunk, (bytes, bytearray)) else chunk
        return self._consume(text)

    def flush(self) -> List[ServerSentEvent]:
        """Parse whatever is left once the stream has ended."""
        events = self._consume(self._decoder.decode(b"", final=True))
        if self._pending_cr:
            self._pending_cr = False
            self._buffer += "\n"
        remainder, self._buffer = self._buffer, ""
        if remainder.strip():
            event = self._parse_record(remainder)
            if event is not None:
                events.append(event)
        return events

    def _consume(self, text: str) -> List[ServerSentEvent]:
        if self._pending_cr:
            text = "\r" + text
            self._pending_cr = False
        # A CR at the edge may be the first half of a CRLF
        if text.endswith("\r"):
            text = text[:-1]
            self._pending_cr = True
        self._buffer += text.replace("\r\n", "\n").replace("\r", "\n")

        events: List[ServerSentEvent] = []
        while True:
            idx = self._buffer.find("\n\n")
            if idx < 0:
                break
            record, self._buffer = self._buffer[:idx], self._buffer[idx + 2:]
            event = self._parse_record(record)
            if event is not None:
                events.append(event)
        return events

    @staticmethod
    def _parse_record(record: str) -> Optional[ServerSentEvent]:
        data_lines: List[str] = []
        event_name: Optional[str] = None
        event_id: Optional[str] = None
        for line in record.split("\n"):
            if not line or line.startswith(":"):
                continue
            field, sep, value = line.partition(":")
            if sep and value.startswith(" "):
                value = value[1:]
            if field == "data":
                data_lines.append(value)
            elif field == "event":
                event_name = value
            elif field == "id":
                event_id = value
        if not data_lines and event_name is None:
            return None
        return ServerSentEvent(data="\n".join(data_lines), event=event_name, id=event_id)


def format_event(payload: Any) -> str:
    return f"data: {json.dumps(payload)}\n\n"
