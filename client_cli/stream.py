from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional

import httpx

from trip_assistant.sse import EventStreamParser


class AssistantClientError(Exception):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def _error_message(resp: httpx.Response) -> str:
    try:
        payload = resp.json()
    except ValueError:
        return f"HTTP {resp.status_code}"
    if isinstance(payload, dict):
        return str(payload.get("error") or payload.get("detail") or f"HTTP {resp.status_code}")
    return f"HTTP {resp.status_code}"


@dataclass
class TurnResult:
    text: str = ""
    proposal: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    done: bool = False
    deltas: List[str] = field(default_factory=list)


class AssistantClient:
    """HTTP client for one trip's assistant endpoints."""

    def __init__(
        self,
        base_url: str,
        trip_id: str,
        api_key: Optional[str] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["X-API-KEY"] = api_key
        self.trip_id = trip_id
        self.prefix = f"/api/trips/{trip_id}/assistant"
        self._http = httpx.Client(base_url=base_url.rstrip("/"), headers=headers, timeout=timeout, transport=transport)

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "AssistantClient":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def stream_events(self, messages: List[Dict[str, str]]) -> Iterator[Dict[str, Any]]:
        """
        Yield the server's events for one turn. Transport and HTTP failures are
        turned into a single error event so callers only handle one shape.
        """
        try:
            with self._http.stream(
                "POST",
                f"{self.prefix}/stream",
                json={"messages": messages},
                headers={"Accept": "text/event-stream"},
            ) as resp:
                if resp.status_code >= 400:
                    resp.read()
                    yield {"type": "error", "message": _error_message(resp)}
                    return
                parser = EventStreamParser()
                for chunk in resp.iter_bytes():
                    for sse in parser.feed(chunk):
                        payload = self._decode(sse.data)
                        if payload is not None:
                            yield payload
                for sse in parser.flush():
                    payload = self._decode(sse.data)
                    if payload is not None:
                        yield payload
        except httpx.HTTPError as e:
            yield {"type": "error", "message": f"Request failed: {e}"}

    @staticmethod
    def _decode(data: str) -> Optional[Dict[str, Any]]:
        try:
            payload = json.loads(data)
        except json.JSONDecodeError:
            return None
        return payload if isinstance(payload, dict) else None

    def run_turn(self, messages: List[Dict[str, str]], on_delta: Optional[Callable[[str], None]] = None) -> TurnResult:
        result = TurnResult()
        for payload in self.stream_events(messages):
            ptype = payload.get("type")
            if ptype == "delta":
                text = str(payload.get("text") or "")
                result.deltas.append(text)
                result.text += text
                if on_delta is not None:
                    on_delta(text)
            elif ptype == "proposal":
                result.proposal = payload.get("proposal") or {}
                break
            elif ptype == "done":
                result.done = True
                break
            elif ptype == "error":
                result.error = str(payload.get("message") or "assistant request failed")
                break
        return result

    def decide(self, proposal_id: str, decision: str) -> Dict[str, Any]:
        resp = self._http.post(f"{self.prefix}/proposals/{proposal_id}", json={"decision": decision})
        if resp.status_code >= 400:
            raise AssistantClientError(resp.status_code, _error_message(resp))
        return resp.json()

    def ask(self, messages: List[Dict[str, str]]) -> str:
        resp = self._http.post(self.prefix, json={"messages": messages})
        if resp.status_code >= 400:
            raise AssistantClientError(resp.status_code, _error_message(resp))
        data = resp.json()
        if "reply" in data:
            return str(data["reply"])
        return str((data.get("message") or {}).get("content", ""))
