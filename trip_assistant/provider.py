import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Sequence

import httpx

from .config import CONFIG
from .errors import UpstreamError
from .prompts import Turn
from .sse import EventStreamParser
from .tools import assistant_tools


def _log_call(fn: str, started: float, ok: bool, http_status: int | None) -> None:
    latency_ms = (time.monotonic() - started) * 1000
    log_data = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "tool": "openai-responses",
        "fn": fn,
        "latency_ms": f"{latency_ms:.2f}",
        "ok": ok,
        "http_status": http_status,
    }
    logging.info(json.dumps(log_data))


def input_block(turn: Turn) -> Dict[str, Any]:
    content_type = "output_text" if turn.role == "assistant" else "input_text"
    return {"role": turn.role, "content": [{"type": content_type, "text": turn.text}]}


def parse_error_message(status_code: int, body: bytes) -> str:
    fallback = f"openai api error: {status_code}"
    if not body:
        return fallback
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return fallback
    err = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(err, dict) and err.get("message"):
        return str(err["message"])
    return fallback


def extract_output_text(payload: Dict[str, Any]) -> str:
    output_text = payload.get("output_text")
    if isinstance(output_text, list):
        text = "\n".join(str(t) for t in output_text).strip()
    elif isinstance(output_text, str):
        text = output_text.strip()
    else:
        text = ""
    if text:
        return text
    for message in payload.get("output") or []:
        if not isinstance(message, dict):
            continue
        for block in message.get("content") or []:
            if isinstance(block, dict) and block.get("type") == "output_text":
                candidate = str(block.get("text") or "").strip()
                if candidate:
                    return candidate
    return ""


class ResponsesClient:
    """Talks to the Responses API on behalf of one request."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: str,
        *,
        model: str = CONFIG.model,
        base_url: str = CONFIG.openai_base,
        reasoning_effort: str = CONFIG.reasoning_effort,
        verbosity: str = CONFIG.verbosity,
        web_search: bool = CONFIG.web_search,
        timeout_sec: float = CONFIG.http_timeout_sec,
        connect_timeout_sec: float = CONFIG.stream_connect_timeout_sec,
    ) -> None:
        self._http = http_client
        self._api_key = api_key
        self.model = model
        self.url = f"{base_url.rstrip('/')}/responses"
        self.reasoning_effort = reasoning_effort
        self.verbosity = verbosity
        self.web_search = web_search
        self.timeout_sec = timeout_sec
        self.connect_timeout_sec = connect_timeout_sec

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def build_payload(self, turns: Sequence[Turn], stream: bool, with_tools: bool = True) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model,
            "input": [input_block(t) for t in turns],
            "reasoning": {"effort": self.reasoning_effort},
            "text": {"verbosity": self.verbosity},
        }
        tools: List[Dict[str, Any]] = (
            assistant_tools(self.web_search) if with_tools
            else ([{"type": "web_search"}] if self.web_search else [])
        )
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"
        if self.web_search:
            payload["include"] = ["web_search_call.action.sources"]
        if stream:
            payload["stream"] = True
        return payload

    async def stream_events(self, turns: Sequence[Turn]) -> AsyncIterator[Dict[str, Any]]:
        """
        Yield decoded provider events until the stream ends.

        The upstream response is released when the generator is closed, so
        callers that stop early should close it (contextlib.aclosing).
        """
        payload = self.build_payload(turns, stream=True)
        started = time.monotonic()
        timeout = httpx.Timeout(None, connect=self.connect_timeout_sec)
        async with self._http.stream("POST", self.url, json=payload, headers=self.headers, timeout=timeout) as resp:
            if resp.status_code >= 400:
                body = await resp.aread()
                _log_call("stream", started, False, resp.status_code)
                raise UpstreamError(parse_error_message(resp.status_code, body))
            parser = EventStreamParser()
            async for chunk in resp.aiter_bytes():
                for sse in parser.feed(chunk):
                    if sse.data == "[DONE]":
                        _log_call("stream", started, True, resp.status_code)
                        return
                    event = self._decode(sse.data)
                    if event is not None:
                        yield event
            for sse in parser.flush():
                if sse.data == "[DONE]":
                    break
                event = self._decode(sse.data)
                if event is not None:
                    yield event
            _log_call("stream", started, True, resp.status_code)

    @staticmethod
    def _decode(data: str) -> Dict[str, Any] | None:
        try:
            event = json.loads(data)
        except json.JSONDecodeError:
            return None
        return event if isinstance(event, dict) else None

    async def complete(self, turns: Sequence[Turn]) -> str:
        payload = self.build_payload(turns, stream=False, with_tools=False)
        started = time.monotonic()
        try:
            resp = await self._http.post(self.url, json=payload, headers=self.headers, timeout=self.timeout_sec)
        except httpx.HTTPError as e:
            _log_call("complete", started, False, None)
            raise UpstreamError(str(e) or e.__class__.__name__) from e
        if resp.status_code >= 400:
            _log_call("complete", started, False, resp.status_code)
            raise UpstreamError(parse_error_message(resp.status_code, resp.content))
        try:
            data = resp.json()
        except ValueError as e:
            _log_call("complete", started, False, resp.status_code)
            raise UpstreamError("assistant returned a malformed response") from e
        text = extract_output_text(data if isinstance(data, dict) else {})
        _log_call("complete", started, bool(text), resp.status_code)
        if not text:
            raise UpstreamError("assistant returned an empty message")
        return text
