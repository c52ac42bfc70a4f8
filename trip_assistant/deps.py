from typing import Optional
import httpx

from fastapi import Header, HTTPException, Path, status, Request
from starlette.concurrency import run_in_threadpool

from .config import CONFIG
from .errors import ConfigurationError, TripNotFoundError
from .proposals import ProposalStore
from .provider import ResponsesClient
from .store import TRIPS, Record, RecordNotFound, RecordStore


def get_api_key(x_api_key: Optional[str] = Header(default=None)) -> str:
    expected_api_key = CONFIG.api_key
    if expected_api_key is None or x_api_key != expected_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )
    return x_api_key


def get_http_client(request: Request) -> httpx.AsyncClient:
    client = getattr(request.app.state, "http_client", None)
    if client is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="HTTP client not initialized",
        )
    return client


def get_record_store(request: Request) -> RecordStore:
    return request.app.state.records


def get_proposal_store(request: Request) -> ProposalStore:
    return request.app.state.proposals


def get_provider(request: Request) -> ResponsesClient:
    if not CONFIG.openai_api_key:
        raise ConfigurationError("OPENAI_API_KEY is not configured on the server")
    return ResponsesClient(
        get_http_client(request),
        CONFIG.openai_api_key,
        model=CONFIG.model,
        base_url=CONFIG.openai_base,
        reasoning_effort=CONFIG.reasoning_effort,
        verbosity=CONFIG.verbosity,
        web_search=CONFIG.web_search,
        timeout_sec=CONFIG.http_timeout_sec,
        connect_timeout_sec=CONFIG.stream_connect_timeout_sec,
    )


async def get_trip(request: Request, trip_id: str = Path(...)) -> Record:
    store = get_record_store(request)
    try:
        return await run_in_threadpool(store.get, TRIPS, trip_id)
    except RecordNotFound:
        raise TripNotFoundError("trip not found")
