import os
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import httpx
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
import uvicorn
from trip_assistant.routers.assistant import router as assistant_router
from trip_assistant.routers.proposals import router as proposals_router
from .config import CONFIG
from .errors import AssistantError
from .proposals import ProposalStore
from .store import RecordStore, create_record_store


# --- Logging Configuration ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler()  # Ensure logs go to stdout/stderr
    ]
)
# --------------------------


async def _assistant_error_handler(_: Request, exc: AssistantError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def _request_validation_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": "invalid request body"})


def create_app(
    records: Optional[RecordStore] = None,
    proposals: Optional[ProposalStore] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """Build the service. Stores and the outbound client live for the app's lifetime."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = http_client or httpx.AsyncClient(timeout=CONFIG.http_timeout_sec)
        app.state.http_client = client
        try:
            yield
        finally:
            await client.aclose()

    limiter = Limiter(key_func=get_remote_address, default_limits=[CONFIG.rate_limit])

    app = FastAPI(title="Trip Assistant", lifespan=lifespan)
    app.state.records = records if records is not None else create_record_store(CONFIG.database_url)
    app.state.proposals = proposals if proposals is not None else ProposalStore()
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(AssistantError, _assistant_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(GZipMiddleware, minimum_size=512)
    app.include_router(assistant_router, prefix="/api/trips/{trip_id}")
    app.include_router(proposals_router, prefix="/api/trips/{trip_id}")

    @app.get("/health")
    async def health(_: Request):
        return {"status": "ok"}

    return app


app = create_app()


def run() -> None:
    port = int(os.getenv("PORT", "3002"))
    uvicorn.run(app, host="0.0.0.0", port=port)


if __name__ == "__main__":
    run()
