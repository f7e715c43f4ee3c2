"""
Cozy Village HTTP API
FastAPI entry point: the scheduled tick endpoint plus read routes for the front end.
"""

import asyncio
import random
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, Awaitable, Callable, Optional

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from .config import Config, TickSettings
from .llm_utils import LLMGateway, build_gateway
from .logging_utils import log_error, log_info
from .schemas import VillageSnapshot
from .store import PostgresStore, StoreGateway
from .tick import AgentListingError, TickProcessor
from .village import build_snapshot, message_days, message_log

SECRET_HEADER = "x-cron-secret"

_FROM_CONFIG: Any = object()


def create_app(
    store: Optional[StoreGateway] = None,
    llm: Optional[LLMGateway] = _FROM_CONFIG,
    settings: Optional[TickSettings] = None,
    *,
    secret: Optional[str] = _FROM_CONFIG,
    rng: Optional[random.Random] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> FastAPI:
    """Build the app with its collaborators constructed once and injected.

    Anything not passed is built from Config: a PostgresStore, the configured
    model gateway (None without a credential) and CRON_SECRET. Pass ``llm=None``
    or ``secret=None`` explicitly to disable them.
    """

    store = store if store is not None else PostgresStore()
    llm = build_gateway() if llm is _FROM_CONFIG else llm
    secret = Config.CRON_SECRET if secret is _FROM_CONFIG else secret
    settings = settings or TickSettings.from_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log_info("Starting Cozy Village API...")
        await store.initialize()
        yield
        log_info("Shutting down Cozy Village API...")
        await store.close()

    app = FastAPI(
        title="Cozy Village API",
        description="Tick endpoint and read API for the Cozy Village apartment block",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.state.store = store
    app.state.llm = llm
    app.state.settings = settings

    async def run_tick_endpoint(request: Request):
        if secret and request.headers.get(SECRET_HEADER) != secret:
            return PlainTextResponse("Unauthorized", status_code=401)

        processor = TickProcessor(store, llm, settings, rng=rng, sleep=sleep)
        try:
            summary = await processor.run()
        except AgentListingError as exc:
            return PlainTextResponse(str(exc), status_code=500)
        except Exception as exc:
            log_error(f"[Tick] Unexpected failure: {exc}")
            return PlainTextResponse(f"Tick failed: {exc}", status_code=500)

        return JSONResponse(summary.to_response())

    # Schedulers call either path; any other method is answered 405 by the router.
    app.add_api_route("/tick", run_tick_endpoint, methods=["POST"])
    app.add_api_route("/", run_tick_endpoint, methods=["POST"], include_in_schema=False)

    @app.get("/health")
    async def health():
        return {"ok": True}

    @app.get("/village", response_model=VillageSnapshot)
    async def village(limit: int = Query(Config.SNAPSHOT_MESSAGE_LIMIT, ge=1, le=500)):
        return await build_snapshot(store, message_limit=limit)

    @app.get("/messages")
    async def messages(
        agent_id: Optional[str] = None,
        day: Optional[date] = None,
        limit: int = Query(100, ge=1, le=1000),
    ):
        rows = await message_log(store, agent_id=agent_id, day=day, limit=limit)
        return {"messages": [row.model_dump(mode="json") for row in rows]}

    @app.get("/messages/days")
    async def days(agent_id: Optional[str] = None):
        return {"days": await message_days(store, agent_id=agent_id)}

    return app
