"""FastAPI state endpoint over the live engine. Read-only apart from outcome dismissal."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from roundsync.api.schemas import (
    DismissResponse,
    ErrorResponse,
    HealthResponse,
    OutcomeResponse,
    StateResponse,
)
from roundsync.config import get_settings
from roundsync.engine import LiveEngine, build_engine
from roundsync.errors import NetworkError, RoundSyncError, ValidationError
from roundsync.storage.db import get_connection, init_schema

# Set by run_api() so lifespan can start the engine in the same process.
_run_with_engine = False
_config_profile: str | None = None
_config_dir: Path | None = None


def _error_json(code: str, message: str, status_code: int = 404) -> JSONResponse:
    """Return consistent error JSON: { detail, code }."""
    return JSONResponse(
        status_code=status_code,
        content={"detail": message, "code": code},
    )


def create_app(engine: LiveEngine | None = None) -> FastAPI:
    """
    Build the app. With an engine given, it is served as-is (tests, embedding); otherwise
    lifespan opens the DuckDB replica, builds one and, when run_api asked for it, runs it.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if engine is not None:
            app.state.engine = engine
            yield
            return

        settings = get_settings(_config_profile, _config_dir)
        conn = get_connection(settings.db_path)
        init_schema(conn)
        live = build_engine(settings, conn, with_client=_run_with_engine)
        app.state.engine = live

        stop = None
        task = None
        if _run_with_engine:
            stop = asyncio.Event()
            task = asyncio.create_task(live.run(stop_event=stop))

        yield

        if task is not None and stop is not None:
            stop.set()
            await task
        await live.aclose()
        conn.close()

    app = FastAPI(title="RoundSync API", version="0.1.0", lifespan=lifespan)
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        return _error_json(exc.code, exc.message, status_code=422)

    @app.exception_handler(NetworkError)
    async def _network_error(request: Request, exc: NetworkError) -> JSONResponse:
        return _error_json("network_error", str(exc), status_code=502)

    @app.exception_handler(RoundSyncError)
    async def _engine_error(request: Request, exc: RoundSyncError) -> JSONResponse:
        return _error_json("engine_error", str(exc), status_code=500)

    def _engine(request: Request) -> LiveEngine:
        return request.app.state.engine

    @app.get("/health", response_model=HealthResponse)
    async def health(request: Request) -> HealthResponse:
        live = _engine(request)
        rnd = live.current_round
        return HealthResponse(
            status="ok",
            connected=live.connected,
            round_id=rnd.id if rnd else None,
            generation=live.generation,
        )

    @app.get("/state", response_model=StateResponse)
    async def state(request: Request) -> StateResponse:
        return StateResponse.model_validate(_engine(request).snapshot().to_dict())

    @app.get("/outcome", response_model=OutcomeResponse)
    async def outcome(request: Request) -> OutcomeResponse:
        live = _engine(request)
        rnd = live.current_round
        return OutcomeResponse(card=live.notifier.visible_card(rnd.id if rnd else None))

    @app.post(
        "/outcome/{bet_id}/dismiss",
        response_model=DismissResponse,
        responses={404: {"description": "No outcome card for this bet", "model": ErrorResponse}},
    )
    async def dismiss(bet_id: str, request: Request):
        live = _engine(request)
        card = live.notifier.card
        if card is None or card.bet_id != bet_id:
            # still recorded so the card can never surface later
            live.dismiss_outcome(bet_id)
            return _error_json("not_found", f"No outcome card for bet {bet_id}")
        return DismissResponse(bet_id=bet_id, dismissed=live.dismiss_outcome(bet_id))

    return app


app = create_app()


def run_api(
    host: str = "127.0.0.1",
    port: int = 8000,
    with_engine: bool = True,
    profile: str | None = None,
    config_dir: Path | None = None,
) -> None:
    global _run_with_engine, _config_profile, _config_dir
    _run_with_engine = with_engine
    _config_profile = profile
    _config_dir = config_dir
    import uvicorn
    uvicorn.run("roundsync.api.main:app", host=host, port=port, reload=False)
