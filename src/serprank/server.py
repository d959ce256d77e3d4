# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Dashboard HTTP server.

JSON API over the result store, the keyword config, and the check runner,
plus the static dashboard at ``/``.  Errors are returned as RFC 9457
problem details.  All logging goes to stderr.

Routes:
- POST /api/check/start, GET /api/check/status?since=N, POST /api/check/stop
- GET/POST /api/keywords, PUT/DELETE /api/keywords/{index}, POST /api/keywords/bulk
- GET /api/runs, /api/results?from=&to=, /api/term/{term}/history?from=&to=
- GET /api/latest, /api/terms, /health
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager, suppress
from pathlib import Path

from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Mount, Route
from starlette.staticfiles import StaticFiles

from .check_runner import CheckRunner
from .errors import KeywordError, SerpRankError
from .keywords import KeywordStore, KeywordUpdate
from .problem_details import from_exception, from_validation
from .repository import ResultStoreProtocol

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).parent / "static"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3001


# ── Error handlers ───────────────────────────────────────────────────


async def _serprank_error(request: Request, exc: Exception) -> JSONResponse:
    problem = from_exception(exc, instance=request.url.path)
    if problem.status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return problem.to_response()


async def _validation_error(request: Request, exc: Exception) -> JSONResponse:
    if isinstance(exc, ValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        field_name = ".".join(str(p) for p in first.get("loc", ()))
        return from_validation(first.get("msg", str(exc)), field_name=field_name, instance=request.url.path).to_response()
    return from_validation(f"Request body is not valid JSON: {exc}", instance=request.url.path).to_response()


async def _json_body(request: Request) -> dict:
    body = await request.json()
    if not isinstance(body, dict):
        raise KeywordError("Request body must be a JSON object")
    return body


def _query_int(request: Request, name: str, default: int = 0) -> int:
    with suppress(ValueError):
        return int(request.query_params.get(name, default))
    return default


def _state(request: Request):
    return request.app.state


# ── Check control ────────────────────────────────────────────────────


async def check_start(request: Request) -> JSONResponse:
    runner: CheckRunner = _state(request).runner
    await runner.start()
    return JSONResponse({"message": "Check started", "status": runner.state.value})


async def check_status(request: Request) -> JSONResponse:
    runner: CheckRunner = _state(request).runner
    return JSONResponse(runner.status(since=_query_int(request, "since")))


async def check_stop(request: Request) -> JSONResponse:
    runner: CheckRunner = _state(request).runner
    if await runner.stop():
        return JSONResponse({"message": "Check stopped"})
    return JSONResponse({"message": "No check running"})


# ── Keywords ─────────────────────────────────────────────────────────


def _dump(keywords) -> list[dict]:
    return [k.model_dump() for k in keywords]


async def keywords_list(request: Request) -> JSONResponse:
    store: KeywordStore = _state(request).keywords
    return JSONResponse(_dump(store.keywords()))


async def keywords_add(request: Request) -> JSONResponse:
    store: KeywordStore = _state(request).keywords
    body = await _json_body(request)
    term = body.get("term")
    keywords = store.add(term if isinstance(term, str) else "")
    return JSONResponse({"message": "Keyword added", "keywords": _dump(keywords)})


async def keywords_update(request: Request) -> JSONResponse:
    store: KeywordStore = _state(request).keywords
    update = KeywordUpdate.model_validate(await _json_body(request))
    keyword = store.update(request.path_params["index"], update)
    return JSONResponse({"message": "Keyword updated", "keyword": keyword.model_dump()})


async def keywords_delete(request: Request) -> JSONResponse:
    store: KeywordStore = _state(request).keywords
    keywords = store.delete(request.path_params["index"])
    return JSONResponse({"message": "Keyword deleted", "keywords": _dump(keywords)})


async def keywords_bulk(request: Request) -> JSONResponse:
    store: KeywordStore = _state(request).keywords
    body = await _json_body(request)
    action = str(body.get("action", ""))
    keywords = store.bulk(action)
    return JSONResponse({"message": f"Action {action} completed", "keywords": _dump(keywords)})


# ── Results ──────────────────────────────────────────────────────────


async def runs_list(request: Request) -> JSONResponse:
    store: ResultStoreProtocol = _state(request).store
    return JSONResponse([r.to_dict() for r in await store.list_runs()])


async def results_list(request: Request) -> JSONResponse:
    store: ResultStoreProtocol = _state(request).store
    q = request.query_params
    rows = await store.list_results(q.get("from") or None, q.get("to") or None)
    return JSONResponse([r.to_dict() for r in rows])


async def term_history(request: Request) -> JSONResponse:
    store: ResultStoreProtocol = _state(request).store
    q = request.query_params
    points = await store.term_history(request.path_params["term"], q.get("from") or None, q.get("to") or None)
    return JSONResponse([p.to_dict() for p in points])


async def latest(request: Request) -> JSONResponse:
    store: ResultStoreProtocol = _state(request).store
    overview = await store.latest()
    return JSONResponse(overview.to_dict())


async def terms_list(request: Request) -> JSONResponse:
    store: ResultStoreProtocol = _state(request).store
    return JSONResponse(await store.list_terms())


async def health(request: Request) -> JSONResponse:
    runner: CheckRunner = _state(request).runner
    return JSONResponse({"status": "ok", "check": runner.state.value})


# ── App factory ──────────────────────────────────────────────────────


def create_app(
    *,
    store: ResultStoreProtocol | None = None,
    keywords: KeywordStore,
    runner: CheckRunner,
    db_path: str | Path | None = None,
    static_dir: Path = STATIC_DIR,
) -> Starlette:
    """Build the dashboard app.

    Pass *store* directly (tests) or *db_path* to open a
    ``SqliteResultStore`` for the app's lifetime.
    """
    if store is None and db_path is None:
        raise ValueError("create_app needs either store or db_path")

    @asynccontextmanager
    async def lifespan(app: Starlette):
        opened = None
        if app.state.store is None:
            from .repository_sqlite import SqliteResultStore

            opened = app.state.store = await SqliteResultStore.create(db_path)
            logger.info("SQLite result store: %s", db_path)
        try:
            yield
        finally:
            await runner.shutdown()
            if opened is not None:
                await opened.close()
            logger.info("Dashboard shutdown complete")

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/api/check/start", check_start, methods=["POST"]),
        Route("/api/check/status", check_status, methods=["GET"]),
        Route("/api/check/stop", check_stop, methods=["POST"]),
        Route("/api/keywords", keywords_list, methods=["GET"]),
        Route("/api/keywords", keywords_add, methods=["POST"]),
        Route("/api/keywords/bulk", keywords_bulk, methods=["POST"]),
        Route("/api/keywords/{index:int}", keywords_update, methods=["PUT"]),
        Route("/api/keywords/{index:int}", keywords_delete, methods=["DELETE"]),
        Route("/api/runs", runs_list, methods=["GET"]),
        Route("/api/results", results_list, methods=["GET"]),
        Route("/api/term/{term}/history", term_history, methods=["GET"]),
        Route("/api/latest", latest, methods=["GET"]),
        Route("/api/terms", terms_list, methods=["GET"]),
        Mount("/", app=StaticFiles(directory=str(static_dir), html=True), name="static"),
    ]
    app = Starlette(
        routes=routes,
        exception_handlers={
            SerpRankError: _serprank_error,
            ValidationError: _validation_error,
            json.JSONDecodeError: _validation_error,
        },
        lifespan=lifespan,
    )
    app.state.store = store
    app.state.keywords = keywords
    app.state.runner = runner
    return app


async def serve(app: Starlette, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> None:
    """Run *app* under uvicorn until interrupted."""
    import uvicorn

    config = uvicorn.Config(app, host=host, port=port, log_level="info")
    server = uvicorn.Server(config)
    logger.info("Dashboard running at http://%s:%d", host, port)
    await server.serve()
