from __future__ import annotations

import asyncio
import logging
import os
from typing import Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from metrics.config import MetricsConfig, load_metrics_config
from metrics.snapshot import SnapshotParseError

from .models.schemas import HealthResponse, LatestMetricsResponse, TrendsResponse
from .queries.client import metrics_sink
from .services.metrics import (
    DEFAULT_TREND_LIMIT,
    InvalidQueryError,
    SnapshotNotFoundError,
    build_latest_response,
    build_trends_response,
)

logger = logging.getLogger(__name__)


def _db_url() -> str:
    return (
        os.getenv("DB_CONN_STRING")
        or os.getenv("DATABASE_URL")
        or "sqlite:///linear_health.db"
    )


def _config() -> MetricsConfig:
    return load_metrics_config()


app = FastAPI(
    title="Linear Health Ops API",
    version="1.0.0",
    docs_url="/docs",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _sqlite_ok(db_url: str) -> bool:
    with metrics_sink(db_url) as sink:
        with sink.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1


@app.get("/api/v1/health", response_model=HealthResponse)
async def health() -> HealthResponse | JSONResponse:
    services = {}
    try:
        ok = await asyncio.to_thread(_sqlite_ok, _db_url())
        services["sqlite"] = "ok" if ok else "down"
    except Exception:
        logger.exception("Health check failed")
        services["sqlite"] = "down"

    status = "ok" if all(state == "ok" for state in services.values()) else "down"
    response = HealthResponse(status=status, services=services)
    if status != "ok":
        content = (
            response.model_dump()
            if hasattr(response, "model_dump")
            else response.dict()
        )
        return JSONResponse(status_code=503, content=content)
    return response


@app.get("/api/v1/metrics/latest", response_model=LatestMetricsResponse)
async def metrics_latest(
    level: str = "org",
    level_id: Optional[str] = Query(None, alias="levelId"),
    all_levels: bool = Query(False, alias="all"),
) -> LatestMetricsResponse:
    try:
        return await build_latest_response(
            db_url=_db_url(),
            config=_config(),
            level=level,
            level_id=level_id,
            all_levels=all_levels,
        )
    except InvalidQueryError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except SnapshotNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except SnapshotParseError as exc:
        logger.error("Stored snapshot is invalid: %s", exc)
        raise HTTPException(
            status_code=500, detail="Failed to parse metrics snapshot"
        ) from exc
    except Exception as exc:
        logger.exception("Error fetching latest metrics")
        raise HTTPException(status_code=503, detail="Data unavailable") from exc


@app.get("/api/v1/metrics/trends", response_model=TrendsResponse)
async def metrics_trends(
    level: str = "org",
    level_id: Optional[str] = Query(None, alias="levelId"),
    limit: int = Query(DEFAULT_TREND_LIMIT, ge=1),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
) -> TrendsResponse:
    try:
        return await build_trends_response(
            db_url=_db_url(),
            level=level,
            level_id=level_id,
            limit=limit,
            start_date=start_date,
            end_date=end_date,
        )
    except InvalidQueryError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Error fetching metrics trends")
        raise HTTPException(status_code=503, detail="Data unavailable") from exc
