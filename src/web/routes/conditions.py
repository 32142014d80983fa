"""
Traffic condition and ingestion routes.

Query handlers run the store reads in the thread pool under an overall
timeout: a slow store yields 504 and an unavailable store yields 503, never
a classification.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse

from analytics.conditions import TrafficConditionService
from pipeline.flow import TrafficFlow
from storage.errors import StoreError
from ..api_models import FlowStatsResponse, HealthResponse, IngestResponse

router_v1 = APIRouter(prefix="/v1")

STREAM_NAME = "trafficEvents"


def get_conditions(request: Request) -> TrafficConditionService:
    return request.app.state.conditions


def get_flow(request: Request) -> Optional[TrafficFlow]:
    return request.app.state.flow


async def _run_query(request: Request, fn: Callable[..., Any], *args: Any) -> Any:
    timeout = request.app.state.query_timeout
    try:
        loop = asyncio.get_running_loop()
        # on timeout the read keeps running in its executor thread
        return await asyncio.wait_for(
            loop.run_in_executor(None, functools.partial(fn, *args)), timeout=timeout
        )
    except asyncio.TimeoutError:
        logging.warning(f"Query {request.url.path} timed out after {timeout}s")
        raise HTTPException(status_code=504, detail="Query timed out")
    except StoreError as e:
        logging.error(f"Query {request.url.path} failed: {e}")
        raise HTTPException(status_code=503, detail="Counter store unavailable")


@router_v1.get("/road/{segment}/recent", response_class=PlainTextResponse)
async def recent_conditions(
    segment: str,
    request: Request,
    conditions: TrafficConditionService = Depends(get_conditions),
):
    """GREEN, YELLOW or RED for the segment over the lookback window."""
    condition = await _run_query(request, conditions.classify, segment)
    return PlainTextResponse(condition.value)


@router_v1.get("/road/{segment}/vehicles", response_class=PlainTextResponse)
async def recent_vehicles(
    segment: str,
    request: Request,
    conditions: TrafficConditionService = Depends(get_conditions),
):
    total = await _run_query(request, conditions.vehicle_total, segment)
    return PlainTextResponse(str(total))


@router_v1.get("/road/{segment}/accidents", response_class=PlainTextResponse)
async def recent_accidents(
    segment: str,
    request: Request,
    conditions: TrafficConditionService = Depends(get_conditions),
):
    total = await _run_query(request, conditions.accident_total, segment)
    return PlainTextResponse(str(total))


@router_v1.post(f"/streams/{STREAM_NAME}", response_model=IngestResponse, status_code=202)
async def ingest_records(request: Request, flow: Optional[TrafficFlow] = Depends(get_flow)):
    """
    Queue newline-separated records for ingestion.

    Records are parsed and stored asynchronously; rejected records only show
    up in the flow statistics.
    """
    if flow is None or not flow.is_running:
        raise HTTPException(status_code=503, detail="Ingestion is not running")

    body = (await request.body()).decode("utf-8", errors="replace")
    lines = [line for line in body.splitlines() if line.strip()]

    def submit_all() -> None:
        for line in lines:
            flow.submit(line)

    try:
        await run_in_threadpool(submit_all)
    except RuntimeError as e:
        # flow stopped after the is_running check
        logging.warning(f"Ingestion rejected: {e}")
        raise HTTPException(status_code=503, detail="Ingestion is not running")
    return IngestResponse(received=len(lines))


@router_v1.get(f"/streams/{STREAM_NAME}/stats", response_model=FlowStatsResponse)
def ingest_stats(flow: Optional[TrafficFlow] = Depends(get_flow)):
    if flow is None:
        raise HTTPException(status_code=503, detail="Ingestion is not running")
    return flow.stats.to_dict()


@router_v1.get("/healthz", response_model=HealthResponse)
def health(
    flow: Optional[TrafficFlow] = Depends(get_flow),
    conditions: TrafficConditionService = Depends(get_conditions),
):
    return {
        "status": "ok",
        "ingest_running": bool(flow is not None and flow.is_running),
        "lookback_period_ms": conditions.lookback_period,
        "congested_threshold": conditions.congested_threshold,
    }
