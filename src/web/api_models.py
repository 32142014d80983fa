from __future__ import annotations

from typing import Dict

from pydantic import BaseModel, Field


class IngestResponse(BaseModel):
    """Records accepted onto the ingestion queue (processed asynchronously)."""
    received: int = Field(..., description="Non-blank records queued for parsing")


class FlowStatsResponse(BaseModel):
    received: int
    processed: int
    parsed: int
    rejected: Dict[str, int]
    stored: int
    skipped: int
    store_failures: int
    errors: int


class HealthResponse(BaseModel):
    status: str = Field(..., description="ok")
    ingest_running: bool
    lookback_period_ms: int
    congested_threshold: int
