"""
FastAPI application factory for Traffic Conditions.

Routes:
- /v1/road/{segment}/recent -> GREEN|YELLOW|RED
- /v1/road/{segment}/vehicles -> vehicle total in the lookback window
- /v1/road/{segment}/accidents -> accident total in the lookback window
- /v1/streams/trafficEvents -> POST raw records for ingestion
- /v1/healthz -> service health
"""

from __future__ import annotations

from typing import Optional

from fastapi import FastAPI

from analytics.conditions import TrafficConditionService
from pipeline.flow import TrafficFlow
from .routes import conditions as conditions_routes

DEFAULT_QUERY_TIMEOUT = 5.0


def create_app(
    conditions: TrafficConditionService,
    flow: Optional[TrafficFlow] = None,
    query_timeout: float = DEFAULT_QUERY_TIMEOUT,
) -> FastAPI:
    """Create the FastAPI app around an explicitly constructed condition service and flow."""
    app = FastAPI(
        title="Traffic Conditions",
        version="0.1.0",
        description="Recent traffic conditions per road segment",
    )
    app.state.conditions = conditions
    app.state.flow = flow
    app.state.query_timeout = query_timeout

    app.include_router(conditions_routes.router_v1)

    return app
