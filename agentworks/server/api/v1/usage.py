"""
Usage Billing Endpoints.

Billing reports are rebuilt from the usage event log for the requested day
range, so they always agree with the stored per-project aggregate.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse, PlainTextResponse

from agentworks.metering.reports import (
    export_billing_report,
    generate_billing_report,
    generate_usage_analytics,
    parse_timeframe,
)
from agentworks.server.deps import ServicesDep

router = APIRouter()


@router.get(
    "/{project_id}/report",
    summary="Billing Report",
    description="Replay the project's usage events into a billing report.",
    response_description="Summary plus breakdowns by agent, provider and day.",
)
async def billing_report(
    project_id: str,
    services: ServicesDep,
    start: Optional[date] = Query(None, description="First UTC day to include."),
    end: Optional[date] = Query(None, description="Last UTC day to include."),
    format: str = Query("json", pattern="^(json|csv)$", description="Response format."),
):
    report = await generate_billing_report(services.usage_store, project_id, start, end)
    if format == "csv":
        return PlainTextResponse(export_billing_report(report, "csv"), media_type="text/csv")
    return report.model_dump(mode="json")


@router.get(
    "/{project_id}/analytics",
    summary="Usage Analytics",
    description="Daily averages, efficiency, trend and insights over the last N days.",
)
async def usage_analytics(
    project_id: str,
    services: ServicesDep,
    timeframe: str = Query("7d", description="Number of days, e.g. 7d."),
):
    try:
        start, end, days = parse_timeframe(timeframe)
    except ValueError as exc:
        return JSONResponse(status_code=400, content={"error": "INVALID_TIMEFRAME", "message": str(exc)})
    report = await generate_billing_report(services.usage_store, project_id, start, end)
    return generate_usage_analytics(report, days).model_dump(mode="json")


@router.get(
    "/{project_id}/aggregate",
    summary="Usage Aggregate",
    description="The cached running totals stored with the project.",
)
async def usage_aggregate(project_id: str, services: ServicesDep):
    aggregate = await services.meter.get_aggregate(project_id)
    return aggregate.model_dump(mode="json")
