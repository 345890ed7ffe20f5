"""
Run Session Endpoints.

Read access to agent run sessions: metadata, the log entry list, downloads
in JSON or plain text, a themed HTML replay page and a Server-Sent Events
live tail.
"""

import json

from fastapi import APIRouter, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse
from sse_starlette.sse import EventSourceResponse

from agentworks.core.logging_config import get_logger
from agentworks.server.deps import ServicesDep
from agentworks.terminal.export import EXPORT_FORMATS, export_json, export_text, render_html

logger = get_logger(__name__)

router = APIRouter()


@router.get(
    "/{run_id}",
    summary="Get Run Session",
    description="Session metadata and status without the log entries.",
    responses={404: {"description": "Session not found"}},
)
async def get_run(run_id: str, services: ServicesDep):
    session = await services.recorder.get_session(run_id)
    body = session.model_dump(mode="json", exclude={"entries"})
    body["log_count"] = len(session.entries)
    body["live"] = services.recorder.is_live(run_id)
    return body


@router.get(
    "/{run_id}/logs",
    summary="Get Run Logs",
    description="All log entries of a session in recorded order.",
    responses={404: {"description": "Session not found"}},
)
async def get_run_logs(run_id: str, services: ServicesDep):
    entries = await services.recorder.get_session_logs(run_id)
    return {"run_id": run_id, "entries": [entry.model_dump(mode="json") for entry in entries]}


@router.get(
    "/{run_id}/export",
    summary="Export Run Logs",
    description="Download a session as JSON or plain text.",
    responses={400: {"description": "Unsupported format"}, 404: {"description": "Session not found"}},
)
async def export_run(run_id: str, services: ServicesDep, format: str = Query("json")):
    if format not in EXPORT_FORMATS:
        return JSONResponse(
            status_code=400,
            content={
                "error": "INVALID_FORMAT",
                "message": f"Invalid format {format!r}; expected one of {', '.join(EXPORT_FORMATS)}",
            },
        )
    session = await services.recorder.get_session(run_id)
    headers = {"Content-Disposition": f'attachment; filename="{run_id}.{format}"'}
    if format == "json":
        return JSONResponse(content=export_json(session), headers=headers)
    return PlainTextResponse(export_text(session), headers=headers)


@router.get(
    "/{run_id}/html",
    summary="Run Replay Page",
    response_class=HTMLResponse,
    responses={404: {"description": "Session not found"}},
)
async def run_html(run_id: str, services: ServicesDep, theme: str = Query("dark", pattern="^(dark|light)$")):
    session = await services.recorder.get_session(run_id)
    return HTMLResponse(render_html(session, theme))


@router.get(
    "/{run_id}/stream",
    summary="Stream Run Logs",
    description="Server-Sent Events live tail: buffered entries first, then new ones until the session ends.",
    responses={
        200: {
            "description": "SSE stream established",
            "content": {"text/event-stream": {"example": 'event: log\ndata: {"level": "info", "message": "..."}\n\n'}},
        },
        404: {"description": "Session not found"},
    },
)
async def stream_run(run_id: str, request: Request, services: ServicesDep):
    subscription = await services.recorder.subscribe(run_id)
    logger.info(f"Starting log stream for run: {run_id}")

    async def event_generator():
        try:
            async for entry in subscription:
                if await request.is_disconnected():
                    logger.info(f"Client disconnected from stream for run: {run_id}")
                    break
                yield {"event": "log", "data": entry.model_dump_json()}
            else:
                session = await services.recorder.get_session(run_id)
                yield {
                    "event": "end",
                    "data": json.dumps({"run_id": run_id, "status": session.status.value, "dropped": subscription.dropped}),
                }
        finally:
            subscription.close()

    return EventSourceResponse(event_generator())
