"""Helpers shared by the routers: workbench lookup and Outcome responses."""

from __future__ import annotations

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from geoengine.workbench import Outcome, Workbench

# Outcome kind -> HTTP status for failed operations
STATUS = {
    "unsupported_format": 415,
    "malformed_archive": 400,
    "empty_result": 422,
    "invalid_geometry_for_operation": 400,
    "invalid_bounding_box": 400,
    "duplicate_layer": 409,
    "remote_service_exception": 502,
    "transport_failure": 502,
    "not_found": 404,
    "busy": 409,
}


def get_workbench(request: Request) -> Workbench:
    workbench = getattr(request.app.state, "workbench", None)
    if workbench is None:
        raise HTTPException(status_code=503, detail="Workbench not initialized")
    return workbench


def respond(outcome: Outcome, extra: dict | None = None) -> JSONResponse:
    status = 200 if outcome.ok else STATUS.get(outcome.kind, 400)
    body = outcome.to_dict()
    if extra:
        body.update(extra)
    return JSONResponse(body, status_code=status)
