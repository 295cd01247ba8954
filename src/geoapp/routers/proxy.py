"""Same-origin relay for map server requests.

Forwards a GET to the ``url`` query parameter and answers with the upstream
body and content type. Upstream errors keep their status code; XML error
bodies pass through untouched so callers can read the server's exception
report.
"""

from __future__ import annotations

from typing import Optional

import httpx
from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse, Response
from loguru import logger

from geoapp.config import settings

router = APIRouter(prefix="/api", tags=["proxy"])


async def _get(request: Request, url: str) -> httpx.Response:
    headers = {"User-Agent": settings.user_agent}
    client = getattr(request.app.state, "http_client", None)
    if client is not None:
        return await client.get(url, headers=headers, timeout=settings.http_timeout)
    async with httpx.AsyncClient() as client:
        return await client.get(url, headers=headers, timeout=settings.http_timeout)


@router.get("/geoserver-proxy")
async def geoserver_proxy(
    request: Request,
    url: Optional[str] = Query(None, description="Upstream URL to fetch"),
):
    """Relay a GET request to a map server."""
    if not url:
        return JSONResponse({"error": "GeoServer URL is required"}, status_code=400)

    try:
        resp = await _get(request, url)
    except httpx.HTTPError as e:
        logger.warning(f"Proxy request failed: {url}: {e}")
        return JSONResponse(
            {"error": "Failed to fetch from GeoServer", "details": str(e) or type(e).__name__},
            status_code=500,
        )

    content_type = resp.headers.get("content-type", "")
    if not resp.is_success:
        logger.warning(f"Proxy upstream {resp.status_code}: {url}")
        if "xml" in content_type.lower():
            return Response(resp.content, status_code=resp.status_code, media_type="application/xml")
        return JSONResponse(
            {"error": f"GeoServer error: {resp.reason_phrase}", "details": resp.text},
            status_code=resp.status_code,
        )

    return Response(
        resp.content,
        status_code=200,
        media_type=content_type or "application/octet-stream",
    )
