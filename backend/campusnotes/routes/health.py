"""
CampusNotes Backend: Health Check Route
=========================================

What:  Liveness/readiness probe for Docker and load balancers.
How:   Runs SELECT 1 against the database and inspects the preview
       renderer (circuit breaker state, then whether the command exists).

Status levels:
    healthy:    database reachable, renderer available
    degraded:   renderer unavailable or its circuit is open; uploads still
                succeed, just without previews
    unhealthy:  database unreachable
"""

import logging
import time

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from campusnotes import __version__
from campusnotes.database import get_db_session
from campusnotes.dependencies import get_note_service
from campusnotes.schemas.note import HealthResponse
from campusnotes.services.note_service import NoteService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(
    db: AsyncSession = Depends(get_db_session),
    service: NoteService = Depends(get_note_service),
) -> HealthResponse:
    db_status = "connected"
    renderer_status = "available"
    overall = "healthy"

    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    breaker = getattr(service.renderer, "circuit_breaker", None)
    if breaker is not None and breaker.state == breaker.OPEN:
        renderer_status = "circuit_open"
    elif not await service.renderer.health_check():
        renderer_status = "unavailable"
    if renderer_status != "available" and overall == "healthy":
        overall = "degraded"

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        preview_renderer=renderer_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
