"""Diagnostic API routes."""
import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from imagegate.api.deps import Db

log = logging.getLogger(__name__)

router = APIRouter()


@router.get("/db")
async def database_check(db: Db):
    """Check store connectivity and report row counts."""
    try:
        await db.connect()
        await db.ping()
        counts = await db.count_documents()
    except Exception as exc:
        log.error("Database check failed: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"connected": False, "detail": "Database check failed", "code": "connectivity"},
        )
    return {"connected": True, **counts}
