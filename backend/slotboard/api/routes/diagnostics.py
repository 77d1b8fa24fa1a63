"""
Store connectivity check.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError

from slotboard.api.deps import get_database
from slotboard.core.exceptions import StoreUnavailable
from slotboard.core.logging import get_logger
from slotboard.db.session import Database

logger = get_logger(__name__)
router = APIRouter(tags=["Diagnostics"])


@router.get("/test")
async def store_check(database: Database = Depends(get_database)):
    """Ask the database for its clock to prove the connection works."""
    try:
        now = await database.ping()
    except SQLAlchemyError as exc:
        logger.error("store_check_failed", error=str(exc))
        raise StoreUnavailable("store_check") from exc
    return {"message": "Database is reachable", "time": str(now)}
