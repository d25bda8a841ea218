import logging
from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from shopcore.database import get_session
from shopcore.dependencies.services import get_cart_cache
from shopcore.utils.cache_helpers import CartSnapshotCache

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/check")
def health_check(
    session: Session = Depends(get_session),
    cache: CartSnapshotCache = Depends(get_cart_cache),
):
    db_status = "ok"

    try:
        # simple DB ping
        session.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Health check could not reach the database")
        db_status = "failed"

    return {
        "status": "ok",
        "database": db_status,
        "cached_carts": len(cache),
        "timestamp": datetime.utcnow().isoformat(),
    }
