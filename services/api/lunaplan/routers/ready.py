import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from ..core.ai_client import ai_client
from ..db import get_db
from ..infra.redis_client import get_redis

router = APIRouter()
logger = logging.getLogger("lunaplan.ready")


@router.get("/ready")
async def ready(db: Session = Depends(get_db)):
    db_ok = False
    try:
        db.execute(text("SELECT 1"))
        db_ok = True
    except Exception as e:
        logger.warning(f"Readiness: database unreachable: {e}")

    redis_ok = False
    try:
        r = await get_redis()
        await r.ping()
        redis_ok = True
    except Exception as e:
        logger.warning(f"Readiness: redis unreachable: {e}")

    return {
        "ok": db_ok,
        "db_ok": db_ok,
        "redis_ok": redis_ok,
        "ai_mode": ai_client.mode,
        "ai_last_error": ai_client.last_error,
    }
