from fastapi import APIRouter
from sqlalchemy import text

from ..db import engine
from ..settings import settings

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
	db_ok = True
	try:
		with engine.connect() as conn:
			conn.execute(text("SELECT 1"))
	except Exception:
		db_ok = False
	return {"status": "ok" if db_ok else "degraded", "database": db_ok, "gemini_configured": bool(settings.gemini_api_key)}
