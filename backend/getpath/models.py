from __future__ import annotations
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text
from .db import Base


class ProgressSnapshot(Base):
	__tablename__ = "progress_snapshots"
	# One row per installation; the whole {settings, paths} document lives in payload
	key = Column(String(64), primary_key=True)
	payload = Column(Text, nullable=False)  # JSON string snapshot
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
