from __future__ import annotations
import json
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from pydantic import ValidationError as SchemaError
from sqlalchemy.orm import Session

from .db import SessionLocal
from .errors import ImportValidationError
from .models import ProgressSnapshot
from .schemas import HistoryEntry, Path, Resource, UserSettings

logger = logging.getLogger(__name__)

SNAPSHOT_KEY = "getpath_db"


def topic_key(topic: str) -> str:
	return (topic or "").strip().lower()


def _empty_snapshot() -> Dict[str, Any]:
	return {"settings": UserSettings().to_wire(), "paths": {}}


class ProgressStore:
	"""Durable {settings, paths} document keyed by lower-cased topic.

	Every write loads the document, applies the change and replaces the row in
	one transaction, so two edits never interleave on a half-written snapshot.
	"""

	def __init__(self, session_factory: Callable[[], Session], *, key: str = SNAPSHOT_KEY) -> None:
		self._session_factory = session_factory
		self.key = key

	def _load(self, db: Session) -> Dict[str, Any]:
		row = db.get(ProgressSnapshot, self.key)
		if row is None:
			return _empty_snapshot()
		try:
			data = json.loads(row.payload)
		except ValueError:
			logger.error("Stored snapshot is not valid JSON; starting from an empty one")
			return _empty_snapshot()
		data.setdefault("paths", {})
		# Fill in settings keys added since the snapshot was written
		data["settings"] = UserSettings.model_validate(data.get("settings") or {}).to_wire()
		return data

	def _write(self, db: Session, data: Dict[str, Any]) -> None:
		payload = json.dumps(data, indent=2, ensure_ascii=False)
		row = db.get(ProgressSnapshot, self.key)
		if row is None:
			db.add(ProgressSnapshot(key=self.key, payload=payload))
		else:
			row.payload = payload
		db.commit()

	def _read(self) -> Dict[str, Any]:
		with self._session_factory() as db:
			return self._load(db)

	def _mutate(self, change: Callable[[Dict[str, Any]], Any]) -> Any:
		with self._session_factory() as db:
			try:
				data = self._load(db)
				result = change(data)
				if result is not False:
					self._write(db, data)
				return result
			except Exception:
				db.rollback()
				raise

	# settings

	def get_settings(self) -> UserSettings:
		return UserSettings.model_validate(self._read()["settings"])

	def save_settings(self, updates: Union[UserSettings, Dict[str, Any]]) -> UserSettings:
		if isinstance(updates, UserSettings):
			patch = updates.model_dump()
		else:
			# Resolve legacy and snake_case keys before merging so they override stored values
			patch = UserSettings.model_validate(updates).model_dump(exclude_unset=True)

		def change(data: Dict[str, Any]) -> UserSettings:
			current = UserSettings.model_validate(data["settings"]).model_dump()
			merged = UserSettings.model_validate({**current, **patch})
			data["settings"] = merged.to_wire()
			return merged

		return self._mutate(change)

	# paths

	def get_history(self) -> List[HistoryEntry]:
		return [
			HistoryEntry(
				topic=p.get("topic", key),
				summary=p.get("summary", ""),
				node_count=len(p.get("nodes") or []),
				is_finalized=bool(p.get("isFinalized", False)),
			)
			for key, p in self._read()["paths"].items()
		]

	def get_path(self, topic: str) -> Optional[Path]:
		record = self._read()["paths"].get(topic_key(topic))
		if record is None:
			return None
		return Path.model_validate(record)

	def save_path(self, topic: str, path: Union[Path, Dict[str, Any]]) -> Path:
		if not isinstance(path, Path):
			path = Path.model_validate({**path, "topic": topic})
		saved = path.model_copy(update={"topic": topic})

		def change(data: Dict[str, Any]) -> Path:
			data["paths"][topic_key(topic)] = saved.to_wire()
			return saved

		return self._mutate(change)

	def delete_path(self, topic: str) -> bool:
		return self._mutate(lambda data: data["paths"].pop(topic_key(topic), None) is not None)

	def clear_paths(self) -> None:
		def change(data: Dict[str, Any]) -> None:
			data["paths"] = {}

		self._mutate(change)

	def finalize_path(self, topic: str, finalized: bool) -> bool:
		def change(data: Dict[str, Any]) -> bool:
			record = data["paths"].get(topic_key(topic))
			if record is None:
				return False
			record["isFinalized"] = bool(finalized)
			return True

		return self._mutate(change)

	def update_resources(self, topic: str, node_id: str, resources: Sequence[Resource]) -> bool:
		def change(data: Dict[str, Any]) -> bool:
			record = data["paths"].get(topic_key(topic))
			for node in (record or {}).get("nodes") or []:
				if node.get("id") == node_id:
					node["resources"] = [r.to_wire() for r in resources]
					return True
			return False

		return self._mutate(change)

	def mark_node_completed(self, topic: str, node_id: str) -> bool:
		def change(data: Dict[str, Any]) -> bool:
			record = data["paths"].get(topic_key(topic))
			if record is None:
				return False
			completed = record.setdefault("completedNodes", [])
			if node_id not in completed:
				completed.append(node_id)
			return True

		return self._mutate(change)

	# backup

	def export_snapshot(self) -> Dict[str, Any]:
		return self._read()

	def import_snapshot(self, data: Any) -> Dict[str, Any]:
		if not isinstance(data, dict) or not isinstance(data.get("paths"), dict):
			raise ImportValidationError("Invalid JSON structure", details="backup must contain a 'paths' object")
		try:
			paths = {
				topic_key(key): Path.model_validate({"topic": key, **record}).to_wire()
				for key, record in data["paths"].items()
			}
			user_settings = UserSettings.model_validate(data.get("settings") or {}).to_wire()
		except (SchemaError, TypeError) as e:
			raise ImportValidationError("Invalid JSON structure", details=str(e)) from e
		snapshot = {"settings": user_settings, "paths": paths}

		def change(current: Dict[str, Any]) -> Dict[str, Any]:
			current.clear()
			current.update(snapshot)
			return snapshot

		result = self._mutate(change)
		logger.info("Imported snapshot with %d paths", len(paths))
		return result


def get_store() -> ProgressStore:
	return ProgressStore(SessionLocal)
