"""Recover structured data from free-text model replies.

Models wrap JSON in Markdown fences or prose despite being told not to, so
`extract_json` slices the payload out before parsing. The `coerce_*` helpers
then check the parsed value against the shape each gateway operation expects
and raise `DecodeError` (carrying the raw reply) when it does not fit.
"""
from __future__ import annotations
import json
import logging
import re
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as SchemaError

from .errors import DecodeError
from .schemas import AssessmentSet, GeneratedPath, QuizSet, RefinedPath, ResourceSet

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```[a-zA-Z]*")
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_ARRAY_RE = re.compile(r"\[[\s\S]*\]")
_DIFFICULTIES = ("beginner", "intermediate", "advanced")


def _slice(text: str, open_ch: str, close_ch: str) -> Optional[str]:
	first = text.find(open_ch)
	last = text.rfind(close_ch)
	if first == -1 or last == -1 or last < first:
		return None
	return text[first : last + 1]


def extract_json(text: Any) -> Any:
	if not isinstance(text, str):
		raise DecodeError("Failed to parse AI response: empty reply", raw=None if text is None else str(text))
	cleaned = _FENCE_RE.sub("", text).strip()
	spans = [("{", "}"), ("[", "]")]
	first_array, first_object = cleaned.find("["), cleaned.find("{")
	if first_array != -1 and (first_object == -1 or first_array < first_object):
		# A bare array of objects must not be cut down to its first element
		spans.reverse()
	candidate = None
	for open_ch, close_ch in spans:
		candidate = _slice(cleaned, open_ch, close_ch)
		if candidate is not None:
			break
	if candidate is None:
		candidate = cleaned
	try:
		return json.loads(candidate)
	except (ValueError, RecursionError) as first_err:
		error = first_err
	# Fallbacks work on the untouched reply
	for pattern in (_OBJECT_RE, _ARRAY_RE):
		match = pattern.search(text)
		if not match:
			continue
		try:
			return json.loads(match.group(0))
		except (ValueError, RecursionError):
			pass
	logger.error("JSON parse error. Original text: %s", text)
	raise DecodeError("Failed to parse AI response.", raw=text, details=str(error))


def _as_object(data: Any, key: str, raw: str) -> Dict[str, Any]:
	if isinstance(data, list):
		return {key: data}
	if isinstance(data, dict) and isinstance(data.get(key), list):
		return data
	raise DecodeError(f"AI response is missing '{key}'.", raw=raw)


def _check_questions(questions: List[Dict[str, Any]], raw: str) -> None:
	seen = set()
	for i, q in enumerate(questions):
		if not isinstance(q, dict):
			raise DecodeError(f"Invalid question format for question {i+1}.", raw=raw)
		options = q.get("options")
		index = q.get("correctAnswerIndex")
		if not isinstance(options, list) or not options:
			raise DecodeError(f"Question {i+1} has no options.", raw=raw)
		if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < len(options):
			raise DecodeError(f"Invalid correctAnswerIndex for question {i+1}.", raw=raw)
		q["options"] = [str(o) for o in options]
		if q.get("id") is None or q["id"] in seen:
			q["id"] = i + 1
		seen.add(q["id"])
		difficulty = q.get("difficulty")
		if isinstance(difficulty, str):
			difficulty = difficulty.strip().lower()
			q["difficulty"] = difficulty if difficulty in _DIFFICULTIES else "intermediate"


def _check_nodes(nodes: List[Any], raw: str) -> None:
	seen = set()
	for i, node in enumerate(nodes):
		if not isinstance(node, dict) or not node.get("title"):
			raise DecodeError(f"Invalid node format for node {i+1}.", raw=raw)
		node_id = node.get("id")
		node_id = str(node_id).strip() if node_id is not None else ""
		if not node_id:
			node_id = f"node-{i+1}"
		base, n = node_id, 2
		while node_id in seen:
			node_id = f"{base}-{n}"
			n += 1
		node["id"] = node_id
		seen.add(node_id)
		if node.get("estimatedTime") is not None:
			node["estimatedTime"] = str(node["estimatedTime"])


def _validate(model, payload: Dict[str, Any], raw: str):
	try:
		return model.model_validate(payload)
	except SchemaError as e:
		logger.error("AI response did not match %s: %s", model.__name__, raw)
		raise DecodeError("AI response has an unexpected structure.", raw=raw, details=str(e)) from e


def coerce_assessment(raw: str) -> AssessmentSet:
	payload = _as_object(extract_json(raw), "questions", raw)
	_check_questions(payload["questions"], raw)
	return _validate(AssessmentSet, payload, raw)


def coerce_quiz(raw: str) -> QuizSet:
	payload = _as_object(extract_json(raw), "questions", raw)
	_check_questions(payload["questions"], raw)
	return _validate(QuizSet, payload, raw)


def coerce_path(raw: str) -> GeneratedPath:
	payload = _as_object(extract_json(raw), "nodes", raw)
	_check_nodes(payload["nodes"], raw)
	summary = payload.get("summary")
	payload["summary"] = "" if summary is None else str(summary)
	return _validate(GeneratedPath, payload, raw)


def coerce_refined_path(raw: str) -> RefinedPath:
	payload = _as_object(extract_json(raw), "nodes", raw)
	_check_nodes(payload["nodes"], raw)
	return _validate(RefinedPath, {"nodes": payload["nodes"]}, raw)


def coerce_resources(raw: str) -> ResourceSet:
	payload = _as_object(extract_json(raw), "resources", raw)
	resources = []
	for item in payload["resources"]:
		if not isinstance(item, dict) or not item.get("title") or not item.get("url"):
			continue
		kind = str(item.get("type", "")).strip().lower()
		item["type"] = "video" if kind == "video" else "article"
		resources.append(item)
	return _validate(ResourceSet, {"resources": resources}, raw)
