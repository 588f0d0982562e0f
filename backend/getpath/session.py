"""Per-learner progression: topic → assessment → path → node/checkpoint.

Every awaited gateway call captures the session generation before it starts;
navigating (starting over, opening a node, going back) bumps the generation,
so a reply that lands after the learner moved on is dropped instead of
overwriting newer state.
"""
from __future__ import annotations
import logging
import time
import uuid
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Mapping, Optional, Set

from . import progression
from .ai_gateway import AIGateway
from .errors import NotFoundError, ValidationError
from .schemas import (
	AssessmentQuestion,
	AssessmentResult,
	CheckpointResult,
	Path,
	PathNode,
	QuestionId,
	QuizQuestion,
	Resource,
	UserSettings,
)
from .store import ProgressStore

logger = logging.getLogger(__name__)

STEP_ONBOARDING = "onboarding"
STEP_ASSESSMENT = "assessment"
STEP_PATH = "path"
STEP_NODE = "node"


class LearningSession:
	def __init__(
		self,
		gateway: AIGateway,
		store: ProgressStore,
		*,
		session_id: Optional[str] = None,
		user_settings: Optional[UserSettings] = None,
	) -> None:
		self.session_id = session_id or uuid.uuid4().hex
		self.gateway = gateway
		self.store = store
		self.user_settings = user_settings
		self.topic: Optional[str] = None
		self.step = STEP_ONBOARDING
		self.questions: List[AssessmentQuestion] = []
		self.results: List[AssessmentResult] = []
		self.path: Optional[Path] = None
		self.current_node_id: Optional[str] = None
		self.quiz: List[QuizQuestion] = []
		self.quiz_answers: Dict[QuestionId, int] = {}
		self.last_checkpoint: Optional[CheckpointResult] = None
		self.highlighted_ids: Set[str] = set()
		self._generation = 0

	# generation tokens

	def _navigate(self) -> None:
		self._generation += 1

	def _token(self) -> int:
		return self._generation

	def _is_current(self, token: int, what: str) -> bool:
		if token != self._generation:
			logger.info("Discarding stale %s response for session %s", what, self.session_id)
			return False
		return True

	# helpers

	def _settings(self) -> UserSettings:
		return self.user_settings or self.store.get_settings()

	def _require_step(self, *steps: str) -> None:
		if self.step not in steps:
			raise ValidationError(f"Not available during the {self.step} step")

	def _require_path(self) -> Path:
		if self.path is None:
			raise NotFoundError("No learning path loaded")
		return self.path

	@property
	def completed(self) -> List[str]:
		return self.path.completed_nodes if self.path is not None else []

	@property
	def current_node(self) -> Optional[PathNode]:
		if self.path is None or self.current_node_id is None:
			return None
		index = progression.node_index(self.path, self.current_node_id)
		return self.path.nodes[index] if index >= 0 else None

	def _require_node(self) -> PathNode:
		self._require_step(STEP_NODE)
		node = self.current_node
		if node is None:
			raise NotFoundError("No node is open")
		return node

	def _clear_quiz(self) -> None:
		self.quiz = []
		self.quiz_answers = {}

	# onboarding / assessment

	def start(self, topic: str) -> "LearningSession":
		topic = (topic or "").strip()
		if not topic:
			raise ValidationError("Topic required")
		self._navigate()
		self.topic = topic
		self.questions = []
		self.results = []
		self.current_node_id = None
		self.last_checkpoint = None
		self.highlighted_ids = set()
		self._clear_quiz()
		self.path = self.store.get_path(topic)
		self.step = STEP_PATH if self.path is not None else STEP_ASSESSMENT
		return self

	async def load_assessment(self) -> Optional[List[AssessmentQuestion]]:
		self._require_step(STEP_ASSESSMENT)
		token = self._token()
		generated = await self.gateway.generate_assessment(self.topic, self._settings())
		if not self._is_current(token, "assessment"):
			return None
		self.questions = generated.questions
		return self.questions

	def submit_assessment(self, answers: Mapping[QuestionId, int]) -> List[AssessmentResult]:
		self._require_step(STEP_ASSESSMENT)
		if not self.questions:
			raise ValidationError("No assessment has been generated yet")
		self.results = progression.score_assessment(self.questions, answers)
		self._navigate()
		self.step = STEP_PATH
		return self.results

	# path

	async def load_path(self) -> Optional[Path]:
		self._require_step(STEP_PATH)
		token = self._token()
		generated = await self.gateway.generate_path(self.topic, self.results, self._settings())
		if not self._is_current(token, "path"):
			return None
		path = Path(topic=self.topic, summary=generated.summary, nodes=generated.nodes)
		self.path = self.store.save_path(self.topic, path)
		self.highlighted_ids = set()
		return self.path

	async def refine(self, feedback: str) -> Optional[Set[str]]:
		self._require_step(STEP_PATH)
		path = self._require_path()
		if path.is_finalized:
			raise ValidationError("Path is finalized; reopen it for editing before refining")
		feedback = (feedback or "").strip()
		if not feedback:
			raise ValidationError("Feedback required")
		token = self._token()
		refined = await self.gateway.refine_path(self.topic, path.nodes, feedback, self._settings())
		if not self._is_current(token, "refine"):
			return None
		changed = progression.detect_changes(path.nodes, refined.nodes)
		previous = {n.id: n for n in path.nodes}
		nodes = [
			node if node.id in changed else node.model_copy(update={"resources": previous[node.id].resources})
			for node in refined.nodes
		]
		self.path = self.store.save_path(self.topic, path.model_copy(update={"nodes": nodes}))
		self.highlighted_ids = changed
		return changed

	def set_finalized(self, finalized: bool) -> Path:
		path = self._require_path()
		if not self.store.finalize_path(self.topic, finalized):
			raise NotFoundError("Failed to update path: it is not saved")
		path.is_finalized = bool(finalized)
		return path

	# nodes

	def open_node(self, node_id: str) -> PathNode:
		self._require_step(STEP_PATH, STEP_NODE)
		path = self._require_path()
		index = progression.node_index(path, node_id)
		if index < 0:
			raise NotFoundError(f"Node {node_id} not found")
		if not progression.is_navigable(path, self.completed, index):
			raise ValidationError("Node is locked")
		self._navigate()
		self.step = STEP_NODE
		self.current_node_id = node_id
		self.last_checkpoint = None
		self._clear_quiz()
		return path.nodes[index]

	def back_to_path(self) -> None:
		self._require_path()
		self._navigate()
		self.step = STEP_PATH
		self.current_node_id = None
		self._clear_quiz()

	async def load_resources(self) -> Optional[List[Resource]]:
		node = self._require_node()
		if node.resources:
			return node.resources
		token = self._token()
		generated = await self.gateway.generate_resources(self.topic, node.title, node.description, self._settings())
		if not self._is_current(token, "resources"):
			return None
		self.store.update_resources(self.topic, node.id, generated.resources)
		node.resources = generated.resources
		return node.resources

	# checkpoint

	async def load_quiz(self) -> Optional[List[QuizQuestion]]:
		node = self._require_node()
		token = self._token()
		generated = await self.gateway.generate_quiz(f"{node.title}: {node.description}", self._settings())
		if not self._is_current(token, "quiz"):
			return None
		self.quiz = generated.questions
		self.quiz_answers = {}
		self.last_checkpoint = None
		return self.quiz

	def answer_quiz(self, question_id: QuestionId, choice_index: int) -> None:
		self._require_node()
		for q in self.quiz:
			if str(q.id) == str(question_id):
				if not 0 <= choice_index < len(q.options):
					raise ValidationError("choice_index out of range")
				self.quiz_answers[q.id] = choice_index
				return
		raise NotFoundError(f"Question {question_id} not found")

	def submit_quiz(self) -> CheckpointResult:
		node = self._require_node()
		result = progression.grade_checkpoint(self.quiz, self.quiz_answers)
		self.last_checkpoint = result
		if not result.passed:
			# Retry starts from question 1 with a clean slate
			self.quiz_answers = {}
			return result
		progression.mark_completed(self.path.completed_nodes, node.id)
		self.store.mark_node_completed(self.topic, node.id)
		self.back_to_path()
		return result

	def to_wire(self) -> Dict[str, Any]:
		path = self.path
		return {
			"sessionId": self.session_id,
			"topic": self.topic,
			"step": self.step,
			"questions": [q.to_wire() for q in self.questions],
			"assessmentResults": [r.to_wire() for r in self.results],
			"path": path.to_wire() if path is not None else None,
			"lockedNodes": [
				n.id for i, n in enumerate(path.nodes) if progression.is_locked(path.nodes, self.completed, i)
			] if path is not None else [],
			"currentNodeIndex": progression.current_node_index(path, self.completed) if path is not None else None,
			"currentNodeId": self.current_node_id,
			"quiz": [q.to_wire() for q in self.quiz],
			"quizAnswers": {str(k): v for k, v in self.quiz_answers.items()},
			"lastCheckpoint": self.last_checkpoint.to_wire() if self.last_checkpoint else None,
			"highlightedIds": sorted(self.highlighted_ids),
		}


class SessionRegistry:
	"""Live sessions by id, dropping ones idle past `idle_seconds` and the least recently used beyond `max_sessions`."""

	def __init__(self, *, idle_seconds: float, max_sessions: int, clock: Callable[[], float] = time.monotonic) -> None:
		self.idle_seconds = idle_seconds
		self.max_sessions = max_sessions
		self._clock = clock
		self._sessions: Dict[str, LearningSession] = OrderedDict()
		self._seen: Dict[str, float] = {}

	def __len__(self) -> int:
		return len(self._sessions)

	def _touch(self, session_id: str) -> None:
		self._sessions.move_to_end(session_id)
		self._seen[session_id] = self._clock()

	def sweep(self) -> int:
		cutoff = self._clock() - self.idle_seconds
		expired = [sid for sid, seen in self._seen.items() if seen < cutoff]
		for sid in expired:
			self.pop(sid)
		if expired:
			logger.info("Evicted %d idle sessions", len(expired))
		return len(expired)

	def add(self, session: LearningSession) -> None:
		self.sweep()
		self._sessions[session.session_id] = session
		self._touch(session.session_id)
		while len(self._sessions) > self.max_sessions:
			oldest = next(iter(self._sessions))
			logger.info("Session limit reached; evicting %s", oldest)
			self.pop(oldest)

	def get(self, session_id: str) -> Optional[LearningSession]:
		self.sweep()
		session = self._sessions.get(session_id)
		if session is not None:
			self._touch(session_id)
		return session

	def pop(self, session_id: str) -> Optional[LearningSession]:
		self._seen.pop(session_id, None)
		return self._sessions.pop(session_id, None)
