"""Node unlocking, checkpoint grading and refinement change detection."""
from __future__ import annotations
from typing import Iterable, List, Mapping, Optional, Sequence, Set

from .errors import ValidationError
from .schemas import AssessmentQuestion, AssessmentResult, CheckpointResult, Path, PathNode, QuestionId, QuizQuestion


def is_locked(nodes: Sequence[PathNode], completed: Iterable[str], index: int) -> bool:
	if index <= 0:
		return False
	return nodes[index - 1].id not in set(completed)


def is_navigable(path: Path, completed: Iterable[str], index: int) -> bool:
	# Draft paths list every node but none can be opened yet
	return path.is_finalized and not is_locked(path.nodes, completed, index)


def current_node_index(path: Path, completed: Iterable[str]) -> Optional[int]:
	done = set(completed)
	for i, node in enumerate(path.nodes):
		if node.id not in done and not is_locked(path.nodes, done, i):
			return i
	return None


def node_index(path: Path, node_id: str) -> int:
	for i, node in enumerate(path.nodes):
		if node.id == node_id:
			return i
	return -1


def mark_completed(completed: List[str], node_id: str) -> List[str]:
	if node_id not in completed:
		completed.append(node_id)
	return completed


def passes_checkpoint(score: int, total: int) -> bool:
	# One mistake is tolerated; with a single question that leaves no slack
	return score >= max(total - 1, 1)


def _answer_for(answers: Mapping[QuestionId, int], question_id: QuestionId) -> Optional[int]:
	if question_id in answers:
		return answers[question_id]
	# JSON bodies turn integer ids into string keys
	return answers.get(str(question_id))


def grade_checkpoint(questions: Sequence[QuizQuestion], answers: Mapping[QuestionId, int]) -> CheckpointResult:
	if not questions:
		raise ValidationError("There is no quiz to grade")
	score = sum(1 for q in questions if _answer_for(answers, q.id) == q.correct_answer_index)
	total = len(questions)
	return CheckpointResult(score=score, total=total, passed=passes_checkpoint(score, total))


def score_assessment(
	questions: Sequence[AssessmentQuestion],
	answers: Mapping[QuestionId, int],
) -> List[AssessmentResult]:
	return [
		AssessmentResult(
			question_id=q.id,
			difficulty=q.difficulty,
			correct=_answer_for(answers, q.id) == q.correct_answer_index,
		)
		for q in questions
	]


def detect_changes(old_nodes: Sequence[PathNode], new_nodes: Sequence[PathNode]) -> Set[str]:
	"""Ids of nodes a refinement added or whose title/description changed."""
	previous = {n.id: n for n in old_nodes}
	changed: Set[str] = set()
	for node in new_nodes:
		before = previous.get(node.id)
		if before is None or before.title != node.title or before.description != node.description:
			changed.add(node.id)
	return changed
