"""
Unit tests for node unlocking, checkpoint grading and refinement diffs.
"""
import pytest

from getpath import progression
from getpath.errors import ValidationError
from getpath.schemas import AssessmentQuestion, Path, PathNode, QuizQuestion


def _nodes(*ids):
    return [PathNode(id=i, title=f"Title {i}", description=f"About {i}") for i in ids]


def _quiz(n):
    return [QuizQuestion(id=i + 1, text=f"Q{i + 1}", options=["a", "b", "c", "d"], correct_answer_index=i % 4) for i in range(n)]


class TestIsLocked:

    def test_first_node_never_locked(self):
        nodes = _nodes("a", "b", "c")
        assert progression.is_locked(nodes, [], 0) is False
        assert progression.is_locked(nodes, ["c"], 0) is False

    def test_unlocked_iff_predecessor_completed(self):
        nodes = _nodes("a", "b", "c")
        assert progression.is_locked(nodes, [], 1) is True
        assert progression.is_locked(nodes, ["a"], 1) is False
        assert progression.is_locked(nodes, ["a"], 2) is True
        assert progression.is_locked(nodes, {"b"}, 2) is False

    def test_navigable_requires_finalized(self):
        path = Path(topic="Rust", nodes=_nodes("a", "b"))
        assert progression.is_navigable(path, [], 0) is False
        path.is_finalized = True
        assert progression.is_navigable(path, [], 0) is True
        assert progression.is_navigable(path, [], 1) is False
        assert progression.is_navigable(path, ["a"], 1) is True

    def test_current_node_index(self):
        path = Path(topic="Rust", nodes=_nodes("a", "b", "c"))
        assert progression.current_node_index(path, []) == 0
        assert progression.current_node_index(path, ["a"]) == 1
        assert progression.current_node_index(path, ["a", "b", "c"]) is None


class TestGradeCheckpoint:

    @pytest.mark.parametrize(
        "total,correct,passed",
        [
            (3, 3, True),
            (3, 2, True),
            (3, 1, False),
            (3, 0, False),
            (1, 1, True),
            (1, 0, False),
            (5, 4, True),
            (5, 3, False),
        ],
    )
    def test_one_mistake_tolerated(self, total, correct, passed):
        questions = _quiz(total)
        answers = {
            q.id: q.correct_answer_index if i < correct else (q.correct_answer_index + 1) % 4
            for i, q in enumerate(questions)
        }
        result = progression.grade_checkpoint(questions, answers)
        assert result.score == correct
        assert result.total == total
        assert result.passed is passed

    def test_unanswered_counts_as_wrong(self):
        questions = _quiz(3)
        result = progression.grade_checkpoint(questions, {1: 0})
        assert result.score == 1
        assert result.passed is False

    def test_string_keys_match_integer_ids(self):
        questions = _quiz(2)
        result = progression.grade_checkpoint(questions, {"1": 0, "2": 1})
        assert result.score == 2

    def test_empty_quiz(self):
        with pytest.raises(ValidationError):
            progression.grade_checkpoint([], {})


class TestMarkCompleted:

    def test_idempotent(self):
        completed = ["a"]
        progression.mark_completed(completed, "a")
        assert completed == ["a"]
        progression.mark_completed(completed, "b")
        assert completed == ["a", "b"]


class TestScoreAssessment:

    def test_results_follow_question_order(self):
        difficulties = ["advanced", "beginner", "intermediate", "beginner", "advanced"]
        questions = [
            AssessmentQuestion(id=i + 1, text=f"Q{i + 1}", options=["a", "b", "c"], correct_answer_index=1, difficulty=d)
            for i, d in enumerate(difficulties)
        ]
        answers = {1: 1, 2: 1, 3: 1, 4: 0, 5: 2}
        results = progression.score_assessment(questions, answers)
        assert [r.correct for r in results] == [True, True, True, False, False]
        assert [r.question_id for r in results] == [1, 2, 3, 4, 5]
        assert [r.difficulty for r in results] == difficulties


class TestDetectChanges:

    def test_new_and_modified_nodes(self):
        old = _nodes("node-1", "node-2", "node-3")
        new = [
            old[0],
            PathNode(id="node-2", title=old[1].title, description="A rewritten description"),
            old[2],
            PathNode(id="node-99", title="Testing", description="Write tests"),
        ]
        assert progression.detect_changes(old, new) == {"node-2", "node-99"}

    def test_reorder_and_removal_are_not_flagged(self):
        old = _nodes("a", "b", "c")
        new = [old[2], old[0]]
        assert progression.detect_changes(old, new) == set()

    def test_title_change(self):
        old = _nodes("a")
        new = [PathNode(id="a", title="Renamed", description=old[0].description)]
        assert progression.detect_changes(old, new) == {"a"}
