from __future__ import annotations
from typing import List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


QuestionId = Union[int, str]
Difficulty = Literal["beginner", "intermediate", "advanced"]


class WireModel(BaseModel):
	# camelCase on the wire, snake_case in Python
	model_config = ConfigDict(populate_by_name=True)

	def to_wire(self) -> dict:
		return self.model_dump(by_alias=True, exclude_none=True)


class QuizQuestion(WireModel):
	id: QuestionId
	text: str
	options: List[str]
	correct_answer_index: int = Field(alias="correctAnswerIndex")
	reasoning: str = ""


class AssessmentQuestion(QuizQuestion):
	difficulty: Difficulty = "beginner"


class AssessmentResult(WireModel):
	question_id: QuestionId = Field(alias="questionId")
	difficulty: Optional[str] = None
	correct: bool


class Resource(WireModel):
	type: Literal["video", "article"] = "article"
	title: str
	url: str
	description: str = ""


class PathNode(WireModel):
	id: str
	title: str
	description: str = ""
	estimated_time: str = Field(default="", alias="estimatedTime")
	resources: Optional[List[Resource]] = None


class Path(WireModel):
	topic: str
	summary: str = ""
	nodes: List[PathNode] = Field(default_factory=list)
	is_finalized: bool = Field(default=False, alias="isFinalized")
	completed_nodes: List[str] = Field(default_factory=list, alias="completedNodes")


class UserSettings(WireModel):
	api_key: str = Field(default="", validation_alias=AliasChoices("apiKey", "api_key"), serialization_alias="apiKey")
	model: str = "gemini-2.0-flash"
	# Older backups used assessmentQuestions / quizQuestions
	assessment_question_count: int = Field(
		default=5,
		ge=1,
		validation_alias=AliasChoices("assessmentQuestionCount", "assessmentQuestions", "assessment_question_count"),
		serialization_alias="assessmentQuestionCount",
	)
	quiz_question_count: int = Field(
		default=3,
		ge=1,
		validation_alias=AliasChoices("quizQuestionCount", "quizQuestions", "quiz_question_count"),
		serialization_alias="quizQuestionCount",
	)
	theme: str = "dark"


class AssessmentSet(WireModel):
	questions: List[AssessmentQuestion]


class QuizSet(WireModel):
	questions: List[QuizQuestion]


class GeneratedPath(WireModel):
	summary: str = ""
	nodes: List[PathNode]


class RefinedPath(WireModel):
	nodes: List[PathNode]


class ResourceSet(WireModel):
	resources: List[Resource]


class HistoryEntry(WireModel):
	topic: str
	summary: str = ""
	node_count: int = Field(default=0, alias="nodeCount")
	is_finalized: bool = Field(default=False, alias="isFinalized")


class CheckpointResult(WireModel):
	score: int
	total: int
	passed: bool
