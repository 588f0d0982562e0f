from __future__ import annotations
import json
import logging
import re
from typing import Any, Dict, List, Optional

from . import prompts

logger = logging.getLogger(__name__)

_COUNT_RE = re.compile(r"Generate (\d+) multiple-choice|\((\d+) questions\)")


MOCK_ASSESSMENT = {
	"questions": [
		{"id": 1, "text": "What is the capital of France?", "options": ["Berlin", "London", "Paris", "Madrid"], "correctAnswerIndex": 2, "difficulty": "beginner", "reasoning": "Paris is the capital and largest city of France."},
		{"id": 2, "text": "Which language is used for web styling?", "options": ["Python", "HTML", "CSS", "Java"], "correctAnswerIndex": 2, "difficulty": "beginner", "reasoning": "CSS is the standard language for the visual presentation of web pages."},
		{"id": 3, "text": "What does DOM stand for?", "options": ["Document Object Model", "Data Object Mode", "Digital Ordinance Model", "Desktop Orientation Module"], "correctAnswerIndex": 0, "difficulty": "intermediate", "reasoning": "The Document Object Model represents the page so programs can change it."},
		{"id": 4, "text": "What is a closure in JS?", "options": ["A door", "Function with preserved scope", "Variable type", "Loop end"], "correctAnswerIndex": 1, "difficulty": "advanced", "reasoning": "A closure bundles a function with references to its lexical environment."},
		{"id": 5, "text": "Time complexity of binary search?", "options": ["O(n)", "O(log n)", "O(1)", "O(n^2)"], "correctAnswerIndex": 1, "difficulty": "advanced", "reasoning": "Binary search halves the interval each step."},
	]
}

MOCK_PATH = {
	"summary": "Based on your assessment, here is a tailored plan.",
	"nodes": [
		{"id": "node-1", "title": "Introduction", "description": "Basics of the topic.", "estimatedTime": "10 mins"},
		{"id": "node-2", "title": "Core Concepts", "description": "Deep dive into main ideas.", "estimatedTime": "20 mins"},
		{"id": "node-3", "title": "Advanced Techniques", "description": "Mastering complex skills.", "estimatedTime": "30 mins"},
	],
}

MOCK_QUIZ = {
	"questions": [
		{"id": 1, "text": "Mock Quiz Question 1", "options": ["A", "B", "C", "D"], "correctAnswerIndex": 0, "reasoning": "Option A is correct because of X."},
		{"id": 2, "text": "Mock Quiz Question 2", "options": ["A", "B", "C", "D"], "correctAnswerIndex": 1, "reasoning": "Option B is correct because of Y."},
		{"id": 3, "text": "Mock Quiz Question 3", "options": ["A", "B", "C", "D"], "correctAnswerIndex": 2, "reasoning": "Option C is correct because of Z."},
	]
}

MOCK_RESOURCES = {
	"resources": [
		{"type": "video", "title": "Mock Video Tutorial", "url": "https://www.youtube.com/watch?v=dQw4w9WgXcQ", "description": "Great intro video."},
		{"type": "article", "title": "Mock Documentation", "url": "https://developer.mozilla.org", "description": "Official docs."},
	]
}

MOCK_REFINED_NODE = {"id": "node-new", "title": "Refined Topic", "description": "Added based on feedback.", "estimatedTime": "15 mins"}


def _first_n(payload: Dict[str, Any], prompt: str) -> Dict[str, Any]:
	match = _COUNT_RE.search(prompt)
	if not match:
		return payload
	count = int(match.group(1) or match.group(2))
	return {**payload, "questions": payload["questions"][:count]}


class MockGeminiClient:
	"""Offline stand-in for GeminiClient that answers from canned payloads.

	The reply is chosen by the marker phrase each prompt builder embeds.
	`replies` overrides the canned payload per marker; `calls` records every
	prompt for inspection.
	"""

	def __init__(self, *, replies: Optional[Dict[str, str]] = None, model: str = "mock") -> None:
		self.model = model
		self.replies = replies or {}
		self.calls: List[Dict[str, Any]] = []

	def _canned(self, prompt: str) -> Dict[str, Any]:
		if prompts.ASSESSMENT_MARKER in prompt:
			return _first_n(MOCK_ASSESSMENT, prompt)
		if prompts.REFINE_MARKER in prompt:
			return {"nodes": MOCK_PATH["nodes"] + [MOCK_REFINED_NODE]}
		if prompts.PATH_MARKER in prompt:
			return MOCK_PATH
		if prompts.QUIZ_MARKER in prompt:
			return _first_n(MOCK_QUIZ, prompt)
		if prompts.RESOURCES_MARKER in prompt:
			return MOCK_RESOURCES
		raise ValueError("Mock AI has no reply for this prompt")

	async def generate(self, prompt: str, *, use_search: bool = False) -> str:
		self.calls.append({"prompt": prompt, "use_search": use_search})
		for marker, reply in self.replies.items():
			if marker in prompt:
				return reply
		logger.debug("Using Mock AI reply")
		return json.dumps(self._canned(prompt))

	async def list_models(self) -> List[Dict[str, Any]]:
		return [{"name": f"models/{self.model}", "displayName": "Mock model"}]

	async def aclose(self) -> None:
		return None
