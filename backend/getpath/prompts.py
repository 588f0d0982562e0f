from __future__ import annotations
import json
from typing import Any, Dict, List

# Markers are matched by the mock client to pick a canned reply
ASSESSMENT_MARKER = "diagnostic questionnaire"
PATH_MARKER = "personalized learning path"
REFINE_MARKER = "modify the learning path"
QUIZ_MARKER = "verification quiz"
RESOURCES_MARKER = "learning resources"


def build_assessment_prompt(topic: str, count: int) -> str:
	return (
		f"Act as an expert educator. Create a {ASSESSMENT_MARKER} to assess a student's knowledge level on the topic: \"{topic}\".\n"
		f"Generate {count} multiple-choice questions with increasing difficulty.\n\n"
		"Return the response in strictly valid JSON format with the following structure:\n"
		"{\n"
		'  "questions": [\n'
		"    {\n"
		'      "id": 1,\n'
		'      "text": "Question text",\n'
		'      "options": ["Option A", "Option B", "Option C", "Option D"],\n'
		'      "correctAnswerIndex": 0,\n'
		'      "difficulty": "beginner",\n'
		'      "reasoning": "Why the correct option is right"\n'
		"    }\n"
		"  ]\n"
		"}\n"
		"difficulty must be one of beginner, intermediate, advanced.\n"
		"Do not include any other text or markdown decorators."
	)


def build_path_prompt(topic: str, assessment_results: List[Dict[str, Any]]) -> str:
	return (
		f"Based on the following assessment results for the topic \"{topic}\":\n"
		f"{json.dumps(assessment_results)}\n\n"
		"Analyze the user's skill level.\n"
		f"Create a {PATH_MARKER} with 10-15 distinct learning nodes.\n"
		"Each node should focus on a specific sub-topic, ordered so that every node builds on the previous ones.\n\n"
		"Return strictly valid JSON:\n"
		"{\n"
		'  "summary": "Brief summary of the user\'s level and the plan.",\n'
		'  "nodes": [\n'
		'    {"id": "node-1", "title": "Module Title", "description": "What they will learn", "estimatedTime": "15 mins"}\n'
		"  ]\n"
		"}\n"
		"NO Markdown. Raw JSON."
	)


def build_refine_prompt(topic: str, current_nodes: List[Dict[str, Any]], feedback: str) -> str:
	return (
		f"Current Learning Path for \"{topic}\":\n"
		f"{json.dumps(current_nodes)}\n\n"
		f"User Feedback/Request: \"{feedback}\"\n\n"
		f"Please {REFINE_MARKER} based on the user's feedback.\n"
		"You can add new nodes, remove nodes, or re-order them. Ensure the flow remains logical.\n"
		"Keep the id of every node you keep; give new nodes ids that are not used above.\n\n"
		"Return strictly valid JSON with the full updated structure:\n"
		"{\n"
		'  "nodes": [\n'
		'    {"id": "node-1", "title": "Module Title", "description": "What they will learn", "estimatedTime": "15 mins"}\n'
		"  ]\n"
		"}\n"
		"NO Markdown. Raw JSON."
	)


def build_quiz_prompt(node_context: str, count: int) -> str:
	return (
		f"The student just completed a module on: \"{node_context}\".\n"
		f"Generate a short {QUIZ_MARKER} ({count} questions) to ensure understanding.\n\n"
		"Return strictly valid JSON:\n"
		"{\n"
		'  "questions": [\n'
		'    {"id": 1, "text": "Question...", "options": ["A", "B", "C", "D"], "correctAnswerIndex": 0, "reasoning": "..."}\n'
		"  ]\n"
		"}\n"
		"NO Markdown."
	)


def build_resources_prompt(topic: str, node_title: str, node_description: str) -> str:
	return (
		f"Find 3-5 high-quality {RESOURCES_MARKER} for the module \"{node_title}\" within the topic \"{topic}\".\n"
		f"Module Description: \"{node_description}\"\n\n"
		"Use the GOOGLE SEARCH TOOL to find LIVE, DIRECT and WORKING URLs.\n"
		"Prefer official documentation, reputable educational sites and popular tutorials.\n"
		"If you do not know a direct URL, put a specific search query in the url field instead.\n\n"
		"Return ONLY a strictly valid JSON object with this structure:\n"
		"{\n"
		'  "resources": [\n'
		'    {"type": "video", "title": "Clear Resource Title", "url": "https://...", "description": "Why this is relevant"}\n'
		"  ]\n"
		"}\n"
		"type is either video or article."
	)
