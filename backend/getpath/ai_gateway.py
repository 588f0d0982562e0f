"""Prompt construction, throttled provider calls and reply decoding.

The gateway talks to any object exposing `generate(prompt, *, use_search)` and
`aclose()`; `GeminiClient` is the live one and `MockGeminiClient` the canned one.
"""
from __future__ import annotations
import logging
import re
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, TypeVar
from urllib.parse import quote_plus

from . import decoding, prompts
from .errors import ConfigurationError, UpstreamError
from .gemini_client import GeminiClient
from .mock_client import MockGeminiClient
from .rate_limit import RateLimiter
from .schemas import (
	AssessmentResult,
	AssessmentSet,
	GeneratedPath,
	PathNode,
	QuizSet,
	RefinedPath,
	Resource,
	ResourceSet,
	UserSettings,
)
from .settings import settings as app_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")


class TextModel(Protocol):
	async def generate(self, prompt: str, *, use_search: bool = False) -> str: ...

	async def aclose(self) -> None: ...


ModelFactory = Callable[[str, str], TextModel]


def gemini_factory(api_key: str, model: str) -> TextModel:
	return GeminiClient(api_key, model=model)


def mock_factory(api_key: str, model: str) -> TextModel:
	return MockGeminiClient(model=model)


def resource_href(resource: Resource) -> str:
	"""Direct URL when the model gave one, otherwise a web-search link for its query text."""
	url = resource.url.strip()
	if _SCHEME_RE.match(url):
		return url
	return f"https://www.google.com/search?q={quote_plus(url)}"


class AIGateway:
	def __init__(
		self,
		*,
		limiter: RateLimiter,
		model_factory: Optional[ModelFactory] = None,
		server_api_key: Optional[str] = None,
		default_model: Optional[str] = None,
	) -> None:
		self.limiter = limiter
		self.model_factory = model_factory or gemini_factory
		self.server_api_key = server_api_key
		self.default_model = default_model or app_settings.gemini_model

	def resolve_api_key(self, user_settings: UserSettings) -> str:
		key = (user_settings.api_key or "").strip() or self.server_api_key
		if not key:
			raise ConfigurationError("API Key is missing. Please provide it in settings or .env")
		return key

	async def _call(
		self,
		operation: str,
		prompt: str,
		user_settings: UserSettings,
		decode: Callable[[str], T],
		*,
		use_search: bool = False,
	) -> T:
		api_key = self.resolve_api_key(user_settings)
		model = self.model_factory(api_key, user_settings.model or self.default_model)
		try:
			await self.limiter.wait_for_slot()
			try:
				raw = await model.generate(prompt, use_search=use_search)
			except Exception as e:
				logger.error("AI service error (%s)", operation, exc_info=True)
				raise UpstreamError(str(e) or "AI provider call failed", details=repr(e)) from e
		finally:
			await model.aclose()
		logger.debug("AI %s response: %s", operation, raw)
		return decode(raw)

	async def generate_assessment(self, topic: str, user_settings: UserSettings) -> AssessmentSet:
		prompt = prompts.build_assessment_prompt(topic, user_settings.assessment_question_count)
		return await self._call("assessment", prompt, user_settings, decoding.coerce_assessment)

	async def generate_path(
		self,
		topic: str,
		assessment_results: Sequence[AssessmentResult],
		user_settings: UserSettings,
	) -> GeneratedPath:
		evidence = [r.to_wire() for r in assessment_results]
		prompt = prompts.build_path_prompt(topic, evidence)
		return await self._call("path", prompt, user_settings, decoding.coerce_path)

	async def refine_path(
		self,
		topic: str,
		current_nodes: Sequence[PathNode],
		feedback: str,
		user_settings: UserSettings,
	) -> RefinedPath:
		# Resources are not part of the curriculum structure the model edits
		nodes = [n.model_dump(by_alias=True, exclude={"resources"}) for n in current_nodes]
		prompt = prompts.build_refine_prompt(topic, nodes, feedback)
		return await self._call("refine", prompt, user_settings, decoding.coerce_refined_path)

	async def generate_quiz(self, node_context: str, user_settings: UserSettings) -> QuizSet:
		prompt = prompts.build_quiz_prompt(node_context, user_settings.quiz_question_count)
		return await self._call("quiz", prompt, user_settings, decoding.coerce_quiz)

	async def generate_resources(
		self,
		topic: str,
		node_title: str,
		node_description: str,
		user_settings: UserSettings,
	) -> ResourceSet:
		prompt = prompts.build_resources_prompt(topic, node_title, node_description)
		return await self._call("resources", prompt, user_settings, decoding.coerce_resources, use_search=True)

	async def list_models(self, api_key: Optional[str]) -> List[Dict[str, Any]]:
		key = (api_key or "").strip() or self.server_api_key
		if not key:
			return []
		model = self.model_factory(key, self.default_model)
		try:
			return await model.list_models()
		except Exception:
			logger.error("Failed to fetch models", exc_info=True)
			return []
		finally:
			await model.aclose()


_limiter = RateLimiter(app_settings.min_request_interval_seconds)


def get_gateway() -> AIGateway:
	"""FastAPI dependency: one process-wide limiter shared by every request."""
	return AIGateway(
		limiter=_limiter,
		model_factory=mock_factory if app_settings.use_mock_ai else gemini_factory,
		server_api_key=app_settings.gemini_api_key,
	)
