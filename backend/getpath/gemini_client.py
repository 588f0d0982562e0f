from __future__ import annotations
import httpx
import logging
from typing import Any, Dict, List, Optional, Tuple
from .errors import ConfigurationError
from .settings import settings

logger = logging.getLogger(__name__)

AI_STUDIO_BASE = "https://generativelanguage.googleapis.com/v1beta"
SEARCH_TOOL = {"google_search": {}}


def _endpoint(model: str) -> Tuple[str, bool]:
	"""generateContent URL for the configured provider and whether the key goes in the query string."""
	if settings.gemini_provider == "vertex":
		region = settings.vertex_region
		project = settings.vertex_project or "placeholder-project"
		return (
			f"https://{region}-aiplatform.googleapis.com/v1/projects/{project}/locations/{region}"
			f"/publishers/google/models/{model}:generateContent",
			False,
		)
	return f"{AI_STUDIO_BASE}/models/{model}:generateContent", True


class OpenRouterFallback:
	"""Chat-completions call used when Gemini fails and OPENROUTER_API_KEY is set."""

	def __init__(self) -> None:
		self.model = settings.openrouter_model
		self.url = settings.openrouter_base_url
		headers = {
			"Authorization": f"Bearer {settings.openrouter_api_key}",
			"Content-Type": "application/json",
			"HTTP-Referer": settings.openrouter_referer,
			"X-Title": settings.openrouter_title,
		}
		self.headers = {k: v for k, v in headers.items() if v}
		self._client = httpx.AsyncClient(timeout=settings.gemini_timeout_seconds)

	async def complete(self, prompt: str, primary_error: Exception) -> str:
		logger.warning("Gemini call failed (%s); falling back to OpenRouter model %s", primary_error, self.model)
		payload = {"model": self.model, "messages": [{"role": "user", "content": prompt}]}
		try:
			r = await self._client.post(self.url, headers=self.headers, json=payload)
			r.raise_for_status()
			return r.json()["choices"][0]["message"]["content"]
		except Exception as fallback_err:
			raise RuntimeError(
				f"Gemini primary call failed ({primary_error}); fallback via OpenRouter also failed"
			) from fallback_err

	async def aclose(self) -> None:
		await self._client.aclose()


class GeminiClient:
	def __init__(self, api_key: Optional[str] = None, *, base_url: Optional[str] = None, model: Optional[str] = None) -> None:
		self.api_key = api_key or settings.gemini_api_key
		if not self.api_key:
			raise ConfigurationError("API Key is missing. Please provide it in settings or .env")
		self.model = model or settings.gemini_model
		endpoint, self._key_in_query = _endpoint(self.model)
		self.base_url = base_url or endpoint
		self._client = httpx.AsyncClient(timeout=settings.gemini_timeout_seconds)
		self._fallback = OpenRouterFallback() if settings.openrouter_api_key else None

	def _auth(self) -> Tuple[Dict[str, Any], Dict[str, str]]:
		if self._key_in_query:
			return {"key": self.api_key}, {}
		return {}, {"x-goog-api-key": self.api_key}

	async def _post(self, payload: Dict[str, Any]) -> httpx.Response:
		params, headers = self._auth()
		r = await self._client.post(self.base_url, params=params, headers=headers, json=payload)
		r.raise_for_status()
		return r

	async def _post_with_search(self, payload: Dict[str, Any]) -> httpx.Response:
		try:
			return await self._post({**payload, "tools": [SEARCH_TOOL]})
		except httpx.HTTPStatusError as http_err:
			# Some models/keys reject search grounding
			logger.warning("Gemini rejected search grounding (%s); retrying without tools", http_err.response.status_code)
			return await self._post(payload)

	@staticmethod
	def _text(r: httpx.Response) -> str:
		try:
			parts = r.json()["candidates"][0]["content"]["parts"]
		except Exception:
			raise RuntimeError(f"Unexpected Gemini response: {r.text}")
		# Grounded replies can split the text over several parts
		return "".join(p.get("text", "") for p in parts)

	async def generate(self, prompt: str, *, use_search: bool = False) -> str:
		payload: Dict[str, Any] = {"contents": [{"parts": [{"text": prompt}]}]}
		try:
			r = await (self._post_with_search(payload) if use_search else self._post(payload))
			return self._text(r)
		except (httpx.HTTPError, RuntimeError) as err:
			if self._fallback is None:
				raise
			return await self._fallback.complete(prompt, err)

	async def list_models(self) -> List[Dict[str, Any]]:
		params, headers = self._auth()
		r = await self._client.get(f"{AI_STUDIO_BASE}/models", params=params, headers=headers)
		r.raise_for_status()
		return r.json().get("models", [])

	async def aclose(self) -> None:
		await self._client.aclose()
		if self._fallback is not None:
			await self._fallback.aclose()
