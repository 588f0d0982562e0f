from __future__ import annotations
from typing import Optional


SETTINGS_HINT = "Please check your API key in settings."


class GetPathError(Exception):
	"""Base class for failures surfaced to API callers as {error, details}."""

	status_code = 500

	def __init__(self, message: str, *, details: Optional[str] = None) -> None:
		super().__init__(message)
		self.message = message
		self.details = details

	def to_body(self) -> dict:
		return {"error": self.message, "details": self.details or self.message}


class ConfigurationError(GetPathError):
	"""No usable provider credential; the user must be sent to settings."""

	status_code = 401


class ValidationError(GetPathError):
	"""Required user input is missing or not acceptable in the current state."""

	status_code = 400


class ImportValidationError(ValidationError):
	"""An uploaded backup does not have the expected top-level structure."""


class NotFoundError(GetPathError):
	status_code = 404


class ProviderError(GetPathError):
	status_code = 500

	def to_body(self) -> dict:
		return {"error": f"{self.message} {SETTINGS_HINT}", "details": self.details or self.message}


class UpstreamError(ProviderError):
	"""The provider call itself failed (network, auth, quota)."""


class DecodeError(ProviderError):
	"""The provider answered but the payload could not be coerced into the expected shape.

	`raw` keeps the untouched reply for logs; it is never put in response bodies.
	"""

	def __init__(self, message: str, *, raw: Optional[str] = None, details: Optional[str] = None) -> None:
		super().__init__(message, details=details)
		self.raw = raw
