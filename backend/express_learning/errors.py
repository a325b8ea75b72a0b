"""
Exception hierarchy for Express Learning.

Every domain error carries a machine-readable ``error_code`` and the HTTP
``status_code`` the API answers with. Pipelines raise these; ``main.py``
registers a single handler that turns them into JSON responses.
"""
from __future__ import annotations
from typing import Any, Dict, Optional


class ExpressLearningError(Exception):
	def __init__(
		self,
		message: str,
		error_code: str = "INTERNAL_ERROR",
		status_code: int = 500,
		context: Optional[Dict[str, Any]] = None,
	) -> None:
		self.message = message
		self.error_code = error_code
		self.status_code = status_code
		self.context = context or {}
		super().__init__(message)


class NotFoundError(ExpressLearningError):
	def __init__(self, message: str, error_code: str = "NOT_FOUND") -> None:
		super().__init__(message, error_code=error_code, status_code=404)


class ValidationError(ExpressLearningError):
	def __init__(self, message: str, error_code: str = "INVALID_INPUT") -> None:
		super().__init__(message, error_code=error_code, status_code=400)


class GenerationError(ExpressLearningError):
	"""LLM output could not be turned into content."""

	def __init__(
		self,
		message: str,
		error_code: str = "GENERATION_FAILED",
		status_code: int = 502,
		context: Optional[Dict[str, Any]] = None,
	) -> None:
		super().__init__(message, error_code=error_code, status_code=status_code, context=context)


class AIClientError(GenerationError):
	"""Transport failure or unexpected envelope from the LLM provider."""

	def __init__(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
		super().__init__(message, error_code="LLM_REQUEST_FAILED", context=context)


class InvalidJSONError(GenerationError):
	def __init__(self, message: str = "AI generated invalid JSON", context: Optional[Dict[str, Any]] = None) -> None:
		super().__init__(message, error_code="INVALID_JSON", context=context)


class MissingChaptersError(GenerationError):
	def __init__(self, message: str = "AI generated invalid JSON structure: missing chapters") -> None:
		super().__init__(message, error_code="MISSING_CHAPTERS")


class ContentTooShortError(GenerationError):
	def __init__(self, length: int, minimum: int) -> None:
		super().__init__(
			f"Generated explanation too short ({length} chars, need at least {minimum})",
			error_code="CONTENT_TOO_SHORT",
			status_code=422,
			context={"length": length, "minimum": minimum},
		)
