from __future__ import annotations
import base64
import logging
import httpx
from typing import Any, Dict, List, Optional
from fastapi import HTTPException
from .errors import AIClientError
from .settings import settings

logger = logging.getLogger(__name__)

# A message is {"role": "system"|"user"|"assistant", "content": str | [part, ...]} where a part is
# {"type": "text", "text": ...} or {"type": "file", "file": {"filename": ..., "file_data": <data URI or base64>}}
Message = Dict[str, Any]

IMAGE_PROMPT_TEMPLATE = (
	"A clear, educational diagram or illustration explaining: {prompt}. "
	"Simple, modern flat style, white background, high quality."
)


def pdf_file_part(document_b64: str, filename: str = "document.pdf") -> Dict[str, Any]:
	data = document_b64 if document_b64.startswith("data:") else f"data:application/pdf;base64,{document_b64}"
	return {"type": "file", "file": {"filename": filename, "file_data": data}}


def _strip_data_uri(file_data: str) -> str:
	if file_data.startswith("data:") and "," in file_data:
		return file_data.split(",", 1)[1]
	return file_data


class AIClient:
	def __init__(
		self,
		provider: Optional[str] = None,
		*,
		api_key: Optional[str] = None,
		model: Optional[str] = None,
		base_url: Optional[str] = None,
		http_client: Optional[httpx.AsyncClient] = None,
	) -> None:
		self.provider = (provider or settings.ai_provider or "openai").lower()
		if self.provider == "gemini":
			self.api_key = api_key or settings.gemini_api_key
			self.model = model or settings.gemini_model
			self.base_url = (base_url or settings.gemini_base_url).rstrip("/")
		elif self.provider == "openai":
			self.api_key = api_key or settings.openai_api_key
			self.model = model or settings.openai_model
			self.base_url = (base_url or settings.openai_base_url).rstrip("/")
		else:
			raise ValueError(f"Unknown AI_PROVIDER: {self.provider}")
		if not self.api_key:
			raise ValueError(f"API key for provider '{self.provider}' is not configured")
		self._client = http_client or httpx.AsyncClient(timeout=settings.llm_timeout_seconds)
		self._owns_client = http_client is None

	async def complete(self, messages: List[Message], *, json_mode: bool = True) -> str:
		if self.provider == "gemini":
			return await self._complete_gemini(messages, json_mode)
		return await self._complete_openai(messages, json_mode)

	async def _complete_openai(self, messages: List[Message], json_mode: bool) -> str:
		payload: Dict[str, Any] = {"model": self.model, "messages": messages}
		if json_mode:
			payload["response_format"] = {"type": "json_object"}
		headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
		data = await self._post_json(f"{self.base_url}/chat/completions", payload, headers=headers)
		try:
			return data["choices"][0]["message"]["content"] or ""
		except (KeyError, IndexError, TypeError) as err:
			raise AIClientError(f"Unexpected OpenAI response: {data}") from err

	def _gemini_payload(self, messages: List[Message], json_mode: bool) -> Dict[str, Any]:
		system_instruction = ""
		parts: List[Dict[str, Any]] = []
		for msg in messages:
			content = msg.get("content")
			if msg.get("role") == "system":
				system_instruction = content if isinstance(content, str) else ""
				continue
			if isinstance(content, str):
				parts.append({"text": content})
				continue
			for part in content or []:
				if part.get("type") == "text":
					parts.append({"text": part.get("text", "")})
				elif part.get("type") == "file":
					file_data = (part.get("file") or {}).get("file_data", "")
					parts.append({"inlineData": {"mimeType": "application/pdf", "data": _strip_data_uri(file_data)}})
		payload: Dict[str, Any] = {"contents": [{"role": "user", "parts": parts}]}
		if system_instruction:
			payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}
		if json_mode:
			payload["generationConfig"] = {"responseMimeType": "application/json"}
		return payload

	async def _complete_gemini(self, messages: List[Message], json_mode: bool) -> str:
		payload = self._gemini_payload(messages, json_mode)
		url = f"{self.base_url}/models/{self.model}:generateContent"
		data = await self._post_json(url, payload, params={"key": self.api_key})
		try:
			parts = data["candidates"][0]["content"]["parts"]
			return "".join(p.get("text", "") for p in parts)
		except (KeyError, IndexError, TypeError) as err:
			raise AIClientError(f"Unexpected Gemini response: {data}") from err

	async def _post_json(
		self,
		url: str,
		payload: Dict[str, Any],
		*,
		headers: Optional[Dict[str, str]] = None,
		params: Optional[Dict[str, Any]] = None,
	) -> Dict[str, Any]:
		try:
			r = await self._client.post(url, params=params, headers=headers, json=payload)
			r.raise_for_status()
		except httpx.HTTPStatusError as http_err:
			raise AIClientError(
				f"{self.provider} call failed with status {http_err.response.status_code}",
				context={"body": http_err.response.text[:500]},
			) from http_err
		except httpx.RequestError as net_err:
			raise AIClientError(f"{self.provider} call failed: {net_err}") from net_err
		try:
			return r.json()
		except ValueError as err:
			raise AIClientError(f"{self.provider} returned a non-JSON envelope") from err

	async def generate_image(self, prompt: str) -> str:
		"""Generate an illustration through the OpenAI images API.

		Returns a ``data:image/png;base64,...`` URI. When the API answers with a
		hosted URL instead of inline bytes, the image is downloaded and inlined;
		if that download fails the hosted URL is returned as-is.
		"""
		api_key = settings.openai_api_key if self.provider != "openai" else self.api_key
		if not api_key:
			raise ValueError("OPENAI_API_KEY is not configured")
		base_url = self.base_url if self.provider == "openai" else settings.openai_base_url.rstrip("/")
		payload = {
			"model": settings.openai_image_model,
			"prompt": IMAGE_PROMPT_TEMPLATE.format(prompt=prompt),
			"n": 1,
			"size": "1024x1024",
			"quality": "medium",
		}
		headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
		data = await self._post_json(f"{base_url}/images/generations", payload, headers=headers)
		try:
			item = data["data"][0]
		except (KeyError, IndexError, TypeError) as err:
			raise AIClientError("No image in response") from err
		if item.get("b64_json"):
			return f"data:image/png;base64,{item['b64_json']}"
		temp_url = item.get("url")
		if not temp_url:
			raise AIClientError("No URL in response")
		try:
			image_res = await self._client.get(temp_url)
			image_res.raise_for_status()
		except httpx.HTTPError as fetch_err:
			logger.warning("Failed to inline generated image, returning hosted URL: %s", fetch_err)
			return temp_url
		return f"data:image/png;base64,{base64.b64encode(image_res.content).decode('ascii')}"

	async def aclose(self) -> None:
		if self._owns_client:
			await self._client.aclose()


async def get_ai_client():
	try:
		client = AIClient()
	except ValueError as err:
		raise HTTPException(status_code=503, detail=str(err))
	try:
		yield client
	finally:
		await client.aclose()
