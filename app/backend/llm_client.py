from __future__ import annotations

import base64
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Type

import httpx
from openai import APIConnectionError, APIStatusError, APITimeoutError, OpenAI
from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError

from .errors import GenerationError, PitchCoachError
from .models import Source


logger = logging.getLogger("uvicorn.error")

DEFAULT_BASE_URL = "https://api.gptsapi.net/v1"
DEFAULT_MODEL = "gpt-5.1-chat"
DEFAULT_SEARCH_MODEL = "gpt-4o-search-preview"
DEFAULT_IMAGE_MODEL = "gpt-image-1"
DEFAULT_TIMEOUT_SECONDS = 120.0
MAX_ERROR_CHARS = 1200

TEXT_SYSTEM_PROMPT = "You are a helpful assistant for drafting and coaching short spoken pitches."
JSON_SYSTEM_PROMPT = (
    "You are a helpful assistant for drafting and coaching short spoken pitches. "
    "Return ONLY valid JSON. No markdown. No code fences. No extra text. "
    "Use double quotes for all JSON strings."
)

# Request parameters some OpenAI-compatible providers reject; dropped one at a time on a 400.
OPTIONAL_PARAMETERS = ("response_format", "temperature", "web_search_options")


@dataclass
class AudioInput:
    data_base64: str
    format: str = "wav"


@dataclass
class GenerationResult:
    text: str
    sources: List[Source] = field(default_factory=list)
    data: Optional[Any] = None


class GenerationService(Protocol):
    def generate_text(
        self,
        prompt: str,
        *,
        grounded_search: bool = False,
        schema: Optional[Type[BaseModel]] = None,
        audio: Optional[AudioInput] = None,
    ) -> GenerationResult:
        pass

    def generate_image(self, prompt: str) -> bytes:
        pass


def _truncate(text: str, max_chars: int = MAX_ERROR_CHARS) -> str:
    value = (text or "").strip()
    if len(value) <= max_chars:
        return value
    return value[: max_chars - 3] + "..."


def _get_api_key() -> str:
    api_key = os.getenv("GPTSAPI_KEY", "").strip()
    if not api_key:
        raise GenerationError(
            "Missing GPTSAPI_KEY. Set it before using generation features "
            '(example: export GPTSAPI_KEY="YOUR_KEY_HERE").'
        )
    return api_key


def _env(name: str, default: str) -> str:
    return os.getenv(name, default).strip() or default


def _timeout_seconds() -> float:
    try:
        return float(os.getenv("GPTSAPI_TIMEOUT_SECONDS", str(DEFAULT_TIMEOUT_SECONDS)))
    except ValueError:
        return DEFAULT_TIMEOUT_SECONDS


def _build_client() -> OpenAI:
    return OpenAI(
        base_url=_env("GPTSAPI_BASE_URL", DEFAULT_BASE_URL),
        api_key=_get_api_key(),
        timeout=_timeout_seconds(),
    )


def _extract_content(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, list):
        parts: List[str] = []
        for item in value:
            if isinstance(item, dict):
                text = item.get("text")
                if text:
                    parts.append(str(text))
        return "\n".join(parts).strip()
    return str(value or "").strip()


def _status_message(exc: APIStatusError) -> str:
    return (getattr(exc, "message", "") or str(exc)).lower()


def _unsupported_parameter(exc: APIStatusError, kwargs: Dict[str, Any]) -> Optional[str]:
    message = _status_message(exc)
    for name in OPTIONAL_PARAMETERS:
        if name not in kwargs:
            continue
        if name == "response_format" and ("response_format" in message or "json_object" in message):
            return name
        if name == "temperature" and "temperature" in message:
            return name
        if name == "web_search_options" and "web_search" in message:
            return name
    return None


def _extract_sources(message: Any) -> List[Source]:
    annotations = getattr(message, "annotations", None) or []
    sources: List[Source] = []
    seen: set[str] = set()
    for annotation in annotations:
        citation = getattr(annotation, "url_citation", None)
        if citation is None and isinstance(annotation, dict):
            citation = annotation.get("url_citation")
        if citation is None:
            continue
        if isinstance(citation, dict):
            uri = str(citation.get("url") or "").strip()
            title = str(citation.get("title") or "").strip()
        else:
            uri = str(getattr(citation, "url", "") or "").strip()
            title = str(getattr(citation, "title", "") or "").strip()
        if not uri or uri in seen:
            continue
        seen.add(uri)
        sources.append(Source(title=title or uri, uri=uri))
    return sources


def parse_json_with_repair(raw_content: str) -> dict:
    try:
        parsed = json.loads(raw_content)
    except json.JSONDecodeError:
        start = raw_content.find("{")
        end = raw_content.rfind("}")
        if start == -1 or end <= start:
            raise GenerationError("Structured output is not valid JSON.")
        try:
            parsed = json.loads(raw_content[start : end + 1])
        except json.JSONDecodeError as exc:
            raise GenerationError("Structured output could not be repaired into valid JSON.") from exc

    if not isinstance(parsed, dict):
        raise GenerationError("Structured output JSON root must be an object.")
    return parsed


def validate_structured(raw_content: str, schema: Type[BaseModel]) -> BaseModel:
    parsed = parse_json_with_repair(raw_content)
    try:
        return schema.model_validate(parsed)
    except SchemaValidationError as exc:
        raise GenerationError(
            f"Structured output does not match {schema.__name__}: {_truncate(str(exc), 400)}"
        ) from exc


class OpenAIGenerationService:
    provider_name = "openai"

    def __init__(
        self,
        client: Optional[OpenAI] = None,
        *,
        model: Optional[str] = None,
        search_model: Optional[str] = None,
        image_model: Optional[str] = None,
        max_tokens: int = 1800,
    ) -> None:
        self._client = client
        self._model = model
        self._search_model = search_model
        self._image_model = image_model
        self._max_tokens = max_tokens

    def _get_client(self) -> OpenAI:
        if self._client is None:
            self._client = _build_client()
        return self._client

    def _model_name(self, grounded_search: bool) -> str:
        if grounded_search:
            return self._search_model or _env("GPTSAPI_SEARCH_MODEL", DEFAULT_SEARCH_MODEL)
        return self._model or _env("GPTSAPI_MODEL", DEFAULT_MODEL)

    def _image_model_name(self) -> str:
        return self._image_model or _env("GPTSAPI_IMAGE_MODEL", DEFAULT_IMAGE_MODEL)

    def _create_completion(self, base_kwargs: Dict[str, Any]):
        client = self._get_client()
        kwargs = dict(base_kwargs)
        last_status_error: Optional[APIStatusError] = None

        for _ in range(len(OPTIONAL_PARAMETERS) + 1):
            try:
                return client.chat.completions.create(**kwargs)
            except APIStatusError as exc:
                last_status_error = exc
                unsupported = _unsupported_parameter(exc, kwargs)
                if unsupported is None:
                    break
                logger.info("llm_parameter_dropped name=%s model=%s", unsupported, kwargs.get("model"))
                kwargs.pop(unsupported, None)
            except APITimeoutError as exc:
                raise GenerationError("LLM request timed out.") from exc
            except APIConnectionError as exc:
                raise GenerationError(f"Failed to connect to LLM provider: {exc}") from exc

        if last_status_error is not None:
            status_code = getattr(last_status_error, "status_code", None)
            detail = _truncate(getattr(last_status_error, "message", None) or str(last_status_error))
            if status_code is not None:
                raise GenerationError(f"LLM request failed ({status_code}): {detail}") from last_status_error
            raise GenerationError(f"LLM request failed: {detail}") from last_status_error
        raise GenerationError("LLM request failed before receiving a response.")

    def generate_text(
        self,
        prompt: str,
        *,
        grounded_search: bool = False,
        schema: Optional[Type[BaseModel]] = None,
        audio: Optional[AudioInput] = None,
    ) -> GenerationResult:
        if audio is not None:
            user_content: Any = [
                {"type": "text", "text": prompt},
                {"type": "input_audio", "input_audio": {"data": audio.data_base64, "format": audio.format}},
            ]
        else:
            user_content = prompt

        base_kwargs: Dict[str, Any] = {
            "model": self._model_name(grounded_search),
            "messages": [
                {"role": "system", "content": JSON_SYSTEM_PROMPT if schema is not None else TEXT_SYSTEM_PROMPT},
                {"role": "user", "content": user_content},
            ],
            "max_tokens": self._max_tokens,
            "temperature": 0.3,
        }
        if schema is not None:
            base_kwargs["response_format"] = {"type": "json_object"}
        if grounded_search:
            base_kwargs["web_search_options"] = {}

        response = self._create_completion(base_kwargs)
        try:
            choice = response.choices[0] if response.choices else None
        except Exception as exc:
            raise GenerationError(f"Unexpected LLM response shape: {exc}") from exc
        if choice is None:
            raise GenerationError("LLM response did not contain choices.")

        content = _extract_content(choice.message.content)
        if not content:
            raise GenerationError("LLM returned an empty response.")

        sources = _extract_sources(choice.message) if grounded_search else []
        data = validate_structured(content, schema) if schema is not None else None
        logger.info(
            "llm_text_done model=%s chars=%s structured=%s sources=%s",
            base_kwargs["model"],
            len(content),
            schema.__name__ if schema is not None else None,
            len(sources),
        )
        return GenerationResult(text=content, sources=sources, data=data)

    def generate_image(self, prompt: str) -> bytes:
        client = self._get_client()
        model = self._image_model_name()
        try:
            response = client.images.generate(model=model, prompt=prompt, n=1)
        except APIStatusError as exc:
            detail = _truncate(getattr(exc, "message", None) or str(exc))
            raise GenerationError(f"Image generation failed ({exc.status_code}): {detail}") from exc
        except APITimeoutError as exc:
            raise GenerationError("Image generation timed out.") from exc
        except APIConnectionError as exc:
            raise GenerationError(f"Failed to connect to image provider: {exc}") from exc

        images = getattr(response, "data", None) or []
        if not images:
            raise GenerationError("Image generation returned no images.")
        first = images[0]

        encoded = getattr(first, "b64_json", None)
        if encoded:
            try:
                image_bytes = base64.b64decode(encoded)
            except (ValueError, TypeError) as exc:
                raise GenerationError("Image generation returned invalid base64 data.") from exc
            logger.info("llm_image_done model=%s bytes=%s", model, len(image_bytes))
            return image_bytes

        url = getattr(first, "url", None)
        if not url:
            raise GenerationError("Image generation returned neither data nor a URL.")
        try:
            download = httpx.get(url, timeout=_timeout_seconds())
            download.raise_for_status()
        except httpx.HTTPError as exc:
            raise GenerationError(f"Failed to download generated image: {exc}") from exc
        if not download.content:
            raise GenerationError("Generated image download was empty.")
        logger.info("llm_image_done model=%s bytes=%s", model, len(download.content))
        return download.content


def call_generation(fn, *args, **kwargs):
    """Invoke a generation call, reporting untyped transport failures as ``GenerationError``."""
    try:
        return fn(*args, **kwargs)
    except PitchCoachError:
        raise
    except Exception as exc:
        raise GenerationError(f"Unexpected generation error: {_truncate(str(exc), 400)}") from exc


def guarded_call(guard, label: str, fn, *args, **kwargs):
    with guard.hold(label):
        return call_generation(fn, *args, **kwargs)
