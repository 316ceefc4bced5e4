"""Pluggable LLM provider abstraction layer.

Usage:
  from app.services.llm_providers import get_provider, GenerationRequest
  provider = get_provider()
  text = provider.generate("gpt-4o-mini", GenerationRequest(prompt="Hello"), timeout=30)

Providers:
    - EchoProvider: deterministic echo, for tests/local
    - OpenAIProvider: OpenAI Chat Completions (text + image parts)

Providers raise the typed errors from ai_errors so the gauntlet can decide
between ban, cooldown and plain advance. Add a new provider by implementing
BaseLLMProvider.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional
import abc

import openai

from config import settings
from .ai_errors import (
    MissingCredential, ModelCallFailed, ModelConfigError, ModelOverloaded, ModelRateLimited,
)

# 400-class codes that mean "this model id will never work here"
CONFIG_ERROR_CODES = {
    "model_not_found", "invalid_model", "unsupported_model",
    "unsupported_parameter", "unsupported_value", "invalid_request_error",
}
SAFETY_ERROR_CODES = {"content_policy_violation", "content_filter"}
OVERLOAD_STATUS = {503, 529}


@dataclass
class GenerationRequest:
    prompt: str
    images: List[str] = field(default_factory=list)  # data URLs, http(s) URLs or bare base64
    system_instruction: Optional[str] = None
    json_mode: bool = False
    temperature: Optional[float] = None


def to_image_url(image: str) -> str:
    if image.startswith("data:") or image.startswith("http://") or image.startswith("https://"):
        return image
    return f"data:image/jpeg;base64,{image}"


class BaseLLMProvider(abc.ABC):
    name: str
    requires_credential: bool = True

    @abc.abstractmethod
    def generate(self, model: str, request: GenerationRequest, timeout: Optional[float] = None) -> str:
        ...


class EchoProvider(BaseLLMProvider):
    name = "echo"
    requires_credential = False

    def generate(self, model: str, request: GenerationRequest, timeout: Optional[float] = None) -> str:
        return request.prompt


def classify_status_error(status: Optional[int], code: Optional[str], message: str, model: str) -> Exception:
    """Map an HTTP-ish failure onto the gauntlet's error kinds."""
    code = (code or "").lower()
    msg = (message or "")[:400]
    if status == 429:
        return ModelRateLimited(msg, model, status)
    if status in OVERLOAD_STATUS:
        return ModelOverloaded(msg, model, status)
    if code in SAFETY_ERROR_CODES:
        return ModelCallFailed(msg, model, status)
    if status in (403, 404):
        return ModelConfigError(msg, model, status)
    if status == 400 and (code in CONFIG_ERROR_CODES or "model" in msg.lower() or not code):
        return ModelConfigError(msg, model, status)
    return ModelCallFailed(msg, model, status)


class OpenAIProvider(BaseLLMProvider):
    name = "openai"

    def __init__(self, api_key: Optional[str] = None):
        key = api_key or settings.OPENAI_API_KEY
        if not key:
            raise MissingCredential("OPENAI_API_KEY missing")
        self.client = openai.OpenAI(api_key=key, max_retries=0)

    def _messages(self, request: GenerationRequest) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = []
        if request.system_instruction:
            messages.append({"role": "system", "content": request.system_instruction})
        if request.images:
            parts: List[Dict[str, Any]] = [{"type": "text", "text": request.prompt}]
            for img in request.images:
                parts.append({"type": "image_url", "image_url": {"url": to_image_url(img)}})
            messages.append({"role": "user", "content": parts})
        else:
            messages.append({"role": "user", "content": request.prompt})
        return messages

    def generate(self, model: str, request: GenerationRequest, timeout: Optional[float] = None) -> str:
        kwargs: Dict[str, Any] = {
            "model": model,
            "messages": self._messages(request),
            "timeout": timeout or settings.LLM_TIMEOUT_SECONDS,
        }
        if request.json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        if request.temperature is not None:
            kwargs["temperature"] = request.temperature
        try:
            resp = self.client.chat.completions.create(**kwargs)
        except openai.APIStatusError as e:
            raise classify_status_error(e.status_code, getattr(e, "code", None), str(e), model) from e
        except openai.APIConnectionError as e:  # includes APITimeoutError
            raise ModelCallFailed(f"{type(e).__name__}: {str(e)[:200]}", model) from e
        out = resp.choices[0].message.content if resp.choices else None
        if not out:
            finish = resp.choices[0].finish_reason if resp.choices else None
            raise ModelCallFailed(f"empty reply finish_reason={finish}", model)
        return out


def get_provider(name: Optional[str] = None, api_key: Optional[str] = None) -> BaseLLMProvider:
    provider = (name or settings.LLM_PROVIDER or "openai").lower()
    if provider == "echo":
        return EchoProvider()
    return OpenAIProvider(api_key=api_key)
