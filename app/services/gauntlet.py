"""Ordered, failure-tolerant walk through the model pool.

First success wins; models are never raced in parallel. Failure handling per model:
    ModelConfigError            -> ban for the session, next model
    ModelRateLimited/Overloaded -> retry same model with backoff (bounded), then
                                   cooldown, next model
    anything else               -> remember, next model, no penalty
"""
from __future__ import annotations
from dataclasses import replace
from typing import Callable, Dict, Optional, Set
import time

from app.scripts.logging_config import get_logger, log_model_attempt
from .ai_errors import (
    AIError, MissingCredential, ModelCallFailed, ModelConfigError, ModelsExhausted, RETRYABLE_ERRORS,
)
from .llm_providers import BaseLLMProvider, GenerationRequest
from .model_pool import ModelPool

logger = get_logger("ai_gateway")

# Request fields some model families reject outright (matched by id prefix)
UNSUPPORTED_PARAMS: Dict[str, Set[str]] = {
    "o1-mini": {"temperature", "json_mode", "system_instruction"},
    "o1": {"temperature", "json_mode"},
    "o3": {"temperature"},
    "o4": {"temperature"},
    "gpt-5": {"temperature"},
}


def strip_unsupported(request: GenerationRequest, model: str) -> GenerationRequest:
    prefix = next((p for p in sorted(UNSUPPORTED_PARAMS, key=len, reverse=True) if model.startswith(p)), None)
    if prefix is None:
        return request
    drop = UNSUPPORTED_PARAMS[prefix]
    changes = {}
    if "temperature" in drop and request.temperature is not None:
        changes["temperature"] = None
    if "json_mode" in drop and request.json_mode:
        changes["json_mode"] = False
    if "system_instruction" in drop and request.system_instruction:
        changes["system_instruction"] = None
        changes["prompt"] = f"{request.system_instruction}\n\n{request.prompt}"
    return replace(request, **changes) if changes else request


class GauntletInvoker:
    def __init__(self, provider: Optional[BaseLLMProvider], pool: ModelPool, api_key: Optional[str],
                 timeout: Optional[float] = None, max_rate_limit_retries: int = 1,
                 backoff_base_seconds: float = 2.0, sleep: Callable[[float], None] = time.sleep):
        self.provider = provider
        self.pool = pool
        self.api_key = api_key
        self.timeout = timeout
        self.max_rate_limit_retries = max_rate_limit_retries
        self.backoff_base_seconds = backoff_base_seconds
        self.sleep = sleep

    def _check_credential(self) -> BaseLLMProvider:
        if self.provider is None:
            raise MissingCredential("no model provider configured")
        if self.provider.requires_credential and not self.api_key:
            raise MissingCredential("API key missing")
        return self.provider

    def invoke(self, request: GenerationRequest) -> str:
        provider = self._check_credential()
        models = self.pool.get_available_models()
        if not models:
            raise ModelsExhausted("model pool is empty")

        last_error: Optional[Exception] = None
        for model in models:
            prepared = strip_unsupported(request, model)
            attempt = 0
            while True:
                attempt += 1
                start = time.time()
                try:
                    text = provider.generate(model, prepared, timeout=self.timeout)
                except MissingCredential:
                    raise
                except ModelConfigError as e:
                    log_model_attempt(model, attempt, False, error=f"config: {e}", logger=logger)
                    self.pool.ban_model(model)
                    last_error = e
                    break
                except RETRYABLE_ERRORS as e:
                    log_model_attempt(model, attempt, False, error=f"{type(e).__name__}: {e}", logger=logger)
                    last_error = e
                    if attempt <= self.max_rate_limit_retries:
                        delay = self.backoff_base_seconds * (2 ** (attempt - 1))
                        self.sleep(delay)
                        continue
                    self.pool.mark_model_busy(model)
                    break
                except AIError as e:
                    log_model_attempt(model, attempt, False, error=f"{type(e).__name__}: {e}", logger=logger)
                    last_error = e
                    break
                except Exception as e:
                    logger.exception("unexpected provider failure model=%s", model)
                    last_error = ModelCallFailed(f"{type(e).__name__}: {e}", model)
                    break
                if text and text.strip():
                    log_model_attempt(model, attempt, True, latency_ms=(time.time() - start) * 1000, logger=logger)
                    return text
                last_error = ModelCallFailed("empty reply", model)
                log_model_attempt(model, attempt, False, error="empty reply", logger=logger)
                break

        logger.error("all models failed count=%d last=%s", len(models), type(last_error).__name__ if last_error else None)
        if last_error is not None:
            raise last_error
        raise ModelsExhausted("model cascade exhausted")
