"""AiClient: the explicit context object for AI access.

Owns the model pool, the result cache and the gauntlet invoker. Build one per
process (get_ai_client) or construct directly in tests with fakes.

  from app.services.ai_client import get_ai_client
  client = get_ai_client()
  data = client.generate_json(GenerationRequest(prompt="...", json_mode=True))
"""
from __future__ import annotations
from typing import Any, Optional

from config import Settings, settings as default_settings
from app.scripts.logging_config import get_logger
from .ai_cache import AICache
from .ai_errors import MissingCredential
from .gauntlet import GauntletInvoker
from .json_extractor import parse_json
from .llm_providers import BaseLLMProvider, GenerationRequest, get_provider
from .local_store import LocalStore
from .model_pool import ModelPool

logger = get_logger("ai_gateway")


class AiClient:
    def __init__(self, cfg: Optional[Settings] = None, provider: Optional[BaseLLMProvider] = None,
                 pool: Optional[ModelPool] = None, cache: Optional[AICache] = None,
                 invoker: Optional[GauntletInvoker] = None, api_key: Optional[str] = None):
        self.settings = cfg or default_settings
        self.api_key = api_key if api_key is not None else self.settings.OPENAI_API_KEY
        if provider is None:
            try:
                provider = get_provider(self.settings.LLM_PROVIDER, api_key=self.api_key)
            except MissingCredential:
                logger.warning("AI provider disabled: credential missing, operations will degrade")
                provider = None
        self.pool = pool or ModelPool(self.settings.model_cascade(), self.settings.MODEL_COOLDOWN_SECONDS)
        self.cache = cache or AICache(
            LocalStore(self.settings.AI_CACHE_MAX_BYTES, self.settings.AI_CACHE_FILE),
            ttl_seconds=self.settings.AI_CACHE_TTL_SECONDS,
            prune_fraction=self.settings.AI_CACHE_PRUNE_FRACTION,
        )
        self.invoker = invoker or GauntletInvoker(
            provider, self.pool, self.api_key,
            timeout=self.settings.LLM_TIMEOUT_SECONDS,
            max_rate_limit_retries=self.settings.RATE_LIMIT_MAX_RETRIES,
            backoff_base_seconds=self.settings.RATE_LIMIT_BACKOFF_SECONDS,
        )

    def generate_text(self, request: GenerationRequest) -> str:
        return self.invoker.invoke(request)

    def generate_json(self, request: GenerationRequest) -> Any:
        return parse_json(self.invoker.invoke(request))

    def start(self) -> None:
        self.cache.schedule_prune(self.settings.AI_CACHE_PRUNE_DELAY_SECONDS)

    def close(self) -> None:
        self.cache.cancel_scheduled_prune()


_singleton: Optional[AiClient] = None


def get_ai_client() -> AiClient:
    global _singleton
    if _singleton is None:
        _singleton = AiClient()
    return _singleton
