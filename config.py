from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env.local", env_file_encoding="utf-8", extra="ignore")

    # Firebase
    GOOGLE_APPLICATION_CREDENTIALS: Optional[str] = None
    FIREBASE_CREDENTIALS_JSON_STRING: Optional[str] = None
    REPORTS_COLLECTION: str = "reports"

    # LLM selection
    LLM_PROVIDER: str = "openai"  # openai | echo
    OPENAI_API_KEY: Optional[str] = None
    # Preference order, most preferred first
    LLM_MODEL_CASCADE: str = "gpt-4o-mini,gpt-4.1-mini,gpt-4o,gpt-4.1"
    LLM_TIMEOUT_SECONDS: float = 30.0

    # Model pool / gauntlet
    MODEL_COOLDOWN_SECONDS: float = 60.0
    RATE_LIMIT_MAX_RETRIES: int = 1
    RATE_LIMIT_BACKOFF_SECONDS: float = 2.0

    # AI result cache
    AI_CACHE_TTL_SECONDS: int = 24 * 60 * 60
    AI_CACHE_FILE: Optional[str] = "data/ai_cache.json"  # None -> memory only
    AI_CACHE_MAX_BYTES: int = 5 * 1024 * 1024
    AI_CACHE_PRUNE_DELAY_SECONDS: float = 2.0
    AI_CACHE_PRUNE_FRACTION: float = 0.3

    # Lexical fallback heuristics
    LEXICAL_MIN_TOKEN_LEN: int = 3
    LEXICAL_MIN_OVERLAP: int = 2
    LEXICAL_SHORT_QUERY_TOKENS: int = 3  # queries with fewer tokens accept a single overlap
    LEXICAL_MAX_CONFIDENCE: int = 90

    # Match scan
    MATCH_DATE_BUFFER_HOURS: int = 48
    MATCH_MAX_CANDIDATES: int = 30
    QUICK_SCAN_MAX_CANDIDATES: int = 6
    REMOTE_MATCH_DEFAULT_CONFIDENCE: int = 75

    # Content analysis
    ANALYSIS_MAX_IMAGES: int = 3
    SUMMARY_FALLBACK_CHARS: int = 100

    def model_cascade(self) -> List[str]:
        return [m.strip() for m in (self.LLM_MODEL_CASCADE or "").split(",") if m.strip()]


settings = Settings()
