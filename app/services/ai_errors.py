"""Error taxonomy for model calls.

The gauntlet dispatches on these types: config errors ban a model, rate-limit /
overload errors put it on cooldown, everything else just advances.
"""
from __future__ import annotations
from typing import Optional


class AIError(RuntimeError):
    def __init__(self, message: str = "", model: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message or self.__class__.__name__)
        self.model = model
        self.status_code = status_code


class MissingCredential(AIError):
    """No API key configured; no model call is possible."""


class ModelConfigError(AIError):
    """Model id is invalid, unsupported or misconfigured (404 / 400-class)."""


class ModelRateLimited(AIError):
    """Quota or rate limit hit (429)."""


class ModelOverloaded(AIError):
    """Upstream capacity problem (503 / 529)."""


class ModelCallFailed(AIError):
    """Any other failure: safety block, timeout, connection error, empty reply."""


class ModelsExhausted(AIError):
    """Every model in the pool failed or none was available."""


class MalformedModelOutput(AIError):
    """Reply could not be parsed into the expected result shape."""


RETRYABLE_ERRORS = (ModelRateLimited, ModelOverloaded)
