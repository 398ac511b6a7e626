"""
Growth Journal - OpenAI-Compatible AI Client
Single-call text generation (DeepSeek by default) bounded by a deadline.
"""

import asyncio
import logging
from typing import List, Dict, Optional, Callable
from openai import AsyncOpenAI, APIError, APIConnectionError, RateLimitError
from functools import wraps

from config import get_ai_config, AIConfig

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a professional personal-growth assistant. You analyse a user's "
    "daily self-assessments and give personalised, accurate, useful and "
    "encouraging insights and suggestions."
)


# ============================================
# ERRORS
# ============================================

class ExternalServiceError(Exception):
    """The AI service failed or returned an unusable payload."""


class ExternalServiceTimeout(ExternalServiceError):
    """The AI call exceeded its deadline."""


class AINotConfigured(ExternalServiceError):
    """No API key is set; callers should use their local fallback."""


# ============================================
# RETRY DECORATOR
# ============================================

def retry_on_error(max_retries: Optional[int] = None, delay: float = 1.0):
    """
    Decorator to retry API calls on transient errors.

    Args:
        max_retries: Maximum number of retry attempts (defaults to the client's)
        delay: Initial delay between retries (exponential backoff)
    """
    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(self, *args, **kwargs):
            retries = self.max_retries if max_retries is None else max_retries
            last_error = None
            for attempt in range(retries + 1):
                try:
                    return await func(self, *args, **kwargs)
                except (RateLimitError, APIConnectionError) as e:
                    last_error = e
                    if attempt == retries:
                        break
                    wait_time = delay * (2 ** attempt)
                    logger.warning(f"{type(e).__name__}, waiting {wait_time}s before retry {attempt + 1}/{retries}")
                    await asyncio.sleep(wait_time)
            raise ExternalServiceError(f"AI service unreachable: {last_error}") from last_error
        return wrapper
    return decorator


# ============================================
# AI CLIENT
# ============================================

class AIClient:
    """
    OpenAI-compatible async AI client.

    Usage:
        client = AIClient()  # Uses config from .env
        text = await client.generate("Summarise my week")

    generate() races the request against timeout_seconds. On timeout the
    in-flight request is cancelled and its result is never used.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        config: Optional[AIConfig] = None
    ):
        cfg = config or get_ai_config()

        self.base_url = base_url or cfg.api_base_url
        self.api_key = (api_key if api_key is not None else cfg.api_key).strip()
        self.model = model or cfg.model_name
        self.temperature = cfg.temperature
        self.max_tokens = cfg.max_tokens
        self.timeout = cfg.timeout_seconds
        self.max_retries = cfg.max_retries

        self._client = None
        if self.api_key:
            self._client = AsyncOpenAI(
                base_url=self.base_url,
                api_key=self.api_key,
                max_retries=0,
            )
            logger.info(f"AIClient initialized: base_url={self.base_url}, model={self.model}")
        else:
            logger.info("AIClient has no API key, running in local fallback mode")

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    @retry_on_error(delay=1.0)
    async def _complete(self, messages: List[Dict[str, str]]) -> str:
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except (RateLimitError, APIConnectionError):
            raise
        except APIError as e:
            # Don't retry on other API errors (e.g., invalid model, auth errors)
            raise ExternalServiceError(f"AI service error: {e}") from e

        if not response.choices:
            raise ExternalServiceError("AI service returned no choices")
        content = response.choices[0].message.content
        if not content or not content.strip():
            raise ExternalServiceError("AI service returned an empty message")
        return content

    async def generate(self, prompt: str, system_prompt: str = SYSTEM_PROMPT) -> str:
        """
        Send one prompt and return the completion text.

        Raises:
            AINotConfigured: no API key (no network call is attempted)
            ExternalServiceTimeout: deadline exceeded
            ExternalServiceError: any other failure
        """
        if not self.is_configured:
            raise AINotConfigured("AI API key is not configured")

        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": prompt},
        ]
        try:
            return await asyncio.wait_for(self._complete(messages), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise ExternalServiceTimeout(f"AI call exceeded {self.timeout}s") from e


# ============================================
# SINGLETON INSTANCE
# ============================================

_client: Optional[AIClient] = None


def get_ai_client() -> AIClient:
    """Get or create the AI client singleton instance."""
    global _client
    if _client is None:
        _client = AIClient()
    return _client


def reset_ai_client():
    """Reset the AI client singleton (useful for config changes)."""
    global _client
    _client = None
