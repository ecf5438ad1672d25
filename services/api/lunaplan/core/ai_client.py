import asyncio
import logging
from dataclasses import dataclass
from typing import Optional
from datetime import datetime, timezone

import httpx
from google import genai
from google.genai import types
from google.genai import errors as genai_errors

from ..errors import ProviderError
from ..settings import settings

logger = logging.getLogger("lunaplan.ai")


@dataclass
class CompletionRequest:
    system_message: str
    user_message: str
    model: str
    temperature: float
    max_tokens: int
    operation: str = "completion"


@dataclass
class Completion:
    content: str
    token_usage: Optional[int]
    model: str


def backoff_seconds(attempt: int, base: float) -> float:
    """Exponential backoff: base, 2*base, 4*base..."""
    return base * (2 ** attempt)


def _is_transient(exc: genai_errors.APIError) -> bool:
    code = getattr(exc, "code", None)
    return isinstance(exc, genai_errors.ServerError) or code in (408, 429)


class AIClient:
    """Completion provider client (Gemini).

    One call = bounded attempts, each under a hard wall-clock timeout.
    Transient failures (timeouts, dropped connections, 429, 5xx) are retried with backoff; anything
    else fails immediately. Exhaustion raises ProviderError.
    """
    _instance = None

    def __init__(self):
        self.api_key = settings.gemini_api_key
        self.mode = settings.ai_mode  # "mock" or "gemini"
        self.timeout_seconds = settings.ai_timeout_seconds
        self.max_attempts = max(1, settings.ai_max_attempts)
        self.backoff_base = settings.ai_backoff_base_seconds
        self._client: Optional[genai.Client] = None
        self.last_error: Optional[str] = None
        self.last_error_at: Optional[datetime] = None

        if self.mode == "gemini" and self.api_key:
            self._client = genai.Client(api_key=self.api_key)

    @classmethod
    def get_instance(cls):
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def is_available(self) -> bool:
        return self.mode == "gemini" and self._client is not None

    async def complete(self, request: CompletionRequest) -> Completion:
        if not self.is_available():
            raise ProviderError(f"AI is not available (mode={self.mode})", transient=False)

        last_exc: Optional[Exception] = None
        for attempt in range(self.max_attempts):
            try:
                return await asyncio.wait_for(self._call(request), timeout=self.timeout_seconds)
            except asyncio.TimeoutError as e:
                last_exc = e
                self._record_error(f"timeout after {self.timeout_seconds}s")
            except genai_errors.APIError as e:
                last_exc = e
                self._record_error(f"{e.__class__.__name__}: {e}")
                if not _is_transient(e):
                    raise ProviderError(f"Provider rejected {request.operation}: {e}", transient=False) from e
            except (httpx.TransportError, OSError) as e:
                last_exc = e
                self._record_error(f"{e.__class__.__name__}: {e}")

            if attempt + 1 < self.max_attempts:
                delay = backoff_seconds(attempt, self.backoff_base)
                logger.warning(
                    f"{request.operation} attempt {attempt + 1}/{self.max_attempts} failed "
                    f"({self.last_error}); retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)

        raise ProviderError(
            f"{request.operation} failed after {self.max_attempts} attempts: {self.last_error}"
        ) from last_exc

    async def _call(self, request: CompletionRequest) -> Completion:
        config = types.GenerateContentConfig(
            system_instruction=request.system_message,
            temperature=request.temperature,
            max_output_tokens=request.max_tokens,
            response_mime_type="application/json",
        )
        response = await self._client.aio.models.generate_content(
            model=request.model,
            contents=request.user_message,
            config=config,
        )

        usage = getattr(response, "usage_metadata", None)
        total_tokens = getattr(usage, "total_token_count", None) if usage else None

        return Completion(content=response.text or "", token_usage=total_tokens, model=request.model)

    def _record_error(self, message: str) -> None:
        self.last_error = message
        self.last_error_at = datetime.now(timezone.utc)
        logger.error(f"Gemini completion failed: {message}")


# Singleton instance access
ai_client = AIClient.get_instance()
