from __future__ import annotations

import logging
import os
from typing import Optional, Sequence

import openai
from openai import AsyncOpenAI

from cvlens.ai.types import ChatMessage, LLMError, LLMRateLimitError, LLMResponse, LLMUnavailableError

logger = logging.getLogger(__name__)


class OpenAIProvider:
    def __init__(
        self,
        model: str,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_s: float = 60.0,
        max_retries: int = 0,
    ):
        self._model = model
        key = (api_key or os.getenv("OPENAI_API_KEY") or "").strip()
        if not key:
            raise RuntimeError("OPENAI_API_KEY is missing")

        # Retries are driven by the callers with their own backoff.
        self._client = AsyncOpenAI(
            api_key=key,
            base_url=(base_url or os.getenv("OPENAI_BASE_URL") or None),
            timeout=float(os.getenv("OPENAI_TIMEOUT_S", str(timeout_s))),
            max_retries=int(os.getenv("OPENAI_MAX_RETRIES", str(max_retries))),
        )

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        *,
        json_mode: bool = False,
        temperature: float = 0.2,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        payload = [{"role": m.role, "content": m.content} for m in messages]

        create_kwargs = {
            "model": self._model,
            "messages": payload,
            "temperature": temperature,
        }
        if json_mode:
            create_kwargs["response_format"] = {"type": "json_object"}
        if max_tokens is not None:
            create_kwargs["max_tokens"] = max_tokens

        try:
            response = await self._client.chat.completions.create(**create_kwargs)
        except openai.RateLimitError as exc:
            raise LLMRateLimitError(str(exc), code="llm_rate_limited") from exc
        except (openai.APIConnectionError, openai.APITimeoutError, openai.InternalServerError) as exc:
            raise LLMUnavailableError(str(exc), code="llm_unavailable") from exc
        except openai.APIError as exc:
            raise LLMError(str(exc), code="llm_error") from exc

        if not response.choices:
            raise LLMUnavailableError("Empty completion from OpenAI", code="llm_empty")

        choice = response.choices[0]
        text = choice.message.content or ""
        truncated = choice.finish_reason == "length"
        if truncated:
            logger.warning("openai_completion_truncated model=%s chars=%d", self._model, len(text))
        return LLMResponse(text=text, truncated=truncated)
