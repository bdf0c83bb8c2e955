from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Protocol, Sequence


Role = Literal["system", "user", "assistant"]


@dataclass(frozen=True)
class ChatMessage:
    role: Role
    content: str


@dataclass(frozen=True)
class LLMResponse:
    text: str
    truncated: bool = False


class LLMError(RuntimeError):
    def __init__(self, message: str, *, code: str = "llm_error"):
        super().__init__(message)
        self.code = code


class LLMUnavailableError(LLMError):
    """Transient failure: network, timeout, 5xx. Safe to retry."""


class LLMRateLimitError(LLMError):
    pass


class TextClient(Protocol):
    async def complete(
        self,
        messages: Sequence[ChatMessage],
        *,
        json_mode: bool = False,
        temperature: float = 0.2,
        max_tokens: int | None = None,
    ) -> LLMResponse: ...
