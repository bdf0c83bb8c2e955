import os
from dataclasses import dataclass

from cvlens.core.config import settings


@dataclass(frozen=True)
class AIConfig:
    provider: str
    model: str
    timeout_s: float
    enabled: bool


def _looks_like_placeholder(value: str) -> bool:
    lower = value.strip().lower()
    return lower.startswith("your_") or lower.startswith("replace_") or lower in {"changeme", "todo"}


def load_ai_config() -> AIConfig:
    provider = settings.ai_provider
    enabled = settings.llm_enabled
    if enabled and provider == "openai":
        api_key = (os.getenv("OPENAI_API_KEY") or "").strip()
        enabled = bool(api_key) and not _looks_like_placeholder(api_key)
    return AIConfig(
        provider=provider,
        model=settings.ai_model,
        timeout_s=settings.llm_timeout_s,
        enabled=enabled,
    )
