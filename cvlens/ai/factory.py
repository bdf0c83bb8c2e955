from __future__ import annotations

from cvlens.ai.config import load_ai_config
from cvlens.ai.types import TextClient

from cvlens.ai.providers.openai_provider import OpenAIProvider


def get_text_client() -> TextClient | None:
    """Configured LLM client, or ``None`` when LLM features are switched off."""
    cfg = load_ai_config()
    if not cfg.enabled:
        return None

    if cfg.provider == "openai":
        return OpenAIProvider(model=cfg.model, timeout_s=cfg.timeout_s)

    raise ValueError(f"Unsupported AI_PROVIDER='{cfg.provider}'")
