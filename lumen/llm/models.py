"""Model manager: which Claude model serves each pipeline role."""

import logging

from lumen.config import settings

logger = logging.getLogger(__name__)

MODEL_MAP: dict[str, str] = {
    "haiku": "claude-haiku-4-5-20251001",
    "sonnet": "claude-sonnet-4-5-20250929",
    "opus": "claude-opus-4-1-20250805",
}

# Reverse lookup: full model string → friendly name
FRIENDLY_NAMES: dict[str, str] = {v: k for k, v in MODEL_MAP.items()}


def _resolve(name_or_id: str) -> str | None:
    """Resolve a friendly name or full model ID. Returns full ID or None."""
    if name_or_id in MODEL_MAP:
        return MODEL_MAP[name_or_id]
    if name_or_id in FRIENDLY_NAMES:
        return name_or_id
    return None


def friendly(model_id: str) -> str:
    """Return the friendly name for a model ID, or the ID itself."""
    return FRIENDLY_NAMES.get(model_id, model_id)


class ModelManager:
    """Singleton tracking the chat model (tool pass, synthesis) and the
    fast model (classifier, verifier, re-rank, titles, extraction)."""

    _instance: "ModelManager | None" = None

    def __init__(self) -> None:
        self._chat_model = _resolve(settings.default_chat_model) or MODEL_MAP["sonnet"]
        self._fast_model = _resolve(settings.default_fast_model) or MODEL_MAP["haiku"]
        logger.info(
            "Models: chat=%s, fast=%s",
            friendly(self._chat_model),
            friendly(self._fast_model),
        )

    @classmethod
    def get(cls) -> "ModelManager":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    def get_chat_model(self) -> str:
        return self._chat_model

    def get_fast_model(self) -> str:
        return self._fast_model
