"""Catalogue of selectable provider/model pairs.

The bridge sends provider and model ids straight to the agent; the
catalogue only drives the model picker and validates user selections.
"""
from __future__ import annotations

import logging

from passepartout.engine.models import ModelOption

logger = logging.getLogger(__name__)


DEFAULT_MODELS: tuple[ModelOption, ...] = (
    # Anthropic
    ModelOption("anthropic", "claude-sonnet-4-5-20250929", "Claude Sonnet 4.5"),
    ModelOption("anthropic", "claude-opus-4-20250514", "Claude Opus 4"),
    ModelOption("anthropic", "claude-3-5-haiku-20241022", "Claude 3.5 Haiku"),
    # OpenAI
    ModelOption("openai", "gpt-4o", "GPT-4o"),
    ModelOption("openai", "gpt-4o-mini", "GPT-4o Mini"),
    ModelOption("openai", "o1", "OpenAI o1"),
    ModelOption("openai", "o3-mini", "OpenAI o3-mini"),
    # Google
    ModelOption("google", "gemini-2.5-pro", "Gemini 2.5 Pro"),
    ModelOption("google", "gemini-2.5-flash", "Gemini 2.5 Flash"),
)


class ModelCatalog:
    """Ordered set of ModelOptions plus the current selection."""

    def __init__(
        self,
        options: list[ModelOption] | tuple[ModelOption, ...] | None = None,
        default: str | None = None,
    ) -> None:
        self._options: list[ModelOption] = list(options or DEFAULT_MODELS)
        if not self._options:
            raise ValueError("Model catalogue cannot be empty")
        self._current = self._options[0]
        if default:
            self._current = self.resolve(default)

    @property
    def current(self) -> ModelOption:
        return self._current

    def list_models(self) -> list[ModelOption]:
        return list(self._options)

    def find(self, provider_id: str, model_id: str) -> ModelOption | None:
        for option in self._options:
            if option.provider_id == provider_id and option.model_id == model_id:
                return option
        return None

    def resolve(self, selector: str) -> ModelOption:
        """Resolve ``provider:model``, a bare model id or a display name.

        Raises ValueError when nothing in the catalogue matches.
        """
        selector = selector.strip()
        if ":" in selector:
            provider_id, model_id = selector.split(":", 1)
            option = self.find(provider_id.strip().lower(), model_id.strip())
            if option:
                return option
            raise ValueError(f"Unknown model: {selector}")
        lowered = selector.lower()
        for option in self._options:
            if option.model_id == selector or option.display_name.lower() == lowered:
                return option
        raise ValueError(f"Unknown model: {selector}")

    def select(self, selector: str) -> ModelOption:
        """Make *selector* the current selection and return it."""
        option = self.resolve(selector)
        self._current = option
        logger.info(
            "Model switched: %s (provider=%s)", option.model_id, option.provider_id,
        )
        return option
