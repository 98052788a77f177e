"""
Model Router

Maps a client-requested model name onto one the active provider can serve.

Policy
------
- No name requested: the provider default.
- Name recognised as the active provider's family: passed through.
- Name recognised as another provider's family: replaced by the active
  provider's default, with a `model_mismatch` warning. Never raises.
- Name not recognised at all: passed through; the provider call is the
  final authority.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, Optional, Pattern

logger = logging.getLogger("kb.router")


MODEL_FAMILIES: Dict[str, Pattern[str]] = {
    "openai": re.compile(
        r"^(gpt-|chatgpt|o[1-9](-|$)|text-embedding-(3|ada)|davinci|babbage)"
    ),
    "gemini": re.compile(r"(^|/)(gemini|gemma)|^text-embedding-00\d"),
    "anthropic": re.compile(r"^claude"),
    "mistral": re.compile(r"^(mistral|mixtral|codestral|ministral)"),
    "meta": re.compile(r"llama"),
}


def classify_model(name: str) -> Optional[str]:
    """Return the provider family a model name belongs to, or None."""
    normalized = name.strip().lower()
    for family, pattern in MODEL_FAMILIES.items():
        if pattern.search(normalized):
            return family
    return None


class ModelRouter:
    def __init__(self, provider_name: str, default_model: str) -> None:
        self.provider_name = provider_name
        self.default_model = default_model

    def resolve(self, requested: Optional[str] = None) -> str:
        """
        Return the effective model name for a request.

        Parameters
        ----------
        requested : Optional[str]
            Model name hinted by the client, if any.
        """
        if requested is None or not requested.strip():
            return self.default_model

        requested = requested.strip()
        family = classify_model(requested)

        if family is not None and family != self.provider_name:
            logger.warning(
                "model_mismatch: requested model %r belongs to %s, active "
                "provider is %s; using %r instead",
                requested,
                family,
                self.provider_name,
                self.default_model,
                extra={
                    "model_mismatch": True,
                    "requested_model": requested,
                    "requested_family": family,
                },
            )
            return self.default_model

        if family is None:
            logger.debug("Unrecognised model %r passed through unchanged", requested)

        return requested
