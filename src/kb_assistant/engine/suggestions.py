"""Follow-up question suggestions."""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Sequence

from ..llm.base import ChatOptions, LLMProvider
from ..prompts import build_suggestion_prompt

logger = logging.getLogger("kb.engine.suggestions")

_NUMBERING = re.compile(r"^[0-9]+[.)]\s*")
_BULLET = re.compile(r"^[-•*]\s*")

SUGGESTION_OPTIONS = ChatOptions(temperature=0.7, max_tokens=200)


def parse_suggestions(text: str, limit: int = 3) -> List[str]:
    questions: List[str] = []
    for line in text.splitlines():
        line = line.strip()
        if not line or "?" not in line:
            continue
        line = _BULLET.sub("", _NUMBERING.sub("", line)).strip()
        if line:
            questions.append(line)
        if len(questions) == limit:
            break
    return questions


async def generate_suggestions(
    provider: LLMProvider,
    question: str,
    answer: str,
    source_names: Sequence[str],
    model: Optional[str] = None,
) -> List[str]:
    """
    Ask the provider for 3 follow-up questions. Never raises; any failure
    yields an empty list.
    """
    prompt = build_suggestion_prompt(question, answer, list(source_names)[:3])
    try:
        response = await provider.complete(prompt, SUGGESTION_OPTIONS, model)
    except Exception as exc:
        logger.warning("Could not generate suggested questions: %s", exc)
        return []

    suggestions = parse_suggestions(response)
    logger.debug("Generated %d suggested questions", len(suggestions))
    return suggestions
