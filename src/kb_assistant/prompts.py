"""
Prompt Templates

Every string sent to an LLM by the answer pipeline is defined here so the
wording can be reviewed in one place.
"""

from __future__ import annotations

from typing import Iterable, Sequence


SYSTEM_PROMPT = "You are a helpful AI assistant."

CONTEXT_BLOCK = "\n\nContext information:\n{context}"

ANSWER_INSTRUCTION = (
    "\n\nPlease provide a helpful and accurate answer based on the context "
    "provided. If the context doesn't contain enough information to answer "
    "the question, please say so clearly."
)

KNOWLEDGE_CONTEXT_HEADER = "Relevant information from the knowledge base:\n\n"

DEFAULT_IMAGE_PROMPT = (
    "Please analyze this image and describe what you see in detail. Include "
    "any text, objects, patterns, colors, and relevant information."
)

FILE_CONTEXT_TEMPLATE = (
    "\n\n[User uploaded a file: {file_name}]\n\nFile content:\n{content}"
    "\n\n---\n\nUser's question about the file:"
)

TRUNCATION_MARKER = "\n\n[Content truncated...]"

QA_WRITEBACK_TEMPLATE = "Question: {question}\n\nAnswer: {answer}"


def build_system_prompt(context: str | None = None) -> str:
    """System message for chat-style providers."""
    prompt = SYSTEM_PROMPT
    if context:
        prompt += CONTEXT_BLOCK.format(context=context)
    return prompt + ANSWER_INSTRUCTION


def build_knowledge_context(contents: Iterable[str]) -> str:
    """Concatenate retrieved chunk contents in result order."""
    return KNOWLEDGE_CONTEXT_HEADER + "".join(f"{c}\n\n" for c in contents)


def build_suggestion_prompt(
    question: str,
    answer: str,
    source_names: Sequence[str],
) -> str:
    prompt = (
        "Based on the following conversation, generate 3 relevant follow-up "
        "questions that the user might want to ask next.\n\n"
        f"User's Question: {question}\n\n"
        f"Assistant's Answer: {answer}\n\n"
    )

    if source_names:
        prompt += "Available Topics (from knowledge base):\n"
        for idx, name in enumerate(source_names[:3], start=1):
            prompt += f"{idx}. {name}\n"
        prompt += "\n"

    prompt += (
        "Generate exactly 3 short, specific follow-up questions (one per line, "
        "no numbering or bullets). Each question should be:\n"
        "- Directly related to the topic discussed\n"
        "- Natural and conversational\n"
        "- Something a user would realistically ask next\n"
        "- Between 5-15 words each\n\n"
        "Output only the questions, one per line:"
    )
    return prompt
