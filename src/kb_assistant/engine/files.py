"""
File Attachments

Routes an uploaded file to the right answer path: images go to vision
analysis, text-bearing files become extra question context. Extraction from
binary office/PDF formats is delegated to an injectable `TextExtractor`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from ..core.errors import InvalidInputError
from ..prompts import FILE_CONTEXT_TEMPLATE, TRUNCATION_MARKER

TEXT_MIME_TYPES = frozenset(
    {
        "application/json",
        "application/xml",
        "application/x-yaml",
        "application/yaml",
    }
)


@dataclass(frozen=True)
class FileAttachment:
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class ProcessedFile:
    file_name: str
    mime_type: str
    size: int
    text: Optional[str] = None
    image: Optional[bytes] = None

    @property
    def is_image(self) -> bool:
        return self.image is not None


TextExtractor = Callable[[FileAttachment], str]


def process_attachment(
    attachment: FileAttachment,
    extractor: Optional[TextExtractor] = None,
) -> ProcessedFile:
    """
    Classify an attachment and pull out its usable payload.

    Raises
    ------
    InvalidInputError
        For unsupported types or files with no extractable text.
    """
    mime_type = (attachment.content_type or "application/octet-stream").lower()
    base = dict(
        file_name=attachment.filename,
        mime_type=mime_type,
        size=attachment.size,
    )

    if mime_type.startswith("image/"):
        return ProcessedFile(image=attachment.data, **base)

    if mime_type.startswith("text/") or mime_type in TEXT_MIME_TYPES:
        text = attachment.data.decode("utf-8", errors="replace")
    elif extractor is not None:
        text = extractor(attachment)
    else:
        raise InvalidInputError(
            f"File processing error: Unsupported file type: {mime_type}"
        )

    if not text or not text.strip():
        raise InvalidInputError(
            f"File processing error: no text could be extracted from {attachment.filename}"
        )

    return ProcessedFile(text=text, **base)


def truncate_content(content: str, max_chars: int) -> str:
    if len(content) <= max_chars:
        return content
    return content[:max_chars] + TRUNCATION_MARKER


def build_file_question(file_name: str, content: str, question: str, max_chars: int) -> str:
    """Prepend the (truncated) file content to the user's question."""
    file_context = FILE_CONTEXT_TEMPLATE.format(
        file_name=file_name,
        content=truncate_content(content, max_chars),
    )
    return f"{file_context} {question}"
