"""Document collaborator interfaces.

A DocumentSource yields raw bytes for a location; a DocumentParser turns
bytes into text. Neither is used by the store itself.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from embed_store.core.models import Metadata, TextSegment

DOCUMENT_TYPE = "document_type"
CONTENT_LENGTH = "content_length"


@dataclass(frozen=True)
class Document:
    """Parsed text of a document with its metadata."""

    text: str
    metadata: Metadata = field(default_factory=Metadata)

    def to_text_segment(self) -> TextSegment:
        return TextSegment(text=self.text, metadata=self.metadata)


class DocumentSource(ABC):
    """Source of raw document bytes."""

    @abstractmethod
    def read(self) -> bytes:
        ...

    def metadata(self) -> Metadata:
        return Metadata()


class DocumentParser(ABC):
    """Parser turning raw bytes into a Document."""

    @abstractmethod
    def parse(self, content: bytes) -> Document:
        ...
