"""Document sources and parsers that need no external service."""

import logging

from embed_store.core.errors import PreconditionError
from embed_store.core.models import Metadata
from embed_store.document.base import (
    CONTENT_LENGTH,
    DOCUMENT_TYPE,
    Document,
    DocumentParser,
    DocumentSource,
)

logger = logging.getLogger(__name__)


class StringSource(DocumentSource):
    """Serves an in-memory string as UTF-8 bytes."""

    def __init__(self, content: str) -> None:
        if content is None:
            raise PreconditionError("content must not be None")
        self._content = content

    def read(self) -> bytes:
        return self._content.encode("utf-8")

    def metadata(self) -> Metadata:
        return Metadata({CONTENT_LENGTH: len(self._content)})


class TextDocumentParser(DocumentParser):
    """Decodes plain text documents."""

    def __init__(self, encoding: str = "utf-8") -> None:
        self._encoding = encoding

    def parse(self, content: bytes) -> Document:
        try:
            text = content.decode(self._encoding)
        except UnicodeDecodeError as exc:
            logger.error("Failed to decode document as %s", self._encoding)
            raise PreconditionError(f"document is not valid {self._encoding}") from exc
        if not text.strip():
            raise PreconditionError("document is empty")
        return Document(text=text, metadata=Metadata({DOCUMENT_TYPE: "txt"}))


def load_document(source: DocumentSource, parser: DocumentParser) -> Document:
    """Read ``source`` with ``parser``; source metadata is merged into the result."""
    document = parser.parse(source.read())
    return Document(text=document.text, metadata=document.metadata.merge(source.metadata()))
