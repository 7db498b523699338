"""Document sources and parsers feeding text into embedding models."""

from embed_store.document.base import Document, DocumentParser, DocumentSource
from embed_store.document.sources import StringSource, TextDocumentParser, load_document

__all__ = [
    "Document",
    "DocumentParser",
    "DocumentSource",
    "StringSource",
    "TextDocumentParser",
    "load_document",
]
