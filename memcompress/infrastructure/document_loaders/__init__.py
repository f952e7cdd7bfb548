"""Document loader implementations."""
from .pdf_loader import PDFLoader
from .docx_loader import DocxLoader
from .text_loader import TextLoader
from .composite_loader import CompositeLoader
from .filesystem_provider import FileSystemDocumentProvider

__all__ = [
    "PDFLoader",
    "DocxLoader",
    "TextLoader",
    "CompositeLoader",
    "FileSystemDocumentProvider",
]
