"""
Document Preprocessor

Turns the raw bytes of an uploaded document into something the inference
client can send: extracted text for word-processing files, or the original
bytes for PDFs and photographs.

Usage:
    preprocessor = DocumentPreprocessor()
    processed = preprocessor.process(file_content, "application/pdf", "lease.pdf")
"""

import io
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import PyPDF2
from docx import Document as DocxDocument

from contract_assistant.core.errors import PreprocessingError, UnsupportedMediaError

logger = logging.getLogger(__name__)

DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
DOC_MIME = "application/msword"
PDF_MIME = "application/pdf"

WORD_MIME_TYPES = {
    DOCX_MIME: "docx",
    DOC_MIME: "doc",
}

IMAGE_MIME_TYPES = {
    "image/jpeg": "jpeg",
    "image/jpg": "jpeg",
    "image/png": "png",
    "image/webp": "webp",
}

# Extension -> canonical MIME type, used when the declared type is missing or generic
EXTENSION_MIME_TYPES = {
    ".docx": DOCX_MIME,
    ".doc": DOC_MIME,
    ".pdf": PDF_MIME,
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
}


@dataclass
class ProcessedDocument:
    """Preprocessor output handed to the inference client."""

    kind: str  # "text" or "binary"
    mime_type: str
    text: Optional[str] = None
    payload: Optional[bytes] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_text(self) -> bool:
        return self.kind == "text"


class DocumentPreprocessor:
    """
    Classifies a document and prepares it for inference.

    The declared MIME type wins when it is one we recognise; otherwise the
    filename extension decides. Anything still unrecognised is rejected with
    UnsupportedMediaError before any inference is attempted.
    """

    def process(self, file_content: bytes, mime_type: Optional[str], filename: str = "") -> ProcessedDocument:
        """
        Preprocess a document.

        Args:
            file_content: Raw bytes of the file
            mime_type: Declared MIME type (may be empty)
            filename: Original file name, used for the extension fallback

        Returns:
            ProcessedDocument with text or binary payload

        Raises:
            UnsupportedMediaError: Type not recognised
            PreprocessingError: Word document could not be read
        """
        resolved = self.detect_mime_type(mime_type, filename)
        logger.info(f"Preprocessing {filename or 'file'} (declared: {mime_type}, resolved: {resolved})")

        if resolved in WORD_MIME_TYPES:
            return self._process_word(file_content, resolved, filename)

        if resolved == PDF_MIME:
            return self._process_pdf(file_content, filename)

        if resolved in IMAGE_MIME_TYPES:
            return ProcessedDocument(
                kind="binary",
                mime_type=resolved,
                payload=file_content,
                metadata={"file_type": IMAGE_MIME_TYPES[resolved], "size_bytes": len(file_content)},
            )

        logger.warning(f"Unsupported file type for {filename or 'file'}: {mime_type}")
        raise UnsupportedMediaError(f"Unsupported file type: {mime_type or filename or 'unknown'}")

    def detect_mime_type(self, mime_type: Optional[str], filename: str = "") -> Optional[str]:
        declared = (mime_type or "").split(";")[0].strip().lower()
        if declared in WORD_MIME_TYPES or declared in IMAGE_MIME_TYPES or declared == PDF_MIME:
            return "image/jpeg" if declared == "image/jpg" else declared

        extension = os.path.splitext(filename or "")[1].lower()
        return EXTENSION_MIME_TYPES.get(extension, declared or None)

    def _process_word(self, file_content: bytes, mime_type: str, filename: str) -> ProcessedDocument:
        try:
            doc = DocxDocument(io.BytesIO(file_content))
        except Exception as e:
            logger.error(f"Word extraction failed for {filename}: {str(e)}")
            raise PreprocessingError(f"Failed to read word document: {str(e)}") from e

        text_parts = []
        for paragraph in doc.paragraphs:
            if paragraph.text.strip():
                text_parts.append(paragraph.text)

        for table in doc.tables:
            for row in table.rows:
                row_text = " | ".join(cell.text.strip() for cell in row.cells)
                if row_text.strip(" |"):
                    text_parts.append(row_text)

        text = "\n\n".join(text_parts)
        if not text.strip():
            raise PreprocessingError(f"No text could be extracted from {filename or 'document'}")

        metadata: Dict[str, Any] = {
            "file_type": WORD_MIME_TYPES[mime_type],
            "word_count": len(text.split()),
            "character_count": len(text),
        }
        core = doc.core_properties
        if core.title:
            metadata["title"] = core.title
        if core.author:
            metadata["author"] = core.author

        return ProcessedDocument(kind="text", mime_type=mime_type, text=text, metadata=metadata)

    def _process_pdf(self, file_content: bytes, filename: str) -> ProcessedDocument:
        metadata: Dict[str, Any] = {"file_type": "pdf", "size_bytes": len(file_content)}

        # Metadata only; the model reads the PDF itself
        try:
            reader = PyPDF2.PdfReader(io.BytesIO(file_content))
            metadata["page_count"] = len(reader.pages)
            info = reader.metadata
            if info is not None:
                if info.title:
                    metadata["title"] = info.title
                if info.author:
                    metadata["author"] = info.author
        except Exception as e:
            logger.warning(f"PDF metadata read failed for {filename}: {str(e)}")

        return ProcessedDocument(kind="binary", mime_type=PDF_MIME, payload=file_content, metadata=metadata)
