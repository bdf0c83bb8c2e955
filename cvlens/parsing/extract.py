from __future__ import annotations

import hashlib
import logging
from io import BytesIO
from zipfile import BadZipFile, ZipFile

from cvlens.core.errors import DocumentExtractionError, UnsupportedDocumentError

from .models import ExtractedDocument

logger = logging.getLogger(__name__)

CONTENT_TYPE_EXTENSION_HINTS = {
    "application/pdf": "pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "application/msword": "doc",
    "text/plain": "txt",
    "text/markdown": "md",
}

PDF_MAGIC = b"%PDF-"
ZIP_MAGICS = (b"PK\x03\x04", b"PK\x05\x06", b"PK\x07\x08")
TEXT_EXTENSIONS = {"txt", "md"}


def _compute_doc_id(text: str, file_name: str) -> str:
    seed = text if text.strip() else file_name
    digest = hashlib.sha256(seed.encode("utf-8", errors="ignore")).hexdigest()
    return digest[:16]


def resolve_extension(filename: str | None, mime_type: str | None) -> str:
    name = (filename or "").strip()
    ext = name.rsplit(".", 1)[-1].lower() if "." in name else ""
    if ext:
        return ext
    content_type = (mime_type or "").split(";", 1)[0].strip().lower()
    return CONTENT_TYPE_EXTENSION_HINTS.get(content_type, "")


def _is_zip_payload(content: bytes) -> bool:
    return any(content.startswith(prefix) for prefix in ZIP_MAGICS)


def _zip_has_paths(content: bytes, prefixes: tuple[str, ...]) -> bool:
    try:
        with ZipFile(BytesIO(content)) as archive:
            names = archive.namelist()
    except BadZipFile:
        return False
    return any(any(name.startswith(prefix) for prefix in prefixes) for name in names)


def _is_probably_text_payload(content: bytes) -> bool:
    if not content:
        return False
    sample = content[:4096]
    if b"\x00" in sample:
        return False
    try:
        sample.decode("utf-8")
        return True
    except UnicodeDecodeError:
        pass
    printable = 0
    for byte in sample:
        if byte in (9, 10, 13) or 32 <= byte <= 126:
            printable += 1
    return (printable / len(sample)) >= 0.75


def validate_signature(ext: str, content: bytes) -> None:
    if ext == "doc":
        raise UnsupportedDocumentError("Legacy .doc is not supported. Convert to .docx.")
    if ext == "pdf":
        if not content.startswith(PDF_MAGIC):
            raise UnsupportedDocumentError("File signature does not match .pdf content.")
        return
    if ext == "docx":
        if not _is_zip_payload(content) or not _zip_has_paths(content, ("word/",)):
            raise UnsupportedDocumentError("File signature does not match .docx content.")
        return
    if ext in TEXT_EXTENSIONS:
        if not _is_probably_text_payload(content):
            raise UnsupportedDocumentError(f"File signature does not match .{ext} text content.")
        return
    raise UnsupportedDocumentError("Unsupported file type. Please upload PDF or DOCX.")


def _extract_pdf(content: bytes, details: dict) -> str:
    from pypdf import PdfReader
    from pypdf.errors import PdfReadError

    try:
        reader = PdfReader(BytesIO(content))
        page_chunks: list[str] = []
        for page in reader.pages:
            page_text = page.extract_text() or ""
            if page_text.strip():
                page_chunks.append(page_text)
    except (PdfReadError, ValueError, KeyError, TypeError) as exc:
        raise DocumentExtractionError("Unable to extract text from this PDF file.", details=str(exc)) from exc
    details["pages"] = len(reader.pages)
    return "\n\n".join(page_chunks)


def _table_lines(table) -> list[str]:
    lines: list[str] = []
    for row in table.rows:
        cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
        if cells:
            # merged cells repeat their text once per grid column
            lines.append("\n".join(dict.fromkeys(cells)))
    return lines


def _extract_docx(content: bytes, details: dict) -> str:
    from docx import Document
    from docx.table import Table

    try:
        doc = Document(BytesIO(content))
    except (BadZipFile, KeyError, ValueError) as exc:
        raise DocumentExtractionError("Unable to extract text from this Word document.", details=str(exc)) from exc

    # Many CV templates put the role blocks in layout tables, so tables are
    # emitted where they sit in the body.
    lines: list[str] = []
    for block in doc.iter_inner_content():
        if isinstance(block, Table):
            lines.extend(_table_lines(block))
        elif block.text.strip():
            lines.append(block.text)
    details["paragraphs"] = len(doc.paragraphs)
    details["tables"] = len(doc.tables)
    return "\n".join(lines)


def _extract_txt(content: bytes, details: dict) -> str:
    for encoding in ("utf-8-sig", "utf-16", "latin-1"):
        try:
            text = content.decode(encoding)
            details["encoding"] = encoding
            return text
        except UnicodeDecodeError:
            continue
    raise DocumentExtractionError("Unable to decode text file.")


def extract_text(content: bytes, *, filename: str | None = None, mime_type: str | None = None) -> ExtractedDocument:
    """Extract plain text from an uploaded CV (PDF, DOCX or plain text)."""
    if not content:
        raise DocumentExtractionError("Uploaded file is empty.")

    ext = resolve_extension(filename, mime_type)
    validate_signature(ext, content)

    details: dict = {"extension": ext}
    warnings: list[str] = []
    if ext == "pdf":
        source_type = "pdf"
        text = _extract_pdf(content, details)
    elif ext == "docx":
        source_type = "docx"
        text = _extract_docx(content, details)
    else:
        source_type = "txt"
        text = _extract_txt(content, details)

    if not text.strip():
        warnings.append(f"No extractable text found in {source_type.upper()}.")
    file_name = filename or f"upload.{ext}"
    logger.info("document_extracted source_type=%s chars=%d file_name=%s", source_type, len(text), file_name)
    return ExtractedDocument(
        doc_id=_compute_doc_id(text, file_name),
        file_name=file_name,
        source_type=source_type,
        text=text,
        details=details,
        warnings=warnings,
    )
