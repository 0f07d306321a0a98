"""
ThemeSync Backend — Transcript File Parsing

Upload validation (extension, content type, size) and text extraction:
    .txt / .md / .doc → UTF-8 decode
    .pdf              → pdfminer.six
    .docx             → python-docx
All extracted text goes through normalize_text before it is stored.
"""

import io
import re
from pathlib import PurePath

from docx import Document
from pdfminer.high_level import extract_text as pdf_extract_text

from themesync.config import log, settings
from themesync.errors import ValidationError

ALLOWED_EXTENSIONS = ("txt", "md", "pdf", "doc", "docx")
ALLOWED_CONTENT_TYPES = (
    "text/plain",
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
)

_BLANK_RUN_RE = re.compile(r"\n{3,}")


def file_extension(filename: str) -> str:
    return PurePath(filename or "").suffix.lower().lstrip(".")


def normalize_text(content: str) -> str:
    """
    Normalize line endings, collapse runs of blank lines, tabs to spaces.

    Quote text stays verbatim: no punctuation or inner whitespace is touched.
    """
    text = content.replace("\r\n", "\n").replace("\r", "\n")
    text = _BLANK_RUN_RE.sub("\n\n", text)
    return text.replace("\t", " ").strip()


def validate_upload(filename: str, content_type: str | None, size: int) -> str:
    """
    Check one uploaded file. Returns its extension.

    Markdown files are accepted whatever content type the client sent,
    since browsers report them inconsistently.

    Raises:
        ValidationError: Missing name, unsupported type, or over the size limit.
    """
    if not filename:
        raise ValidationError("Invalid file", "Filename is required")

    extension = file_extension(filename)
    if extension not in ALLOWED_EXTENSIONS:
        raise ValidationError(
            "Unsupported file type",
            f"{filename}: allowed types are {', '.join(ALLOWED_EXTENSIONS)}",
        )

    base_type = (content_type or "").split(";")[0].strip().lower()
    if extension != "md" and base_type not in ALLOWED_CONTENT_TYPES:
        raise ValidationError("Unsupported file type", f"{filename}: content type '{base_type or 'unknown'}'")

    if size > settings.max_upload_bytes:
        limit_mb = settings.max_upload_bytes // (1024 * 1024)
        raise ValidationError("File too large", f"{filename} exceeds the {limit_mb}MB limit")
    if size == 0:
        raise ValidationError("Invalid file", f"{filename} is empty")

    return extension


def extract_pdf_text(data: bytes) -> str:
    return pdf_extract_text(io.BytesIO(data))


def extract_docx_text(data: bytes) -> str:
    document = Document(io.BytesIO(data))
    return "\n".join(paragraph.text for paragraph in document.paragraphs)


def parse_file(filename: str, data: bytes) -> str:
    """
    Extract normalized text from an uploaded file.

    Raises:
        ValidationError: Unsupported type, unreadable file, or no text found.
    """
    extension = file_extension(filename)
    try:
        if extension == "pdf":
            text = extract_pdf_text(data)
        elif extension == "docx":
            text = extract_docx_text(data)
        elif extension in ("txt", "md", "doc"):
            text = data.decode("utf-8", errors="replace")
        else:
            raise ValidationError("Unsupported file type", f"Unsupported file type: {extension or 'none'}")
    except ValidationError:
        raise
    except Exception as e:
        log("WARN", "file parse failed", filename=filename, file_type=extension, error=str(e))
        raise ValidationError(f"Failed to parse {filename}", str(e)) from e

    text = normalize_text(text)
    if not text:
        raise ValidationError(f"Failed to parse {filename}", "No text content found")
    log("INFO", "file parsed", filename=filename, file_type=extension, chars=len(text))
    return text
