"""
PDF text extraction and LLM-backed document analysis.

`extract_pdf_text` turns PDF bytes into clean, bounded text using pypdf:
encrypted documents are refused, text is extracted from every page, control
characters and runs of whitespace are normalized, and the result is capped so a
huge document cannot blow up the follow-up model call. `LLMDocumentAnalyzer`
then asks the document-analysis model either a caller-supplied question about
the text or, by default, for a structured recap (executive summary, key points,
main topics, conclusion).
"""

import io
import logging
import re
from dataclasses import dataclass
from typing import Optional

from openai import OpenAI, OpenAIError
from pypdf import PdfReader

from config import CONFIG
from monitoring.metrics import CAPABILITY_REQUEST_TIME, track_latency
from shared.utils import build_completion_kwargs
from .base import DocumentAnalysis, DocumentAnalyzer, DocumentProcessingError

logger = logging.getLogger(__name__)

DEFAULT_MAX_TEXT_LENGTH = 50000
# Word-boundary truncation only applies when a space falls this close to the cap
WORD_BOUNDARY_WINDOW = 100

PASSWORD_PROTECTED_MESSAGE = "PDF is password protected and cannot be processed"
RECAP_TEMPLATE = "Recap this document please: {text}"
CUSTOM_PROMPT_TEMPLATE = "{prompt}\n\nDocument text:\n{text}"

CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
TABS = re.compile(r"\t+")
EXCESSIVE_SPACES = re.compile(r" {3,}")
MULTIPLE_NEWLINES = re.compile(r"\n{3,}")


@dataclass
class PdfText:
    """Extracted text and its metadata."""
    text: str
    page_count: int
    original_chars: int

    @property
    def extracted_chars(self) -> int:
        return len(self.text)


def clean_text(raw_text: str) -> str:
    """
    Normalize extracted text.

    Removes control characters (newlines and tabs excepted), converts tabs to a
    single space, reduces runs of three or more spaces to two and runs of three or
    more newlines to two, then trims the result.
    """
    if not raw_text or not raw_text.strip():
        return ""
    text = CONTROL_CHARS.sub("", raw_text)
    text = TABS.sub(" ", text)
    text = EXCESSIVE_SPACES.sub("  ", text)
    text = MULTIPLE_NEWLINES.sub("\n\n", text)
    return text.strip()


def apply_character_limit(text: str, max_length: int = DEFAULT_MAX_TEXT_LENGTH) -> str:
    """Cap `text` at `max_length`, ending on a word boundary when one is close to the cap."""
    if len(text) <= max_length:
        return text
    limited = text[:max_length]
    last_space = limited.rfind(" ")
    if last_space > max_length - WORD_BOUNDARY_WINDOW:
        limited = limited[:last_space]
    logger.info(f"[apply_character_limit] Text truncated from {len(text)} to {len(limited)} characters\n")
    return limited


def _describe_read_error(exc: Exception) -> str:
    message = str(exc).lower()
    if "password" in message or "encrypt" in message:
        return PASSWORD_PROTECTED_MESSAGE
    if "corrupt" in message or "damaged" in message:
        return "PDF file appears to be corrupted or damaged"
    if "memory" in message:
        return "PDF file is too large to process"
    return "File is not a valid PDF document"


def extract_pdf_text(content: bytes, max_length: Optional[int] = None) -> PdfText:
    """
    Extract cleaned, length-limited text from PDF bytes.

    Args:
        content (bytes): Raw PDF bytes.
        max_length (int, optional): Character cap; defaults to `documents.max_text_length`.

    Returns:
        PdfText: Final text, page count and the length of the raw extracted text.

    Raises:
        DocumentProcessingError: For password-protected, corrupted or non-PDF input.
    """
    if max_length is None:
        max_length = CONFIG.get('documents', {}).get('max_text_length', DEFAULT_MAX_TEXT_LENGTH)
    if not content:
        raise DocumentProcessingError("File is not a valid PDF document")

    try:
        reader = PdfReader(io.BytesIO(content))
        if reader.is_encrypted:
            raise DocumentProcessingError(PASSWORD_PROTECTED_MESSAGE)
        page_count = len(reader.pages)
        raw_text = "\n".join((page.extract_text() or "") for page in reader.pages)
    except DocumentProcessingError:
        raise
    except MemoryError as exc:
        raise DocumentProcessingError("PDF file is too large to process") from exc
    except Exception as exc:
        # pypdf raises a wide range of built-in errors on malformed input
        logger.error(f"[extract_pdf_text] Failed to read PDF: {exc}\n")
        raise DocumentProcessingError(_describe_read_error(exc)) from exc

    final_text = apply_character_limit(clean_text(raw_text), max_length)
    logger.info(
        f"[extract_pdf_text] Extracted {len(final_text)} characters from {page_count} page(s)\n"
    )
    return PdfText(text=final_text, page_count=page_count, original_chars=len(raw_text))


class LLMDocumentAnalyzer(DocumentAnalyzer):
    """
    Document analyzer that extracts PDF text locally and asks the LLM to analyze it.

    Args:
        client (OpenAI): OpenAI-compatible client (see `llm_cloud.provider.get_client`).
        system_prompt (str, optional): Analyst persona; defaults to the configured document prompt.
    """

    def __init__(self, client: OpenAI, system_prompt: Optional[str] = None) -> None:
        self.client = client
        self.system_prompt = system_prompt or CONFIG.get('document_analysis_prompt', '')

    @track_latency(CAPABILITY_REQUEST_TIME, labels=lambda self: {'capability': 'document'})
    def analyze_document(self, content: bytes, media_type: str, prompt: Optional[str] = None) -> DocumentAnalysis:
        if media_type and media_type != "application/pdf":
            raise DocumentProcessingError(f"Unsupported document type: {media_type}")

        pdf = extract_pdf_text(content)
        if not pdf.text:
            raise DocumentProcessingError("No text could be extracted from the PDF")

        if prompt and prompt.strip():
            user_message = CUSTOM_PROMPT_TEMPLATE.format(prompt=prompt.strip(), text=pdf.text)
        else:
            user_message = RECAP_TEMPLATE.format(text=pdf.text)

        try:
            response = self.client.chat.completions.create(
                messages=[
                    {"role": "system", "content": self.system_prompt},
                    {"role": "user", "content": user_message},
                ],
                **build_completion_kwargs('document_analysis'),
            )
        except OpenAIError as exc:
            logger.error(f"[analyze_document] Document analysis request failed: {exc}\n")
            raise DocumentProcessingError(f"Document analysis failed: {exc}") from exc

        analysis = (response.choices[0].message.content or "").strip()
        return DocumentAnalysis(text=analysis, page_count=pdf.page_count, extracted_chars=pdf.extracted_chars)
