"""
Deterministic mock capability backends for local runs, demos, and tests.

These implementations satisfy the interfaces in `capabilities.base` without any
network access or credentials, so the whole service can run end-to-end with only
an LLM key. Outputs depend only on the inputs, which keeps tests reproducible:

- MockDocumentAnalyzer accepts anything that starts with a PDF header and counts
  page objects in the raw bytes.
- MockImageAnalyzer reports the image size and type.
- MockNotifier validates notices exactly like the SMTP notifier and records what
  it "sent" instead of delivering it. It can be told to fail with a given code.
"""

import re
import threading
from typing import List, Optional

from .base import (
    DeliveryError,
    DeliveryReceipt,
    DocumentAnalysis,
    DocumentAnalyzer,
    DocumentProcessingError,
    ImageAnalysis,
    ImageAnalyzer,
    ImageProcessingError,
    Notifier,
    PolicyNotice,
)
from .document import PASSWORD_PROTECTED_MESSAGE
from .notifier import validate_notice

PDF_HEADER = b"%PDF"
PAGE_OBJECT = re.compile(rb"/Type\s*/Page(?!s)")


class MockDocumentAnalyzer(DocumentAnalyzer):
    """In-memory document analyzer with deterministic output."""

    def analyze_document(self, content: bytes, media_type: str, prompt: Optional[str] = None) -> DocumentAnalysis:
        if not content or not content.startswith(PDF_HEADER):
            raise DocumentProcessingError("File is not a valid PDF document")
        if b"/Encrypt" in content:
            raise DocumentProcessingError(PASSWORD_PROTECTED_MESSAGE)

        page_count = max(len(PAGE_OBJECT.findall(content)), 1)
        extracted_chars = len(content)
        focus = prompt.strip() if prompt and prompt.strip() else "general recap"
        text = (
            f"Mock analysis ({focus}): the document has {page_count} page(s) "
            f"and {extracted_chars} characters of content."
        )
        return DocumentAnalysis(text=text, page_count=page_count, extracted_chars=extracted_chars)


class MockImageAnalyzer(ImageAnalyzer):
    """In-memory image analyzer with deterministic output."""

    def analyze_image(self, content: bytes, media_type: str, prompt: Optional[str] = None) -> ImageAnalysis:
        if not content:
            raise ImageProcessingError("Image file is empty")
        if not (media_type or "").startswith("image/"):
            raise ImageProcessingError(f"Unsupported image type: {media_type}")
        focus = prompt.strip() if prompt and prompt.strip() else "general description"
        return ImageAnalysis(text=f"Mock image analysis ({focus}): a {media_type} image of {len(content)} bytes.")


class MockNotifier(Notifier):
    """
    Records notices instead of delivering them.

    Args:
        failure_code (str, optional): When set, every send raises `DeliveryError` with this
            code after validation, which lets tests exercise delivery failures.
    """

    def __init__(self, failure_code: Optional[str] = None) -> None:
        self.failure_code = failure_code
        self.sent: List[PolicyNotice] = []
        self._lock = threading.Lock()

    def send_notification(self, notice: PolicyNotice) -> DeliveryReceipt:
        validate_notice(notice)
        if self.failure_code:
            raise DeliveryError(self.failure_code, f"Mock delivery failure: {self.failure_code}")
        with self._lock:
            self.sent.append(notice)
            delivery_id = f"mock-{len(self.sent):06d}"
        return DeliveryReceipt(delivery_id=delivery_id, recipient=notice.recipient)
