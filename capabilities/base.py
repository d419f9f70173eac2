"""
Backend-agnostic interfaces for the side-effecting capabilities exposed as tools.

This module defines the contracts that every concrete capability backend must
fulfill: document analysis, image analysis and outbound policy notifications. The
tool handlers depend only on these interfaces and on the small result and error
types declared here, so a backend can be swapped (mock for local runs and tests,
LLM/SMTP-backed for production) without touching the dispatcher or the orchestrator.

Every capability reports failure by raising a subclass of `CapabilityError`. The
dispatcher turns those into short conversational explanations; callers never see
a raw exception.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class CapabilityError(Exception):
    """Base class for failures reported by a capability backend."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class DocumentProcessingError(CapabilityError):
    """The document could not be read or analyzed."""


class ImageProcessingError(CapabilityError):
    """The image could not be analyzed."""


class DeliveryErrorCode:
    """Reason codes carried by `DeliveryError`."""
    INVALID_EMAIL = "INVALID_EMAIL"
    PROVIDER_REJECTED = "PROVIDER_REJECTED"
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class DeliveryError(CapabilityError):
    """An outbound notification was not delivered."""

    def __init__(self, code: str, reason: str) -> None:
        super().__init__(reason)
        self.code = code

    def __str__(self) -> str:
        return f"{self.code}: {self.reason}"


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass
class DocumentAnalysis:
    text: str
    page_count: int
    extracted_chars: int


@dataclass
class ImageAnalysis:
    text: str


@dataclass
class PolicyNotice:
    """Fields of a policy information notification."""
    recipient: str
    first_name: str
    last_name: str
    policy_number: str
    vin: str
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass
class DeliveryReceipt:
    delivery_id: str
    recipient: str


# ---------------------------------------------------------------------------
# Interfaces
# ---------------------------------------------------------------------------

class DocumentAnalyzer(ABC):
    """Extracts text from a document and produces an analysis of it."""

    @abstractmethod
    def analyze_document(self, content: bytes, media_type: str, prompt: Optional[str] = None) -> DocumentAnalysis:
        """
        Analyze a document.

        Args:
            content (bytes): Raw document bytes.
            media_type (str): Declared media type, e.g. "application/pdf".
            prompt (Optional[str]): What to look for. When omitted the implementation
                produces a general recap of the document.

        Returns:
            DocumentAnalysis: Analysis text plus the page count and number of characters extracted.

        Raises:
            DocumentProcessingError: If the document cannot be read or analyzed.
        """
        raise NotImplementedError


class ImageAnalyzer(ABC):
    """Describes or answers questions about an image."""

    @abstractmethod
    def analyze_image(self, content: bytes, media_type: str, prompt: Optional[str] = None) -> ImageAnalysis:
        """
        Analyze an image.

        Args:
            content (bytes): Raw image bytes.
            media_type (str): Declared media type, e.g. "image/png".
            prompt (Optional[str]): Question about the image. When omitted the
                implementation produces a general description.

        Raises:
            ImageProcessingError: If the image cannot be analyzed.
        """
        raise NotImplementedError


class Notifier(ABC):
    """Delivers policy information to a customer."""

    @abstractmethod
    def send_notification(self, notice: PolicyNotice) -> DeliveryReceipt:
        """
        Deliver a policy notice.

        Returns:
            DeliveryReceipt: Provider-assigned delivery id and the recipient.

        Raises:
            DeliveryError: With a `DeliveryErrorCode` describing why delivery failed.
        """
        raise NotImplementedError


@dataclass
class CapabilityClients:
    """The set of capability backends injected into the tool dispatcher."""
    documents: DocumentAnalyzer
    images: ImageAnalyzer
    notifier: Notifier
