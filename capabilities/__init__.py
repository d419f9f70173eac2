"""
capabilities package: backends for the side-effecting operations exposed as tools.

The tool dispatcher depends only on the interfaces in `capabilities.base`. Two sets
of implementations ship with the repository:

- mock_client: deterministic in-memory backends, the default, so the service runs
  without SMTP credentials and tests never leave the process.
- document / image / notifier: the live backends (pypdf + LLM document analysis,
  LLM vision image analysis, SMTP e-mail delivery).

`build_capabilities` selects a set based on the CAPABILITY_BACKEND environment
variable or `capabilities.backend` in config.json.
"""

import logging
from typing import Optional

from config import CONFIG
from .base import (
    CapabilityClients,
    CapabilityError,
    DeliveryError,
    DeliveryErrorCode,
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
from .mock_client import MockDocumentAnalyzer, MockImageAnalyzer, MockNotifier

logger = logging.getLogger(__name__)


def build_capabilities(backend: Optional[str] = None, client=None) -> CapabilityClients:
    """
    Construct the active capability backends.

    Args:
        backend (str, optional): "mock" or "live". Defaults to the configured backend.
        client: OpenAI-compatible client for the live analyzers; built on demand when omitted.

    Returns:
        CapabilityClients: document analyzer, image analyzer and notifier.
    """
    selected = (backend or CONFIG.get('capabilities', {}).get('backend', 'mock')).strip().lower()
    if selected == "live":
        from llm_cloud.provider import get_client
        from .document import LLMDocumentAnalyzer
        from .image import LLMImageAnalyzer
        from .notifier import SmtpNotifier

        llm_client = client or get_client()
        logger.info("Capability backend selected: live")
        return CapabilityClients(
            documents=LLMDocumentAnalyzer(llm_client),
            images=LLMImageAnalyzer(llm_client),
            notifier=SmtpNotifier(),
        )
    if selected != "mock":
        logger.warning("Unknown capability backend '%s'; falling back to mock.", selected)
    logger.info("Capability backend selected: mock")
    return CapabilityClients(
        documents=MockDocumentAnalyzer(),
        images=MockImageAnalyzer(),
        notifier=MockNotifier(),
    )


__all__ = [
    "CapabilityClients",
    "CapabilityError",
    "DeliveryError",
    "DeliveryErrorCode",
    "DeliveryReceipt",
    "DocumentAnalysis",
    "DocumentAnalyzer",
    "DocumentProcessingError",
    "ImageAnalysis",
    "ImageAnalyzer",
    "ImageProcessingError",
    "Notifier",
    "PolicyNotice",
    "MockDocumentAnalyzer",
    "MockImageAnalyzer",
    "MockNotifier",
    "build_capabilities",
]
