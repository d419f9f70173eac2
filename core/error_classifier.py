"""
core/error_classifier.py

Maps heterogeneous failures onto a closed, user-presentable error taxonomy.

Failures reach the classifier from several places: capability backends, the file
staging cache, the OpenAI SDK, the network stack, or plain strings produced by a
third-party library. The classifier reduces each of them to a `ClassifiedError`
with a stable code and a short, non-technical message. Known exception types are
checked first, then keyword matching over the message text; anything else lands
in the generic category. `classify` never raises.
"""

import logging
from typing import Optional, Union

import openai

from capabilities.base import DeliveryError, DocumentProcessingError, ImageProcessingError
from services.file_staging import StagedFileNotFoundError
from shared.models import ClassifiedError, ErrorCategory

logger = logging.getLogger(__name__)

# User-facing message per category. Never include exception text here.
CATEGORY_MESSAGES = {
    ErrorCategory.FILE_ACCESS_ERROR: "The uploaded file could not be accessed. Please upload it again and retry.",
    ErrorCategory.PDF_PROCESSING_ERROR: "The PDF document could not be processed. It may be corrupted, password-protected, or in an unsupported format.",
    ErrorCategory.IMAGE_PROCESSING_ERROR: "The image could not be analyzed. Please check the file and try again.",
    ErrorCategory.EMAIL_SENDING_ERROR: "The email could not be sent. Please check the address and try again later.",
    ErrorCategory.API_KEY_INVALID: "The assistant is not able to authenticate with its AI service right now. Please contact support.",
    ErrorCategory.API_RATE_LIMIT: "The assistant is receiving too many requests right now. Please try again in a moment.",
    ErrorCategory.API_TIMEOUT: "The request took too long to complete. Please try again.",
    ErrorCategory.SERVICE_UNAVAILABLE: "The AI service is temporarily unavailable. Please try again later.",
    ErrorCategory.INTERNAL_ERROR: "An unexpected error occurred while processing your message.",
}

# Ordered keyword rules: (category, required words, any-of words). First match wins.
KEYWORD_RULES = [
    (ErrorCategory.PDF_PROCESSING_ERROR, ("pdf",), ("processing", "extraction")),
    (ErrorCategory.IMAGE_PROCESSING_ERROR, ("image", "analysis"), ()),
    (ErrorCategory.EMAIL_SENDING_ERROR, ("email", "send"), ()),
    (ErrorCategory.FILE_ACCESS_ERROR, ("file",), ("access", "not found")),
    (ErrorCategory.API_KEY_INVALID, (), ("unauthorized", "invalid api key", "authentication")),
    (ErrorCategory.API_RATE_LIMIT, (), ("rate limit", "too many requests")),
    (ErrorCategory.API_TIMEOUT, (), ("timeout", "timed out")),
    (ErrorCategory.SERVICE_UNAVAILABLE, (), ("service unavailable", "server error", "503", "502")),
]


class ErrorClassifier:
    """
    Classifies failures into `ErrorCategory` values.

    Usage:
        classified = ErrorClassifier().classify(exc)
        classified.code      # e.g. "API_RATE_LIMIT"
        classified.message   # safe to show to the user
    """

    def classify(self, error: Union[BaseException, str, None]) -> ClassifiedError:
        """
        Classify an exception or an error message.

        Args:
            error: An exception instance, a message string, or None.

        Returns:
            ClassifiedError: Stable code and user-presentable message. Falls back to
            INTERNAL_ERROR for anything unrecognized.
        """
        try:
            category = None
            if isinstance(error, BaseException):
                category = self._classify_type(error)
                text = str(error)
            else:
                text = error or ""
            if category is None:
                category = self._classify_text(text)
        except Exception as exc:
            logger.error(f"[ErrorClassifier] Classification failed: {exc}")
            category = ErrorCategory.INTERNAL_ERROR

        return self.for_category(category)

    @staticmethod
    def for_category(category: ErrorCategory) -> ClassifiedError:
        return ClassifiedError(code=category.value, message=CATEGORY_MESSAGES[category], category=category)

    def _classify_type(self, error: BaseException) -> Optional[ErrorCategory]:
        if isinstance(error, (StagedFileNotFoundError, FileNotFoundError)):
            return ErrorCategory.FILE_ACCESS_ERROR
        if isinstance(error, DocumentProcessingError):
            return ErrorCategory.PDF_PROCESSING_ERROR
        if isinstance(error, ImageProcessingError):
            return ErrorCategory.IMAGE_PROCESSING_ERROR
        if isinstance(error, DeliveryError):
            return ErrorCategory.EMAIL_SENDING_ERROR
        if isinstance(error, (openai.AuthenticationError, openai.PermissionDeniedError)):
            return ErrorCategory.API_KEY_INVALID
        if isinstance(error, openai.RateLimitError):
            return ErrorCategory.API_RATE_LIMIT
        # APITimeoutError subclasses APIConnectionError, so it is checked first
        if isinstance(error, (openai.APITimeoutError, TimeoutError)):
            return ErrorCategory.API_TIMEOUT
        if isinstance(error, (openai.APIConnectionError, openai.InternalServerError)):
            return ErrorCategory.SERVICE_UNAVAILABLE
        return None

    def _classify_text(self, text: str) -> ErrorCategory:
        lowered = text.lower()
        if not lowered:
            return ErrorCategory.INTERNAL_ERROR
        for category, required, any_of in KEYWORD_RULES:
            if all(word in lowered for word in required) and (not any_of or any(word in lowered for word in any_of)):
                return category
        return ErrorCategory.INTERNAL_ERROR
