"""
core/validation.py

Request-level checks applied before a turn starts.

A rejected request never reaches the staging cache or the model; the orchestrator
reports it as a failed turn with the validation code.
"""

import os
from typing import Any, Dict, List, Optional

from shared.models import UploadedFile

DEFAULT_LIMITS = {
    'max_message_length': 2000,
    'max_files_per_message': 5,
    'max_file_size_bytes': 10 * 1024 * 1024,
    'allowed_media_types': [
        'application/pdf', 'image/jpeg', 'image/jpg', 'image/png', 'image/gif', 'image/webp',
    ],
    'allowed_extensions': ['.pdf', '.jpg', '.jpeg', '.png', '.gif', '.webp'],
}


class TurnValidationError(ValueError):
    """A request that cannot be processed as submitted. `message` is safe to show to the user."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


def validate_turn_request(message: Optional[str], files: Optional[List[UploadedFile]],
                          limits: Optional[Dict[str, Any]] = None) -> None:
    """
    Validate the message and uploads of a turn.

    Args:
        message (str): User message.
        files (List[UploadedFile]): Uploaded files, possibly empty.
        limits (dict, optional): The `chat` section of the configuration; missing keys use defaults.

    Raises:
        TurnValidationError: With one of INVALID_MESSAGE, MESSAGE_TOO_LONG, TOO_MANY_FILES,
            EMPTY_FILE, FILE_SIZE_EXCEEDED or FILE_VALIDATION_FAILED.
    """
    limits = {**DEFAULT_LIMITS, **(limits or {})}

    if message is None or not message.strip():
        raise TurnValidationError("INVALID_MESSAGE", "Message is required and cannot be empty")
    max_length = limits['max_message_length']
    if len(message) > max_length:
        raise TurnValidationError("MESSAGE_TOO_LONG", f"Message exceeds maximum length of {max_length} characters")

    files = files or []
    max_files = limits['max_files_per_message']
    if len(files) > max_files:
        raise TurnValidationError(
            "TOO_MANY_FILES",
            f"Maximum {max_files} files allowed per message, but {len(files)} were provided",
        )

    allowed_types = {t.lower() for t in limits['allowed_media_types']}
    allowed_extensions = {e.lower() for e in limits['allowed_extensions']}
    for upload in files:
        _validate_file(upload, limits['max_file_size_bytes'], allowed_types, allowed_extensions)


def _validate_file(upload: UploadedFile, max_size: int, allowed_types: set, allowed_extensions: set) -> None:
    if upload.size == 0:
        raise TurnValidationError("EMPTY_FILE", "Empty file upload detected")
    if upload.size > max_size:
        raise TurnValidationError(
            "FILE_SIZE_EXCEEDED",
            f"File '{upload.filename}' size ({upload.size} bytes) exceeds maximum allowed size ({max_size} bytes)",
        )
    if (upload.media_type or "").lower() not in allowed_types:
        raise TurnValidationError(
            "FILE_VALIDATION_FAILED",
            f"Invalid file type for {upload.filename}. Allowed types: PDF, JPG, PNG, GIF, WEBP",
        )
    extension = os.path.splitext(upload.filename or "")[1].lower()
    if extension and extension not in allowed_extensions:
        raise TurnValidationError(
            "FILE_VALIDATION_FAILED",
            f"Invalid file extension for {upload.filename}. Allowed extensions: {', '.join(sorted(allowed_extensions))}",
        )
