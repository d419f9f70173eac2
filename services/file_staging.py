"""
Per-turn staging cache for uploaded files.

Uploaded files reach the model only as text: the orchestrator lists each file's
standardized logical path in the user message, and when the model later calls a
tool with that path the dispatcher resolves it back to the bytes through this cache.

A `FileStagingCache` belongs to exactly one turn. It is created by the orchestrator,
populated synchronously before the model is called, and discarded when the turn
ends, so files from one turn are never visible to another turn or to a concurrent
turn of a different conversation.
"""

import posixpath
from typing import Dict, Iterable, List

from config.logging_config import get_logger
from shared.models import StagedFile, UploadedFile

logger = get_logger(__name__)

UPLOAD_ROOT = "/uploaded"


class StagedFileNotFoundError(LookupError):
    """Raised when a path does not name a file staged in the current turn."""

    def __init__(self, path: str) -> None:
        super().__init__(f"File not found: {path}")
        self.path = path


def _safe_filename(filename: str) -> str:
    # Keep only the final component so client-side directories never leak into the path.
    name = (filename or "").replace("\\", "/")
    name = posixpath.basename(name)
    return name or "unnamed"


def build_file_path(conversation_id: str, filename: str) -> str:
    """
    Compute the standardized logical path of an upload.

    Args:
        conversation_id (str): Conversation the file was uploaded to.
        filename (str): Original filename as supplied by the client.

    Returns:
        str: ``/uploaded/{conversationId}/{originalFilename}``
    """
    return f"{UPLOAD_ROOT}/{conversation_id}/{_safe_filename(filename)}"


class FileStagingCache:
    """
    Map from logical path to staged file for one turn of one conversation.

    `stage` replaces the whole index; uploading the same filename twice in one turn
    leaves a single path pointing at the last file's bytes.
    """

    def __init__(self, conversation_id: str) -> None:
        self.conversation_id = conversation_id
        self._files: Dict[str, StagedFile] = {}

    def stage(self, files: Iterable[UploadedFile]) -> Dict[str, StagedFile]:
        """
        Register the turn's uploads under their logical paths.

        Args:
            files (Iterable[UploadedFile]): Uploads of the current turn (may be empty).

        Returns:
            Dict[str, StagedFile]: The full path index after staging.
        """
        index: Dict[str, StagedFile] = {}
        for upload in files or []:
            path = build_file_path(self.conversation_id, upload.filename)
            index[path] = StagedFile(
                path=path,
                filename=_safe_filename(upload.filename),
                content=upload.content,
                media_type=upload.media_type,
            )
            logger.debug(
                f"[stage] Staged {path} ({upload.media_type}, {upload.size} bytes)\n",
                extra={'conversation_id': self.conversation_id},
            )
        self._files = index
        if index:
            logger.info(
                f"[stage] {len(index)} file(s) staged for this turn\n",
                extra={'conversation_id': self.conversation_id},
            )
        return dict(index)

    def resolve(self, path: str) -> StagedFile:
        """
        Look up a staged file by its exact logical path.

        Raises:
            StagedFileNotFoundError: If nothing is staged under `path`.
        """
        key = (path or "").strip()
        staged = self._files.get(key)
        if staged is None:
            raise StagedFileNotFoundError(key)
        return staged

    def paths(self) -> List[str]:
        return list(self._files.keys())

    def __contains__(self, path: str) -> bool:
        return path in self._files

    def __len__(self) -> int:
        return len(self._files)
