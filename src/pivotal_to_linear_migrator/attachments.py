"""Attachment migration from Pivotal Tracker to Linear storage."""

from __future__ import annotations

import logging
import mimetypes
from typing import TYPE_CHECKING

import requests

from .exceptions import MigrationError
from .models import FileAttachment, UploadedFile

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .linear_client import LinearClient
    from .pivotal_client import PivotalClient

logger: logging.Logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def detect_content_type(attachment: FileAttachment) -> str:
    """Content type from the source metadata, else guessed from the filename."""
    if attachment.content_type:
        return attachment.content_type

    guessed, _ = mimetypes.guess_type(attachment.filename)
    if guessed:
        return guessed

    logger.warning(f"Using default MIME type for {attachment.filename}: {DEFAULT_CONTENT_TYPE}")
    return DEFAULT_CONTENT_TYPE


def render_markdown(uploaded: Sequence[UploadedFile]) -> str:
    """Markdown for uploaded files, one paragraph each."""
    return "\n\n".join(u.to_markdown() for u in uploaded)


class AttachmentUploader:
    """Reads attachment bytes from the export or Pivotal and uploads them to Linear.

    Bytes live only for the duration of one upload. A failed read or upload
    is logged and reported as None so the caller can leave the file out and
    keep the surrounding text.
    """

    _pivotal: PivotalClient
    _linear: LinearClient
    dry_run: bool
    uploaded_count: int

    def __init__(self, pivotal: PivotalClient, linear: LinearClient, *, dry_run: bool = False) -> None:
        self._pivotal = pivotal
        self._linear = linear
        self.dry_run = dry_run
        self.uploaded_count = 0

    def _read(self, attachment: FileAttachment) -> bytes:
        if attachment.local_path is not None:
            logger.debug(f"Using exported attachment {attachment.local_path}")
            return attachment.local_path.read_bytes()
        return self._pivotal.download_attachment(attachment.download_url)

    def upload(self, attachment: FileAttachment, context: str = "") -> UploadedFile | None:
        ctx = f" in {context}" if context else ""
        try:
            content = self._read(attachment)
        except (MigrationError, requests.RequestException, OSError) as e:
            logger.error(f"Failed to read attachment {attachment.filename}{ctx}: {e}")
            return None

        content_type = detect_content_type(attachment)
        if self.dry_run:
            logger.info(f"[DRY RUN] Would upload attachment {attachment.filename} ({content_type}){ctx}")
            return None

        try:
            url = self._linear.upload_file(attachment.filename, content, content_type)
        except (MigrationError, requests.RequestException) as e:
            logger.error(f"Failed to upload attachment {attachment.filename}{ctx}: {e}")
            return None

        self.uploaded_count += 1
        return UploadedFile(filename=attachment.filename, url=url, content_type=content_type)

    def upload_all(self, attachments: list[FileAttachment], context: str = "") -> list[UploadedFile]:
        uploaded = (self.upload(a, context) for a in attachments)
        return [u for u in uploaded if u is not None]
