"""
Attachment assembly for invoice emails.

WHAT: Chooses which of an invoice's files go out with an email and fetches
their bytes from object storage.

WHY: The recipient decides what is attached:
- client: every invoice file, plus timesheets when the client requires them
- accountant: invoice files only; timesheets never go to the accountant

HOW: Fetches fan out concurrently with asyncio.gather and all of them
settle before anything is raised. If any file is missing or any fetch
fails the whole assembly fails with the first failure in file order;
there is no partial-attachment send.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from invoice_mailer.core.exceptions import AttachmentNotFoundError
from invoice_mailer.models.email_history import RecipientType
from invoice_mailer.models.invoice import InvoiceFileType
from invoice_mailer.services.storage import ObjectStorage

logger = logging.getLogger(__name__)


CONTENT_TYPES = {
    "pdf": "application/pdf",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "txt": "text/plain",
    "csv": "text/csv",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class FileRef:
    """A file key and its invoice file type."""

    key: str
    type: str


@dataclass(frozen=True)
class Attachment:
    """An attachment ready to be added to a message."""

    filename: str
    content: bytes
    content_type: str

    @property
    def maintype(self) -> str:
        return self.content_type.split("/", 1)[0]

    @property
    def subtype(self) -> str:
        return self.content_type.split("/", 1)[1]


def filename_from_key(file_key: str) -> str:
    """Last path segment of a storage key."""
    return file_key.rsplit("/", 1)[-1]


def content_type_for(filename: str) -> str:
    """Content type from the file extension, defaulting to a generic binary type."""
    if "." not in filename:
        return DEFAULT_CONTENT_TYPE
    extension = filename.rsplit(".", 1)[-1].lower()
    return CONTENT_TYPES.get(extension, DEFAULT_CONTENT_TYPE)


def select_files(
    files: Iterable,
    recipient_type: RecipientType,
    requires_timesheet: bool,
) -> List[FileRef]:
    """
    Pick the files to attach for a recipient.

    Args:
        files: InvoiceFile rows (or anything with file_key and file_type)
        recipient_type: client or accountant
        requires_timesheet: The client's requires_timesheet flag

    Returns:
        File references in their original order
    """
    allowed = {InvoiceFileType.INVOICE.value}
    if recipient_type == RecipientType.CLIENT and requires_timesheet:
        allowed.add(InvoiceFileType.TIMESHEET.value)

    return [
        FileRef(key=f.file_key, type=f.file_type)
        for f in files
        if f.file_key and f.file_type in allowed
    ]


class AttachmentAssembler:
    """
    Fetches and types attachments.

    Example:
        assembler = AttachmentAssembler(ObjectStorage())
        attachments = await assembler.assemble(select_files(invoice.files, RecipientType.CLIENT, True))
    """

    def __init__(self, storage: Optional[ObjectStorage] = None):
        self.storage = storage or ObjectStorage()

    async def assemble(self, file_refs: List[FileRef]) -> List[Attachment]:
        """
        Fetch every referenced file.

        Raises:
            AttachmentNotFoundError: If any key is missing in storage
            StorageError: If storage fails for another reason
        """
        results = await asyncio.gather(
            *(self._fetch(ref) for ref in file_refs), return_exceptions=True
        )
        # Every fetch settles before the first failure is raised
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return list(results)

    async def _fetch(self, ref: FileRef) -> Attachment:
        content = await self.storage.get_file(ref.key)
        if content is None:
            logger.warning(f"Attachment missing in storage: {ref.key}")
            raise AttachmentNotFoundError(
                message=f"File not found: {ref.key}",
                file_key=ref.key,
            )

        filename = filename_from_key(ref.key)
        return Attachment(
            filename=filename,
            content=content,
            content_type=content_type_for(filename),
        )
