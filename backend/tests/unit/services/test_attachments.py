"""
Attachment Assembler Tests.

WHAT: Unit tests for file selection per recipient and for fetching
attachments from object storage.
"""

import asyncio
from types import SimpleNamespace

import pytest

from invoice_mailer.core.exceptions import AttachmentNotFoundError
from invoice_mailer.models.email_history import RecipientType
from invoice_mailer.services.attachments import (
    AttachmentAssembler,
    FileRef,
    content_type_for,
    filename_from_key,
    select_files,
)
from tests.fakes import FakeStorage


FILES = [
    SimpleNamespace(file_key="inv/1/invoice.pdf", file_type="invoice"),
    SimpleNamespace(file_key="inv/1/timesheet.xlsx", file_type="timesheet"),
    SimpleNamespace(file_key="inv/1/credit-note.pdf", file_type="invoice"),
]


class TestSelectFiles:
    def test_client_with_timesheet(self):
        refs = select_files(FILES, RecipientType.CLIENT, requires_timesheet=True)
        assert [r.key for r in refs] == [
            "inv/1/invoice.pdf",
            "inv/1/timesheet.xlsx",
            "inv/1/credit-note.pdf",
        ]

    def test_client_without_timesheet(self):
        refs = select_files(FILES, RecipientType.CLIENT, requires_timesheet=False)
        assert [r.type for r in refs] == ["invoice", "invoice"]

    def test_accountant_never_gets_timesheets(self):
        refs = select_files(FILES, RecipientType.ACCOUNTANT, requires_timesheet=True)
        assert all(r.type == "invoice" for r in refs)
        assert len(refs) == 2


class TestHelpers:
    def test_filename_from_key(self):
        assert filename_from_key("a/b/c/report.pdf") == "report.pdf"
        assert filename_from_key("plain.pdf") == "plain.pdf"

    @pytest.mark.parametrize(
        "filename, content_type",
        [
            ("x.pdf", "application/pdf"),
            ("x.JPG", "image/jpeg"),
            ("x.png", "image/png"),
            ("x.xlsx", "application/octet-stream"),
            ("noextension", "application/octet-stream"),
        ],
    )
    def test_content_type_for(self, filename, content_type):
        assert content_type_for(filename) == content_type


@pytest.mark.asyncio
class TestAttachmentAssembler:
    async def test_assemble(self):
        storage = FakeStorage({"inv/1/invoice.pdf": b"%PDF", "inv/1/hours.csv": b"a,b"})
        attachments = await AttachmentAssembler(storage).assemble(
            [FileRef("inv/1/invoice.pdf", "invoice"), FileRef("inv/1/hours.csv", "timesheet")]
        )

        assert [(a.filename, a.content, a.content_type) for a in attachments] == [
            ("invoice.pdf", b"%PDF", "application/pdf"),
            ("hours.csv", b"a,b", "text/csv"),
        ]

    async def test_missing_file_fails_whole_assembly(self):
        storage = FakeStorage({"inv/1/invoice.pdf": b"%PDF"})

        with pytest.raises(AttachmentNotFoundError) as exc_info:
            await AttachmentAssembler(storage).assemble(
                [FileRef("inv/1/invoice.pdf", "invoice"), FileRef("inv/1/gone.pdf", "invoice")]
            )

        assert exc_info.value.message == "File not found: inv/1/gone.pdf"
        assert exc_info.value.status_code == 404

    async def test_failure_waits_for_sibling_fetches(self):
        """
        Test that a missing file doesn't orphan the other downloads.

        WHY: The error is raised only after every fetch has finished, and
        it names the first failing file in attachment order.
        """
        finished = []

        class SlowStorage(FakeStorage):
            async def get_file(self, file_key):
                if file_key == "inv/1/large.pdf":
                    await asyncio.sleep(0.01)
                    finished.append(file_key)
                return await super().get_file(file_key)

        storage = SlowStorage({"inv/1/large.pdf": b"%PDF"})

        with pytest.raises(AttachmentNotFoundError) as exc_info:
            await AttachmentAssembler(storage).assemble(
                [
                    FileRef("inv/1/gone.pdf", "invoice"),
                    FileRef("inv/1/large.pdf", "invoice"),
                    FileRef("inv/1/also-gone.pdf", "timesheet"),
                ]
            )

        assert exc_info.value.context["file_key"] == "inv/1/gone.pdf"
        assert finished == ["inv/1/large.pdf"]
        assert sorted(storage.requested) == [
            "inv/1/also-gone.pdf",
            "inv/1/gone.pdf",
            "inv/1/large.pdf",
        ]
