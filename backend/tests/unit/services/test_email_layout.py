"""
Email Layout Tests.

WHAT: Unit tests for the HTML alternative of invoice emails.

WHY: Template bodies are user-written text; the HTML part must show them
verbatim, never interpret them as markup.
"""

import pytest

from invoice_mailer.core.exceptions import AppException
from invoice_mailer.services.email_layout import EmailLayout, nl2br


class TestNl2br:
    def test_newlines_become_breaks(self):
        assert str(nl2br("a\nb\r\nc")) == "a<br>\nb<br>\nc"

    def test_escapes_before_inserting_breaks(self):
        assert str(nl2br("<b>x</b>\ny & z")) == "&lt;b&gt;x&lt;/b&gt;<br>\ny &amp; z"

    def test_empty(self):
        assert str(nl2br(None)) == ""


class TestEmailLayout:
    def test_render_html(self):
        html = EmailLayout().render_html("Invoice for Acme", "Dear Acme,\nThanks")

        assert "<title>Invoice for Acme</title>" in html
        assert "Dear Acme,<br>\nThanks" in html

    def test_user_text_is_escaped(self):
        html = EmailLayout().render_html("<script>", "<img src=x onerror=alert(1)>")

        assert "<script>" not in html
        assert "<img" not in html
        assert "&lt;img src=x onerror=alert(1)&gt;" in html

    def test_missing_layout(self, tmp_path):
        with pytest.raises(AppException):
            EmailLayout(template_dir=tmp_path).render_html("s", "b")
