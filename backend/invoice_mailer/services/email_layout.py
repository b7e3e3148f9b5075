"""
HTML layout for invoice emails.

WHAT: Wraps a rendered plain-text body into the HTML alternative of the
message.

WHY: Mail clients prefer the HTML part; the plain-text part is still sent
for clients that do not render HTML.

HOW: Jinja2 with FileSystemLoader over the package's templates/email
directory and autoescaping on, so user-written template text can never
inject markup. Newlines become <br> through the nl2br filter, which
escapes before inserting the tags.
"""

import logging
from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader, TemplateNotFound, select_autoescape
from markupsafe import Markup, escape

from invoice_mailer.core.exceptions import AppException

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "email"
INVOICE_LAYOUT = "invoice.html"


def nl2br(text: Optional[str]) -> Markup:
    """Escape text and turn line breaks into <br> tags."""
    if not text:
        return Markup("")
    normalized = str(text).replace("\r\n", "\n")
    return Markup("<br>\n").join(escape(line) for line in normalized.split("\n"))


class EmailLayout:
    """
    Renders the HTML part of invoice emails.

    Example:
        html = EmailLayout().render_html(subject, body)
    """

    def __init__(self, template_dir: Optional[Path] = None):
        self._env = Environment(
            loader=FileSystemLoader(str(template_dir or DEFAULT_TEMPLATE_DIR)),
            autoescape=select_autoescape(["html", "xml"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self._env.filters["nl2br"] = nl2br

    def render_html(self, subject: str, body: str) -> str:
        """
        Render the HTML alternative for a rendered email.

        Raises:
            AppException: If the layout template is missing
        """
        try:
            template = self._env.get_template(INVOICE_LAYOUT)
        except TemplateNotFound:
            logger.error(f"Email layout not found: {INVOICE_LAYOUT}")
            raise AppException(
                message=f"Email layout not found: {INVOICE_LAYOUT}",
                template=INVOICE_LAYOUT,
            )
        return template.render(subject=subject, body=body)
