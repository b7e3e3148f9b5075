"""
Template renderer for invoice emails.

WHAT: Substitutes the fixed set of {{placeholder}} tokens in a template's
subject and body.

WHY: Templates are written by users in the settings UI, so this is not a
general template language. There is a fixed token set, no expression
evaluation and no code execution. Unknown or absent values render as an
empty string, never as the literal token and never as an error.

HOW: One regex pass per text over a map from placeholder name to a pure
formatting function of TemplateContext. Substitutions cannot see each
other's output, so their order never matters.
"""

import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict, Optional, Union

from invoice_mailer.models.client import Currency


PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([A-Za-z][A-Za-z0-9_]*)\s*\}\}")

MONTH_NAMES_EN = [
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
]

NBSP = "\u00a0"


@dataclass(frozen=True)
class TemplateContext:
    """
    Values available to a template.

    Built from an invoice and its client by `from_invoice`; `today` is
    injected so rendering stays pure.
    """

    client_name: Optional[str] = None
    invoice_name: Optional[str] = None
    invoice_amount: Optional[Union[Decimal, float, int]] = None
    currency: str = Currency.EUR.value
    month: Optional[int] = None
    year: Optional[int] = None
    client_vat: Optional[str] = None
    client_address: Optional[str] = None
    today: date = field(default_factory=date.today)

    @classmethod
    def from_invoice(cls, invoice, client, today: Optional[date] = None) -> "TemplateContext":
        """Build the context for an invoice and its client."""
        return cls(
            client_name=client.name if client else None,
            invoice_name=invoice.invoice_number,
            invoice_amount=invoice.invoice_amount,
            currency=(client.currency if client and client.currency else Currency.EUR.value),
            month=invoice.month,
            year=invoice.year,
            client_vat=client.vat_number if client else None,
            client_address=client.address if client else None,
            today=today or date.today(),
        )


@dataclass(frozen=True)
class RenderedEmail:
    """Rendered subject and plain-text body."""

    subject: str
    body: str


# ============================================================================
# Formatting
# ============================================================================


def _group_digits(digits: str, separator: str, min_grouping: int = 1) -> str:
    """
    Insert a thousands separator.

    WHY: pt-PT only groups when the integer part has at least five digits
    (1234,56 € but 12 345,67 €); en-GB always groups.
    """
    if len(digits) < 3 + min_grouping:
        return digits
    groups = []
    while len(digits) > 3:
        groups.insert(0, digits[-3:])
        digits = digits[:-3]
    groups.insert(0, digits)
    return separator.join(groups)


def format_amount(amount: Optional[Union[Decimal, float, int]], currency: str) -> str:
    """
    Format an amount in the conventions of the invoice currency.

    EUR uses Portuguese conventions (`1234,56 €`, `12 345,67 €` with
    non-breaking spaces). GBP uses UK conventions (`£1,234.56`).

    Args:
        amount: Amount, or None
        currency: "EUR" or "GBP"

    Returns:
        Formatted amount, or "" when the amount is absent
    """
    if amount is None:
        return ""

    value = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    integer_part, fraction = f"{abs(value):.2f}".split(".")

    if currency == Currency.GBP.value:
        return f"{sign}£{_group_digits(integer_part, ',')}.{fraction}"

    return f"{sign}{_group_digits(integer_part, NBSP, min_grouping=2)},{fraction}{NBSP}€"


def format_month_year(month: Optional[int], year: Optional[int]) -> str:
    """`March 2024`; the year alone when the month is unknown."""
    if month and year and 1 <= month <= 12:
        return f"{MONTH_NAMES_EN[month - 1]} {year}"
    return str(year) if year else ""


def _text(value) -> str:
    return str(value) if value not in (None, "") else ""


# WHY: Placeholder name -> formatter. Adding a variable is a one-line change
# here plus a TEMPLATE_VARIABLES entry.
PLACEHOLDERS: Dict[str, Callable[[TemplateContext], str]] = {
    "clientName": lambda ctx: _text(ctx.client_name),
    "invoiceName": lambda ctx: _text(ctx.invoice_name),
    "invoiceAmount": lambda ctx: format_amount(ctx.invoice_amount, ctx.currency),
    "month": lambda ctx: _text(ctx.month),
    "year": lambda ctx: _text(ctx.year),
    "monthYear": lambda ctx: format_month_year(ctx.month, ctx.year),
    "currentDate": lambda ctx: ctx.today.strftime("%d/%m/%Y"),
    "clientVat": lambda ctx: _text(ctx.client_vat),
    "clientAddress": lambda ctx: _text(ctx.client_address),
    # Attachments are sent instead of links
    "downloadLink": lambda ctx: "",
}

TEMPLATE_VARIABLES = [
    {"name": "clientName", "description": "Client name"},
    {"name": "invoiceName", "description": "Invoice number"},
    {"name": "invoiceAmount", "description": "Invoice amount in the client's currency"},
    {"name": "month", "description": "Invoice month (number)"},
    {"name": "year", "description": "Invoice year"},
    {"name": "monthYear", "description": "Month and year (e.g. January 2024)"},
    {"name": "currentDate", "description": "Today's date (dd/mm/yyyy)"},
    {"name": "clientVat", "description": "Client VAT number"},
    {"name": "clientAddress", "description": "Client address"},
    {"name": "downloadLink", "description": "Always empty; files are attached instead"},
]


# ============================================================================
# Rendering
# ============================================================================


class TemplateRenderer:
    """
    Renders email templates against a TemplateContext.

    Example:
        renderer = TemplateRenderer()
        rendered = renderer.render(template, TemplateContext(client_name="Acme"))
        rendered.subject  # "Invoice for Acme"
    """

    def __init__(self, placeholders: Optional[Dict[str, Callable[[TemplateContext], str]]] = None):
        self._placeholders = placeholders or PLACEHOLDERS

    def render_text(self, text: Optional[str], context: TemplateContext) -> str:
        """Substitute every placeholder in one string."""
        if not text:
            return ""

        def substitute(match: "re.Match[str]") -> str:
            formatter = self._placeholders.get(match.group(1))
            if formatter is None:
                return ""
            return formatter(context) or ""

        return PLACEHOLDER_PATTERN.sub(substitute, text)

    def render(self, template, context: TemplateContext) -> RenderedEmail:
        """
        Render a template's subject and body.

        Args:
            template: Any object with `subject` and `body` attributes
            context: Values to substitute

        Returns:
            RenderedEmail with substituted subject and body
        """
        return RenderedEmail(
            subject=self.render_text(template.subject, context),
            body=self.render_text(template.body, context),
        )
