"""
Template Renderer Tests.

WHAT: Unit tests for placeholder substitution and amount formatting.

WHY: Templates are user-written. Rendering must be total: unknown or
absent values become empty strings, never literal tokens or errors.
"""

from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from invoice_mailer.services.template_renderer import (
    NBSP,
    TEMPLATE_VARIABLES,
    PLACEHOLDERS,
    TemplateContext,
    TemplateRenderer,
    format_amount,
    format_month_year,
)


@pytest.fixture
def renderer():
    return TemplateRenderer()


@pytest.fixture
def context():
    return TemplateContext(
        client_name="Acme",
        invoice_name="INV-7",
        invoice_amount=Decimal("1234.56"),
        currency="EUR",
        month=3,
        year=2024,
        client_vat="PT123456789",
        client_address="Rua Augusta 1, Lisboa",
        today=date(2024, 4, 2),
    )


class TestFormatAmount:
    @pytest.mark.parametrize(
        "amount, expected",
        [
            (Decimal("1234.56"), f"1234,56{NBSP}€"),
            (Decimal("12345.67"), f"12{NBSP}345,67{NBSP}€"),
            (Decimal("999"), f"999,00{NBSP}€"),
            (Decimal("1234567.8"), f"1{NBSP}234{NBSP}567,80{NBSP}€"),
        ],
    )
    def test_eur_uses_portuguese_conventions(self, amount, expected):
        assert format_amount(amount, "EUR") == expected

    @pytest.mark.parametrize(
        "amount, expected",
        [
            (Decimal("1234.56"), "£1,234.56"),
            (Decimal("100"), "£100.00"),
            (Decimal("1234567.891"), "£1,234,567.89"),
        ],
    )
    def test_gbp_uses_uk_conventions(self, amount, expected):
        assert format_amount(amount, "GBP") == expected

    def test_rounds_half_up(self):
        assert format_amount(Decimal("0.005"), "GBP") == "£0.01"

    def test_missing_amount(self):
        assert format_amount(None, "EUR") == ""


class TestFormatMonthYear:
    def test_month_and_year(self):
        assert format_month_year(1, 2024) == "January 2024"

    def test_year_only(self):
        assert format_month_year(None, 2024) == "2024"

    def test_nothing(self):
        assert format_month_year(None, None) == ""


class TestTemplateRenderer:
    def test_all_placeholders(self, renderer, context):
        text = (
            "{{clientName}}|{{invoiceName}}|{{invoiceAmount}}|{{month}}|{{year}}|"
            "{{monthYear}}|{{currentDate}}|{{clientVat}}|{{clientAddress}}|{{downloadLink}}"
        )
        assert renderer.render_text(text, context) == (
            f"Acme|INV-7|1234,56{NBSP}€|3|2024|March 2024|02/04/2024|"
            "PT123456789|Rua Augusta 1, Lisboa|"
        )

    def test_repeated_placeholder(self, renderer, context):
        assert renderer.render_text("{{clientName}} & {{clientName}}", context) == "Acme & Acme"

    def test_unknown_placeholder_renders_empty(self, renderer, context):
        assert renderer.render_text("Hi {{nope}}!", context) == "Hi !"

    def test_absent_values_render_empty(self, renderer):
        ctx = TemplateContext(today=date(2024, 1, 1))
        assert renderer.render_text("[{{clientName}}][{{invoiceAmount}}][{{monthYear}}]", ctx) == "[][][]"

    def test_whitespace_inside_braces(self, renderer, context):
        assert renderer.render_text("{{ clientName }}", context) == "Acme"

    def test_rendering_is_idempotent(self, renderer, context):
        """Output with no tokens left renders to itself."""
        once = renderer.render_text("Invoice {{invoiceName}} for {{clientName}}", context)
        assert renderer.render_text(once, context) == once

    def test_substituted_values_are_not_reexpanded(self, renderer):
        ctx = TemplateContext(client_name="{{invoiceName}}", invoice_name="INV-1", today=date(2024, 1, 1))
        assert renderer.render_text("{{clientName}}", ctx) == "{{invoiceName}}"

    def test_render_subject_and_body(self, renderer, context):
        template = SimpleNamespace(subject="Invoice for {{clientName}}", body="Total: {{invoiceAmount}}")
        rendered = renderer.render(template, context)
        assert rendered.subject == "Invoice for Acme"
        assert rendered.body == f"Total: 1234,56{NBSP}€"

    def test_gbp_context_from_invoice(self, renderer):
        invoice = SimpleNamespace(invoice_number="INV-9", invoice_amount=Decimal("1234.56"), month=12, year=2023)
        client = SimpleNamespace(name="Brit Ltd", currency="GBP", vat_number=None, address=None)
        ctx = TemplateContext.from_invoice(invoice, client, today=date(2024, 1, 5))

        assert renderer.render_text("{{invoiceAmount}} {{monthYear}}", ctx) == "£1,234.56 December 2023"

    def test_variable_catalogue_matches_placeholders(self):
        assert {v["name"] for v in TEMPLATE_VARIABLES} == set(PLACEHOLDERS)
