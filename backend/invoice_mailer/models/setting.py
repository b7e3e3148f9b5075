"""
Per-owner key/value settings.

Keys read by the email dispatch core:
- accountant_email: recipient of accountant sends
- gbp_to_eur_rate: conversion rate for GBP invoices (decimal string)
"""

from sqlalchemy import Column, Integer, String, Text, ForeignKey, UniqueConstraint

from invoice_mailer.models.base import Base, TimestampMixin, PrimaryKeyMixin


ACCOUNTANT_EMAIL_KEY = "accountant_email"
GBP_TO_EUR_RATE_KEY = "gbp_to_eur_rate"


class Setting(Base, PrimaryKeyMixin, TimestampMixin):
    """One setting value for one owner."""

    __tablename__ = "settings"
    __table_args__ = (UniqueConstraint("owner_id", "key", name="uq_settings_owner_key"),)

    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    key = Column(String(100), nullable=False)
    value = Column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Setting(owner_id={self.owner_id}, key='{self.key}')>"
