"""
User model.

WHY: Every client, invoice, template, email account and setting is owned by
one user. Users are issued by the login service; this backend only reads
them to authenticate requests and scope queries.
"""

from sqlalchemy import Column, String, Boolean

from invoice_mailer.models.base import Base, TimestampMixin, PrimaryKeyMixin


class User(Base, PrimaryKeyMixin, TimestampMixin):
    """Owner of invoices and email accounts."""

    __tablename__ = "users"

    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)

    # WHY: is_active allows disabling a user without losing their audit trail
    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}')>"
