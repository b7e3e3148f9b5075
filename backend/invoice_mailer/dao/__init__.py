"""
Data Access Object (DAO) package.

WHY: DAOs separate database operations from business logic, making
services testable and database changes easier to manage.
"""

from invoice_mailer.dao.base import BaseDAO
from invoice_mailer.dao.email_account import EmailAccountDAO
from invoice_mailer.dao.email_history import EmailHistoryDAO
from invoice_mailer.dao.email_template import EmailTemplateDAO
from invoice_mailer.dao.invoice import InvoiceDAO
from invoice_mailer.dao.setting import SettingDAO

__all__ = [
    "BaseDAO",
    "EmailAccountDAO",
    "EmailHistoryDAO",
    "EmailTemplateDAO",
    "InvoiceDAO",
    "SettingDAO",
]
