"""Initial schema - invoice email dispatch

Revision ID: 001
Revises:
Create Date: 2026-10-18

WHY: Creates the tables the dispatch core reads and writes: owners,
clients, invoices and their files, email templates, email accounts,
per-owner settings and the email history audit trail.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    ]


def upgrade() -> None:
    """Create all tables with owner-scoped indexes."""
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'clients',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('cc_emails', sa.JSON(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='EUR'),
        sa.Column('requires_timesheet', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('vat_number', sa.String(length=50), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_clients_id', 'clients', ['id'])
    op.create_index('ix_clients_owner_id', 'clients', ['owner_id'])

    op.create_table(
        'invoices',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('invoice_number', sa.String(length=100), nullable=False),
        sa.Column('invoice_amount', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('invoice_amount_eur', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('month', sa.Integer(), nullable=True),
        sa.Column('year', sa.Integer(), nullable=True),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('sent_to_client', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('sent_to_client_at', sa.DateTime(), nullable=True),
        sa.Column('sent_to_accountant', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('sent_to_accountant_at', sa.DateTime(), nullable=True),
        sa.Column('payment_received', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('payment_received_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        # WHY: The workflow gate, enforced by the database as well
        sa.CheckConstraint(
            'NOT sent_to_accountant OR sent_to_client',
            name='ck_invoices_accountant_after_client',
        ),
    )
    op.create_index('ix_invoices_id', 'invoices', ['id'])
    op.create_index('ix_invoices_owner_id', 'invoices', ['owner_id'])
    op.create_index('ix_invoices_client_id', 'invoices', ['client_id'])

    op.create_table(
        'invoice_files',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('file_key', sa.String(length=1024), nullable=False),
        sa.Column('file_type', sa.String(length=20), nullable=False, server_default='invoice'),
        sa.Column('original_name', sa.String(length=255), nullable=True),
        sa.Column('file_size', sa.BigInteger(), nullable=True),
        sa.Column('uploaded_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_invoice_files_id', 'invoice_files', ['id'])
    op.create_index('ix_invoice_files_invoice_id', 'invoice_files', ['invoice_id'])

    op.create_table(
        'email_templates',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('type', sa.String(length=20), nullable=False, server_default='to_client'),
        sa.Column('subject', sa.String(length=500), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_email_templates_id', 'email_templates', ['id'])
    op.create_index('ix_email_templates_owner_id', 'email_templates', ['owner_id'])
    op.create_index('ix_email_templates_client_id', 'email_templates', ['client_id'])

    op.create_table(
        'email_accounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('smtp_host', sa.String(length=255), nullable=False),
        sa.Column('smtp_port', sa.Integer(), nullable=False, server_default='587'),
        sa.Column('smtp_user', sa.String(length=255), nullable=False),
        sa.Column('smtp_password_encrypted', sa.Text(), nullable=True),
        sa.Column('oauth2_client_id', sa.String(length=255), nullable=True),
        sa.Column('oauth2_client_secret_encrypted', sa.Text(), nullable=True),
        sa.Column('oauth2_refresh_token_encrypted', sa.Text(), nullable=True),
        sa.Column('oauth2_access_token_encrypted', sa.Text(), nullable=True),
        sa.Column('oauth2_token_expires_at', sa.DateTime(), nullable=True),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default='false'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_email_accounts_id', 'email_accounts', ['id'])
    op.create_index('ix_email_accounts_owner_id', 'email_accounts', ['owner_id'])

    op.create_table(
        'settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('key', sa.String(length=100), nullable=False),
        sa.Column('value', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('owner_id', 'key', name='uq_settings_owner_key'),
    )
    op.create_index('ix_settings_id', 'settings', ['id'])
    op.create_index('ix_settings_owner_id', 'settings', ['owner_id'])

    op.create_table(
        'email_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('template_id', sa.Integer(), nullable=True),
        sa.Column('recipient_email', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('recipient_name', sa.String(length=255), nullable=True),
        sa.Column('recipient_type', sa.String(length=20), nullable=False),
        sa.Column('subject', sa.String(length=500), nullable=False, server_default=''),
        sa.Column('body', sa.Text(), nullable=False, server_default=''),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('message_id', sa.String(length=255), nullable=True),
        sa.Column('sent_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['template_id'], ['email_templates.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_email_history_id', 'email_history', ['id'])
    op.create_index('ix_email_history_owner_id', 'email_history', ['owner_id'])
    op.create_index('ix_email_history_invoice_id', 'email_history', ['invoice_id'])
    op.create_index('ix_email_history_sent_at', 'email_history', ['sent_at'])


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    op.drop_table('email_history')
    op.drop_table('settings')
    op.drop_table('email_accounts')
    op.drop_table('email_templates')
    op.drop_table('invoice_files')
    op.drop_table('invoices')
    op.drop_table('clients')
    op.drop_table('users')
