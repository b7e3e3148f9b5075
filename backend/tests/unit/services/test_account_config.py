"""
Account Config Tests.

WHAT: Provider detection, host normalisation and projection of stored
accounts and environment settings into account variants.
"""

from types import SimpleNamespace

import pytest

from invoice_mailer.core.config import settings
from invoice_mailer.services.account_config import (
    GMAIL_SMTP_HOST,
    MICROSOFT_SMTP_HOST,
    BasicAccountConfig,
    OAuth2AccountConfig,
    account_config_from_model,
    account_config_from_settings,
    is_gmail_account,
    is_microsoft_account,
    normalize_host,
)


class TestProviderDetection:
    @pytest.mark.parametrize(
        "email, host",
        [
            ("me@outlook.com", "smtp.example.com"),
            ("me@hotmail.co.uk", None),
            ("me@live.com", None),
            ("me@msn.com", None),
            ("me@company.pt", "smtp.office365.com"),
            ("me@company.pt", "smtp-mail.outlook.com"),
        ],
    )
    def test_microsoft(self, email, host):
        assert is_microsoft_account(email, host)

    @pytest.mark.parametrize(
        "email, host",
        [("me@gmail.com", None), ("me@googlemail.com", None), ("me@company.pt", "smtp.gmail.com")],
    )
    def test_gmail(self, email, host):
        assert is_gmail_account(email, host)

    def test_other_provider(self):
        assert not is_microsoft_account("me@company.pt", "mail.company.pt")
        assert not is_gmail_account("me@company.pt", "mail.company.pt")


class TestNormalizeHost:
    def test_microsoft_address_forces_office365(self):
        assert normalize_host("me@hotmail.com", "imap-mail.outlook.com") == "imap-mail.outlook.com"
        assert normalize_host("me@hotmail.com", "mail.hotmail.com") == MICROSOFT_SMTP_HOST

    def test_gmail_address_forces_gmail_host(self):
        assert normalize_host("me@gmail.com", "imap.googlemail.com") == GMAIL_SMTP_HOST

    def test_other_hosts_untouched(self):
        assert normalize_host("me@company.pt", "mail.company.pt") == "mail.company.pt"


class TestAccountConfigFromModel:
    def _account(self, encryption, **overrides):
        values = dict(
            id=4,
            email="billing@example.com",
            smtp_host="smtp.example.com",
            smtp_port=587,
            smtp_user="billing@example.com",
            smtp_password_encrypted=encryption.encrypt("pw"),
            oauth2_client_id=None,
            oauth2_client_secret_encrypted=None,
            oauth2_refresh_token_encrypted=None,
            oauth2_access_token_encrypted=None,
            oauth2_token_expires_at=None,
            has_oauth2=False,
        )
        values.update(overrides)
        return SimpleNamespace(**values)

    def test_basic_account(self, encryption):
        config = account_config_from_model(self._account(encryption), encryption)

        assert isinstance(config, BasicAccountConfig)
        assert config.password == "pw"
        assert config.account_id == 4

    def test_oauth2_account(self, encryption):
        account = self._account(
            encryption,
            smtp_password_encrypted=None,
            oauth2_client_id="cid",
            oauth2_client_secret_encrypted=encryption.encrypt("secret"),
            oauth2_refresh_token_encrypted=encryption.encrypt("refresh"),
            has_oauth2=True,
        )
        config = account_config_from_model(account, encryption)

        assert isinstance(config, OAuth2AccountConfig)
        assert (config.client_id, config.client_secret, config.refresh_token) == ("cid", "secret", "refresh")
        assert config.access_token is None

    def test_oauth2_token_not_in_repr(self, encryption):
        config = OAuth2AccountConfig(
            host="h", port=587, user="u", from_address="u@x", client_id="c",
            client_secret="s", refresh_token="r", access_token="very-secret-token",
        )
        assert "very-secret-token" not in repr(config)


class TestAccountConfigFromSettings:
    def test_not_configured(self):
        assert account_config_from_settings() is None

    def test_host_without_credentials_is_not_configured(self, monkeypatch):
        monkeypatch.setattr(settings, "SMTP_HOST", "smtp.example.com")
        monkeypatch.setattr(settings, "SMTP_USER", "me@example.com")
        assert account_config_from_settings() is None

    def test_basic(self, monkeypatch):
        monkeypatch.setattr(settings, "SMTP_HOST", "smtp.example.com")
        monkeypatch.setattr(settings, "SMTP_USER", "me@example.com")
        monkeypatch.setattr(settings, "SMTP_PASSWORD", "pw")

        config = account_config_from_settings()

        assert isinstance(config, BasicAccountConfig)
        assert config.from_address == "me@example.com"
        assert config.account_id is None

    def test_oauth2_with_from_override(self, monkeypatch):
        monkeypatch.setattr(settings, "SMTP_HOST", "smtp.office365.com")
        monkeypatch.setattr(settings, "SMTP_USER", "me@outlook.com")
        monkeypatch.setattr(settings, "SMTP_FROM", "invoices@outlook.com")
        monkeypatch.setattr(settings, "SMTP_OAUTH2_CLIENT_ID", "cid")
        monkeypatch.setattr(settings, "SMTP_OAUTH2_CLIENT_SECRET", "secret")
        monkeypatch.setattr(settings, "SMTP_OAUTH2_REFRESH_TOKEN", "refresh")

        config = account_config_from_settings()

        assert isinstance(config, OAuth2AccountConfig)
        assert config.from_address == "invoices@outlook.com"
        assert config.is_microsoft
