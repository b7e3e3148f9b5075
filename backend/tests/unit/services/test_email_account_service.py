"""
Email Account Service Tests.

WHAT: Unit tests for account CRUD, default switching, transport cache
invalidation and the OAuth connect flow.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from invoice_mailer.core.auth import create_oauth_state, decode_oauth_state
from invoice_mailer.core.exceptions import (
    EmailAccountNotFoundError,
    OAuthStateError,
    ValidationError,
)
from invoice_mailer.dao.email_account import EmailAccountDAO
from invoice_mailer.services.email_account_service import EmailAccountService
from invoice_mailer.services.transport import TransportCache
from tests.factories import EmailAccountFactory
from tests.fakes import FakeTransport


def _account_data(**overrides) -> dict:
    data = {
        "name": "Billing",
        "email": "billing@example.com",
        "smtp_host": "smtp.example.com",
        "smtp_port": 587,
        "smtp_user": "billing@example.com",
        "smtp_password": "secret-password",
    }
    data.update(overrides)
    return data


def _warm(cache: TransportCache, account_id: int) -> None:
    cache.put(TransportCache.key_for(account_id), FakeTransport())


@pytest.mark.asyncio
class TestCreateAccount:
    async def test_password_is_encrypted(self, db_session, test_user, transport_cache, encryption):
        service = EmailAccountService(db_session, transport_cache, encryption)

        account = await service.create_account(test_user.id, _account_data())

        assert account.smtp_password_encrypted != "secret-password"
        assert encryption.decrypt(account.smtp_password_encrypted) == "secret-password"

    async def test_required_fields(self, db_session, test_user, transport_cache):
        with pytest.raises(ValidationError) as exc_info:
            await EmailAccountService(db_session, transport_cache).create_account(
                test_user.id, _account_data(smtp_host="")
            )

        assert exc_info.value.context["missing_fields"] == ["smtp_host"]

    async def test_password_or_oauth_required(self, db_session, test_user, transport_cache):
        with pytest.raises(ValidationError):
            await EmailAccountService(db_session, transport_cache).create_account(
                test_user.id, _account_data(smtp_password=None)
            )

    async def test_client_credentials_awaiting_connect(self, db_session, test_user, transport_cache):
        account = await EmailAccountService(db_session, transport_cache).create_account(
            test_user.id,
            _account_data(
                smtp_password=None,
                smtp_host="smtp.office365.com",
                oauth2_client_id="cid",
                oauth2_client_secret="csecret",
            ),
        )

        assert account.oauth2_client_id == "cid"
        assert not account.has_oauth2

    async def test_new_default_clears_previous(self, db_session, test_user, transport_cache):
        first = await EmailAccountFactory.create(db_session, owner_id=test_user.id, is_default=True)

        second = await EmailAccountService(db_session, transport_cache).create_account(
            test_user.id, _account_data(email="other@example.com", is_default=True)
        )

        assert second.is_default is True
        assert (await EmailAccountDAO(db_session).get_by_id(first.id)).is_default is False
        assert (await EmailAccountDAO(db_session).get_default(test_user.id)).id == second.id


@pytest.mark.asyncio
class TestUpdateAccount:
    async def test_credential_change_invalidates_cache(self, db_session, test_user, transport_cache, encryption):
        account = await EmailAccountFactory.create(db_session, owner_id=test_user.id)
        _warm(transport_cache, account.id)

        updated = await EmailAccountService(db_session, transport_cache, encryption).update_account(
            account.id, test_user.id, {"smtp_password": "rotated"}
        )

        assert TransportCache.key_for(account.id) not in transport_cache
        assert encryption.decrypt(updated.smtp_password_encrypted) == "rotated"

    async def test_rename_keeps_cache(self, db_session, test_user, transport_cache):
        account = await EmailAccountFactory.create(db_session, owner_id=test_user.id)
        _warm(transport_cache, account.id)

        updated = await EmailAccountService(db_session, transport_cache).update_account(
            account.id, test_user.id, {"name": "Renamed"}
        )

        assert updated.name == "Renamed"
        assert TransportCache.key_for(account.id) in transport_cache

    async def test_other_accounts_are_untouched(self, db_session, test_user, transport_cache):
        account = await EmailAccountFactory.create(db_session, owner_id=test_user.id)
        other = await EmailAccountFactory.create(
            db_session, owner_id=test_user.id, email="other@example.com", is_default=False
        )
        _warm(transport_cache, other.id)

        await EmailAccountService(db_session, transport_cache).update_account(
            account.id, test_user.id, {"smtp_host": "smtp2.example.com"}
        )

        assert TransportCache.key_for(other.id) in transport_cache

    async def test_make_default(self, db_session, test_user, transport_cache):
        first = await EmailAccountFactory.create(db_session, owner_id=test_user.id, is_default=True)
        second = await EmailAccountFactory.create(
            db_session, owner_id=test_user.id, email="other@example.com", is_default=False
        )

        await EmailAccountService(db_session, transport_cache).update_account(
            second.id, test_user.id, {"is_default": True}
        )

        assert first.is_default is False
        assert second.is_default is True

    async def test_other_owners_account(self, db_session, test_user, other_user, transport_cache):
        account = await EmailAccountFactory.create(db_session, owner_id=other_user.id)

        with pytest.raises(EmailAccountNotFoundError):
            await EmailAccountService(db_session, transport_cache).update_account(
                account.id, test_user.id, {"name": "Mine now"}
            )


@pytest.mark.asyncio
class TestDeleteAccount:
    async def test_delete_invalidates_cache(self, db_session, test_user, transport_cache):
        account = await EmailAccountFactory.create(db_session, owner_id=test_user.id)
        _warm(transport_cache, account.id)

        await EmailAccountService(db_session, transport_cache).delete_account(account.id, test_user.id)

        assert TransportCache.key_for(account.id) not in transport_cache
        assert await EmailAccountDAO(db_session).get_by_id(account.id) is None

    async def test_delete_missing(self, db_session, test_user, transport_cache):
        with pytest.raises(EmailAccountNotFoundError):
            await EmailAccountService(db_session, transport_cache).delete_account(999, test_user.id)


@pytest.mark.asyncio
class TestListAccounts:
    async def test_default_first(self, db_session, test_user, other_user, transport_cache):
        plain = await EmailAccountFactory.create(
            db_session, owner_id=test_user.id, email="a@example.com", is_default=False
        )
        default = await EmailAccountFactory.create(
            db_session, owner_id=test_user.id, email="b@example.com", is_default=True
        )
        await EmailAccountFactory.create(db_session, owner_id=other_user.id)

        accounts = await EmailAccountService(db_session, transport_cache).list_accounts(test_user.id)

        assert [a.id for a in accounts] == [default.id, plain.id]


@pytest.mark.asyncio
class TestOAuthConnect:
    async def test_authorization_url_carries_signed_state(self, db_session, test_user, transport_cache):
        account = await EmailAccountFactory.create_oauth2(db_session, owner_id=test_user.id)
        refresher = MagicMock()
        refresher.build_authorization_url = MagicMock(return_value="https://login.example/authorize")

        url = await EmailAccountService(db_session, transport_cache, refresher=refresher).authorization_url(
            account.id, test_user.id
        )

        assert url == "https://login.example/authorize"
        _, state = refresher.build_authorization_url.call_args.args
        assert decode_oauth_state(state) == {"accountId": account.id, "ownerId": test_user.id}

    async def test_complete_oauth(self, db_session, test_user, transport_cache):
        account = await EmailAccountFactory.create_oauth2(db_session, owner_id=test_user.id)
        _warm(transport_cache, account.id)
        refresher = MagicMock()
        refresher.exchange_authorization_code = AsyncMock()

        provider = await EmailAccountService(db_session, transport_cache, refresher=refresher).complete_oauth(
            "the-code", create_oauth_state(account.id, test_user.id)
        )

        assert provider == "microsoft"
        refresher.exchange_authorization_code.assert_awaited_once()
        assert refresher.exchange_authorization_code.call_args.args[1] == "the-code"
        assert TransportCache.key_for(account.id) not in transport_cache

    async def test_complete_oauth_bad_state(self, db_session, transport_cache):
        refresher = MagicMock()
        refresher.exchange_authorization_code = AsyncMock()

        with pytest.raises(OAuthStateError):
            await EmailAccountService(db_session, transport_cache, refresher=refresher).complete_oauth(
                "the-code", "not-a-jwt"
            )

        refresher.exchange_authorization_code.assert_not_called()

    async def test_complete_oauth_for_deleted_account(self, db_session, test_user, transport_cache):
        refresher = MagicMock()
        refresher.exchange_authorization_code = AsyncMock()

        with pytest.raises(EmailAccountNotFoundError):
            await EmailAccountService(db_session, transport_cache, refresher=refresher).complete_oauth(
                "the-code", create_oauth_state(999, test_user.id)
            )
