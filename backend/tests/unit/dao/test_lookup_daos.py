"""
Tests for the lookups the send path depends on.

WHY: Template, default-account and setting resolution have no fallbacks;
each lookup must return exactly the row the rules describe, scoped to
its owner.
"""

import pytest

from invoice_mailer.dao.email_account import EmailAccountDAO
from invoice_mailer.dao.email_template import EmailTemplateDAO
from invoice_mailer.dao.setting import SettingDAO
from invoice_mailer.models.setting import ACCOUNTANT_EMAIL_KEY
from tests.factories import (
    ClientFactory,
    EmailAccountFactory,
    EmailTemplateFactory,
    SettingFactory,
)


@pytest.mark.asyncio
class TestEmailTemplateDAO:
    async def test_client_template_is_client_specific(self, db_session, test_user):
        acme = await ClientFactory.create(db_session, owner_id=test_user.id, name="Acme")
        globex = await ClientFactory.create(db_session, owner_id=test_user.id, name="Globex")
        template = await EmailTemplateFactory.create_for_client(
            db_session, owner_id=test_user.id, client_id=acme.id
        )
        dao = EmailTemplateDAO(db_session)

        assert (await dao.get_for_client(acme.id, test_user.id)).id == template.id
        assert await dao.get_for_client(globex.id, test_user.id) is None

    async def test_accountant_template_does_not_fall_back(self, db_session, test_user):
        acme = await ClientFactory.create(db_session, owner_id=test_user.id)
        await EmailTemplateFactory.create_for_client(
            db_session, owner_id=test_user.id, client_id=acme.id
        )

        assert await EmailTemplateDAO(db_session).get_for_accountant(test_user.id) is None

    async def test_newest_client_template_wins(self, db_session, test_user):
        acme = await ClientFactory.create(db_session, owner_id=test_user.id)
        await EmailTemplateFactory.create_for_client(
            db_session, owner_id=test_user.id, client_id=acme.id, subject="old"
        )
        newest = await EmailTemplateFactory.create_for_client(
            db_session, owner_id=test_user.id, client_id=acme.id, subject="new"
        )

        found = await EmailTemplateDAO(db_session).get_for_client(acme.id, test_user.id)
        assert found.id == newest.id


@pytest.mark.asyncio
class TestEmailAccountDAO:
    async def test_get_default(self, db_session, test_user):
        await EmailAccountFactory.create(db_session, owner_id=test_user.id, is_default=False)
        default = await EmailAccountFactory.create(
            db_session, owner_id=test_user.id, email="main@example.com", is_default=True
        )

        assert (await EmailAccountDAO(db_session).get_default(test_user.id)).id == default.id

    async def test_clear_default_keeps_excepted_account(self, db_session, test_user):
        first = await EmailAccountFactory.create(db_session, owner_id=test_user.id, is_default=True)
        second = await EmailAccountFactory.create(
            db_session, owner_id=test_user.id, email="second@example.com", is_default=True
        )
        dao = EmailAccountDAO(db_session)

        await dao.clear_default(test_user.id, except_id=second.id)

        assert (await dao.get_by_id(first.id)).is_default is False
        assert (await dao.get_by_id(second.id)).is_default is True

    async def test_other_owner_has_no_default(self, db_session, test_user, other_user):
        await EmailAccountFactory.create(db_session, owner_id=test_user.id, is_default=True)
        assert await EmailAccountDAO(db_session).get_default(other_user.id) is None


@pytest.mark.asyncio
class TestSettingDAO:
    async def test_blank_value_is_unset(self, db_session, test_user):
        await SettingFactory.create(db_session, test_user.id, ACCOUNTANT_EMAIL_KEY, "   ")
        assert await SettingDAO(db_session).get_value(test_user.id, ACCOUNTANT_EMAIL_KEY) is None

    async def test_set_value_overwrites(self, db_session, test_user):
        dao = SettingDAO(db_session)
        await dao.set_value(test_user.id, ACCOUNTANT_EMAIL_KEY, "a@example.com")
        await dao.set_value(test_user.id, ACCOUNTANT_EMAIL_KEY, " b@example.com ")

        assert await dao.get_value(test_user.id, ACCOUNTANT_EMAIL_KEY) == "b@example.com"
