"""Tests for best-effort notification delivery and the in-app inbox."""

from unittest.mock import MagicMock

import pytest

from sahem_invest.domain.enums import NotificationType
from sahem_invest.domain.errors import NotFoundError
from sahem_invest.services import email_service
from sahem_invest.services.email_service import TEMPLATES, EmailResult, render_template, send_template
from sahem_invest.services.notification_service import (
    NotificationDispatcher,
    list_notifications,
    mark_all_read,
    mark_read,
    record_in_app,
)


# ---------------------------------------------------------------------------
# Email rendering and sending
# ---------------------------------------------------------------------------


class TestEmailService:
    @pytest.mark.parametrize("template", sorted(TEMPLATES))
    def test_every_template_renders(self, template):
        subject, body = render_template(template, {"name": "Noor", "deal_title": "Farm", "amount": 10})
        assert subject
        assert "Sahem Invest" in body

    def test_params_are_escaped(self):
        _, body = render_template("welcome", {"name": "<script>alert(1)</script>"})
        assert "<script>" not in body
        assert "&lt;script&gt;" in body

    async def test_unknown_template(self):
        result = await send_template("no_such_template", "a@example.com", {})
        assert result == EmailResult(False, "Unknown template: no_such_template")

    async def test_no_recipients(self):
        result = await send_template("welcome", [], {})
        assert not result.success

    async def test_missing_api_key_skips_send(self, monkeypatch):
        monkeypatch.setattr(email_service, "_get_config", lambda: ("", "noreply@sahem.test", "Sahem"))
        client = MagicMock()
        monkeypatch.setattr(email_service, "_get_client", client)

        result = await send_template("welcome", "a@example.com", {"name": "A"})

        assert result == EmailResult(False, "Email service not configured")
        client.assert_not_called()

    async def test_sendgrid_rejection_is_reported(self, monkeypatch):
        monkeypatch.setattr(email_service, "_get_config", lambda: ("key", "noreply@sahem.test", "Sahem"))
        response = MagicMock(status_code=400, body="bad request")
        monkeypatch.setattr(email_service, "_get_client", lambda: MagicMock(send=MagicMock(return_value=response)))

        result = await send_template("welcome", "a@example.com", {"name": "A"})

        assert not result.success

    async def test_sendgrid_accepts(self, monkeypatch):
        monkeypatch.setattr(email_service, "_get_config", lambda: ("key", "noreply@sahem.test", "Sahem"))
        client = MagicMock()
        client.send.return_value = MagicMock(status_code=202)
        monkeypatch.setattr(email_service, "_get_client", lambda: client)

        result = await send_template("return_payment", ["a@example.com", "b@example.com"], {"amount": 5})

        assert result.success
        client.send.assert_called_once()


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class TestNotificationDispatcher:
    async def test_inline_delivery(self, sent_emails):
        result = await NotificationDispatcher().notify("welcome", "a@example.com", {"name": "A"})

        assert result.success
        assert sent_emails == [("welcome", "a@example.com", {"name": "A"})]

    async def test_exception_is_swallowed(self, monkeypatch):
        async def _boom(*args):
            raise RuntimeError("network down")

        monkeypatch.setattr(email_service, "send_template", _boom)

        result = await NotificationDispatcher().notify("welcome", "a@example.com", {})

        assert result == EmailResult(False, "network down")

    async def test_background_delivery_is_deferred(self, sent_emails):
        background = MagicMock()

        result = await NotificationDispatcher(background).notify("welcome", "a@example.com", {})

        assert result is None
        assert sent_emails == []
        background.add_task.assert_called_once()


# ---------------------------------------------------------------------------
# In-app inbox
# ---------------------------------------------------------------------------


class TestInbox:
    async def test_record_and_list(self, db_session, make_user):
        user = await make_user()
        await record_in_app(db_session, user.id, "Hello", "First", NotificationType.SUCCESS, {"k": "v"})
        await record_in_app(db_session, user.id, "Again", "Second")

        notifications = await list_notifications(db_session, user.id)

        assert {n.title for n in notifications} == {"Hello", "Again"}
        hello = next(n for n in notifications if n.title == "Hello")
        assert hello.type == "success"
        assert hello.data == {"k": "v"}
        assert hello.read is False

    async def test_record_failure_returns_none(self, db_session):
        # user_id is NOT NULL
        assert await record_in_app(db_session, None, "Hello", "Broken") is None

    async def test_mark_read_and_unread_filter(self, db_session, make_user):
        user = await make_user()
        first = await record_in_app(db_session, user.id, "One", "1")
        await record_in_app(db_session, user.id, "Two", "2")

        await mark_read(db_session, user.id, first.id)

        unread = await list_notifications(db_session, user.id, unread_only=True)
        assert [n.title for n in unread] == ["Two"]

    async def test_cannot_mark_someone_elses(self, db_session, make_user):
        owner = await make_user()
        other = await make_user()
        notification = await record_in_app(db_session, owner.id, "Private", "x")

        with pytest.raises(NotFoundError):
            await mark_read(db_session, other.id, notification.id)

    async def test_mark_all_read_counts_only_own_unread(self, db_session, make_user):
        user = await make_user()
        other = await make_user()
        for title in ("a", "b", "c"):
            await record_in_app(db_session, user.id, title, title)
        await record_in_app(db_session, other.id, "d", "d")

        assert await mark_all_read(db_session, user.id) == 3
        assert await mark_all_read(db_session, user.id) == 0
        assert len(await list_notifications(db_session, other.id, unread_only=True)) == 1
