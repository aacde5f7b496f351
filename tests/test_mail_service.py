from unittest.mock import MagicMock, patch

import pytest
import requests

from koru_forms.services.mail_service import (
    MailMessage,
    MailService,
    MailTransportError,
    SendGridTransport,
    SmtpTransport,
    find_reply_to,
    render_subject,
)

from tests.conftest import FakeTransport

SETTINGS = {"admin_email": "admin@example.com", "subject_line": "New web contact: {{Name}}", "autoresponder": True}
DATA = {"Name": "Ada", "Correo Electrónico": "ada@example.com", "Message": "<b>hi</b>"}


def test_find_reply_to_matches_email_like_keys():
    assert find_reply_to({"Your E-mail": "x@example.com"}) == "x@example.com"
    assert find_reply_to({"correo": "y@example.com"}) == "y@example.com"
    assert find_reply_to({"Name": "Ada"}) is None


def test_render_subject_keeps_unknown_tokens():
    assert render_subject("Hi {{Name}} about {{Topic}}", {"Name": "Ada"}) == "Hi Ada about {{Topic}}"


def test_primary_success_sends_admin_and_autoresponse():
    primary, fallback = FakeTransport("smtp"), FakeTransport("sendgrid")

    result = MailService(primary, fallback).send_contact_email(SETTINGS, DATA, {"url": "https://site"})

    assert result["success"] is True
    assert result["method"] == "smtp"
    assert "messageId" in result
    admin, auto = primary.sent
    assert admin.to == "admin@example.com"
    assert admin.subject == "[KORU] New web contact: Ada"
    assert admin.reply_to == "ada@example.com"
    assert "&lt;b&gt;hi&lt;/b&gt;" in admin.html
    assert "https://site" in admin.html
    assert auto.to == "ada@example.com"
    assert fallback.sent == []


def test_no_autoresponse_without_submitter_address():
    primary = FakeTransport("smtp")

    MailService(primary, FakeTransport("sendgrid")).send_contact_email(SETTINGS, {"Name": "Ada"}, {})

    assert len(primary.sent) == 1
    assert primary.sent[0].reply_to is None


def test_falls_back_when_primary_fails():
    primary, fallback = FakeTransport("smtp", fail=True), FakeTransport("sendgrid")

    result = MailService(primary, fallback).send_contact_email(SETTINGS, DATA, {})

    assert result == {"success": True, "method": "sendgrid", "statusCode": 202, "timestamp": result["timestamp"]}
    assert len(fallback.sent) == 2


def test_both_transports_failing_returns_failure_log():
    result = MailService(FakeTransport("smtp", fail=True), FakeTransport("sendgrid", fail=True)) \
        .send_contact_email(SETTINGS, DATA, {})

    assert result["success"] is False
    assert "smtp down" in result["error"]
    assert "sendgrid down" in result["error"]
    assert result["timestamp"]


@patch("koru_forms.services.mail_service.smtplib.SMTP_SSL")
def test_smtp_transport_wraps_network_errors(mock_smtp):
    mock_smtp.side_effect = TimeoutError("timed out")
    transport = SmtpTransport(host="smtp.test", port=465, username="u", password="p", sender="f@test.com", timeout=1)

    with pytest.raises(MailTransportError, match="timed out"):
        transport.send(MailMessage(to="a@test.com", subject="s", html="<p>x</p>"))
    mock_smtp.assert_called_once_with("smtp.test", 465, timeout=1)


def test_smtp_transport_without_credentials_fails_fast():
    transport = SmtpTransport(username="", password="", sender="f@test.com")

    with pytest.raises(MailTransportError):
        transport.send(MailMessage(to="a@test.com", subject="s", html="x"))


def test_sendgrid_transport_posts_payload():
    session = MagicMock()
    session.post.return_value = MagicMock(status_code=202)
    transport = SendGridTransport(api_key="key", sender="f@test.com", timeout=3, session=session)

    result = transport.send(MailMessage(to="a@test.com", subject="s", html="x", reply_to="r@test.com"))

    assert result == {"method": "sendgrid", "statusCode": 202}
    kwargs = session.post.call_args.kwargs
    assert kwargs["headers"]["Authorization"] == "Bearer key"
    assert kwargs["json"]["reply_to"] == {"email": "r@test.com"}
    assert kwargs["timeout"] == 3


def test_sendgrid_transport_error_status_and_connection_error():
    session = MagicMock()
    session.post.return_value = MagicMock(status_code=401, text="bad key")
    transport = SendGridTransport(api_key="key", sender="f@test.com", session=session)

    with pytest.raises(MailTransportError, match="401"):
        transport.send(MailMessage(to="a@test.com", subject="s", html="x"))

    session.post.side_effect = requests.ConnectionError("refused")
    with pytest.raises(MailTransportError, match="refused"):
        transport.send(MailMessage(to="a@test.com", subject="s", html="x"))
