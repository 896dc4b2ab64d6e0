import smtplib
from unittest.mock import patch

import pytest

from weather_subscriptions.fetcher import CurrentConditions
from weather_subscriptions.mailer import (
    ConsoleMailer,
    MailError,
    SMTPMailer,
    build_confirmation_email,
    build_forecast_email,
)


@pytest.fixture()
def smtp_mailer():
    return SMTPMailer(
        host="smtp.example.com",
        port=587,
        username="weather@example.com",
        password="secret",
        timeout=5,
    )


@patch("smtplib.SMTP")
def test_smtp_send_uses_starttls_and_login(mock_smtp_cls, smtp_mailer):
    smtp = mock_smtp_cls.return_value.__enter__.return_value

    smtp_mailer.send("a@x.com", "Hello", "plain body", "<p>html body</p>")

    mock_smtp_cls.assert_called_once_with("smtp.example.com", 587, timeout=5)
    smtp.starttls.assert_called_once()
    smtp.login.assert_called_once_with("weather@example.com", "secret")
    message = smtp.send_message.call_args[0][0]
    assert message["To"] == "a@x.com"
    assert message["From"] == "weather@example.com"
    assert message["Subject"] == "Hello"
    assert message.is_multipart()


@patch("smtplib.SMTP")
def test_smtp_errors_become_mail_error(mock_smtp_cls, smtp_mailer):
    smtp = mock_smtp_cls.return_value.__enter__.return_value
    smtp.send_message.side_effect = smtplib.SMTPRecipientsRefused({"a@x.com": (550, b"no")})

    with pytest.raises(MailError):
        smtp_mailer.send("a@x.com", "Hello", "body")


@patch("smtplib.SMTP")
def test_connection_failure_becomes_mail_error(mock_smtp_cls, smtp_mailer):
    mock_smtp_cls.side_effect = ConnectionRefusedError("refused")

    with pytest.raises(MailError):
        smtp_mailer.send("a@x.com", "Hello", "body")


@patch("smtplib.SMTP")
def test_explicit_sender_and_no_auth(mock_smtp_cls):
    smtp = mock_smtp_cls.return_value.__enter__.return_value
    mailer = SMTPMailer(host="localhost", port=25, sender="noreply@example.com", use_tls=False)

    mailer.send("a@x.com", "Hello", "body")

    smtp.starttls.assert_not_called()
    smtp.login.assert_not_called()
    assert smtp.send_message.call_args[0][0]["From"] == "noreply@example.com"


@patch("smtplib.SMTP")
def test_header_injection_becomes_mail_error(mock_smtp_cls, smtp_mailer):
    with pytest.raises(MailError):
        smtp_mailer.send("a@x.com\r\nBcc: b@y.com", "Hello", "body")

    mock_smtp_cls.assert_not_called()


def test_console_mailer_logs(caplog):
    with caplog.at_level("INFO", logger="weather_subscriptions.mailer"):
        ConsoleMailer().send("a@x.com", "Hello", "body")
    assert "a@x.com" in caplog.text


def test_confirmation_email_contains_link():
    email = build_confirmation_email("http://localhost:3000/api/confirm/abc")
    assert email.subject == "Confirm your weather subscription"
    assert 'href="http://localhost:3000/api/confirm/abc"' in email.html
    assert "http://localhost:3000/api/confirm/abc" in email.text


def test_forecast_email():
    email = build_forecast_email(CurrentConditions(
        city="Kyiv", temperature_celsius=-3.5, humidity_percent=88, condition_text="Snow"
    ))
    assert email.subject == "⛅ Weather Update for Kyiv"
    assert "-3.5°C" in email.text
    assert "88%" in email.text
    assert "Snow" in email.text
    assert email.html is None
