"""Tests for the HTTP mail notifier and summary formatting."""
from __future__ import annotations

import pytest
import requests

from survey_backend.config import Settings
from survey_backend.notifier import (
    EmailMessage,
    HttpMailNotifier,
    NotifyError,
    build_notifier,
    format_summary,
    notify_best_effort,
)

from conftest import FakeNotifier


class _Response:
    def __init__(self, status_code=200, body=None, text=""):
        self.status_code = status_code
        self._body = body
        self.text = text

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} Error", response=self)

    def json(self):
        if self._body is None:
            raise ValueError("no JSON")
        return self._body


class _Session:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.error:
            raise self.error
        return self.response


def _message() -> EmailMessage:
    return EmailMessage(to="owner@example.org", subject="Results", text="body", response_id="r1")


class TestHttpMailNotifier:
    def test_send(self):
        session = _Session(_Response(body={"id": "msg-123"}))
        notifier = HttpMailNotifier("https://mail.test/emails", "secret", "survey@example.org", session=session)

        receipt = notifier.send(_message())

        assert receipt.email_id == "msg-123"
        call = session.calls[0]
        assert call["url"] == "https://mail.test/emails"
        assert call["headers"]["Authorization"] == "Bearer secret"
        assert call["json"]["to"] == ["owner@example.org"]
        assert call["json"]["from"] == "survey@example.org"
        assert call["timeout"] == 30

    def test_http_error(self):
        session = _Session(_Response(status_code=422, text="invalid sender"))
        notifier = HttpMailNotifier("https://mail.test/emails", "secret", "survey@example.org", session=session)
        with pytest.raises(NotifyError, match="HTTP 422"):
            notifier.send(_message())

    def test_connection_error(self):
        session = _Session(error=requests.exceptions.ConnectionError("refused"))
        notifier = HttpMailNotifier("https://mail.test/emails", "secret", "survey@example.org", session=session)
        with pytest.raises(NotifyError, match="Failed to connect"):
            notifier.send(_message())

    def test_missing_id(self):
        session = _Session(_Response(body={}))
        notifier = HttpMailNotifier("https://mail.test/emails", "secret", "survey@example.org", session=session)
        with pytest.raises(NotifyError):
            notifier.send(_message())


def test_build_notifier_requires_key_and_sender():
    assert build_notifier(Settings()) is None
    assert build_notifier(Settings(mail_api_key="k")) is None
    assert isinstance(build_notifier(Settings(mail_api_key="k", mail_from="s@example.org")), HttpMailNotifier)


def test_notify_best_effort():
    assert notify_best_effort(None, _message()) == (False, None, "Email service not configured")

    sent, receipt, error = notify_best_effort(FakeNotifier(), _message())
    assert sent is True and receipt.email_id == "email-1" and error is None

    sent, receipt, error = notify_best_effort(FakeNotifier(fail=True), _message())
    assert sent is False and receipt is None and "unavailable" in error


def test_format_summary_coerces_loose_results():
    message = format_summary(
        {"responseId": 42, "categoryScores": "oops", "dominantCategory": 3},
        to="owner@example.org",
    )
    assert message.response_id == "42"
    assert message.subject == "Survey results: 3"
    assert "Category A: 0" in message.text


def test_format_summary():
    record = {
        "id": "r9",
        "timestamp": "2026-01-01T00:00:00+00:00",
        "categoryScores": {"A": 1, "B": 3, "C": 0},
        "totalScoreA": 1,
        "totalScoreB": 3,
        "totalScoreC": 0,
        "dominantCategory": "B",
        "totalYes": 4,
        "totalNo": 5,
        "totalQuestions": 9,
    }
    message = format_summary(record, to="owner@example.org")
    assert message.subject == "Survey results: B"
    assert message.response_id == "r9"
    assert "Category B: 3" in message.text
    assert "Questions answered: 9" in message.text
