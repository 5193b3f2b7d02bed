"""
Email Notifier

Delivers survey summaries through an HTTP mail API. Delivery is best-effort:
callers use ``notify_best_effort`` so a failed email never fails the request
that produced it.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

import requests
from fastapi import Request
from pydantic import BaseModel

from survey_backend.scoring import CATEGORIES

logger = logging.getLogger(__name__)


class NotifyError(Exception):
    """Raised when an email could not be delivered."""


class EmailMessage(BaseModel):
    to: str
    subject: str
    text: str
    response_id: Optional[str] = None


class DeliveryReceipt(BaseModel):
    email_id: str
    sent_at: str


class Notifier(ABC):
    """Capability to deliver an email message."""

    @abstractmethod
    def send(self, message: EmailMessage) -> DeliveryReceipt:
        """Deliver the message or raise NotifyError."""


class HttpMailNotifier(Notifier):
    """Notifier that posts messages to a JSON mail API with a bearer key."""

    def __init__(self, api_url: str, api_key: str, sender: str, timeout: int = 30, session=None):
        self.api_url = api_url
        self.api_key = api_key
        self.sender = sender
        self.timeout = timeout
        self.session = session or requests.Session()

    def send(self, message: EmailMessage) -> DeliveryReceipt:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        body = {
            "from": self.sender,
            "to": [message.to],
            "subject": message.subject,
            "text": message.text,
        }

        try:
            response = self.session.post(self.api_url, json=body, headers=headers, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.HTTPError as e:
            error_detail = f"HTTP {e.response.status_code}: {e.response.text}" if e.response is not None else str(e)
            raise NotifyError(f"Mail API rejected the message: {error_detail}") from e
        except requests.exceptions.RequestException as e:
            raise NotifyError(f"Failed to connect to mail API: {str(e)}") from e
        except ValueError as e:
            raise NotifyError(f"Mail API returned invalid JSON: {str(e)}") from e

        email_id = data.get("id") if isinstance(data, dict) else None
        if not email_id:
            raise NotifyError("Mail API response did not include a message id")

        return DeliveryReceipt(
            email_id=str(email_id),
            sent_at=datetime.now(timezone.utc).isoformat(),
        )


def build_notifier(settings) -> Optional[Notifier]:
    """Return a notifier when mail is configured, otherwise None."""
    if not settings.mail_configured:
        return None
    return HttpMailNotifier(settings.mail_api_url, settings.mail_api_key, settings.mail_from)


def format_summary(record, to: str, subject: Optional[str] = None) -> EmailMessage:
    """Format a response record (or a results dict of the same shape) as an email."""
    response_id = record.get("id") or record.get("responseId")
    if response_id is not None:
        response_id = str(response_id)
    dominant = str(record.get("dominantCategory") or "Unknown")
    scores = record.get("categoryScores")
    if not isinstance(scores, dict):
        scores = {}

    lines = ["Survey results", ""]
    if response_id:
        lines.append(f"Response ID: {response_id}")
    if record.get("timestamp"):
        lines.append(f"Submitted: {record['timestamp']}")
    lines.append(f"Dominant category: {dominant}")
    lines.append("")
    for category in CATEGORIES:
        score = record.get(f"totalScore{category}", scores.get(category, 0))
        lines.append(f"Category {category}: {score}")
    lines.append("")
    lines.append(f"Yes answers: {record.get('totalYes', 0)}")
    lines.append(f"No answers: {record.get('totalNo', 0)}")
    lines.append(f"Questions answered: {record.get('totalQuestions', 0)}")

    return EmailMessage(
        to=to,
        subject=subject or f"Survey results: {dominant}",
        text="\n".join(lines),
        response_id=response_id,
    )


def notify_best_effort(notifier: Optional[Notifier], message: EmailMessage):
    """
    Attempt delivery without raising.

    Returns:
        tuple: (sent, receipt, error)
    """
    if notifier is None:
        return False, None, "Email service not configured"

    try:
        receipt = notifier.send(message)
    except NotifyError as e:
        logger.warning(f"Email to {message.to} failed: {e}")
        return False, None, str(e)
    except Exception as e:
        logger.error(f"Unexpected error sending email to {message.to}: {str(e)}", exc_info=True)
        return False, None, str(e)

    logger.info(f"Email {receipt.email_id} sent to {message.to}")
    return True, receipt, None


def get_notifier(request: Request) -> Optional[Notifier]:
    """Dependency function to get the configured notifier, if any."""
    return request.app.state.notifier
