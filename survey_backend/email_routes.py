from fastapi import APIRouter, HTTPException, Depends
from fastapi.responses import JSONResponse
from datetime import datetime, timezone
from typing import Optional
import logging
import uuid

from survey_backend.notifier import (
    EmailMessage,
    Notifier,
    format_summary,
    get_notifier,
    notify_best_effort,
)
from survey_backend.models import EmailStatus
from survey_backend.schemas import SendEmailRequest
from survey_backend.storage import StorageError, SurveyStore, get_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["email"])


def record_email(store: SurveyStore, message: EmailMessage, sent: bool, receipt=None, error=None):
    """
    Persist the outcome of an email attempt.
    Failures here are logged and never propagated to the caller.
    """
    record = {
        "id": receipt.email_id if receipt else uuid.uuid4().hex,
        "recipient": message.to,
        "subject": message.subject,
        "responseId": message.response_id,
        "sentAt": receipt.sent_at if receipt else datetime.now(timezone.utc).isoformat(),
        "status": EmailStatus.SENT.value if sent else EmailStatus.FAILED.value,
    }
    if error:
        record["error"] = error

    try:
        store.add_email(record)
    except StorageError as e:
        logger.warning(f"Could not record email attempt: {e}")
    return record


@router.post("/send-email")
async def send_email(
    request: SendEmailRequest,
    store: SurveyStore = Depends(get_store),
    notifier: Optional[Notifier] = Depends(get_notifier),
):
    """
    Email a results summary to the given recipient.
    Delivery is best-effort: a failed delivery is reported in the body, not as an error status.
    """
    to_email = (request.toEmail or "").strip()
    if not to_email:
        raise HTTPException(status_code=400, detail="Recipient email is required")
    if "@" not in to_email:
        raise HTTPException(status_code=400, detail=f"Invalid email address: {to_email}")

    message = format_summary(request.results, to=to_email, subject=request.subject)

    if notifier is None:
        return JSONResponse(
            status_code=200,
            content={"success": False, "error": "Email service not configured"}
        )

    sent, receipt, error = notify_best_effort(notifier, message)
    record = record_email(store, message, sent, receipt, error)

    if not sent:
        return JSONResponse(
            status_code=200,
            content={"success": False, "error": error}
        )

    return {"success": True, "emailId": record["id"]}


@router.get("/emails")
async def list_emails(store: SurveyStore = Depends(get_store)):
    """List every recorded email attempt."""
    emails = store.list_emails()
    return {"success": True, "data": emails, "count": len(emails)}
