from fastapi import FastAPI, Request, HTTPException, Depends
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from datetime import datetime, timezone
from typing import Optional
import logging
import uuid

from survey_backend.config import SURVEY_CONFIG, Settings
from survey_backend.email_routes import record_email, router as email_router
from survey_backend.notifier import Notifier, build_notifier, format_summary, get_notifier, notify_best_effort
from survey_backend.reporting import NoDataError, compute_stats, export_csv
from survey_backend.schemas import ContactRequest, DeleteRequest, SurveyDefinition, SurveySubmission
from survey_backend.scoring import CATEGORIES, tally_answers
from survey_backend.storage import DuplicateResponseError, StorageError, SurveyStore, build_store, get_store

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DELETE_CONFIRMATION = "YES_DELETE_ALL"


def client_ip(request: Request) -> Optional[str]:
    """Caller IP, honouring the first hop of X-Forwarded-For when present."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def build_record(submission: SurveySubmission, request: Request, survey: SurveyDefinition) -> dict:
    """
    Build the persisted record for a submission.
    Supplied scores pass through; missing numeric fields default to zero.
    When the client sends no scores at all they are tallied from the answers.
    """
    answers = submission.get_answers()
    supplied_totals = [getattr(submission, f"totalScore{category}") for category in CATEGORIES]
    if submission.categoryScores is None and all(value is None for value in supplied_totals):
        category_scores = tally_answers(
            answers, survey.get_category_mapping(), survey.answer_values.yes
        )
    else:
        category_scores = dict(submission.categoryScores or {})
    totals = {}
    for category in CATEGORIES:
        value = getattr(submission, f"totalScore{category}")
        if value is None:
            value = category_scores.get(category, 0)
        totals[category] = value
        category_scores.setdefault(category, value)

    return {
        "id": submission.responseId or uuid.uuid4().hex,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "answers": answers,
        "categoryScores": category_scores,
        "totalScoreA": totals["A"],
        "totalScoreB": totals["B"],
        "totalScoreC": totals["C"],
        "dominantCategory": submission.dominantCategory,
        "totalYes": submission.totalYes or 0,
        "totalNo": submission.totalNo or 0,
        "totalQuestions": submission.totalQuestions or 0,
        "userAgent": submission.userAgent or request.headers.get("user-agent"),
        "referrer": submission.referrer,
        "pageUrl": submission.pageUrl,
        "ipAddress": client_ip(request),
    }


def error_response(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


def create_app(settings: Optional[Settings] = None, store: Optional[SurveyStore] = None,
               notifier: Optional[Notifier] = None, survey: Optional[SurveyDefinition] = None) -> FastAPI:
    """
    Build the survey service application.
    Store and notifier default to the ones described by the settings.
    """
    settings = settings or Settings.from_env()
    survey = survey or SurveyDefinition.model_validate(SURVEY_CONFIG)

    app = FastAPI(title="Category Survey Service")
    app.state.settings = settings
    app.state.survey = survey
    app.state.store = store if store is not None else build_store(settings)
    app.state.notifier = notifier if notifier is not None else build_notifier(settings)

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(email_router)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        detail = exc.detail
        if exc.status_code == 404 and detail == "Not Found":
            detail = "Endpoint not found"
        return error_response(exc.status_code, str(detail))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        messages = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
            messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
        return error_response(400, "Invalid request: " + "; ".join(messages))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {str(exc)}", exc_info=exc)
        return error_response(500, str(exc) or "Internal server error")

    @app.get("/api/health")
    async def health_check(store: SurveyStore = Depends(get_store)):
        """Health check endpoint."""
        return {
            "status": "OK",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "responses": store.count_responses(),
        }

    @app.post("/api/survey", status_code=201)
    async def submit_survey(
        request: Request,
        submission: Optional[SurveySubmission] = None,
        store: SurveyStore = Depends(get_store),
        notifier: Optional[Notifier] = Depends(get_notifier),
    ):
        """
        Store one questionnaire submission.
        Emails a summary to the configured recipient when mail is set up.
        """
        if submission is None or not submission.answers:
            raise HTTPException(status_code=400, detail="No answers received")

        if submission.responseId and store.get_response(submission.responseId):
            raise HTTPException(status_code=409, detail=f"Response already exists: {submission.responseId}")

        try:
            record = build_record(submission, request, survey)
            total_responses = store.add_response(record)
        except DuplicateResponseError as e:
            raise HTTPException(status_code=409, detail=str(e))
        except StorageError as e:
            logger.error(f"Error saving survey response: {str(e)}", exc_info=True)
            raise HTTPException(status_code=500, detail="Failed to save survey response")

        logger.info(f"Saved response {record['id']} ({total_responses} total)")

        email_sent = False
        if notifier is not None and settings.notify_email:
            message = format_summary(record, to=settings.notify_email)
            email_sent, receipt, error = notify_best_effort(notifier, message)
            record_email(store, message, email_sent, receipt, error)

        return {
            "success": True,
            "responseId": record["id"],
            "timestamp": record["timestamp"],
            "totalResponses": total_responses,
            "scores": record["categoryScores"],
            "dominantCategory": record["dominantCategory"],
            "savedToFile": True,
            "emailSent": email_sent,
        }

    @app.get("/api/responses")
    async def list_responses(store: SurveyStore = Depends(get_store)):
        """Return every stored response."""
        records = store.list_responses()
        return {"success": True, "data": records, "count": len(records)}

    @app.get("/api/responses/csv")
    async def export_responses_csv(store: SurveyStore = Depends(get_store)):
        """Download every stored response as CSV."""
        try:
            content = export_csv(store.list_responses())
        except NoDataError as e:
            raise HTTPException(status_code=404, detail=str(e))

        filename = f"survey-responses-{datetime.now(timezone.utc).strftime('%Y%m%d')}.csv"
        return Response(
            content=content,
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @app.get("/api/responses/{response_id}")
    async def get_response(response_id: str, store: SurveyStore = Depends(get_store)):
        record = store.get_response(response_id)
        if not record:
            raise HTTPException(status_code=404, detail=f"Response not found: {response_id}")
        return {"success": True, "data": record}

    @app.patch("/api/responses/{response_id}/contact")
    async def attach_contact(
        response_id: str,
        request: ContactRequest,
        store: SurveyStore = Depends(get_store),
    ):
        """Attach contact details to a stored response."""
        contact = {
            "email": request.email,
            "name": request.name,
            "addedAt": datetime.now(timezone.utc).isoformat(),
        }
        try:
            record = store.attach_contact(response_id, contact)
        except StorageError as e:
            logger.error(f"Error attaching contact: {str(e)}", exc_info=True)
            raise HTTPException(status_code=500, detail="Failed to update survey response")

        if not record:
            raise HTTPException(status_code=404, detail=f"Response not found: {response_id}")
        return {"success": True, "data": record}

    @app.get("/api/stats")
    async def get_stats(store: SurveyStore = Depends(get_store)):
        """Aggregate statistics over every stored response."""
        stats = compute_stats(store.list_responses(), tie_label=survey.tie_label)
        return {"success": True, "stats": stats}

    @app.delete("/api/responses")
    async def delete_responses(
        request: Optional[DeleteRequest] = None,
        store: SurveyStore = Depends(get_store),
    ):
        """Delete every stored response. Requires the explicit confirmation token."""
        if request is None or request.confirm != DELETE_CONFIRMATION:
            raise HTTPException(
                status_code=400,
                detail=f'Confirmation required: send {{"confirm": "{DELETE_CONFIRMATION}"}}'
            )

        try:
            removed = store.clear_responses()
        except StorageError as e:
            logger.error(f"Error deleting responses: {str(e)}", exc_info=True)
            raise HTTPException(status_code=500, detail="Failed to delete survey responses")

        logger.warning(f"Deleted all {removed} survey responses")
        return {"success": True, "message": "All responses deleted", "deleted": removed}

    return app


app = create_app()


def main():
    """Run the service with uvicorn."""
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port)


if __name__ == "__main__":
    main()
