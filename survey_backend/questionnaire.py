"""
Questionnaire Controller

Steps a respondent through the configured questions one at a time, keeps the
category tally for the session, and submits the finished payload to the
service. A submission that cannot be delivered is written to a local backup
file instead, so the respondent always reaches a completion view.
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import requests
from pydantic import BaseModel

from survey_backend.schemas import SurveyDefinition
from survey_backend.scoring import (
    CATEGORIES,
    answer_totals,
    dominant_category,
    empty_tally,
    update_category_tally,
)
from survey_backend.storage import write_json_atomic

logger = logging.getLogger(__name__)

WELCOME = "welcome"
DONE = "done"

SUCCESS_VIEW = "success"
SAVED_LOCALLY_VIEW = "saved_locally"


class InvalidTransition(Exception):
    """Raised when a navigation action is not allowed in the current state."""


class QuestionnaireSession:
    """
    Session state for one pass through the questionnaire.

    ``state`` is ``"welcome"``, the index of the current question, or ``"done"``.
    """

    def __init__(self, survey: SurveyDefinition):
        if not survey.questions:
            raise ValueError("Survey has no questions")
        self.survey = survey
        self.state = WELCOME
        self.answers: Dict[str, str] = {}
        self.tally = empty_tally(survey.categories)
        self.counted = frozenset()

    @property
    def last_index(self) -> int:
        return len(self.survey.questions) - 1

    @property
    def current_question(self):
        if not isinstance(self.state, int):
            return None
        return self.survey.questions[self.state]

    def start(self):
        if self.state != WELCOME:
            raise InvalidTransition(f"Cannot start from state {self.state!r}")
        self.state = 0

    def next(self):
        if not isinstance(self.state, int) or self.state >= self.last_index:
            raise InvalidTransition(f"Cannot move forward from state {self.state!r}")
        self.state += 1

    def previous(self):
        if not isinstance(self.state, int) or self.state <= 0:
            raise InvalidTransition(f"Cannot move back from state {self.state!r}")
        self.state -= 1

    def answer(self, value, question_id: Optional[str] = None):
        """Record an answer for the current question (or the given one) and update the tally."""
        if question_id is None:
            question = self.current_question
            if question is None:
                raise InvalidTransition(f"No question to answer in state {self.state!r}")
        else:
            question = self.survey.get_question_by_id(question_id)
            if question is None:
                raise KeyError(f"Unknown question: {question_id}")

        self.answers[question.id] = str(value)
        self.tally, self.counted = update_category_tally(
            self.tally,
            self.counted,
            question.id,
            value,
            question.category,
            self.survey.answer_values.yes,
        )

    def dominant_category(self) -> Optional[str]:
        return dominant_category(self.tally, self.survey.tie_label)

    def build_payload(self, user_agent: str = "", referrer: str = "", page_url: str = "") -> Dict[str, Any]:
        """Assemble the submission payload from the current session state."""
        total_yes, total_no, total_questions = answer_totals(
            self.answers,
            self.survey.answer_values.yes,
            self.survey.answer_values.no,
        )
        payload = {
            "answers": dict(self.answers),
            "categoryScores": dict(self.tally),
        }
        for category in CATEGORIES:
            payload[f"totalScore{category}"] = self.tally.get(category, 0)
        payload.update({
            "dominantCategory": self.dominant_category(),
            "totalYes": total_yes,
            "totalNo": total_no,
            "totalQuestions": total_questions,
            "userAgent": user_agent,
            "referrer": referrer,
            "pageUrl": page_url,
        })
        return payload

    def submit(self, **metadata) -> Dict[str, Any]:
        """Finish the questionnaire from the last question and return the payload."""
        if self.state != self.last_index:
            raise InvalidTransition(f"Cannot submit from state {self.state!r}")
        payload = self.build_payload(**metadata)
        self.state = DONE
        return payload

    def handle_key(self, key: str, **metadata) -> Optional[Dict[str, Any]]:
        """
        Keyboard shortcut: Enter moves to the next question, or submits on the last one.
        Returns the payload when the key submitted the questionnaire.
        """
        if key != "Enter" or not isinstance(self.state, int):
            return None
        if self.state == self.last_index:
            return self.submit(**metadata)
        self.next()
        return None


class LocalBackupStore:
    """Client-side JSON array file holding submissions that could not be sent."""

    def __init__(self, path):
        self.path = Path(path)

    def load(self):
        if not self.path.exists():
            return []
        with open(self.path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        return data if isinstance(data, list) else []

    def save(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        record = dict(payload)
        record["id"] = record.get("id") or f"local-{uuid.uuid4().hex}"
        record["timestamp"] = datetime.now(timezone.utc).isoformat()
        record["localBackup"] = True

        records = self.load()
        records.append(record)
        write_json_atomic(self.path, records)
        return record


class SubmissionOutcome(BaseModel):
    view: str
    response_id: Optional[str] = None
    total_responses: Optional[int] = None
    dominant_category: Optional[str] = None
    email_sent: bool = False
    saved_locally: bool = False
    error: Optional[str] = None


class SurveyClient:
    """Submits questionnaire payloads to the survey service."""

    def __init__(self, base_url: str, fallback: LocalBackupStore, timeout: int = 30, session=None):
        self.base_url = base_url.rstrip("/")
        self.fallback = fallback
        self.timeout = timeout
        self.session = session or requests.Session()

    def submit(self, payload: Dict[str, Any]) -> SubmissionOutcome:
        """
        Submit the payload. Never raises: any failure ends in the local backup view.
        """
        try:
            response = self.session.post(
                f"{self.base_url}/api/survey",
                json=payload,
                timeout=self.timeout,
            )
            result = response.json()
            if not isinstance(result, dict) or not result.get("success"):
                error = result.get("error") if isinstance(result, dict) else None
                raise ValueError(error or f"Submission rejected with HTTP {response.status_code}")

            return SubmissionOutcome(
                view=SUCCESS_VIEW,
                response_id=result.get("responseId"),
                total_responses=result.get("totalResponses"),
                dominant_category=result.get("dominantCategory"),
                email_sent=bool(result.get("emailSent")),
            )
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.warning(f"Submission failed, saving locally: {str(e)}")
            return self._save_locally(payload, str(e))
        except Exception as e:
            logger.error(f"Unexpected submission error, saving locally: {str(e)}", exc_info=True)
            return self._save_locally(payload, str(e))

    def _save_locally(self, payload, error) -> SubmissionOutcome:
        try:
            record = self.fallback.save(payload)
        except Exception as e:
            logger.error(f"Local backup failed: {str(e)}", exc_info=True)
            return SubmissionOutcome(
                view=SAVED_LOCALLY_VIEW,
                dominant_category=payload.get("dominantCategory"),
                saved_locally=False,
                error=f"{error}; local backup failed: {e}",
            )

        return SubmissionOutcome(
            view=SAVED_LOCALLY_VIEW,
            response_id=record["id"],
            dominant_category=payload.get("dominantCategory"),
            saved_locally=True,
            error=error,
        )


def completion_message(outcome: SubmissionOutcome) -> str:
    """Text for the completion view matching the outcome."""
    category = outcome.dominant_category or "Unknown"
    if outcome.view == SUCCESS_VIEW:
        return (
            f"Thank you! Your answers were received (reference {outcome.response_id}). "
            f"Your dominant category is {category}."
        )
    if outcome.saved_locally:
        return (
            "Thank you! We could not reach the server, so your answers were saved on this "
            f"device as a local backup (reference {outcome.response_id}). "
            f"Your dominant category is {category}."
        )
    return (
        "Thank you! We could not reach the server and could not keep a local copy of your "
        f"answers. Your dominant category is {category}."
    )
