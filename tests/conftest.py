from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from survey_backend.app import create_app
from survey_backend.config import Settings
from survey_backend.notifier import DeliveryReceipt, NotifyError, Notifier
from survey_backend.schemas import SurveyDefinition
from survey_backend.storage import JsonFileStore


class FakeNotifier(Notifier):
    """Records messages instead of sending them."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    def send(self, message):
        if self.fail:
            raise NotifyError("mail API unavailable")
        self.sent.append(message)
        return DeliveryReceipt(email_id=f"email-{len(self.sent)}", sent_at="2026-01-01T00:00:00+00:00")


@pytest.fixture
def survey() -> SurveyDefinition:
    return SurveyDefinition.model_validate({
        "title": "Test survey",
        "categories": ["A", "B", "C"],
        "answer_values": {"yes": "1", "no": "2"},
        "tie_label": "Mixed",
        "questions": [
            {"id": "q1", "text": "First", "category": "A"},
            {"id": "q2", "text": "Second", "category": "A"},
            {"id": "q3", "text": "Third", "category": "B"},
            {"id": "q4", "text": "Fourth", "category": "C"},
        ],
    })


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(data_dir=tmp_path / "data")


@pytest.fixture
def store(settings) -> JsonFileStore:
    return JsonFileStore(settings.responses_file, settings.emails_file)


@pytest.fixture
def client(settings, store, survey) -> TestClient:
    app = create_app(settings=settings, store=store, survey=survey)
    return TestClient(app)


@pytest.fixture
def payload() -> dict:
    return {
        "answers": {"q1": "1", "q2": "1", "q3": "2", "q4": "1"},
        "categoryScores": {"A": 2, "B": 0, "C": 1},
        "totalScoreA": 2,
        "totalScoreB": 0,
        "totalScoreC": 1,
        "dominantCategory": "A",
        "totalYes": 3,
        "totalNo": 1,
        "totalQuestions": 4,
        "userAgent": "pytest-browser",
        "referrer": "https://example.org/",
        "pageUrl": "https://survey.example.org/",
    }
