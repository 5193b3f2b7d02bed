from pydantic import BaseModel, model_validator
from typing import List, Dict, Optional, Any

from survey_backend.scoring import CATEGORIES


class Question(BaseModel):
    """Represents one yes/no question and the category it scores."""
    id: str
    text: str
    category: str


class AnswerValues(BaseModel):
    """Literal answer values used for yes/no counting."""
    yes: str = "1"
    no: str = "2"


class SurveyDefinition(BaseModel):
    """Represents the questionnaire loaded from config/survey.json."""
    title: Optional[str] = None
    categories: List[str] = ["A", "B", "C"]
    answer_values: AnswerValues = AnswerValues()
    tie_label: str = "Mixed"
    questions: List[Question]

    @model_validator(mode="after")
    def check_categories(self):
        # Records and reports carry one totalScore field per category A, B and C
        if tuple(self.categories) != CATEGORIES:
            raise ValueError(f"categories must be {list(CATEGORIES)}, got {self.categories}")
        for question in self.questions:
            if question.category not in CATEGORIES:
                raise ValueError(f"Question {question.id} has unknown category {question.category!r}")
        return self

    def get_question_by_id(self, question_id: str) -> Optional[Question]:
        """Get a question definition by its ID."""
        for question in self.questions:
            if question.id == question_id:
                return question
        return None

    def get_category_mapping(self) -> Dict[str, str]:
        """Get a mapping of question IDs to categories."""
        return {question.id: question.category for question in self.questions}


class SurveySubmission(BaseModel):
    """Represents the payload posted by the questionnaire to /api/survey."""
    answers: Optional[Dict[str, Any]] = None
    responseId: Optional[str] = None
    categoryScores: Optional[Dict[str, int]] = None
    totalScoreA: Optional[int] = None
    totalScoreB: Optional[int] = None
    totalScoreC: Optional[int] = None
    dominantCategory: Optional[str] = None
    totalYes: Optional[int] = None
    totalNo: Optional[int] = None
    totalQuestions: Optional[int] = None
    userAgent: Optional[str] = None
    referrer: Optional[str] = None
    pageUrl: Optional[str] = None

    def get_answers(self) -> Dict[str, str]:
        """Answers with every value normalised to its string form."""
        return {str(key): str(value) for key, value in (self.answers or {}).items()}


class SendEmailRequest(BaseModel):
    """Represents a request to email a results summary."""
    toEmail: Optional[str] = None
    subject: Optional[str] = None
    results: Dict[str, Any] = {}


class DeleteRequest(BaseModel):
    confirm: Optional[str] = None


class ContactRequest(BaseModel):
    """Contact details attached to an already stored response."""
    email: str
    name: Optional[str] = None
