from sqlalchemy import Column, String, DateTime, Integer, JSON
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func
import enum

Base = declarative_base()


class EmailStatus(str, enum.Enum):
    """Enumeration for email delivery status."""
    SENT = "sent"
    FAILED = "failed"


class SurveyResponse(Base):
    """
    Database model for stored survey responses.
    The full response record is kept in ``data``; the row id preserves insertion order.
    """
    __tablename__ = "survey_responses"

    # Primary key, also the insertion order
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Opaque response identifier exposed through the API
    response_id = Column(String(64), nullable=False, unique=True, index=True)

    # Full response record as returned by the API
    data = Column(JSON, nullable=False)

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )

    def __repr__(self):
        return f"<SurveyResponse(response_id={self.response_id})>"


class EmailRecord(Base):
    """Database model for email send attempts."""
    __tablename__ = "email_records"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email_id = Column(String(64), nullable=False, unique=True, index=True)
    recipient = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, index=True)

    data = Column(JSON, nullable=False)

    def __repr__(self):
        return f"<EmailRecord(email_id={self.email_id}, status={self.status})>"
