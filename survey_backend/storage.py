"""
Response Storage

Two interchangeable stores for survey responses and email records:

* ``JsonFileStore`` keeps each collection as one JSON array file. Every
  read-modify-write cycle holds a lock shared by all stores pointing at the
  same file, and the new array is written to a temporary file that replaces
  the old one, so concurrent submissions in one process never lose a record
  and readers never see a half-written file.
* ``SqlStore`` keeps the same records in a SQLAlchemy database.

Both preserve insertion order for full reads.
"""

import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path

from fastapi import Request
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from survey_backend.database import init_db, make_engine, make_session_factory
from survey_backend.models import EmailRecord, SurveyResponse

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when a collection cannot be read or written."""


class DuplicateResponseError(StorageError):
    """Raised when a response id is already stored."""


def write_json_atomic(path, data):
    """
    Write JSON to a temporary file beside ``path`` and move it into place,
    so the file always holds either the old or the new content.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


class SurveyStore(ABC):
    """Interface shared by the storage backends."""

    @abstractmethod
    def add_response(self, record):
        """
        Append a response record and return the new response count.
        Raises DuplicateResponseError when the record id is already stored.
        """

    @abstractmethod
    def list_responses(self):
        """Return all response records in insertion order."""

    @abstractmethod
    def get_response(self, response_id):
        """Return the record with the given id, or None."""

    @abstractmethod
    def attach_contact(self, response_id, contact):
        """Attach contact details to a record. Returns the updated record or None."""

    @abstractmethod
    def clear_responses(self):
        """Delete every response record and return how many were removed."""

    @abstractmethod
    def add_email(self, record):
        """Append an email record."""

    @abstractmethod
    def list_emails(self):
        """Return all email records in insertion order."""

    def count_responses(self):
        return len(self.list_responses())


_file_locks = {}
_file_locks_guard = threading.Lock()


def _lock_for(path):
    key = str(Path(path).resolve())
    with _file_locks_guard:
        if key not in _file_locks:
            _file_locks[key] = threading.Lock()
        return _file_locks[key]


class JsonFileStore(SurveyStore):
    """Store backed by JSON array files."""

    def __init__(self, responses_path, emails_path):
        self.responses_path = Path(responses_path)
        self.emails_path = Path(emails_path)
        self._responses_lock = _lock_for(self.responses_path)
        self._emails_lock = _lock_for(self.emails_path)

    def _read(self, path):
        if not path.exists():
            return []
        try:
            with open(path, 'r', encoding='utf-8') as f:
                content = f.read()
        except OSError as e:
            raise StorageError(f"Could not read {path}: {e}") from e

        if not content.strip():
            return []
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise StorageError(f"Invalid JSON in {path}: {e}") from e
        if not isinstance(data, list):
            raise StorageError(f"Expected a JSON array in {path}")
        return data

    def _write(self, path, records):
        try:
            write_json_atomic(path, records)
        except OSError as e:
            raise StorageError(f"Could not write {path}: {e}") from e

    def add_response(self, record):
        with self._responses_lock:
            records = self._read(self.responses_path)
            if any(existing.get("id") == record["id"] for existing in records):
                raise DuplicateResponseError(f"Response already exists: {record['id']}")
            records.append(record)
            self._write(self.responses_path, records)
            return len(records)

    def list_responses(self):
        with self._responses_lock:
            return self._read(self.responses_path)

    def get_response(self, response_id):
        for record in self.list_responses():
            if record.get("id") == response_id:
                return record
        return None

    def attach_contact(self, response_id, contact):
        with self._responses_lock:
            records = self._read(self.responses_path)
            for record in records:
                if record.get("id") == response_id:
                    record["contact"] = contact
                    self._write(self.responses_path, records)
                    return record
        return None

    def clear_responses(self):
        with self._responses_lock:
            removed = len(self._read(self.responses_path))
            self._write(self.responses_path, [])
            return removed

    def add_email(self, record):
        with self._emails_lock:
            records = self._read(self.emails_path)
            records.append(record)
            self._write(self.emails_path, records)

    def list_emails(self):
        with self._emails_lock:
            return self._read(self.emails_path)


class SqlStore(SurveyStore):
    """Store backed by a SQLAlchemy database."""

    def __init__(self, database_url):
        self.engine = make_engine(database_url)
        self.SessionLocal = make_session_factory(self.engine)
        init_db(self.engine)

    def add_response(self, record):
        db = self.SessionLocal()
        try:
            db.add(SurveyResponse(response_id=record["id"], data=record))
            db.commit()
            return db.query(func.count(SurveyResponse.id)).scalar()
        except IntegrityError as e:
            db.rollback()
            raise DuplicateResponseError(f"Response already exists: {record['id']}") from e
        except Exception as e:
            db.rollback()
            raise StorageError(f"Could not save response: {e}") from e
        finally:
            db.close()

    def list_responses(self):
        db = self.SessionLocal()
        try:
            rows = db.query(SurveyResponse).order_by(SurveyResponse.id).all()
            return [dict(row.data) for row in rows]
        finally:
            db.close()

    def get_response(self, response_id):
        db = self.SessionLocal()
        try:
            row = db.query(SurveyResponse).filter(
                SurveyResponse.response_id == response_id
            ).first()
            return dict(row.data) if row else None
        finally:
            db.close()

    def count_responses(self):
        db = self.SessionLocal()
        try:
            return db.query(func.count(SurveyResponse.id)).scalar()
        finally:
            db.close()

    def attach_contact(self, response_id, contact):
        db = self.SessionLocal()
        try:
            row = db.query(SurveyResponse).filter(
                SurveyResponse.response_id == response_id
            ).first()
            if not row:
                return None
            # JSON columns only detect reassignment
            data = dict(row.data)
            data["contact"] = contact
            row.data = data
            db.commit()
            return data
        except Exception as e:
            db.rollback()
            raise StorageError(f"Could not update response: {e}") from e
        finally:
            db.close()

    def clear_responses(self):
        db = self.SessionLocal()
        try:
            removed = db.query(SurveyResponse).delete()
            db.commit()
            return removed
        except Exception as e:
            db.rollback()
            raise StorageError(f"Could not clear responses: {e}") from e
        finally:
            db.close()

    def add_email(self, record):
        db = self.SessionLocal()
        try:
            db.add(EmailRecord(
                email_id=record["id"],
                recipient=record["recipient"],
                status=record["status"],
                data=record,
            ))
            db.commit()
        except Exception as e:
            db.rollback()
            raise StorageError(f"Could not save email record: {e}") from e
        finally:
            db.close()

    def list_emails(self):
        db = self.SessionLocal()
        try:
            rows = db.query(EmailRecord).order_by(EmailRecord.id).all()
            return [dict(row.data) for row in rows]
        finally:
            db.close()


def build_store(settings):
    """Select the storage backend for the given settings."""
    if settings.database_url:
        logger.info("Using database storage")
        return SqlStore(settings.database_url)
    logger.info(f"Using JSON file storage in {settings.data_dir}")
    return JsonFileStore(settings.responses_file, settings.emails_file)


def get_store(request: Request) -> SurveyStore:
    """
    Dependency function to get the configured store.
    Use this in FastAPI route dependencies.
    """
    return request.app.state.store
