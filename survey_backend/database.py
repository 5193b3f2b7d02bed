from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


def make_engine(database_url):
    """
    Create an engine for the given database URL.
    SQLite needs special configuration to be shared across threads.
    """
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    # For PostgreSQL, MySQL, etc.
    return create_engine(database_url)


def make_session_factory(engine):
    """Create a session factory bound to the engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine):
    """
    Initialize database by creating all tables.
    Safe to call on every startup.
    """
    from survey_backend.models import Base
    Base.metadata.create_all(bind=engine)
