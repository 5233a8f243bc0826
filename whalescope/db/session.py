# whalescope/db/session.py
"""Database session factory and initialization."""

from pathlib import Path
from sqlmodel import SQLModel, create_engine, Session

from whalescope.config import DATABASE_URL

# Make sure the SQLite directory exists for local development
if DATABASE_URL.startswith("sqlite:///") and ":memory:" not in DATABASE_URL:
    db_path = DATABASE_URL.replace("sqlite:///", "")
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if "sqlite" in DATABASE_URL else {},
    echo=False,
)


def create_db_and_tables():
    """Create all tables if they don't exist."""
    # Registers the table models on SQLModel.metadata
    import whalescope.db.models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session() -> Session:
    """Get a new database session."""
    return Session(engine)


def init_db():
    """Initialize database on startup."""
    create_db_and_tables()
