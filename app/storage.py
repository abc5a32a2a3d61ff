import logging
from datetime import datetime, timezone
from typing import Generator, List, Optional

from sqlalchemy import create_engine, inspect, select, text, update
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.config import settings

logger = logging.getLogger(__name__)

# check_same_thread=False is required for SQLite to work with FastAPI's threadpool
connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    settings.DATABASE_URL,
    connect_args=connect_args,
    echo=False,
)

# Create SessionLocal class for creating database sessions
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for SQLAlchemy models
Base = declarative_base()

REQUIRED_TABLES = ("users", "submissions")


def utc_now_iso() -> str:
    """Server timestamp, ISO-8601 UTC with microseconds (sorts lexically)."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def init_db() -> None:
    """
    Initialize the database by creating all tables.
    Called during application startup.
    """
    logger.debug("Initializing database")
    try:
        # Import models to register them with Base.metadata
        from app.models import User, Submission  # noqa: F401

        Base.metadata.create_all(bind=engine)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def get_db() -> Generator[Session, None, None]:
    """
    Dependency to get database session.
    Yields a session and ensures it's closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_db_health() -> bool:
    """
    Check if the database is reachable and schema is applied.

    Returns:
        True if DB is healthy and both tables exist, False otherwise.
    """
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
        existing = set(inspect(engine).get_table_names())
        missing = [name for name in REQUIRED_TABLES if name not in existing]
        if missing:
            logger.error(f"Database schema not applied, missing tables: {missing}")
            return False
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


# =============================================================================
# User Repository Functions
# =============================================================================

def ensure_user(db: Session, name: str) -> bool:
    """
    Create the user row for ``name`` unless it already exists.

    This is a single insert guarded by the unique constraint on
    ``users.name``: losing a race to a concurrent request (or the name
    simply being known already) is not an error.

    Returns:
        True if a new row was created, False if the name already existed.

    Raises:
        SQLAlchemyError: for failures other than the unique-name conflict.
    """
    from app.models import User

    try:
        db.add(User(name=name, ai_usage_count=0, created_at=utc_now_iso()))
        db.commit()
        logger.info(f"User created: {name}")
        return True
    except IntegrityError:
        db.rollback()
        logger.debug(f"User already exists: {name}")
        return False


def get_usage_count(db: Session, name: str) -> Optional[int]:
    """Return the AI usage counter for ``name``, or None if no such user."""
    from app.models import User

    return db.execute(
        select(User.ai_usage_count).where(User.name == name)
    ).scalar_one_or_none()


def increment_usage_count(db: Session, name: str) -> Optional[int]:
    """
    Atomically add one to the AI usage counter of ``name``.

    The increment happens inside a single UPDATE statement so concurrent
    callers never lose updates. The new value is re-read in the same
    transaction, while the updated row is still locked.

    Returns:
        The new counter value, or None if no such user exists.
    """
    from app.models import User

    stmt = (
        update(User)
        .where(User.name == name)
        .values(ai_usage_count=User.ai_usage_count + 1)
        .execution_options(synchronize_session=False)
    )
    try:
        result = db.execute(stmt)
        if result.rowcount == 0:
            db.rollback()
            logger.debug(f"Usage increment skipped, unknown user: {name}")
            return None
        new_count = db.execute(
            select(User.ai_usage_count).where(User.name == name)
        ).scalar_one()
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    return new_count


# =============================================================================
# Submission Repository Functions
# =============================================================================

def create_submission(
    db: Session,
    name: str,
    email: str,
    subject: str,
    message: str,
):
    """
    Store a contact-form submission, creating its user lazily.

    Args:
        db: Database session
        name: Free-text user name (owner of the submission)
        email: Validated email address
        subject: One of the fixed subject strings
        message: Message text, stored verbatim

    Returns:
        The stored Submission, or None if a database error occurred.
    """
    from app.models import Submission

    logger.info(f"Creating submission for user: {name}")

    try:
        ensure_user(db, name)

        submission = Submission(
            user_name=name,
            email=email,
            subject=subject,
            message=message,
            created_at=utc_now_iso(),
        )
        db.add(submission)
        db.commit()
        db.refresh(submission)
        logger.info(f"Submission created: {submission.id}")
        return submission

    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to create submission for {name}: {e}")
        return None


def list_submissions(db: Session, name: str) -> List:
    """
    Return all submissions of ``name``, newest first.

    An unknown name simply has no submissions; this never raises for it.
    """
    from app.models import Submission

    submissions = (
        db.query(Submission)
        .filter(Submission.user_name == name)
        .order_by(Submission.created_at.desc(), Submission.id.desc())
        .all()
    )
    logger.debug(f"Retrieved {len(submissions)} submissions for {name}")
    return submissions
