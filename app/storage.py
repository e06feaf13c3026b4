import logging
from typing import Generator, List, Optional, Tuple

from sqlalchemy import create_engine, delete, inspect, or_, text, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from app.config import settings
from app.utils import utc_now

logger = logging.getLogger(__name__)

# check_same_thread=False is required for SQLite to work with FastAPI's threadpool
engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {},
    echo=False,
)

# Create SessionLocal class for creating database sessions
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for SQLAlchemy models
Base = declarative_base()

REQUIRED_TABLES = ("contacts", "messages", "action_logs")


def init_db() -> None:
    """
    Initialize the database by creating all tables.
    Called during application startup.
    """
    logger.debug(f"Initializing database with URL: {settings.DATABASE_URL}")
    try:
        # Import models to register them with Base.metadata
        from app import models  # noqa: F401

        logger.debug("Creating database tables...")
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
        True if DB is healthy and all tables exist, False otherwise.
    """
    logger.debug("Checking database health...")
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
            logger.debug("Database connectivity OK")

            existing = set(inspect(db.get_bind()).get_table_names())
            missing = [name for name in REQUIRED_TABLES if name not in existing]
            if missing:
                logger.error(f"Database schema not applied: missing tables {missing}")
                return False
        logger.debug("Database health check passed")
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


def _upsert(db: Session):
    """Dialect-specific INSERT that supports ON CONFLICT DO UPDATE."""
    if db.get_bind().dialect.name == "postgresql":
        return postgresql.insert
    return sqlite.insert


# =============================================================================
# Contact Directory
# =============================================================================

def touch_contact(db: Session, phone: str):
    """
    Record an interaction with a phone number.

    Creates the contact (name defaults to the phone) on first sight, otherwise
    only bumps last_active. Single atomic statement, no read-modify-write.
    """
    from app.models import Contact

    now = utc_now()
    logger.debug(f"Touching contact {phone} at {now}")

    insert = _upsert(db)
    stmt = insert(Contact).values(phone=phone, name=phone, last_active=now)
    stmt = stmt.on_conflict_do_update(
        index_elements=[Contact.phone],
        set_={"last_active": now},
    )
    db.execute(stmt)
    db.commit()
    return db.get(Contact, phone, populate_existing=True)


def save_contact(db: Session, phone: str, name: Optional[str] = None):
    """
    Create or rename a contact. An empty name falls back to the phone number.
    """
    from app.models import Contact

    display_name = name or phone
    now = utc_now()
    logger.info(f"Saving contact: phone={phone}, name={display_name}")

    insert = _upsert(db)
    stmt = insert(Contact).values(phone=phone, name=display_name, last_active=now)
    stmt = stmt.on_conflict_do_update(
        index_elements=[Contact.phone],
        set_={"name": display_name, "last_active": now},
    )
    db.execute(stmt)
    db.commit()
    return db.get(Contact, phone, populate_existing=True)


def get_contact(db: Session, phone: str):
    from app.models import Contact

    return db.get(Contact, phone)


def list_contacts(db: Session, limit: int = 100) -> list:
    """Contacts ordered by most recent activity first."""
    from app.models import Contact

    return (
        db.query(Contact)
        .order_by(Contact.last_active.desc(), Contact.phone.asc())
        .limit(limit)
        .all()
    )


def delete_contact(db: Session, phone: str) -> bool:
    """
    Delete a contact and every message sent to or received from it.

    Returns:
        True if the contact existed and was deleted, False otherwise
    """
    from app.models import Contact, Message

    logger.info(f"Deleting contact {phone}")
    try:
        result = db.execute(delete(Contact).where(Contact.phone == phone))
        if result.rowcount == 0:
            db.rollback()
            logger.info(f"Contact not found: {phone}")
            return False

        purged = db.execute(
            delete(Message).where(
                or_(Message.from_number == phone, Message.to_number == phone)
            )
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"Deleted contact {phone} and {purged.rowcount} messages")
    return True


# =============================================================================
# Message Store
# =============================================================================

def create_message(
    db: Session,
    from_number: str,
    to_number: str,
    text: str,
    direction: str,
    sender_line: str,
    status: str,
    provider_message_id: Optional[str] = None,
) -> Tuple[Optional[object], bool]:
    """
    Persist a new message.

    Returns:
        Tuple of (message, is_duplicate)
        - (Message, False): Message created
        - (None, True): provider_message_id already stored (redelivery)
    """
    from app.models import Message

    logger.info(
        f"Creating {direction} message: from={from_number}, to={to_number}, "
        f"provider_id={provider_message_id}"
    )

    message = Message(
        from_number=from_number,
        to_number=to_number,
        text=text,
        direction=direction,
        sender_line=sender_line,
        timestamp=utc_now(),
        provider_message_id=provider_message_id,
        status=status,
    )

    try:
        db.add(message)
        db.commit()
    except IntegrityError:
        db.rollback()
        if provider_message_id is not None and message_exists(db, provider_message_id):
            logger.info(f"Duplicate provider message detected: {provider_message_id}")
            return None, True
        raise
    except Exception:
        db.rollback()
        raise

    db.refresh(message)
    logger.debug(f"Message created with id={message.id}")
    return message, False


def message_exists(db: Session, provider_message_id: str) -> bool:
    from app.models import Message

    return (
        db.query(Message.id)
        .filter(Message.provider_message_id == provider_message_id)
        .first()
        is not None
    )


def get_conversation(db: Session, phone: str) -> list:
    """
    All messages where the phone is either sender or recipient,
    oldest first.
    """
    from app.models import Message

    logger.debug(f"Loading conversation for {phone}")
    return (
        db.query(Message)
        .filter(or_(Message.from_number == phone, Message.to_number == phone))
        .order_by(Message.timestamp.asc(), Message.id.asc())
        .all()
    )


def update_message_status(db: Session, provider_message_id: str, status: str) -> bool:
    """
    Apply a delivery status to the outbound message with this provider id.

    The update only matches rows whose status differs, so replaying the same
    event leaves status_updated untouched.

    Returns:
        True if a row changed, False otherwise
    """
    from app.models import Message, MessageDirection

    stmt = (
        update(Message)
        .where(
            Message.provider_message_id == provider_message_id,
            Message.direction == MessageDirection.OUTBOUND.value,
            Message.status != status,
        )
        .values(status=status, status_updated=utc_now())
        .execution_options(synchronize_session=False)
    )
    try:
        result = db.execute(stmt)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.debug(f"Status update for {provider_message_id}: {result.rowcount} row(s)")
    return result.rowcount > 0


def get_message_by_provider_id(db: Session, provider_message_id: str):
    from app.models import Message

    return (
        db.query(Message)
        .filter(Message.provider_message_id == provider_message_id)
        .first()
    )


# =============================================================================
# Audit Log
# =============================================================================

def log_action(db: Session, action: str, details: str, status: str) -> None:
    """
    Append an entry to the action log.

    A failing write is logged and rolled back but never raised, so it cannot
    replace the outcome that is being recorded.
    """
    from app.models import ActionLog

    logger.debug(f"Action log: {action} [{status}] {details}")
    try:
        db.add(ActionLog(action=action, details=details, status=status, timestamp=utc_now()))
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(f"Failed to write action log entry: {action}")


def get_recent_logs(db: Session, limit: int = 100) -> List:
    """Newest action log entries first."""
    from app.models import ActionLog

    return (
        db.query(ActionLog)
        .order_by(ActionLog.timestamp.desc(), ActionLog.id.desc())
        .limit(limit)
        .all()
    )
