"""
SQLAlchemy ORM models for database tables.

This module contains database table definitions using SQLAlchemy.
For Pydantic request/response schemas, see schemas.py.
"""

from enum import Enum

from sqlalchemy import Column, Integer, String, Text

from app.storage import Base


class MessageDirection(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class MessageStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"


class ActionStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class Contact(Base):
    """
    Conversational counterparty, upserted by phone number.

    Table: contacts
    Primary Key: phone (E.164)
    """
    __tablename__ = "contacts"

    phone = Column(String, primary_key=True, index=True)
    name = Column(String, nullable=False)
    last_active = Column(String, nullable=False, index=True)  # ISO-8601 UTC string


class Message(Base):
    """
    Every inbound and outbound SMS.

    Table: messages
    provider_message_id is unique when present, so a redelivered inbound
    event cannot create a second row.
    """
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    from_number = Column(String, nullable=False, index=True)
    to_number = Column(String, nullable=False, index=True)
    text = Column(Text, nullable=False)
    direction = Column(String, nullable=False)
    sender_line = Column(String, nullable=False)
    timestamp = Column(String, nullable=False, index=True)
    provider_message_id = Column(String, nullable=True, unique=True, index=True)
    status = Column(String, nullable=False, default=MessageStatus.PENDING.value)
    status_updated = Column(String, nullable=True)


class ActionLog(Base):
    """Append-only audit trail. Table: action_logs"""
    __tablename__ = "action_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    action = Column(String, nullable=False)
    details = Column(Text, nullable=False)
    status = Column(String, nullable=False)
    timestamp = Column(String, nullable=False, index=True)
