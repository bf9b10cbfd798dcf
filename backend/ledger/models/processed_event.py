"""
Processed Event Model

Idempotency ledger for inbound events from other services. One row per
event id records the outcome of handling it, so at-least-once delivery
never double-posts and failures leave a durable audit trail.
"""
from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, Text

from ledger.db.base import Base


class ProcessedEvent(Base):
    """Outcome of handling one inbound event"""
    __tablename__ = "processed_events"

    # Primary Key
    id = Column(Integer, primary_key=True, index=True)

    # Event identity from the publishing service
    event_id = Column(String(100), unique=True, nullable=False, index=True)
    event_type = Column(String(50), nullable=False, index=True)  # OrderCompleted, OrderCancelled

    # Values: success, failed, skipped
    status = Column(String(20), nullable=False)
    error_message = Column(Text, nullable=True)

    # Journal entry produced by a successful handling, if any
    journal_entry_id = Column(Integer, nullable=True)

    attempts = Column(Integer, nullable=False, default=1)
    processed_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    def __repr__(self):
        return f"<ProcessedEvent {self.event_type} {self.event_id} ({self.status})>"
