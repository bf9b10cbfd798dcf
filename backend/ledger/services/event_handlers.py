"""
Event Handlers - idempotent ledger postings for order-service events

Each handler runs three explicit steps:

    1. lookup   - a prior success or skip for the event id short-circuits
    2. process  - the domain action, inside a SAVEPOINT
    3. record   - the outcome is written to processed_events and committed

On failure the savepoint is rolled back, the failure is recorded and
committed, and the original error is re-raised. A previously failed event
is retried on redelivery.

Unlike the other services, handlers are entry points: they commit.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ledger.core.money import to_money
from ledger.core.settings import settings
from ledger.core.status_config import EntryStatus, EntryType, LineDirection, ProcessedEventStatus
from ledger.logging_config import get_logger
from ledger.models.accounting import JournalEntry
from ledger.models.processed_event import ProcessedEvent
from ledger.schemas.accounting import JournalEntryCreate, JournalLineInput
from ledger.schemas.events import EventHandlingResult, OrderCancelledEvent, OrderCompletedEvent
from ledger.services.fiscal_period_manager import FiscalPeriodManager
from ledger.services.journal_ledger import JournalLedger

logger = get_logger(__name__)

ORDER_SERVICE = "order-service"

# Outcomes that make a redelivered event a no-op
FINAL_STATUSES = {ProcessedEventStatus.SUCCESS.value, ProcessedEventStatus.SKIPPED.value}


class ProcessedEventLedger:
    """
    Idempotency records for inbound events.

    IMPORTANT: This service does NOT commit. Caller is responsible for commit.
    """

    def __init__(self, db: Session):
        self.db = db

    def lookup(self, event_id: str) -> Optional[ProcessedEvent]:
        return self.db.query(ProcessedEvent).filter(ProcessedEvent.event_id == event_id).first()

    def is_processed(self, event_id: str) -> bool:
        record = self.lookup(event_id)
        return record is not None and record.status in FINAL_STATUSES

    def record(
        self,
        event_id: str,
        event_type: str,
        status: ProcessedEventStatus,
        error_message: Optional[str] = None,
        journal_entry_id: Optional[int] = None,
    ) -> ProcessedEvent:
        """Insert the outcome, or update it when the event was seen before"""
        record = self.lookup(event_id)
        if record is None:
            record = ProcessedEvent(event_id=event_id, event_type=event_type, attempts=1)
            self.db.add(record)
        else:
            record.attempts = (record.attempts or 0) + 1
        record.status = status.value
        record.error_message = error_message
        record.journal_entry_id = journal_entry_id
        record.processed_at = datetime.utcnow()
        self.db.flush()
        return record


class EventHandler(ABC):
    """Template for the lookup / process / record protocol"""

    event_type: str = ""

    def __init__(
        self,
        db: Session,
        journal: Optional[JournalLedger] = None,
        periods: Optional[FiscalPeriodManager] = None,
    ):
        self.db = db
        self.journal = journal or JournalLedger(db)
        self.periods = periods or FiscalPeriodManager(db, journal=self.journal)
        self.processed = ProcessedEventLedger(db)

    def handle(self, event) -> EventHandlingResult:
        prior = self.processed.lookup(event.event_id)
        if prior is not None and prior.status in FINAL_STATUSES:
            logger.info(f"{self.event_type} {event.event_id} already processed ({prior.status}); skipping")
            return EventHandlingResult(
                event_id=event.event_id,
                status="duplicate",
                journal_entry_id=prior.journal_entry_id,
                message=f"Already processed with status {prior.status}",
            )

        savepoint = self.db.begin_nested()
        try:
            result = self.process(event)
        except Exception as e:
            savepoint.rollback()
            self.processed.record(
                event.event_id, self.event_type, ProcessedEventStatus.FAILED, error_message=str(e)
            )
            self.db.commit()
            logger.error(f"{self.event_type} {event.event_id} failed: {e}")
            raise
        savepoint.commit()

        self.processed.record(
            event.event_id,
            self.event_type,
            ProcessedEventStatus(result.status),
            error_message=result.message if result.status == ProcessedEventStatus.SKIPPED else None,
            journal_entry_id=result.journal_entry_id,
        )
        self.db.commit()
        logger.info(f"{self.event_type} {event.event_id}: {result.status}")
        return result

    @abstractmethod
    def process(self, event) -> EventHandlingResult:
        """Domain action; returns a success or skipped result, or raises"""


class OrderCompletedHandler(EventHandler):
    """
    Post the sale:
        Dr cash            grand_total
        Dr sales discount  total_discount (if any)
            Cr revenue     subtotal
            Cr tax payable total_tax (if any)
    """

    event_type = "OrderCompleted"

    def process(self, event: OrderCompletedEvent) -> EventHandlingResult:
        self.periods.require_open(event.order_date.year, event.order_date.month)

        accounts = self.journal.accounts
        cash = accounts.get_by_code(settings.EVENT_CASH_ACCOUNT_CODE)
        revenue = accounts.get_by_code(settings.EVENT_REVENUE_ACCOUNT_CODE)

        memo = f"Order {event.order_number}"
        lines = [
            JournalLineInput(account_id=cash.id, direction="debit", amount=to_money(event.grand_total), memo=memo),
        ]
        if to_money(event.total_discount) > 0:
            discount = accounts.get_by_code(settings.EVENT_SALES_DISCOUNT_ACCOUNT_CODE)
            lines.append(JournalLineInput(
                account_id=discount.id, direction="debit", amount=to_money(event.total_discount), memo=memo,
            ))
        lines.append(
            JournalLineInput(account_id=revenue.id, direction="credit", amount=to_money(event.subtotal), memo=memo)
        )
        if to_money(event.total_tax) > 0:
            tax = accounts.get_by_code(settings.EVENT_TAX_PAYABLE_ACCOUNT_CODE)
            lines.append(JournalLineInput(
                account_id=tax.id, direction="credit", amount=to_money(event.total_tax), memo=memo,
            ))

        entry = self.journal.create_entry(
            JournalEntryCreate(
                entry_date=event.order_date,
                description=f"Sales order {event.order_number} - {event.customer_name}",
                reference=event.order_number,
                entry_type=EntryType.SYSTEM.value,
                source_service=ORDER_SERVICE,
                source_reference=event.order_id,
                lines=lines,
                post_immediately=True,
            ),
            created_by=settings.EVENT_SYSTEM_USER,
        )
        return EventHandlingResult(
            event_id=event.event_id,
            status="success",
            journal_entry_id=entry.id,
            message=f"Posted {entry.entry_number}",
        )


class OrderCancelledHandler(EventHandler):
    """Post a mirror-image reversal of the order's entry and void the original"""

    event_type = "OrderCancelled"

    def process(self, event: OrderCancelledEvent) -> EventHandlingResult:
        original = self._find_original(event)
        if original is None:
            return self._skipped(event, "Original journal entry not found")
        if original.status != EntryStatus.POSTED:
            return self._skipped(event, f"Original journal entry {original.entry_number} is {original.status}")

        cancel_date = event.cancelled_at.date()
        self.periods.require_open(cancel_date.year, cancel_date.month)

        flipped = [
            JournalLineInput(
                account_id=line.account_id,
                direction=(
                    LineDirection.CREDIT.value if line.direction == LineDirection.DEBIT else LineDirection.DEBIT.value
                ),
                amount=line.amount,
                memo=line.memo,
            )
            for line in original.lines
        ]
        reversal = self.journal.create_entry(
            JournalEntryCreate(
                entry_date=cancel_date,
                description=f"Reversal: {original.description}",
                reference=f"REV-{event.order_number}",
                entry_type=EntryType.SYSTEM.value,
                source_service=ORDER_SERVICE,
                source_reference=f"cancel-{event.order_id}",
                lines=flipped,
                post_immediately=True,
            ),
            created_by=settings.EVENT_SYSTEM_USER,
        )
        self.journal.void_entry(original.id, event.cancelled_by, f"Order cancelled: {event.cancel_reason}")

        return EventHandlingResult(
            event_id=event.event_id,
            status="success",
            journal_entry_id=reversal.id,
            message=f"Reversed {original.entry_number} with {reversal.entry_number}",
        )

    def _find_original(self, event: OrderCancelledEvent) -> Optional[JournalEntry]:
        if event.original_journal_entry_id is not None:
            return self.db.get(JournalEntry, event.original_journal_entry_id)
        return self.journal.find_by_source(ORDER_SERVICE, event.order_id)

    def _skipped(self, event: OrderCancelledEvent, message: str) -> EventHandlingResult:
        logger.warning(f"{self.event_type} {event.event_id} skipped: {message}")
        return EventHandlingResult(event_id=event.event_id, status="skipped", message=message)
