"""
Journal Ledger - create, edit, post and void balanced journal entries

Entry lifecycle: draft → posted → voided. Only drafts may be edited or
deleted; only posted entries may be voided. Voiding never deletes; a true
reversal is a separate new entry.

Entry numbers are JE-YYYYMM-NNNN, strictly increasing within the fiscal
period derived from the entry date.

Usage:
    ledger = JournalLedger(db)
    entry = ledger.create_entry(JournalEntryCreate(...), created_by="alice")
    ledger.post_entry(entry.id, posted_by="alice")
    db.commit()  # Caller commits
"""
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger.core.money import ZERO, to_money
from ledger.core.settings import settings
from ledger.core.status_config import (
    ENTRY_TRANSITIONS,
    EntryStatus,
    LineDirection,
    PeriodStatus,
    validate_transition,
)
from ledger.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    UnbalancedEntryError,
    ValidationError,
)
from ledger.logging_config import get_logger
from ledger.models.accounting import FiscalPeriod, JournalEntry, JournalLine
from ledger.schemas.accounting import JournalEntryCreate, JournalEntryUpdate, JournalLineInput
from ledger.services.account_registry import AccountRegistry

logger = get_logger(__name__)


def format_entry_number(year: int, month: int, sequence: int) -> str:
    return f"JE-{year}{month:02d}-{sequence:04d}"


class JournalLedger:
    """
    Journal entry lifecycle.

    IMPORTANT: This service does NOT commit. Caller is responsible for commit.
    Each operation validates fully before touching the session, so a failure
    leaves nothing pending.
    """

    def __init__(self, db: Session, accounts: Optional[AccountRegistry] = None):
        self.db = db
        self.accounts = accounts or AccountRegistry(db)

    # === LOOKUP ===

    def get_entry(self, entry_id: int) -> JournalEntry:
        entry = self.db.get(JournalEntry, entry_id)
        if not entry:
            raise NotFoundError("JournalEntry", entry_id)
        return entry

    def get_by_number(self, entry_number: str) -> JournalEntry:
        entry = self.db.query(JournalEntry).filter(JournalEntry.entry_number == entry_number).first()
        if not entry:
            raise NotFoundError("JournalEntry", entry_number)
        return entry

    def find_by_source(self, source_service: str, source_reference: str) -> Optional[JournalEntry]:
        """Most recent entry produced by another subsystem for a source document"""
        return (
            self.db.query(JournalEntry)
            .filter(
                JournalEntry.source_service == source_service,
                JournalEntry.source_reference == source_reference,
            )
            .order_by(JournalEntry.id.desc())
            .first()
        )

    def list_entries(
        self,
        fiscal_year: int,
        fiscal_month: int,
        status: Optional[str] = None,
    ) -> List[JournalEntry]:
        query = self.db.query(JournalEntry).filter(
            JournalEntry.fiscal_year == fiscal_year,
            JournalEntry.fiscal_month == fiscal_month,
        )
        if status:
            query = query.filter(JournalEntry.status == status)
        return query.order_by(JournalEntry.entry_number).all()

    def count_drafts(self, fiscal_year: int, fiscal_month: int) -> int:
        return (
            self.db.query(func.count(JournalEntry.id))
            .filter(
                JournalEntry.fiscal_year == fiscal_year,
                JournalEntry.fiscal_month == fiscal_month,
                JournalEntry.status == EntryStatus.DRAFT,
            )
            .scalar()
        ) or 0

    def next_entry_number(self, fiscal_year: int, fiscal_month: int) -> str:
        """Next JE-YYYYMM-NNNN for the period (max existing sequence + 1)"""
        last = (
            self.db.query(JournalEntry.entry_number)
            .filter(
                JournalEntry.fiscal_year == fiscal_year,
                JournalEntry.fiscal_month == fiscal_month,
            )
            .order_by(func.length(JournalEntry.entry_number).desc(), JournalEntry.entry_number.desc())
            .first()
        )
        sequence = 1
        if last:
            # Extract sequence from "JE-202601-0042"
            sequence = int(last[0].rsplit("-", 1)[1]) + 1
        return format_entry_number(fiscal_year, fiscal_month, sequence)

    # === LIFECYCLE ===

    def create_entry(self, data: JournalEntryCreate, created_by: Optional[str] = None) -> JournalEntry:
        """
        Create a balanced journal entry and its lines as one unit.

        Raises:
            ValidationError: Missing description, fewer than two lines,
                non-positive amounts, one-sided or unbalanced lines
            InvalidAccountError: A line references a header or inactive account
            NotFoundError: A line references an unknown account
            InvalidStateError: The entry date falls in a closed or locked period
        """
        self._validate_header(data.description)
        lines = self._validate_lines(data.lines)
        self._require_open_period(data.entry_date)

        entry = JournalEntry(
            entry_number=self.next_entry_number(data.entry_date.year, data.entry_date.month),
            entry_date=data.entry_date,
            description=data.description.strip(),
            reference=data.reference,
            notes=data.notes,
            entry_type=data.entry_type,
            status=EntryStatus.DRAFT.value,
            fiscal_year=data.entry_date.year,
            fiscal_month=data.entry_date.month,
            source_service=data.source_service,
            source_reference=data.source_reference,
            created_by=created_by,
        )
        entry.lines = self._build_lines(lines)

        if data.post_immediately:
            entry.status = EntryStatus.POSTED.value
            entry.posted_by = created_by
            entry.posted_at = datetime.utcnow()

        self.db.add(entry)
        self._flush_unique(entry)
        logger.info(
            f"JE {entry.entry_number} created ({entry.status}): "
            f"{entry.total_debits} across {len(entry.lines)} lines"
        )
        return entry

    def update_entry(self, entry_id: int, data: JournalEntryUpdate) -> JournalEntry:
        """Replace editable fields of a draft entry"""
        entry = self.get_entry(entry_id)
        self._require_draft(entry, "update")

        changes = data.model_dump(exclude_unset=True)
        description = changes.get("description", entry.description)
        self._validate_header(description)
        new_lines = self._validate_lines(data.lines) if data.lines is not None else None

        new_date: Optional[date] = changes.get("entry_date")
        moves_period = new_date is not None and (
            (new_date.year, new_date.month) != (entry.fiscal_year, entry.fiscal_month)
        )
        if new_date is not None:
            self._require_open_period(new_date)

        entry.description = description.strip()
        for field in ("reference", "notes"):
            if field in changes:
                setattr(entry, field, changes[field])
        if new_date is not None:
            entry.entry_date = new_date
            if moves_period:
                entry.fiscal_year = new_date.year
                entry.fiscal_month = new_date.month
                entry.entry_number = self.next_entry_number(new_date.year, new_date.month)
        if new_lines is not None:
            entry.lines = self._build_lines(new_lines)

        self._flush_unique(entry)
        logger.info(f"JE {entry.entry_number} updated")
        return entry

    def delete_entry(self, entry_id: int) -> None:
        entry = self.get_entry(entry_id)
        self._require_draft(entry, "delete")
        self.db.delete(entry)
        self.db.flush()
        logger.info(f"JE {entry.entry_number} deleted")

    def post_entry(self, entry_id: int, posted_by: Optional[str] = None) -> JournalEntry:
        """Draft → posted. Re-validates balance; the entry's period must be open."""
        entry = self.get_entry(entry_id)
        validate_transition(f"Journal entry {entry.entry_number}", ENTRY_TRANSITIONS, entry.status, EntryStatus.POSTED)
        if len(entry.lines) < 2:
            raise ValidationError("Journal entry must have at least 2 lines", field="lines")
        if entry.total_debits != entry.total_credits:
            raise UnbalancedEntryError(entry.total_debits, entry.total_credits)
        self._require_open_period(entry.entry_date)

        entry.status = EntryStatus.POSTED.value
        entry.posted_by = posted_by
        entry.posted_at = datetime.utcnow()
        self.db.flush()
        logger.info(f"JE {entry.entry_number}: draft → posted")
        return entry

    def void_entry(self, entry_id: int, voided_by: Optional[str], reason: str) -> JournalEntry:
        """Posted → voided with a mandatory reason"""
        entry = self.get_entry(entry_id)
        reason = (reason or "").strip()
        if len(reason) < settings.MIN_VOID_REASON_LENGTH:
            raise ValidationError(
                f"Void reason must be at least {settings.MIN_VOID_REASON_LENGTH} characters",
                field="reason",
            )
        validate_transition(f"Journal entry {entry.entry_number}", ENTRY_TRANSITIONS, entry.status, EntryStatus.VOIDED)

        entry.status = EntryStatus.VOIDED.value
        entry.voided_by = voided_by
        entry.voided_at = datetime.utcnow()
        entry.void_reason = reason
        self.db.flush()
        logger.info(f"JE {entry.entry_number}: posted → voided ({reason})")
        return entry

    # === INTERNAL HELPERS ===

    def _validate_header(self, description: Optional[str]) -> None:
        if not description or not description.strip():
            raise ValidationError("Description is required", field="description")

    def _validate_lines(self, lines: List[JournalLineInput]) -> List[JournalLineInput]:
        if len(lines) < 2:
            raise ValidationError("Journal entry must have at least 2 lines", field="lines")

        total_debits = ZERO
        total_credits = ZERO
        for index, line in enumerate(lines):
            amount = to_money(line.amount)
            if amount <= 0:
                raise ValidationError(
                    f"Line {index + 1}: amount must be positive",
                    field=f"lines[{index}].amount",
                    value=line.amount,
                )
            self.accounts.require_postable(line.account_id)
            if line.direction == LineDirection.DEBIT:
                total_debits += amount
            else:
                total_credits += amount

        if total_debits == 0 or total_credits == 0:
            raise ValidationError("Journal entry needs at least one debit and one credit line", field="lines")
        if total_debits != total_credits:
            raise UnbalancedEntryError(total_debits, total_credits)
        return lines

    def _build_lines(self, lines: List[JournalLineInput]) -> List[JournalLine]:
        return [
            JournalLine(
                account_id=line.account_id,
                direction=line.direction,
                amount=to_money(line.amount),
                memo=line.memo,
                line_order=index,
            )
            for index, line in enumerate(lines)
        ]

    def _require_draft(self, entry: JournalEntry, action: str) -> None:
        if entry.status != EntryStatus.DRAFT:
            raise InvalidStateError(
                f"Cannot {action} journal entry {entry.entry_number}: only draft entries can be changed",
                current_state=entry.status,
                allowed_states=[EntryStatus.DRAFT.value],
            )

    def _require_open_period(self, entry_date: date) -> None:
        """A missing period is treated as open; closed and locked periods reject postings"""
        period = (
            self.db.query(FiscalPeriod)
            .filter(FiscalPeriod.year == entry_date.year, FiscalPeriod.month == entry_date.month)
            .first()
        )
        if period and period.status != PeriodStatus.OPEN:
            raise InvalidStateError(
                f"Fiscal period {period.label} is {period.status}",
                current_state=period.status,
                allowed_states=[PeriodStatus.OPEN.value],
            )

    def _flush_unique(self, entry: JournalEntry) -> None:
        """Flush, turning an entry-number race into a Conflict"""
        try:
            self.db.flush()
        except IntegrityError as e:
            raise ConflictError(
                f"Entry number {entry.entry_number} was taken concurrently; retry",
                details={"entry_number": entry.entry_number},
            ) from e
