"""
Fiscal Period Manager - open/close/lock/reopen state machine

    open ──close──▶ closed ──lock──▶ locked
      ▲               │
      └────reopen─────┘

Periods close in strict sequence: period N can close only once period N-1
is closed (or locked), unless N-1 does not exist at all. Every transition
is a compare-and-set on the period's version column, so two racing closes
of the same period cannot both succeed.

IMPORTANT: This service does NOT commit. Caller is responsible for commit.
"""
import calendar
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ledger.core.settings import settings
from ledger.core.status_config import PERIOD_TRANSITIONS, PeriodStatus, validate_transition
from ledger.exceptions import (
    ConcurrencyError,
    DomainRuleError,
    DuplicateError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ledger.logging_config import get_logger
from ledger.models.accounting import FiscalPeriod
from ledger.schemas.accounting import CloseChecklist
from ledger.services.balance_calculator import BalanceCalculator
from ledger.services.journal_ledger import JournalLedger

logger = get_logger(__name__)


def previous_year_month(year: int, month: int) -> tuple:
    """Roll (year, month) back one month"""
    if month == 1:
        return year - 1, 12
    return year, month - 1


class FiscalPeriodManager:
    """
    Fiscal period lifecycle.

    IMPORTANT: This service does NOT commit. Caller is responsible for commit.
    """

    def __init__(
        self,
        db: Session,
        journal: Optional[JournalLedger] = None,
        balances: Optional[BalanceCalculator] = None,
    ):
        self.db = db
        self.journal = journal or JournalLedger(db)
        self.balances = balances or BalanceCalculator(db)

    # === LOOKUP ===

    def get_period(self, period_id: int) -> FiscalPeriod:
        period = self.db.get(FiscalPeriod, period_id)
        if not period:
            raise NotFoundError("FiscalPeriod", period_id)
        return period

    def find_by_period(self, year: int, month: int) -> Optional[FiscalPeriod]:
        return (
            self.db.query(FiscalPeriod)
            .filter(FiscalPeriod.year == year, FiscalPeriod.month == month)
            .first()
        )

    def get_by_period(self, year: int, month: int) -> FiscalPeriod:
        period = self.find_by_period(year, month)
        if not period:
            raise NotFoundError("FiscalPeriod", f"{year}-{month:02d}")
        return period

    def get_for_date(self, value: date) -> FiscalPeriod:
        return self.get_by_period(value.year, value.month)

    def get_previous(self, period: FiscalPeriod) -> Optional[FiscalPeriod]:
        return self.find_by_period(*previous_year_month(period.year, period.month))

    def list_periods(self, year: Optional[int] = None) -> List[FiscalPeriod]:
        query = self.db.query(FiscalPeriod)
        if year is not None:
            query = query.filter(FiscalPeriod.year == year)
        return query.order_by(FiscalPeriod.year, FiscalPeriod.month).all()

    def require_open(self, year: int, month: int) -> FiscalPeriod:
        """Period must exist and be open (used before system postings)"""
        period = self.get_by_period(year, month)
        if period.status != PeriodStatus.OPEN:
            raise InvalidStateError(
                f"Fiscal period {period.label} is not open",
                current_state=period.status,
                allowed_states=[PeriodStatus.OPEN.value],
            )
        return period

    # === LIFECYCLE ===

    def create_period(self, year: int, month: int) -> FiscalPeriod:
        if not 1 <= month <= 12:
            raise ValidationError("Month must be between 1 and 12", field="month", value=month)
        if year < settings.MIN_FISCAL_YEAR:
            raise ValidationError(
                f"Year must be {settings.MIN_FISCAL_YEAR} or later", field="year", value=year
            )
        if self.find_by_period(year, month):
            raise DuplicateError("FiscalPeriod", field="period", value=f"{year}-{month:02d}")

        last_day = calendar.monthrange(year, month)[1]
        period = FiscalPeriod(
            year=year,
            month=month,
            start_date=date(year, month, 1),
            end_date=date(year, month, last_day),
            status=PeriodStatus.OPEN.value,
        )
        self.db.add(period)
        self.db.flush()
        logger.info(f"Fiscal period {period.label} created")
        return period

    def close_checklist(self, period_id: int) -> CloseChecklist:
        """Everything that would stop this period from closing"""
        period = self.get_period(period_id)
        previous = self.get_previous(period)
        previous_closed = previous is None or previous.status != PeriodStatus.OPEN
        drafts = self.journal.count_drafts(period.year, period.month)
        trial = self.balances.trial_balance(period.year, period.month)

        blockers = []
        if not previous_closed:
            blockers.append(f"Previous period {previous.label} is still open")
        if drafts:
            blockers.append(f"{drafts} draft journal entr{'y' if drafts == 1 else 'ies'} must be posted or deleted")
        if not trial.is_balanced:
            blockers.append(f"Trial balance is out by {trial.difference}")

        return CloseChecklist(
            period_id=period.id,
            previous_period_closed=previous_closed,
            draft_entry_count=drafts,
            trial_balance_balanced=trial.is_balanced,
            blockers=blockers,
        )

    def close_period(self, period_id: int, closed_by: Optional[str] = None) -> FiscalPeriod:
        """
        Open → closed, writing AccountBalance snapshots for the period.

        Raises:
            InvalidStateError: Already closed/locked, or the previous period is still open
            DomainRuleError: Draft entries remain or the trial balance is off
            ConcurrencyError: Another request transitioned the period first
        """
        period = self.get_period(period_id)
        validate_transition(f"Fiscal period {period.label}", PERIOD_TRANSITIONS, period.status, PeriodStatus.CLOSED)

        previous = self.get_previous(period)
        if previous is not None and previous.status == PeriodStatus.OPEN:
            raise InvalidStateError(
                f"Cannot close {period.label}: previous period {previous.label} is still open",
                current_state=period.status,
                details={"previous_period": previous.label, "previous_status": previous.status},
            )

        checklist = self.close_checklist(period.id)
        if checklist.blockers:
            raise DomainRuleError(
                f"Cannot close {period.label}: " + "; ".join(checklist.blockers),
                rule="period_close_checklist",
                details={"blockers": checklist.blockers},
            )

        self.balances.recalculate_period(period.year, period.month)

        period.status = PeriodStatus.CLOSED.value
        period.closed_by = closed_by
        period.closed_at = datetime.utcnow()
        self._flush_versioned(period)
        logger.info(f"Fiscal period {period.label}: open → closed by {closed_by}")
        return period

    def reopen_period(self, period_id: int, reopened_by: Optional[str], reason: str) -> FiscalPeriod:
        period = self.get_period(period_id)
        if period.status == PeriodStatus.LOCKED:
            raise InvalidStateError(
                f"Fiscal period {period.label} is locked and cannot be reopened",
                current_state=period.status,
                allowed_states=[PeriodStatus.CLOSED.value],
            )
        validate_transition(f"Fiscal period {period.label}", PERIOD_TRANSITIONS, period.status, PeriodStatus.OPEN)

        reason = (reason or "").strip()
        if len(reason) < settings.MIN_REOPEN_REASON_LENGTH:
            raise ValidationError(
                f"Reopen reason must be at least {settings.MIN_REOPEN_REASON_LENGTH} characters",
                field="reason",
                value=reason,
            )

        period.status = PeriodStatus.OPEN.value
        period.closed_by = None
        period.closed_at = None
        period.reopened_by = reopened_by
        period.reopened_at = datetime.utcnow()
        period.reopen_reason = reason
        self._flush_versioned(period)
        logger.warning(f"Fiscal period {period.label}: closed → open by {reopened_by} ({reason})")
        return period

    def lock_period(self, period_id: int, locked_by: Optional[str] = None) -> FiscalPeriod:
        period = self.get_period(period_id)
        validate_transition(f"Fiscal period {period.label}", PERIOD_TRANSITIONS, period.status, PeriodStatus.LOCKED)

        period.status = PeriodStatus.LOCKED.value
        period.locked_by = locked_by
        period.locked_at = datetime.utcnow()
        self._flush_versioned(period)
        logger.info(f"Fiscal period {period.label}: closed → locked by {locked_by}")
        return period

    # === INTERNAL HELPERS ===

    def _flush_versioned(self, period: FiscalPeriod) -> None:
        try:
            self.db.flush()
        except StaleDataError as e:
            raise ConcurrencyError(
                f"Fiscal period {period.year}-{period.month:02d} was changed by another request",
                expected_version=period.version,
            ) from e
