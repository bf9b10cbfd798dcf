"""
Balance Calculator - per-account period balances and trial balance

Closed and locked periods read persisted AccountBalance snapshots. Open or
nonexistent periods aggregate posted journal lines live.

Closing balance follows the account's normal side:
    debit-normal:  closing = opening + debits - credits
    credit-normal: closing = opening + credits - debits

Snapshots are only written for accounts with posted activity in the period,
so an account's opening balance is the closing balance of its most recent
snapshot before the period (0 if it has none).

IMPORTANT: This service does NOT commit. Caller is responsible for commit.
"""
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import and_, case, func, or_
from sqlalchemy.orm import Session

from ledger.core.money import ZERO, to_money
from ledger.core.settings import settings
from ledger.core.status_config import EntryStatus, LineDirection, NormalBalance, PeriodStatus
from ledger.logging_config import get_logger
from ledger.models.accounting import Account, AccountBalance, FiscalPeriod, JournalEntry, JournalLine
from ledger.schemas.accounting import PeriodBalance, TrialBalance, TrialBalanceLine

logger = get_logger(__name__)


def compute_closing(normal_balance: str, opening, debit_total, credit_total) -> Decimal:
    """Apply the normal-balance formula"""
    opening = to_money(opening)
    debit_total = to_money(debit_total)
    credit_total = to_money(credit_total)
    if normal_balance == NormalBalance.DEBIT:
        return opening + debit_total - credit_total
    return opening + credit_total - debit_total


class BalanceCalculator:
    """
    Derives account balances for a fiscal period.

    IMPORTANT: This service does NOT commit. Caller is responsible for commit.
    """

    def __init__(self, db: Session):
        self.db = db

    # === QUERIES ===

    def get_period_balances(self, year: int, month: int) -> List[PeriodBalance]:
        """Snapshot rows for closed/locked periods, live aggregation otherwise"""
        if self._is_closed(year, month):
            return self._snapshot_balances(year, month)
        return self._live_balances(year, month)

    def get_account_balance(self, account_id: int, year: int, month: int) -> Optional[PeriodBalance]:
        return next(
            (b for b in self.get_period_balances(year, month) if b.account_id == account_id),
            None,
        )

    def trial_balance(self, year: int, month: int) -> TrialBalance:
        """
        Every account's period-end balance placed in its debit or credit column.

        Accounts without activity in the period carry their prior closing
        balance. A negative balance moves to the opposite column.
        """
        period_balances = {b.account_id: b for b in self.get_period_balances(year, month)}
        closing: Dict[int, Decimal] = {aid: b.closing_balance for aid, b in period_balances.items()}
        for account_id, opening in self._opening_balances(year, month).items():
            closing.setdefault(account_id, opening)

        accounts = {
            a.id: a
            for a in self.db.query(Account).filter(Account.id.in_(list(closing))).all()
        } if closing else {}

        lines: List[TrialBalanceLine] = []
        total_debits = ZERO
        total_credits = ZERO
        for account_id in sorted(closing, key=lambda aid: accounts[aid].code):
            account = accounts[account_id]
            balance = closing[account_id]
            if balance == 0:
                continue
            debit_side = (balance > 0) == (account.normal_balance == NormalBalance.DEBIT)
            line = TrialBalanceLine(account_id=account.id, account_code=account.code, account_name=account.name)
            if debit_side:
                line.debit = abs(balance)
                total_debits += line.debit
            else:
                line.credit = abs(balance)
                total_credits += line.credit
            lines.append(line)

        difference = abs(total_debits - total_credits)
        return TrialBalance(
            fiscal_year=year,
            fiscal_month=month,
            lines=lines,
            total_debits=total_debits,
            total_credits=total_credits,
            difference=difference,
            is_balanced=difference < settings.BALANCE_TOLERANCE,
        )

    # === RECALCULATION ===

    def recalculate_period(self, year: int, month: int) -> List[AccountBalance]:
        """
        Rewrite AccountBalance snapshots for the period from posted lines.

        One row per account with posted activity; rows for accounts that no
        longer have activity are removed.
        """
        live = self._live_balances(year, month)
        existing = {
            row.account_id: row
            for row in self.db.query(AccountBalance).filter(
                AccountBalance.fiscal_year == year,
                AccountBalance.fiscal_month == month,
            )
        }

        rows: List[AccountBalance] = []
        now = datetime.utcnow()
        for balance in live:
            row = existing.pop(balance.account_id, None)
            if row is None:
                row = AccountBalance(account_id=balance.account_id, fiscal_year=year, fiscal_month=month)
                self.db.add(row)
            row.opening_balance = balance.opening_balance
            row.debit_total = balance.debit_total
            row.credit_total = balance.credit_total
            row.closing_balance = balance.closing_balance
            row.updated_at = now
            rows.append(row)

        for stale in existing.values():
            self.db.delete(stale)

        self.db.flush()
        logger.info(f"Balances recalculated for {year}-{month:02d}: {len(rows)} accounts")
        return rows

    # === INTERNAL HELPERS ===

    def _is_closed(self, year: int, month: int) -> bool:
        status = (
            self.db.query(FiscalPeriod.status)
            .filter(FiscalPeriod.year == year, FiscalPeriod.month == month)
            .scalar()
        )
        return status in (PeriodStatus.CLOSED, PeriodStatus.LOCKED)

    def _period_activity(self, year: int, month: int) -> Dict[int, Tuple[Decimal, Decimal]]:
        """account_id -> (debit total, credit total) over posted lines in the period"""
        debit_sum = func.sum(case((JournalLine.direction == LineDirection.DEBIT.value, JournalLine.amount), else_=0))
        credit_sum = func.sum(case((JournalLine.direction == LineDirection.CREDIT.value, JournalLine.amount), else_=0))
        rows = (
            self.db.query(JournalLine.account_id, debit_sum, credit_sum)
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .filter(
                JournalEntry.status == EntryStatus.POSTED.value,
                JournalEntry.fiscal_year == year,
                JournalEntry.fiscal_month == month,
            )
            .group_by(JournalLine.account_id)
            .all()
        )
        return {account_id: (to_money(debits), to_money(credits)) for account_id, debits, credits in rows}

    def _opening_balances(self, year: int, month: int) -> Dict[int, Decimal]:
        """Most recent snapshot closing balance before (year, month), per account"""
        rows = (
            self.db.query(AccountBalance)
            .filter(
                or_(
                    AccountBalance.fiscal_year < year,
                    and_(AccountBalance.fiscal_year == year, AccountBalance.fiscal_month < month),
                )
            )
            .order_by(AccountBalance.fiscal_year, AccountBalance.fiscal_month)
            .all()
        )
        openings: Dict[int, Decimal] = {}
        for row in rows:
            openings[row.account_id] = to_money(row.closing_balance)
        return openings

    def _live_balances(self, year: int, month: int) -> List[PeriodBalance]:
        activity = self._period_activity(year, month)
        if not activity:
            return []
        openings = self._opening_balances(year, month)
        accounts = self.db.query(Account).filter(Account.id.in_(list(activity))).order_by(Account.code).all()

        balances = []
        for account in accounts:
            debits, credits = activity[account.id]
            opening = openings.get(account.id, ZERO)
            balances.append(
                PeriodBalance(
                    account_id=account.id,
                    account_code=account.code,
                    account_name=account.name,
                    normal_balance=account.normal_balance,
                    opening_balance=opening,
                    debit_total=debits,
                    credit_total=credits,
                    closing_balance=compute_closing(account.normal_balance, opening, debits, credits),
                    source="live",
                )
            )
        return balances

    def _snapshot_balances(self, year: int, month: int) -> List[PeriodBalance]:
        rows = (
            self.db.query(AccountBalance, Account)
            .join(Account, AccountBalance.account_id == Account.id)
            .filter(AccountBalance.fiscal_year == year, AccountBalance.fiscal_month == month)
            .order_by(Account.code)
            .all()
        )
        return [
            PeriodBalance(
                account_id=account.id,
                account_code=account.code,
                account_name=account.name,
                normal_balance=account.normal_balance,
                opening_balance=to_money(row.opening_balance),
                debit_total=to_money(row.debit_total),
                credit_total=to_money(row.credit_total),
                closing_balance=to_money(row.closing_balance),
                source="snapshot",
            )
            for row, account in rows
        ]
