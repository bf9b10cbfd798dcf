"""
Reconciliation Engine - bank statement vs. book records

Lifecycle: draft → in_progress → completed → approved.

Matching (manual or automatic) and reconciling items are only accepted
while in_progress. Auto-match is read-only: it proposes matches through a
pluggable MatchStrategy and the caller persists the ones it accepts with
apply_matches().

Adjusted balances:
    adjusted bank = statement + deposits in transit - outstanding checks
    adjusted book = book - bank fees + interest - NSF checks + adjustments

IMPORTANT: This service does NOT commit. Caller is responsible for commit.
"""
import calendar
import hashlib
from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger.core.money import to_money
from ledger.core.settings import settings
from ledger.core.status_config import (
    BANK_ACCOUNT_TRANSITIONS,
    BANK_SIDE_ITEM_TYPES,
    MATCH_TRANSITIONS,
    RECONCILIATION_TRANSITIONS,
    AccountType,
    BankAccountStatus,
    EntryStatus,
    EntryType,
    LineDirection,
    MatchStatus,
    ReconciliationStatus,
    ReconcilingItemStatus,
    ReconcilingItemType,
    validate_transition,
)
from ledger.exceptions import (
    ConflictError,
    DomainRuleError,
    DuplicateError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ledger.logging_config import get_logger
from ledger.models.accounting import JournalEntry, JournalLine
from ledger.models.banking import BankAccount, BankReconciliation, BankTransaction, ReconcilingItem
from ledger.schemas.accounting import JournalEntryCreate, JournalLineInput
from ledger.schemas.banking import (
    AdjustedBalances,
    AdjustingEntryAccounts,
    AutoMatchResult,
    BankAccountCreate,
    BankTransactionImport,
    ImportResult,
    MatchCandidate,
    ProposedMatch,
    ReconciliationCreate,
    ReconciliationValidation,
    ReconcilingItemCreate,
)
from ledger.services.journal_ledger import JournalLedger

logger = get_logger(__name__)


def transaction_fingerprint(bank_account_id: int, transaction_date: date, amount, reference: Optional[str]) -> str:
    """Stable hash used to reject duplicate statement imports"""
    raw = f"{bank_account_id}|{transaction_date.isoformat()}|{to_money(amount)}|{reference or ''}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


# =============================================================================
# Match Strategies
# =============================================================================

class MatchStrategy(ABC):
    """Pairs unmatched bank transactions with candidate journal lines"""

    @abstractmethod
    def match(
        self,
        transactions: Sequence[BankTransaction],
        candidates: Sequence[MatchCandidate],
        date_window_days: int,
        amount_tolerance: Decimal,
    ) -> List[ProposedMatch]:
        """Return proposed matches; each transaction and line used at most once"""


class AmountDateMatchStrategy(MatchStrategy):
    """
    Amount within tolerance, direction consistent with the sign, date inside
    the window. Among qualifying lines the smallest amount difference wins,
    then the nearest date, then the lowest line id.

    A deposit (positive amount) debits the bank's GL account; a withdrawal
    credits it.
    """

    def match(self, transactions, candidates, date_window_days, amount_tolerance):
        used_lines = set()
        proposals = []
        for tx in sorted(transactions, key=lambda t: (t.transaction_date, t.id)):
            tx_amount = abs(to_money(tx.amount))
            expected_direction = LineDirection.DEBIT if tx.amount > 0 else LineDirection.CREDIT

            best = None
            best_key = None
            for line in candidates:
                if line.journal_line_id in used_lines or line.direction != expected_direction:
                    continue
                amount_diff = abs(tx_amount - to_money(line.amount))
                if amount_diff > amount_tolerance:
                    continue
                days_apart = abs((tx.transaction_date - line.entry_date).days)
                if days_apart > date_window_days:
                    continue
                key = (amount_diff, days_apart, line.journal_line_id)
                if best_key is None or key < best_key:
                    best, best_key = line, key

            if best is not None:
                used_lines.add(best.journal_line_id)
                proposals.append(
                    ProposedMatch(
                        bank_transaction_id=tx.id,
                        journal_line_id=best.journal_line_id,
                        amount_difference=best_key[0],
                        days_apart=best_key[1],
                    )
                )
        return proposals


# =============================================================================
# Engine
# =============================================================================

class ReconciliationEngine:
    """
    Bank accounts, statement transactions and monthly reconciliations.

    IMPORTANT: This service does NOT commit. Caller is responsible for commit.
    """

    def __init__(
        self,
        db: Session,
        strategy: Optional[MatchStrategy] = None,
        journal: Optional[JournalLedger] = None,
    ):
        self.db = db
        self.strategy = strategy or AmountDateMatchStrategy()
        self.journal = journal or JournalLedger(db)
        self.accounts = self.journal.accounts

    # === BANK ACCOUNTS ===

    def create_bank_account(self, data: BankAccountCreate) -> BankAccount:
        gl_account = self.accounts.require_postable(data.account_id)
        if gl_account.account_type != AccountType.ASSET:
            raise ValidationError(
                f"Bank account must map to an asset account, {gl_account.code} is {gl_account.account_type}",
                field="account_id",
                value=data.account_id,
            )
        if self.db.query(BankAccount).filter(BankAccount.account_number == data.account_number).first():
            raise DuplicateError("BankAccount", field="account_number", value=data.account_number)

        bank_account = BankAccount(
            account_id=gl_account.id,
            bank_name=data.bank_name,
            account_number=data.account_number,
            account_name=data.account_name,
            status=BankAccountStatus.ACTIVE.value,
        )
        self.db.add(bank_account)
        self.db.flush()
        logger.info(f"Bank account {bank_account.bank_name} {bank_account.account_number} created")
        return bank_account

    def get_bank_account(self, bank_account_id: int) -> BankAccount:
        bank_account = self.db.get(BankAccount, bank_account_id)
        if not bank_account:
            raise NotFoundError("BankAccount", bank_account_id)
        return bank_account

    def deactivate_bank_account(self, bank_account_id: int) -> BankAccount:
        return self._set_bank_account_status(bank_account_id, BankAccountStatus.INACTIVE)

    def activate_bank_account(self, bank_account_id: int) -> BankAccount:
        return self._set_bank_account_status(bank_account_id, BankAccountStatus.ACTIVE)

    def close_bank_account(self, bank_account_id: int) -> BankAccount:
        return self._set_bank_account_status(bank_account_id, BankAccountStatus.CLOSED)

    def record_reconciliation(self, bank_account_id: int, balance, reconciled_date: date) -> BankAccount:
        """Stamp the last reconciled balance and date"""
        bank_account = self.get_bank_account(bank_account_id)
        bank_account.last_reconciled_balance = to_money(balance)
        bank_account.last_reconciled_date = reconciled_date
        self.db.flush()
        return bank_account

    def _set_bank_account_status(self, bank_account_id: int, new_status: BankAccountStatus) -> BankAccount:
        bank_account = self.get_bank_account(bank_account_id)
        validate_transition(
            f"Bank account {bank_account.account_number}",
            BANK_ACCOUNT_TRANSITIONS,
            bank_account.status,
            new_status,
        )
        old_status = bank_account.status
        bank_account.status = new_status.value
        self.db.flush()
        logger.info(f"Bank account {bank_account.account_number}: {old_status} → {bank_account.status}")
        return bank_account

    # === BANK TRANSACTIONS ===

    def import_transactions(self, bank_account_id: int, rows: List[BankTransactionImport]) -> ImportResult:
        """Import statement lines, skipping fingerprints already on file"""
        bank_account = self.get_bank_account(bank_account_id)
        if bank_account.status == BankAccountStatus.CLOSED:
            raise InvalidStateError(
                f"Bank account {bank_account.account_number} is closed",
                current_state=bank_account.status,
            )
        for index, row in enumerate(rows):
            if to_money(row.amount) == 0:
                raise ValidationError(
                    f"Row {index + 1}: transaction amount cannot be zero",
                    field=f"rows[{index}].amount",
                )

        existing = {
            fp for (fp,) in self.db.query(BankTransaction.fingerprint)
            .filter(BankTransaction.bank_account_id == bank_account_id)
        }
        result = ImportResult()
        for row in rows:
            fingerprint = transaction_fingerprint(bank_account_id, row.transaction_date, row.amount, row.reference)
            if fingerprint in existing:
                result.duplicates += 1
                continue
            existing.add(fingerprint)
            tx = BankTransaction(
                bank_account_id=bank_account_id,
                transaction_date=row.transaction_date,
                description=row.description,
                reference=row.reference,
                amount=to_money(row.amount),
                fingerprint=fingerprint,
                match_status=MatchStatus.UNMATCHED.value,
            )
            self.db.add(tx)
            self.db.flush()
            result.imported += 1
            result.transaction_ids.append(tx.id)

        logger.info(
            f"Bank account {bank_account.account_number}: imported {result.imported}, "
            f"skipped {result.duplicates} duplicates"
        )
        return result

    def get_transaction(self, transaction_id: int) -> BankTransaction:
        tx = self.db.get(BankTransaction, transaction_id)
        if not tx:
            raise NotFoundError("BankTransaction", transaction_id)
        return tx

    def unmatch_transaction(self, reconciliation_id: int, transaction_id: int) -> BankTransaction:
        """Release a match; only while the owning reconciliation is in progress"""
        tx = self._reconciliation_transaction(reconciliation_id, transaction_id)
        validate_transition(f"Bank transaction {tx.id}", MATCH_TRANSITIONS, tx.match_status, MatchStatus.UNMATCHED)
        tx.match_status = MatchStatus.UNMATCHED.value
        tx.matched_journal_line_id = None
        tx.matched_by = None
        tx.matched_at = None
        self.db.flush()
        logger.info(f"Bank transaction {tx.id} unmatched")
        return tx

    def exclude_transaction(self, reconciliation_id: int, transaction_id: int) -> BankTransaction:
        tx = self._reconciliation_transaction(reconciliation_id, transaction_id)
        validate_transition(f"Bank transaction {tx.id}", MATCH_TRANSITIONS, tx.match_status, MatchStatus.EXCLUDED)
        tx.match_status = MatchStatus.EXCLUDED.value
        self.db.flush()
        return tx

    def include_transaction(self, reconciliation_id: int, transaction_id: int) -> BankTransaction:
        tx = self._reconciliation_transaction(reconciliation_id, transaction_id)
        if tx.match_status != MatchStatus.EXCLUDED:
            raise InvalidStateError(
                f"Bank transaction {tx.id} is not excluded",
                current_state=tx.match_status,
                allowed_states=[MatchStatus.EXCLUDED.value],
            )
        tx.match_status = MatchStatus.UNMATCHED.value
        self.db.flush()
        return tx

    # === RECONCILIATION LIFECYCLE ===

    def create_reconciliation(self, data: ReconciliationCreate, created_by: Optional[str] = None) -> BankReconciliation:
        bank_account = self.get_bank_account(data.bank_account_id)
        if bank_account.status == BankAccountStatus.CLOSED:
            raise InvalidStateError(
                f"Bank account {bank_account.account_number} is closed",
                current_state=bank_account.status,
            )
        duplicate = (
            self.db.query(BankReconciliation)
            .filter(
                BankReconciliation.bank_account_id == data.bank_account_id,
                BankReconciliation.fiscal_year == data.fiscal_year,
                BankReconciliation.fiscal_month == data.fiscal_month,
            )
            .first()
        )
        if duplicate:
            raise DuplicateError(
                "BankReconciliation",
                field="period",
                value=f"{bank_account.account_number} {data.fiscal_year}-{data.fiscal_month:02d}",
            )

        last_day = calendar.monthrange(data.fiscal_year, data.fiscal_month)[1]
        recon = BankReconciliation(
            bank_account_id=data.bank_account_id,
            fiscal_year=data.fiscal_year,
            fiscal_month=data.fiscal_month,
            statement_date=data.statement_date or date(data.fiscal_year, data.fiscal_month, last_day),
            statement_ending_balance=to_money(data.statement_ending_balance),
            book_ending_balance=to_money(data.book_ending_balance),
            status=ReconciliationStatus.DRAFT.value,
            notes=data.notes,
            created_by=created_by,
        )
        self.db.add(recon)
        self.db.flush()
        logger.info(f"Reconciliation {recon.id} created for {bank_account.account_number} {data.fiscal_year}-{data.fiscal_month:02d}")
        return recon

    def get_reconciliation(self, reconciliation_id: int) -> BankReconciliation:
        recon = self.db.get(BankReconciliation, reconciliation_id)
        if not recon:
            raise NotFoundError("BankReconciliation", reconciliation_id)
        return recon

    def start(self, reconciliation_id: int, started_by: Optional[str] = None) -> BankReconciliation:
        recon = self.get_reconciliation(reconciliation_id)
        self._transition(recon, ReconciliationStatus.IN_PROGRESS)
        recon.started_by = started_by
        recon.started_at = datetime.utcnow()
        self.db.flush()
        return recon

    def complete(self, reconciliation_id: int, completed_by: Optional[str] = None) -> BankReconciliation:
        """In progress → completed. Recalculates balances first; they must agree."""
        recon = self.get_reconciliation(reconciliation_id)
        self._require_in_progress(recon)
        balances = self.calculate_adjusted_balances(recon.id)
        if not balances.is_balanced:
            raise DomainRuleError(
                f"Reconciliation {recon.id} is out of balance by {balances.difference}",
                rule="reconciliation_balanced",
                details={
                    "adjusted_bank_balance": str(balances.adjusted_bank_balance),
                    "adjusted_book_balance": str(balances.adjusted_book_balance),
                },
            )
        self._transition(recon, ReconciliationStatus.COMPLETED)
        recon.completed_by = completed_by
        recon.completed_at = datetime.utcnow()
        self.db.flush()
        return recon

    def approve(self, reconciliation_id: int, approved_by: Optional[str] = None) -> BankReconciliation:
        """Completed → approved; stamps the bank account's last reconciled balance and date"""
        recon = self.get_reconciliation(reconciliation_id)
        self._transition(recon, ReconciliationStatus.APPROVED)
        recon.approved_by = approved_by
        recon.approved_at = datetime.utcnow()

        bank_account = self.record_reconciliation(
            recon.bank_account_id, recon.adjusted_bank_balance, recon.statement_date
        )
        logger.info(
            f"Reconciliation {recon.id} approved by {approved_by}; "
            f"{bank_account.account_number} reconciled at {recon.adjusted_bank_balance}"
        )
        return recon

    # === MATCHING ===

    def match_transaction(
        self,
        reconciliation_id: int,
        transaction_id: int,
        journal_line_id: int,
        matched_by: Optional[str] = None,
    ) -> BankTransaction:
        recon = self.get_reconciliation(reconciliation_id)
        self._require_in_progress(recon)
        tx, _line = self._validate_match(recon, transaction_id, journal_line_id)
        self._apply_match(tx, journal_line_id, matched_by)
        self.db.flush()
        logger.info(f"Bank transaction {tx.id} matched to journal line {journal_line_id}")
        return tx

    def auto_match(
        self,
        reconciliation_id: int,
        candidate_lines: Optional[List[MatchCandidate]] = None,
        date_window_days: Optional[int] = None,
        amount_tolerance: Optional[Decimal] = None,
    ) -> AutoMatchResult:
        """
        Propose matches for the reconciliation's bank account without writing.

        Args:
            candidate_lines: Journal lines to match against. Defaults to the
                posted, not-yet-matched lines on the bank's GL account.
            date_window_days: Overrides AUTO_MATCH_DATE_WINDOW_DAYS
            amount_tolerance: Overrides AUTO_MATCH_AMOUNT_TOLERANCE
        """
        recon = self.get_reconciliation(reconciliation_id)
        self._require_in_progress(recon)
        window = settings.AUTO_MATCH_DATE_WINDOW_DAYS if date_window_days is None else date_window_days
        tolerance = settings.AUTO_MATCH_AMOUNT_TOLERANCE if amount_tolerance is None else to_money(amount_tolerance)
        if window < 0 or tolerance < 0:
            raise ValidationError("Match window and tolerance cannot be negative")

        transactions = (
            self.db.query(BankTransaction)
            .filter(
                BankTransaction.bank_account_id == recon.bank_account_id,
                BankTransaction.transaction_date <= recon.statement_date,
            )
            .order_by(BankTransaction.transaction_date, BankTransaction.id)
            .all()
        )
        unmatched = [t for t in transactions if t.match_status == MatchStatus.UNMATCHED]
        if candidate_lines is None:
            candidate_lines = self._default_candidates(recon, unmatched, window)

        matches = self.strategy.match(unmatched, candidate_lines, window, tolerance)
        return AutoMatchResult(
            matches=matches,
            matched=len(matches),
            unmatched=len(unmatched) - len(matches),
            skipped=len(transactions) - len(unmatched),
        )

    def apply_matches(
        self,
        reconciliation_id: int,
        matches: List[ProposedMatch],
        matched_by: Optional[str] = None,
    ) -> List[BankTransaction]:
        """Persist accepted matches; all are validated before any is written"""
        recon = self.get_reconciliation(reconciliation_id)
        self._require_in_progress(recon)

        seen_lines = set()
        validated = []
        for proposal in matches:
            if proposal.journal_line_id in seen_lines:
                raise ConflictError(f"Journal line {proposal.journal_line_id} appears in more than one match")
            seen_lines.add(proposal.journal_line_id)
            tx, _line = self._validate_match(recon, proposal.bank_transaction_id, proposal.journal_line_id)
            validated.append((tx, proposal.journal_line_id))

        for tx, line_id in validated:
            self._apply_match(tx, line_id, matched_by)
        self.db.flush()
        logger.info(f"Reconciliation {recon.id}: applied {len(validated)} matches")
        return [tx for tx, _ in validated]

    # === RECONCILING ITEMS ===

    def add_item(
        self,
        reconciliation_id: int,
        data: ReconcilingItemCreate,
        created_by: Optional[str] = None,
    ) -> ReconcilingItem:
        recon = self.get_reconciliation(reconciliation_id)
        self._require_in_progress(recon)

        amount = to_money(data.amount)
        if data.item_type == ReconcilingItemType.ADJUSTMENT:
            if amount == 0:
                raise ValidationError("Adjustment amount cannot be zero", field="amount")
        elif amount <= 0:
            raise ValidationError(f"{data.item_type} amount must be positive", field="amount", value=data.amount)

        requires_entry = data.requires_journal_entry
        if requires_entry is None:
            requires_entry = data.item_type not in BANK_SIDE_ITEM_TYPES

        item = ReconcilingItem(
            item_type=data.item_type,
            description=data.description,
            amount=amount,
            transaction_date=data.transaction_date,
            reference=data.reference,
            requires_journal_entry=requires_entry,
            status=ReconcilingItemStatus.PENDING.value,
            created_by=created_by,
        )
        recon.items.append(item)
        # Previously calculated balances no longer reflect the items
        recon.adjusted_bank_balance = None
        recon.adjusted_book_balance = None
        self.db.flush()
        return item

    def void_item(self, item_id: int) -> ReconcilingItem:
        return self._set_item_status(item_id, ReconcilingItemStatus.VOIDED)

    def clear_item(self, item_id: int) -> ReconcilingItem:
        return self._set_item_status(item_id, ReconcilingItemStatus.CLEARED)

    # === BALANCES ===

    def calculate_adjusted_balances(self, reconciliation_id: int) -> AdjustedBalances:
        recon = self.get_reconciliation(reconciliation_id)
        adjusted_bank = to_money(recon.statement_ending_balance)
        adjusted_book = to_money(recon.book_ending_balance)

        for item in recon.items:
            if item.status == ReconcilingItemStatus.VOIDED:
                continue
            amount = to_money(item.amount)
            if item.item_type == ReconcilingItemType.OUTSTANDING_CHECK:
                adjusted_bank -= amount
            elif item.item_type == ReconcilingItemType.DEPOSIT_IN_TRANSIT:
                adjusted_bank += amount
            elif item.item_type in (ReconcilingItemType.BANK_FEE, ReconcilingItemType.NSF_CHECK):
                adjusted_book -= amount
            elif item.item_type == ReconcilingItemType.BANK_INTEREST:
                adjusted_book += amount
            elif item.item_type == ReconcilingItemType.ADJUSTMENT:
                adjusted_book += amount

        recon.adjusted_bank_balance = adjusted_bank
        recon.adjusted_book_balance = adjusted_book
        self.db.flush()

        difference = adjusted_bank - adjusted_book
        return AdjustedBalances(
            statement_ending_balance=to_money(recon.statement_ending_balance),
            book_ending_balance=to_money(recon.book_ending_balance),
            adjusted_bank_balance=adjusted_bank,
            adjusted_book_balance=adjusted_book,
            difference=difference,
            is_balanced=abs(difference) < settings.BALANCE_TOLERANCE,
        )

    def validate(self, reconciliation_id: int) -> ReconciliationValidation:
        """Read-only readiness check for completion"""
        recon = self.get_reconciliation(reconciliation_id)
        errors: List[str] = []
        warnings: List[str] = []

        if recon.status not in (ReconciliationStatus.IN_PROGRESS, ReconciliationStatus.COMPLETED):
            errors.append(f"Reconciliation is {recon.status}")

        if recon.adjusted_bank_balance is None or recon.adjusted_book_balance is None:
            warnings.append("Adjusted balances have not been calculated")
        else:
            difference = to_money(recon.adjusted_bank_balance) - to_money(recon.adjusted_book_balance)
            if abs(difference) >= settings.BALANCE_TOLERANCE:
                errors.append(f"Adjusted balances differ by {difference}")

        unmatched = (
            self.db.query(BankTransaction)
            .filter(
                BankTransaction.bank_account_id == recon.bank_account_id,
                BankTransaction.transaction_date <= recon.statement_date,
                BankTransaction.match_status == MatchStatus.UNMATCHED.value,
            )
            .count()
        )
        if unmatched:
            warnings.append(f"{unmatched} bank transactions are still unmatched")

        missing_entries = [
            item for item in recon.items
            if item.requires_journal_entry
            and item.journal_entry_id is None
            and item.status == ReconcilingItemStatus.PENDING
        ]
        if missing_entries:
            warnings.append(f"{len(missing_entries)} reconciling items still need a journal entry")

        return ReconciliationValidation(is_valid=not errors, errors=errors, warnings=warnings)

    # === ADJUSTING ENTRIES ===

    def generate_adjusting_entries(
        self,
        reconciliation_id: int,
        accounts: AdjustingEntryAccounts,
        created_by: Optional[str] = None,
    ) -> List[JournalEntry]:
        """
        Create draft journal entries for pending book-side items.

            bank_fee      Dr fee expense      / Cr bank
            bank_interest Dr bank             / Cr interest income
            nsf_check     Dr NSF receivable   / Cr bank
        """
        recon = self.get_reconciliation(reconciliation_id)
        bank_gl_id = recon.bank_account.account_id
        nsf_account_id = accounts.nsf_receivable_account_id or accounts.bank_fee_expense_account_id

        offsets: Dict[str, tuple] = {
            ReconcilingItemType.BANK_FEE.value: (accounts.bank_fee_expense_account_id, bank_gl_id),
            ReconcilingItemType.BANK_INTEREST.value: (bank_gl_id, accounts.interest_income_account_id),
            ReconcilingItemType.NSF_CHECK.value: (nsf_account_id, bank_gl_id),
        }

        entries = []
        for item in recon.items:
            if (
                item.status != ReconcilingItemStatus.PENDING
                or not item.requires_journal_entry
                or item.journal_entry_id is not None
                or item.item_type not in offsets
            ):
                continue
            debit_account, credit_account = offsets[item.item_type]
            entry = self.journal.create_entry(
                JournalEntryCreate(
                    entry_date=item.transaction_date,
                    description=f"Bank reconciliation: {item.description}",
                    reference=item.reference,
                    entry_type=EntryType.ADJUSTING.value,
                    source_service="reconciliation",
                    source_reference=f"RECON-{recon.id}-ITEM-{item.id}",
                    lines=[
                        JournalLineInput(account_id=debit_account, direction="debit", amount=item.amount, memo=item.description),
                        JournalLineInput(account_id=credit_account, direction="credit", amount=item.amount, memo=item.description),
                    ],
                ),
                created_by=created_by,
            )
            item.journal_entry_id = entry.id
            entries.append(entry)

        self.db.flush()
        logger.info(f"Reconciliation {recon.id}: generated {len(entries)} adjusting entries")
        return entries

    # === INTERNAL HELPERS ===

    def _transition(self, recon: BankReconciliation, new_status: ReconciliationStatus) -> None:
        validate_transition(f"Reconciliation {recon.id}", RECONCILIATION_TRANSITIONS, recon.status, new_status)
        old_status = recon.status
        recon.status = new_status.value
        logger.info(f"Reconciliation {recon.id}: {old_status} → {recon.status}")

    def _require_in_progress(self, recon: BankReconciliation) -> None:
        if recon.status != ReconciliationStatus.IN_PROGRESS:
            raise InvalidStateError(
                f"Reconciliation {recon.id} is {recon.status}; matching and items need in_progress",
                current_state=recon.status,
                allowed_states=[ReconciliationStatus.IN_PROGRESS.value],
            )

    def _reconciliation_transaction(self, reconciliation_id: int, transaction_id: int) -> BankTransaction:
        """A transaction that the in-progress reconciliation may still change"""
        recon = self.get_reconciliation(reconciliation_id)
        self._require_in_progress(recon)
        tx = self.get_transaction(transaction_id)
        if tx.bank_account_id != recon.bank_account_id:
            raise ValidationError(
                f"Bank transaction {tx.id} belongs to another bank account",
                field="transaction_id",
                value=transaction_id,
            )
        if tx.match_status == MatchStatus.MATCHED:
            # Matches inside a finished reconciliation are part of its approved figures
            finished = (
                self.db.query(BankReconciliation)
                .filter(
                    BankReconciliation.bank_account_id == recon.bank_account_id,
                    BankReconciliation.id != recon.id,
                    BankReconciliation.status.in_(
                        [ReconciliationStatus.COMPLETED.value, ReconciliationStatus.APPROVED.value]
                    ),
                    BankReconciliation.statement_date >= tx.transaction_date,
                )
                .first()
            )
            if finished:
                raise InvalidStateError(
                    f"Bank transaction {tx.id} is reconciled in {finished.status} reconciliation {finished.id}",
                    current_state=finished.status,
                    allowed_states=[ReconciliationStatus.IN_PROGRESS.value],
                )
        return tx

    def _validate_match(self, recon: BankReconciliation, transaction_id: int, journal_line_id: int):
        tx = self.get_transaction(transaction_id)
        if tx.bank_account_id != recon.bank_account_id:
            raise ValidationError(
                f"Bank transaction {tx.id} belongs to another bank account",
                field="transaction_id",
                value=transaction_id,
            )
        if tx.match_status != MatchStatus.UNMATCHED:
            raise InvalidStateError(
                f"Bank transaction {tx.id} is {tx.match_status}",
                current_state=tx.match_status,
                allowed_states=[MatchStatus.UNMATCHED.value],
            )

        line = self.db.get(JournalLine, journal_line_id)
        if not line:
            raise NotFoundError("JournalLine", journal_line_id)
        if line.account_id != recon.bank_account.account_id:
            raise ValidationError(
                f"Journal line {line.id} is not on the bank's GL account",
                field="journal_line_id",
                value=journal_line_id,
            )
        if line.journal_entry.status != EntryStatus.POSTED:
            raise InvalidStateError(
                f"Journal line {line.id} belongs to a {line.journal_entry.status} entry",
                current_state=line.journal_entry.status,
                allowed_states=[EntryStatus.POSTED.value],
            )
        already = (
            self.db.query(BankTransaction.id)
            .filter(BankTransaction.matched_journal_line_id == journal_line_id)
            .first()
        )
        if already:
            raise ConflictError(
                f"Journal line {journal_line_id} is already matched to bank transaction {already[0]}"
            )
        return tx, line

    def _apply_match(self, tx: BankTransaction, journal_line_id: int, matched_by: Optional[str]) -> None:
        tx.match_status = MatchStatus.MATCHED.value
        tx.matched_journal_line_id = journal_line_id
        tx.matched_by = matched_by
        tx.matched_at = datetime.utcnow()

    def _default_candidates(
        self,
        recon: BankReconciliation,
        transactions: List[BankTransaction],
        window: int,
    ) -> List[MatchCandidate]:
        if not transactions:
            return []
        earliest = min(t.transaction_date for t in transactions) - timedelta(days=window)
        latest = max(t.transaction_date for t in transactions) + timedelta(days=window)
        matched_ids = select(BankTransaction.matched_journal_line_id).where(
            BankTransaction.matched_journal_line_id.isnot(None)
        )
        rows = (
            self.db.query(JournalLine, JournalEntry)
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .filter(
                JournalLine.account_id == recon.bank_account.account_id,
                JournalEntry.status == EntryStatus.POSTED.value,
                JournalEntry.entry_date >= earliest,
                JournalEntry.entry_date <= latest,
                JournalLine.id.notin_(matched_ids),
            )
            .order_by(JournalEntry.entry_date, JournalLine.id)
            .all()
        )
        return [
            MatchCandidate(
                journal_line_id=line.id,
                entry_date=entry.entry_date,
                direction=line.direction,
                amount=line.amount,
                entry_number=entry.entry_number,
                reference=entry.reference,
            )
            for line, entry in rows
        ]

    def _set_item_status(self, item_id: int, new_status: ReconcilingItemStatus) -> ReconcilingItem:
        item = self.db.get(ReconcilingItem, item_id)
        if not item:
            raise NotFoundError("ReconcilingItem", item_id)
        self._require_in_progress(item.reconciliation)
        if item.status != ReconcilingItemStatus.PENDING:
            raise InvalidStateError(
                f"Reconciling item {item.id} is {item.status}",
                current_state=item.status,
                allowed_states=[ReconcilingItemStatus.PENDING.value],
            )
        item.status = new_status.value
        item.reconciliation.adjusted_bank_balance = None
        item.reconciliation.adjusted_book_balance = None
        self.db.flush()
        return item
