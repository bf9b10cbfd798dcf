"""
Unit Tests for ReconciliationEngine

Tests:
1. Bank account setup and statement import (dedupe, zero amounts)
2. Manual matching rules
3. Auto-match proposals and apply_matches
4. Reconciling items and adjusted balances
5. Complete / approve lifecycle
6. Adjusting entry generation
"""
import pytest
from datetime import date
from decimal import Decimal

from ledger.exceptions import (
    ConflictError,
    DomainRuleError,
    DuplicateError,
    InvalidStateError,
    ValidationError,
)
from ledger.models.banking import BankTransaction
from ledger.schemas.banking import (
    AdjustingEntryAccounts,
    BankAccountCreate,
    BankTransactionImport,
    MatchCandidate,
    ProposedMatch,
    ReconcilingItemCreate,
)
from ledger.services.reconciliation_engine import (
    AmountDateMatchStrategy,
    ReconciliationEngine,
    transaction_fingerprint,
)
from tests.factories import (
    create_draft_entry,
    create_posted_entry,
    create_test_bank_account,
    create_test_reconciliation,
    import_bank_rows,
)


def _item(item_type, amount, description=None, **kwargs):
    return ReconcilingItemCreate(
        item_type=item_type,
        description=description or item_type.replace("_", " "),
        amount=Decimal(str(amount)),
        transaction_date=kwargs.pop("transaction_date", date(2026, 1, 31)),
        **kwargs
    )


def _bank_line(db, chart, direction, amount, entry_date):
    """Post an entry touching the bank GL account and return that line"""
    other = "4101" if direction == "debit" else "6101"
    other_direction = "credit" if direction == "debit" else "debit"
    entry = create_posted_entry(
        db,
        [(chart["1102"], direction, amount), (chart[other], other_direction, amount)],
        entry_date=entry_date,
    )
    return entry.lines[0]


@pytest.fixture
def bank(db_session, chart, open_period):
    return create_test_bank_account(db_session, chart["1102"])


class TestBankAccounts:
    """Bank accounts mirror an asset GL account"""

    def test_must_map_to_asset(self, db_session, chart):
        with pytest.raises(ValidationError):
            ReconciliationEngine(db_session).create_bank_account(
                BankAccountCreate(account_id=chart["4101"].id, bank_name="Bank", account_number="X-1")
            )

    def test_duplicate_account_number(self, db_session, chart):
        create_test_bank_account(db_session, chart["1102"], account_number="123")
        with pytest.raises(DuplicateError):
            create_test_bank_account(db_session, chart["1101"], account_number="123")

    def test_status_transitions(self, db_session, bank):
        engine = ReconciliationEngine(db_session)

        assert engine.deactivate_bank_account(bank.id).status == "inactive"
        assert engine.activate_bank_account(bank.id).status == "active"
        assert engine.close_bank_account(bank.id).status == "closed"
        with pytest.raises(InvalidStateError):
            engine.activate_bank_account(bank.id)


class TestImportTransactions:
    """Statement import with fingerprint dedupe"""

    def test_reimport_skips_duplicates(self, db_session, bank):
        engine = ReconciliationEngine(db_session)
        rows = [
            BankTransactionImport(transaction_date=date(2026, 1, 5), description="Deposit", amount=Decimal("100"), reference="D1"),
            BankTransactionImport(transaction_date=date(2026, 1, 6), description="Check 101", amount=Decimal("-40"), reference="101"),
        ]

        first = engine.import_transactions(bank.id, rows)
        second = engine.import_transactions(bank.id, rows)

        assert (first.imported, first.duplicates) == (2, 0)
        assert (second.imported, second.duplicates) == (0, 2)
        assert db_session.query(BankTransaction).count() == 2

    def test_duplicate_rows_within_one_import(self, db_session, bank):
        txs = import_bank_rows(db_session, bank, [(date(2026, 1, 5), 100, "D1"), (date(2026, 1, 5), 100, "D1")])
        assert len(txs) == 1

    def test_different_reference_is_not_duplicate(self, db_session, bank):
        txs = import_bank_rows(db_session, bank, [(date(2026, 1, 5), 100, "D1"), (date(2026, 1, 5), 100, "D2")])
        assert len(txs) == 2

    def test_zero_amount_rejects_whole_import(self, db_session, bank):
        with pytest.raises(ValidationError):
            import_bank_rows(db_session, bank, [(date(2026, 1, 5), 100, "D1"), (date(2026, 1, 6), 0, "Z")])
        assert db_session.query(BankTransaction).count() == 0

    def test_closed_bank_account_rejects_import(self, db_session, bank):
        ReconciliationEngine(db_session).close_bank_account(bank.id)
        with pytest.raises(InvalidStateError):
            import_bank_rows(db_session, bank, [(date(2026, 1, 5), 100, "D1")])

    def test_fingerprint_normalizes_amount(self):
        assert transaction_fingerprint(1, date(2026, 1, 5), "100", None) == transaction_fingerprint(
            1, date(2026, 1, 5), Decimal("100.00"), ""
        )

    def test_exclude_and_include(self, db_session, bank):
        engine = ReconciliationEngine(db_session)
        recon = create_test_reconciliation(db_session, bank)
        (tx,) = import_bank_rows(db_session, bank, [(date(2026, 1, 5), 100, "D1")])

        assert engine.exclude_transaction(recon.id, tx.id).match_status == "excluded"
        assert engine.include_transaction(recon.id, tx.id).match_status == "unmatched"
        with pytest.raises(InvalidStateError):
            engine.include_transaction(recon.id, tx.id)

    def test_exclude_requires_in_progress(self, db_session, bank):
        recon = create_test_reconciliation(db_session, bank, start=False)
        (tx,) = import_bank_rows(db_session, bank, [(date(2026, 1, 5), 100, "D1")])

        with pytest.raises(InvalidStateError):
            ReconciliationEngine(db_session).exclude_transaction(recon.id, tx.id)
        assert tx.match_status == "unmatched"

    def test_other_bank_account_transaction_rejected(self, db_session, chart, bank):
        other_bank = create_test_bank_account(db_session, chart["1102"])
        recon = create_test_reconciliation(db_session, bank)
        (tx,) = import_bank_rows(db_session, other_bank, [(date(2026, 1, 5), 100, "D1")])

        with pytest.raises(ValidationError):
            ReconciliationEngine(db_session).exclude_transaction(recon.id, tx.id)


class TestManualMatching:
    """match_transaction validation"""

    def test_match_and_unmatch(self, db_session, chart, bank):
        engine = ReconciliationEngine(db_session)
        recon = create_test_reconciliation(db_session, bank)
        (tx,) = import_bank_rows(db_session, bank, [(date(2026, 1, 10), 250, "D1")])
        line = _bank_line(db_session, chart, "debit", 250, date(2026, 1, 10))

        matched = engine.match_transaction(recon.id, tx.id, line.id, matched_by="clerk")
        assert matched.match_status == "matched"
        assert matched.matched_journal_line_id == line.id
        assert matched.matched_by == "clerk"

        unmatched = engine.unmatch_transaction(recon.id, tx.id)
        assert unmatched.match_status == "unmatched"
        assert unmatched.matched_journal_line_id is None

    def test_requires_in_progress(self, db_session, chart, bank):
        recon = create_test_reconciliation(db_session, bank, start=False)
        (tx,) = import_bank_rows(db_session, bank, [(date(2026, 1, 10), 250, "D1")])
        line = _bank_line(db_session, chart, "debit", 250, date(2026, 1, 10))

        with pytest.raises(InvalidStateError):
            ReconciliationEngine(db_session).match_transaction(recon.id, tx.id, line.id)

    def test_line_on_other_account_rejected(self, db_session, chart, bank):
        recon = create_test_reconciliation(db_session, bank)
        (tx,) = import_bank_rows(db_session, bank, [(date(2026, 1, 10), 250, "D1")])
        entry = create_posted_entry(db_session, [(chart["1101"], "debit", 250), (chart["4101"], "credit", 250)])

        with pytest.raises(ValidationError):
            ReconciliationEngine(db_session).match_transaction(recon.id, tx.id, entry.lines[0].id)

    def test_draft_line_rejected(self, db_session, chart, bank):
        recon = create_test_reconciliation(db_session, bank)
        (tx,) = import_bank_rows(db_session, bank, [(date(2026, 1, 10), 250, "D1")])
        entry = create_draft_entry(db_session, [(chart["1102"], "debit", 250), (chart["4101"], "credit", 250)])

        with pytest.raises(InvalidStateError):
            ReconciliationEngine(db_session).match_transaction(recon.id, tx.id, entry.lines[0].id)

    def test_line_matched_once(self, db_session, chart, bank):
        engine = ReconciliationEngine(db_session)
        recon = create_test_reconciliation(db_session, bank)
        first, second = import_bank_rows(
            db_session, bank, [(date(2026, 1, 10), 250, "D1"), (date(2026, 1, 11), 250, "D2")]
        )
        line = _bank_line(db_session, chart, "debit", 250, date(2026, 1, 10))
        engine.match_transaction(recon.id, first.id, line.id)

        with pytest.raises(ConflictError):
            engine.match_transaction(recon.id, second.id, line.id)

    def test_excluded_transaction_cannot_match(self, db_session, chart, bank):
        engine = ReconciliationEngine(db_session)
        recon = create_test_reconciliation(db_session, bank)
        (tx,) = import_bank_rows(db_session, bank, [(date(2026, 1, 10), 250, "D1")])
        line = _bank_line(db_session, chart, "debit", 250, date(2026, 1, 10))
        engine.exclude_transaction(recon.id, tx.id)

        with pytest.raises(InvalidStateError):
            engine.match_transaction(recon.id, tx.id, line.id)


class TestAutoMatch:
    """Proposals only; apply_matches persists"""

    def test_proposes_by_amount_direction_and_window(self, db_session, chart, bank):
        recon = create_test_reconciliation(db_session, bank)
        deposit, withdrawal, orphan = import_bank_rows(
            db_session,
            bank,
            [
                (date(2026, 1, 10), 250, "D1"),
                (date(2026, 1, 20), -75, "101"),
                (date(2026, 1, 25), 999, "D2"),
            ],
        )
        deposit_line = _bank_line(db_session, chart, "debit", 250, date(2026, 1, 12))
        check_line = _bank_line(db_session, chart, "credit", 75, date(2026, 1, 20))

        result = ReconciliationEngine(db_session).auto_match(recon.id)
        pairs = {(m.bank_transaction_id, m.journal_line_id) for m in result.matches}

        assert pairs == {(deposit.id, deposit_line.id), (withdrawal.id, check_line.id)}
        assert (result.matched, result.unmatched, result.skipped) == (2, 1, 0)
        # Nothing written
        assert deposit.match_status == "unmatched"
        assert orphan.match_status == "unmatched"

    def test_outside_window_not_matched(self, db_session, chart, bank):
        recon = create_test_reconciliation(db_session, bank)
        import_bank_rows(db_session, bank, [(date(2026, 1, 20), 250, "D1")])
        _bank_line(db_session, chart, "debit", 250, date(2026, 1, 15))

        engine = ReconciliationEngine(db_session)
        assert engine.auto_match(recon.id).matched == 0
        assert engine.auto_match(recon.id, date_window_days=5).matched == 1

    def test_direction_must_follow_sign(self, db_session, chart, bank):
        recon = create_test_reconciliation(db_session, bank)
        import_bank_rows(db_session, bank, [(date(2026, 1, 10), -250, "W1")])
        _bank_line(db_session, chart, "debit", 250, date(2026, 1, 10))

        assert ReconciliationEngine(db_session).auto_match(recon.id).matched == 0

    def test_amount_tolerance(self, db_session, chart, bank):
        recon = create_test_reconciliation(db_session, bank)
        import_bank_rows(db_session, bank, [(date(2026, 1, 10), "250.40", "D1")])
        _bank_line(db_session, chart, "debit", 250, date(2026, 1, 10))
        engine = ReconciliationEngine(db_session)

        assert engine.auto_match(recon.id).matched == 0
        result = engine.auto_match(recon.id, amount_tolerance=Decimal("0.50"))
        assert result.matches[0].amount_difference == Decimal("0.40")

    def test_nearest_date_wins(self, db_session, chart, bank):
        recon = create_test_reconciliation(db_session, bank)
        import_bank_rows(db_session, bank, [(date(2026, 1, 10), 250, "D1")])
        _bank_line(db_session, chart, "debit", 250, date(2026, 1, 8))
        near = _bank_line(db_session, chart, "debit", 250, date(2026, 1, 11))

        result = ReconciliationEngine(db_session).auto_match(recon.id)

        assert [m.journal_line_id for m in result.matches] == [near.id]
        assert result.matches[0].days_apart == 1

    def test_each_line_used_once(self, db_session, chart, bank):
        recon = create_test_reconciliation(db_session, bank)
        import_bank_rows(db_session, bank, [(date(2026, 1, 10), 250, "D1"), (date(2026, 1, 10), 250, "D2")])
        _bank_line(db_session, chart, "debit", 250, date(2026, 1, 10))

        result = ReconciliationEngine(db_session).auto_match(recon.id)
        assert (result.matched, result.unmatched) == (1, 1)

    def test_skipped_counts_matched_and_excluded(self, db_session, chart, bank):
        engine = ReconciliationEngine(db_session)
        recon = create_test_reconciliation(db_session, bank)
        first, second, _third = import_bank_rows(
            db_session,
            bank,
            [(date(2026, 1, 5), 10, "A"), (date(2026, 1, 6), 20, "B"), (date(2026, 1, 7), 30, "C")],
        )
        line = _bank_line(db_session, chart, "debit", 10, date(2026, 1, 5))
        engine.match_transaction(recon.id, first.id, line.id)
        engine.exclude_transaction(recon.id, second.id)

        result = engine.auto_match(recon.id)
        assert (result.matched, result.unmatched, result.skipped) == (0, 1, 2)

    def test_transactions_after_statement_date_ignored(self, db_session, chart, bank):
        recon = create_test_reconciliation(db_session, bank)
        import_bank_rows(db_session, bank, [(date(2026, 2, 2), 250, "D1")])
        _bank_line(db_session, chart, "debit", 250, date(2026, 1, 31))

        result = ReconciliationEngine(db_session).auto_match(recon.id)
        assert (result.matched, result.unmatched) == (0, 0)

    def test_explicit_candidates(self, db_session, bank):
        recon = create_test_reconciliation(db_session, bank)
        (tx,) = import_bank_rows(db_session, bank, [(date(2026, 1, 10), 250, "D1")])
        candidates = [
            MatchCandidate(journal_line_id=42, entry_date=date(2026, 1, 10), direction="debit", amount=Decimal("250"))
        ]

        result = ReconciliationEngine(db_session).auto_match(recon.id, candidate_lines=candidates)
        assert result.matches[0].journal_line_id == 42
        assert result.matches[0].bank_transaction_id == tx.id

    def test_negative_window_rejected(self, db_session, bank):
        recon = create_test_reconciliation(db_session, bank)
        with pytest.raises(ValidationError):
            ReconciliationEngine(db_session).auto_match(recon.id, date_window_days=-1)

    def test_apply_matches_persists(self, db_session, chart, bank):
        engine = ReconciliationEngine(db_session)
        recon = create_test_reconciliation(db_session, bank)
        (tx,) = import_bank_rows(db_session, bank, [(date(2026, 1, 10), 250, "D1")])
        line = _bank_line(db_session, chart, "debit", 250, date(2026, 1, 10))

        proposals = engine.auto_match(recon.id).matches
        applied = engine.apply_matches(recon.id, proposals, matched_by="clerk")

        assert [t.id for t in applied] == [tx.id]
        assert tx.match_status == "matched"
        assert tx.matched_journal_line_id == line.id

    def test_apply_matches_all_or_nothing(self, db_session, chart, bank):
        engine = ReconciliationEngine(db_session)
        recon = create_test_reconciliation(db_session, bank)
        first, second = import_bank_rows(
            db_session, bank, [(date(2026, 1, 10), 250, "D1"), (date(2026, 1, 11), 250, "D2")]
        )
        line = _bank_line(db_session, chart, "debit", 250, date(2026, 1, 10))
        proposals = [
            ProposedMatch(bank_transaction_id=first.id, journal_line_id=line.id, amount_difference=0, days_apart=0),
            ProposedMatch(bank_transaction_id=second.id, journal_line_id=line.id, amount_difference=0, days_apart=1),
        ]

        with pytest.raises(ConflictError):
            engine.apply_matches(recon.id, proposals)
        assert first.match_status == "unmatched"


class TestStrategy:
    """AmountDateMatchStrategy on plain candidates"""

    def test_lowest_line_id_breaks_ties(self, db_session, bank):
        (tx,) = import_bank_rows(db_session, bank, [(date(2026, 1, 10), 50, None)])
        candidates = [
            MatchCandidate(journal_line_id=9, entry_date=date(2026, 1, 10), direction="debit", amount=Decimal("50")),
            MatchCandidate(journal_line_id=3, entry_date=date(2026, 1, 10), direction="debit", amount=Decimal("50")),
        ]

        proposals = AmountDateMatchStrategy().match([tx], candidates, 3, Decimal("0"))
        assert [p.journal_line_id for p in proposals] == [3]


class TestReconcilingItems:
    """Item rules and adjusted balance formulas"""

    def test_adjusted_balances(self, db_session, bank):
        engine = ReconciliationEngine(db_session)
        recon = create_test_reconciliation(db_session, bank, statement_balance="1000.00", book_balance="1160.00")
        engine.add_item(recon.id, _item("outstanding_check", 100))
        engine.add_item(recon.id, _item("deposit_in_transit", 200))
        engine.add_item(recon.id, _item("bank_fee", 15))
        engine.add_item(recon.id, _item("bank_interest", 5))
        engine.add_item(recon.id, _item("nsf_check", 50))

        balances = engine.calculate_adjusted_balances(recon.id)

        assert balances.adjusted_bank_balance == Decimal("1100.00")
        assert balances.adjusted_book_balance == Decimal("1100.00")
        assert balances.difference == Decimal("0.00")
        assert balances.is_balanced
        assert recon.adjusted_bank_balance == Decimal("1100.00")

    def test_signed_adjustment(self, db_session, bank):
        engine = ReconciliationEngine(db_session)
        recon = create_test_reconciliation(db_session, bank, statement_balance="980.00", book_balance="1000.00")
        engine.add_item(recon.id, _item("adjustment", "-20"))

        assert engine.calculate_adjusted_balances(recon.id).is_balanced

    @pytest.mark.parametrize("item_type,amount", [("outstanding_check", -5), ("bank_fee", 0), ("adjustment", 0)])
    def test_invalid_amounts(self, db_session, bank, item_type, amount):
        recon = create_test_reconciliation(db_session, bank)
        with pytest.raises(ValidationError):
            ReconciliationEngine(db_session).add_item(recon.id, _item(item_type, amount))

    def test_requires_journal_entry_defaults(self, db_session, bank):
        engine = ReconciliationEngine(db_session)
        recon = create_test_reconciliation(db_session, bank)

        assert engine.add_item(recon.id, _item("outstanding_check", 10)).requires_journal_entry is False
        assert engine.add_item(recon.id, _item("bank_fee", 10)).requires_journal_entry is True
        assert engine.add_item(
            recon.id, _item("bank_fee", 10, requires_journal_entry=False)
        ).requires_journal_entry is False

    def test_voided_items_ignored(self, db_session, bank):
        engine = ReconciliationEngine(db_session)
        recon = create_test_reconciliation(db_session, bank, statement_balance="1000.00", book_balance="1000.00")
        item = engine.add_item(recon.id, _item("outstanding_check", 100))
        engine.calculate_adjusted_balances(recon.id)

        engine.void_item(item.id)

        assert recon.adjusted_bank_balance is None
        assert engine.calculate_adjusted_balances(recon.id).is_balanced

    def test_item_status_is_one_way(self, db_session, bank):
        engine = ReconciliationEngine(db_session)
        recon = create_test_reconciliation(db_session, bank)
        item = engine.add_item(recon.id, _item("deposit_in_transit", 30))

        assert engine.clear_item(item.id).status == "cleared"
        with pytest.raises(InvalidStateError):
            engine.void_item(item.id)

    def test_items_need_in_progress(self, db_session, bank):
        recon = create_test_reconciliation(db_session, bank, start=False)
        with pytest.raises(InvalidStateError):
            ReconciliationEngine(db_session).add_item(recon.id, _item("bank_fee", 5))


class TestReconciliationLifecycle:
    """draft → in_progress → completed → approved"""

    def test_duplicate_period_rejected(self, db_session, bank):
        create_test_reconciliation(db_session, bank)
        with pytest.raises(DuplicateError):
            create_test_reconciliation(db_session, bank)

    def test_statement_date_defaults_to_month_end(self, db_session, bank):
        recon = create_test_reconciliation(db_session, bank, year=2024, month=2, start=False)
        assert recon.statement_date == date(2024, 2, 29)

    def test_complete_and_approve(self, db_session, bank):
        engine = ReconciliationEngine(db_session)
        recon = create_test_reconciliation(db_session, bank, statement_balance="900.00", book_balance="1000.00")
        engine.add_item(recon.id, _item("deposit_in_transit", 100))

        engine.complete(recon.id, completed_by="clerk")
        assert recon.status == "completed"

        engine.approve(recon.id, approved_by="controller")
        assert recon.status == "approved"
        assert recon.approved_by == "controller"
        assert bank.last_reconciled_balance == Decimal("1000.00")
        assert bank.last_reconciled_date == date(2026, 1, 31)

    def test_complete_out_of_balance_rejected(self, db_session, bank):
        engine = ReconciliationEngine(db_session)
        recon = create_test_reconciliation(db_session, bank, statement_balance="900.00", book_balance="1000.00")

        with pytest.raises(DomainRuleError):
            engine.complete(recon.id)
        assert recon.status == "in_progress"

    def test_complete_recalculates_stale_balances(self, db_session, bank):
        engine = ReconciliationEngine(db_session)
        recon = create_test_reconciliation(db_session, bank, statement_balance="900.00", book_balance="1000.00")
        engine.calculate_adjusted_balances(recon.id)
        engine.add_item(recon.id, _item("deposit_in_transit", 100))

        assert engine.complete(recon.id).adjusted_bank_balance == Decimal("1000.00")

    def test_approve_requires_completed(self, db_session, bank):
        recon = create_test_reconciliation(db_session, bank)
        with pytest.raises(InvalidStateError):
            ReconciliationEngine(db_session).approve(recon.id)

    def test_no_changes_after_complete(self, db_session, bank):
        engine = ReconciliationEngine(db_session)
        recon = create_test_reconciliation(db_session, bank)
        engine.complete(recon.id)

        with pytest.raises(InvalidStateError):
            engine.add_item(recon.id, _item("bank_fee", 5))

    def test_unmatch_blocked_after_complete(self, db_session, chart, bank):
        engine = ReconciliationEngine(db_session)
        recon = create_test_reconciliation(db_session, bank)
        (tx,) = import_bank_rows(db_session, bank, [(date(2026, 1, 10), 250, "D1")])
        line = _bank_line(db_session, chart, "debit", 250, date(2026, 1, 10))
        engine.match_transaction(recon.id, tx.id, line.id)
        engine.complete(recon.id)

        with pytest.raises(InvalidStateError):
            engine.unmatch_transaction(recon.id, tx.id)
        assert tx.match_status == "matched"
        assert tx.matched_journal_line_id == line.id

    def test_later_reconciliation_cannot_unmatch_approved_match(self, db_session, chart, bank):
        engine = ReconciliationEngine(db_session)
        january = create_test_reconciliation(db_session, bank)
        (tx,) = import_bank_rows(db_session, bank, [(date(2026, 1, 10), 250, "D1")])
        line = _bank_line(db_session, chart, "debit", 250, date(2026, 1, 10))
        engine.match_transaction(january.id, tx.id, line.id)
        engine.complete(january.id)
        engine.approve(january.id)

        february = create_test_reconciliation(db_session, bank, month=2)
        with pytest.raises(InvalidStateError):
            engine.unmatch_transaction(february.id, tx.id)
        assert tx.match_status == "matched"

    def test_validate_reports_errors_and_warnings(self, db_session, bank):
        engine = ReconciliationEngine(db_session)
        recon = create_test_reconciliation(db_session, bank, statement_balance="900.00", book_balance="1000.00")
        import_bank_rows(db_session, bank, [(date(2026, 1, 10), 250, "D1")])

        first = engine.validate(recon.id)
        assert first.is_valid
        assert "Adjusted balances have not been calculated" in first.warnings

        engine.calculate_adjusted_balances(recon.id)
        second = engine.validate(recon.id)
        assert not second.is_valid
        assert any("unmatched" in w for w in second.warnings)


class TestAdjustingEntries:
    """Draft entries for pending book-side items"""

    def test_generates_one_draft_per_book_item(self, db_session, chart, bank):
        engine = ReconciliationEngine(db_session)
        recon = create_test_reconciliation(db_session, bank)
        fee = engine.add_item(recon.id, _item("bank_fee", 15))
        engine.add_item(recon.id, _item("bank_interest", 5))
        engine.add_item(recon.id, _item("outstanding_check", 100))
        accounts = AdjustingEntryAccounts(
            bank_fee_expense_account_id=chart["6101"].id,
            interest_income_account_id=chart["4301"].id,
            nsf_receivable_account_id=chart["1205"].id,
        )

        entries = engine.generate_adjusting_entries(recon.id, accounts, created_by="clerk")

        assert len(entries) == 2
        fee_entry = entries[0]
        assert fee_entry.status == "draft"
        assert fee_entry.entry_type == "adjusting"
        assert fee_entry.source_service == "reconciliation"
        assert fee_entry.source_reference == f"RECON-{recon.id}-ITEM-{fee.id}"
        assert [(line.account_id, line.direction) for line in fee_entry.lines] == [
            (chart["6101"].id, "debit"),
            (chart["1102"].id, "credit"),
        ]
        interest_lines = [(line.account_id, line.direction) for line in entries[1].lines]
        assert interest_lines == [(chart["1102"].id, "debit"), (chart["4301"].id, "credit")]
        assert fee.journal_entry_id == fee_entry.id

        # Items with an entry are not regenerated
        assert engine.generate_adjusting_entries(recon.id, accounts) == []

    def test_nsf_without_receivable_uses_fee_account(self, db_session, chart, bank):
        engine = ReconciliationEngine(db_session)
        recon = create_test_reconciliation(db_session, bank)
        engine.add_item(recon.id, _item("nsf_check", 60))
        accounts = AdjustingEntryAccounts(
            bank_fee_expense_account_id=chart["6101"].id,
            interest_income_account_id=chart["4301"].id,
        )

        (entry,) = engine.generate_adjusting_entries(recon.id, accounts)

        assert entry.lines[0].account_id == chart["6101"].id
        assert entry.total_debits == Decimal("60.00")
