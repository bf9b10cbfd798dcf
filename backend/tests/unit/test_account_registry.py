"""
Unit Tests for AccountRegistry

Tests:
1. Code-range classification (type, normal side, category, statement)
2. Account creation and hierarchy rules
3. Updates, status transitions and deletion guards
4. Postability checks used by the journal
"""
import pytest

from ledger.exceptions import (
    ConflictError,
    DomainRuleError,
    DuplicateError,
    InvalidAccountError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ledger.schemas.accounting import AccountCreate, AccountUpdate
from ledger.services.account_registry import AccountRegistry, classify_code
from tests.factories import create_posted_entry, create_test_account


class TestClassifyCode:
    """Code ranges decide type, normal balance and category"""

    @pytest.mark.parametrize(
        "code,account_type,normal,category",
        [
            ("1101", "asset", "debit", "current_asset"),
            ("1450", "asset", "debit", "fixed_asset"),
            ("1600", "asset", "debit", "other_non_current_asset"),
            ("2201", "liability", "credit", "current_liability"),
            ("2500", "liability", "credit", "long_term_liability"),
            ("3101", "equity", "credit", "equity"),
            ("4101", "revenue", "credit", "revenue"),
            ("4301", "revenue", "credit", "other_income"),
            ("5100", "cogs", "debit", "cogs"),
            ("6101", "expense", "debit", "operating_expense"),
            ("7101", "expense", "debit", "other_income_expense"),
            ("8100", "expense", "debit", "tax"),
        ],
    )
    def test_classification_by_range(self, code, account_type, normal, category):
        result = classify_code(code)
        assert result.account_type == account_type
        assert result.normal_balance == normal
        assert result.category == category

    def test_statement_type_split_at_4000(self):
        assert classify_code("3999").statement_type == "balance_sheet"
        assert classify_code("4000").statement_type == "income_statement"

    @pytest.mark.parametrize("code", ["999", "12345", "11a1", "", "0999"])
    def test_invalid_codes_rejected(self, code):
        with pytest.raises(ValidationError):
            classify_code(code)


class TestCreateAccount:
    """Account creation and hierarchy"""

    def test_create_applies_classification(self, db_session):
        account = create_test_account(db_session, code="2201", name="Sales Tax Payable")

        assert account.id is not None
        assert account.account_type == "liability"
        assert account.normal_balance == "credit"
        assert account.category == "current_liability"
        assert account.status == "active"

    def test_duplicate_code_rejected(self, db_session):
        create_test_account(db_session, code="1101")
        with pytest.raises(DuplicateError):
            create_test_account(db_session, code="1101")

    def test_child_under_header_of_same_type(self, db_session):
        registry = AccountRegistry(db_session)
        header = create_test_account(db_session, code="1100", name="Cash", is_detail=False)
        child = create_test_account(db_session, code="1101", parent_id=header.id)

        assert [c.id for c in registry.get_children(header.id)] == [child.id]
        assert [a.id for a in registry.get_ancestors(child.id)] == [header.id]

    def test_parent_must_be_header(self, db_session):
        detail = create_test_account(db_session, code="1101")
        with pytest.raises(ValidationError):
            create_test_account(db_session, code="1102", parent_id=detail.id)

    def test_parent_must_share_type(self, db_session):
        header = create_test_account(db_session, code="2000", is_detail=False)
        with pytest.raises(ValidationError):
            create_test_account(db_session, code="1101", parent_id=header.id)

    def test_descendants_depth_first(self, db_session):
        registry = AccountRegistry(db_session)
        root = create_test_account(db_session, code="1000", is_detail=False)
        mid = create_test_account(db_session, code="1100", is_detail=False, parent_id=root.id)
        leaf = create_test_account(db_session, code="1101", parent_id=mid.id)
        other = create_test_account(db_session, code="1200", parent_id=root.id)

        assert [a.id for a in registry.get_descendants(root.id)] == [mid.id, leaf.id, other.id]


class TestUpdateAccount:
    """Updates, re-coding and cycle prevention"""

    def test_recode_reclassifies(self, db_session):
        account = create_test_account(db_session, code="6101")
        updated = AccountRegistry(db_session).update_account(account.id, AccountUpdate(code="7101"))

        assert updated.code == "7101"
        assert updated.category == "other_income_expense"

    def test_system_account_code_is_fixed(self, db_session):
        account = create_test_account(db_session, code="1101", is_system=True)
        with pytest.raises(ConflictError):
            AccountRegistry(db_session).update_account(account.id, AccountUpdate(code="1102"))

    def test_recode_to_existing_code_rejected(self, db_session):
        create_test_account(db_session, code="1101")
        other = create_test_account(db_session, code="1102")
        with pytest.raises(DuplicateError):
            AccountRegistry(db_session).update_account(other.id, AccountUpdate(code="1101"))

    def test_cycle_rejected(self, db_session):
        registry = AccountRegistry(db_session)
        top = create_test_account(db_session, code="1000", is_detail=False)
        below = create_test_account(db_session, code="1100", is_detail=False, parent_id=top.id)

        with pytest.raises(ValidationError):
            registry.update_account(top.id, AccountUpdate(parent_id=below.id))

    def test_header_with_children_cannot_become_detail(self, db_session):
        header = create_test_account(db_session, code="1100", is_detail=False)
        create_test_account(db_session, code="1101", parent_id=header.id)
        with pytest.raises(DomainRuleError):
            AccountRegistry(db_session).update_account(header.id, AccountUpdate(is_detail=True))

    def test_account_with_postings_cannot_become_header(self, db_session):
        cash = create_test_account(db_session, code="1101")
        sales = create_test_account(db_session, code="4101")
        create_posted_entry(db_session, [(cash, "debit", 50), (sales, "credit", 50)])
        with pytest.raises(DomainRuleError):
            AccountRegistry(db_session).update_account(cash.id, AccountUpdate(is_detail=False))

    def test_rejected_parent_leaves_account_unchanged(self, db_session):
        account = create_test_account(db_session, code="1200")
        detail = create_test_account(db_session, code="1101")

        with pytest.raises(ValidationError):
            AccountRegistry(db_session).update_account(
                account.id, AccountUpdate(code="1300", name="Renamed", parent_id=detail.id)
            )
        db_session.flush()
        db_session.expire_all()

        reloaded = AccountRegistry(db_session).get_account(account.id)
        assert reloaded.code == "1200"
        assert reloaded.parent_id is None
        assert reloaded.name != "Renamed"

    def test_rejected_detail_flag_keeps_old_code(self, db_session):
        cash = create_test_account(db_session, code="1101")
        sales = create_test_account(db_session, code="4101")
        create_posted_entry(db_session, [(cash, "debit", 50), (sales, "credit", 50)])

        with pytest.raises(DomainRuleError):
            AccountRegistry(db_session).update_account(cash.id, AccountUpdate(code="6101", is_detail=False))
        db_session.flush()

        assert cash.code == "1101"
        assert cash.account_type == "asset"
        assert cash.is_detail is True

    def test_recode_checked_against_current_parent(self, db_session):
        header = create_test_account(db_session, code="1100", is_detail=False)
        child = create_test_account(db_session, code="1101", parent_id=header.id)

        with pytest.raises(ValidationError):
            AccountRegistry(db_session).update_account(child.id, AccountUpdate(code="6101"))
        assert child.code == "1101"


class TestStatusAndDeletion:
    """Status machine and deletion guards"""

    def test_deactivate_and_reactivate(self, db_session):
        registry = AccountRegistry(db_session)
        account = create_test_account(db_session, code="6101")

        assert registry.deactivate(account.id).status == "inactive"
        assert registry.activate(account.id).status == "active"

    def test_system_account_cannot_deactivate(self, db_session):
        account = create_test_account(db_session, code="1101", is_system=True)
        with pytest.raises(InvalidStateError):
            AccountRegistry(db_session).deactivate(account.id)

    def test_archived_is_terminal(self, db_session):
        registry = AccountRegistry(db_session)
        account = create_test_account(db_session, code="6101")
        registry.deactivate(account.id)
        registry.archive(account.id)
        with pytest.raises(InvalidStateError):
            registry.activate(account.id)

    def test_delete_unused_account(self, db_session):
        registry = AccountRegistry(db_session)
        account = create_test_account(db_session, code="6101")
        registry.delete_account(account.id)

        with pytest.raises(NotFoundError):
            registry.get_account(account.id)

    def test_delete_with_postings_rejected(self, db_session):
        cash = create_test_account(db_session, code="1101")
        sales = create_test_account(db_session, code="4101")
        create_posted_entry(db_session, [(cash, "debit", 10), (sales, "credit", 10)])
        with pytest.raises(DomainRuleError):
            AccountRegistry(db_session).delete_account(cash.id)

    def test_delete_system_account_rejected(self, db_session):
        account = create_test_account(db_session, code="3101", is_system=True)
        with pytest.raises(DomainRuleError):
            AccountRegistry(db_session).delete_account(account.id)

    def test_delete_header_with_children_rejected(self, db_session):
        header = create_test_account(db_session, code="1100", is_detail=False)
        create_test_account(db_session, code="1101", parent_id=header.id)
        with pytest.raises(DomainRuleError):
            AccountRegistry(db_session).delete_account(header.id)


class TestRequirePostable:
    """Only active detail accounts take postings"""

    def test_header_not_postable(self, db_session):
        header = create_test_account(db_session, code="1100", is_detail=False)
        with pytest.raises(InvalidAccountError):
            AccountRegistry(db_session).require_postable(header.id)

    def test_inactive_not_postable(self, db_session):
        registry = AccountRegistry(db_session)
        account = create_test_account(db_session, code="6101")
        registry.deactivate(account.id)
        with pytest.raises(InvalidAccountError):
            registry.require_postable(account.id)

    def test_unknown_account(self, db_session):
        with pytest.raises(NotFoundError):
            AccountRegistry(db_session).require_postable(9999)
