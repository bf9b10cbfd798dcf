"""
Account Registry - Chart of accounts and code-range classification

Every account code is a 4-digit string. The leading range decides the
account type, normal balance side and category:

    1000-1999  asset       debit   (1000-1399 current, 1400-1499 fixed, 1500+ other non-current)
    2000-2999  liability   credit  (2000-2399 current, 2400+ long-term)
    3000-3999  equity      credit
    4000-4999  revenue     credit  (4000-4299 operating revenue, 4300+ other income)
    5000-5999  cogs        debit
    6000-9999  expense     debit   (6xxx operating, 7000-7199 other income/expense, 8xxx tax)

IMPORTANT: This service does NOT commit. Caller is responsible for commit.
"""
from typing import List, NamedTuple, Optional

from sqlalchemy import exists
from sqlalchemy.orm import Session

from ledger.core.status_config import (
    ACCOUNT_TRANSITIONS,
    AccountCategory,
    AccountStatus,
    AccountType,
    NormalBalance,
    StatementType,
    validate_transition,
)
from ledger.exceptions import (
    ConflictError,
    DomainRuleError,
    DuplicateError,
    InvalidAccountError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ledger.logging_config import get_logger
from ledger.models.accounting import Account, JournalLine
from ledger.schemas.accounting import AccountClassification, AccountCreate, AccountUpdate

logger = get_logger(__name__)


class _Band(NamedTuple):
    low: int
    high: int
    account_type: AccountType
    normal_balance: NormalBalance


class _CategoryRange(NamedTuple):
    low: int
    high: int
    category: AccountCategory


TYPE_BANDS: List[_Band] = [
    _Band(1000, 1999, AccountType.ASSET, NormalBalance.DEBIT),
    _Band(2000, 2999, AccountType.LIABILITY, NormalBalance.CREDIT),
    _Band(3000, 3999, AccountType.EQUITY, NormalBalance.CREDIT),
    _Band(4000, 4999, AccountType.REVENUE, NormalBalance.CREDIT),
    _Band(5000, 5999, AccountType.COGS, NormalBalance.DEBIT),
    _Band(6000, 9999, AccountType.EXPENSE, NormalBalance.DEBIT),
]

CATEGORY_RANGES: List[_CategoryRange] = [
    _CategoryRange(1000, 1399, AccountCategory.CURRENT_ASSET),
    _CategoryRange(1400, 1499, AccountCategory.FIXED_ASSET),
    _CategoryRange(1500, 1999, AccountCategory.OTHER_NON_CURRENT_ASSET),
    _CategoryRange(2000, 2399, AccountCategory.CURRENT_LIABILITY),
    _CategoryRange(2400, 2999, AccountCategory.LONG_TERM_LIABILITY),
    _CategoryRange(3000, 3999, AccountCategory.EQUITY),
    _CategoryRange(4000, 4299, AccountCategory.REVENUE),
    _CategoryRange(4300, 4999, AccountCategory.OTHER_INCOME),
    _CategoryRange(5000, 5999, AccountCategory.COGS),
    _CategoryRange(6000, 6999, AccountCategory.OPERATING_EXPENSE),
    _CategoryRange(7000, 7199, AccountCategory.OTHER_INCOME_EXPENSE),
    _CategoryRange(8000, 8999, AccountCategory.TAX),
]

# Used when a code sits in a type band but no finer category range
_FALLBACK_CATEGORY = {
    AccountType.ASSET: AccountCategory.CURRENT_ASSET,
    AccountType.LIABILITY: AccountCategory.CURRENT_LIABILITY,
    AccountType.EQUITY: AccountCategory.EQUITY,
    AccountType.REVENUE: AccountCategory.REVENUE,
    AccountType.COGS: AccountCategory.COGS,
    AccountType.EXPENSE: AccountCategory.OPERATING_EXPENSE,
}


def classify_code(code: str) -> AccountClassification:
    """
    Classify a 4-digit account code.

    Raises:
        ValidationError: If the code is not exactly four digits or falls
            outside every type band (e.g. "0999")
    """
    if not isinstance(code, str) or len(code) != 4 or not code.isdigit():
        raise ValidationError("Account code must be exactly 4 digits", field="code", value=code)

    number = int(code)
    band = next((b for b in TYPE_BANDS if b.low <= number <= b.high), None)
    if band is None:
        raise ValidationError(f"Account code {code} is outside the chart of accounts", field="code", value=code)

    category_range = next((c for c in CATEGORY_RANGES if c.low <= number <= c.high), None)
    category = category_range.category if category_range else _FALLBACK_CATEGORY[band.account_type]

    statement = StatementType.BALANCE_SHEET if number < 4000 else StatementType.INCOME_STATEMENT

    return AccountClassification(
        account_type=band.account_type.value,
        normal_balance=band.normal_balance.value,
        category=category.value,
        statement_type=statement.value,
    )


class AccountRegistry:
    """
    Chart of accounts maintenance and lookup.

    IMPORTANT: This service does NOT commit. Caller is responsible for commit.
    """

    def __init__(self, db: Session):
        self.db = db

    # === LOOKUP ===

    def get_account(self, account_id: int) -> Account:
        account = self.db.get(Account, account_id)
        if not account:
            raise NotFoundError("Account", account_id)
        return account

    def get_by_code(self, code: str) -> Account:
        account = self.db.query(Account).filter(Account.code == code).first()
        if not account:
            raise NotFoundError("Account", code)
        return account

    def find_by_code(self, code: str) -> Optional[Account]:
        return self.db.query(Account).filter(Account.code == code).first()

    def list_accounts(self, status: Optional[str] = None) -> List[Account]:
        query = self.db.query(Account)
        if status:
            query = query.filter(Account.status == status)
        return query.order_by(Account.code).all()

    # === TREE TRAVERSAL ===

    def get_children(self, account_id: int) -> List[Account]:
        self.get_account(account_id)
        return (
            self.db.query(Account)
            .filter(Account.parent_id == account_id)
            .order_by(Account.code)
            .all()
        )

    def get_ancestors(self, account_id: int) -> List[Account]:
        """Parent chain, nearest first"""
        account = self.get_account(account_id)
        ancestors = []
        seen = {account.id}
        while account.parent_id is not None:
            if account.parent_id in seen:
                break  # Corrupt data; stop instead of looping
            account = self.get_account(account.parent_id)
            seen.add(account.id)
            ancestors.append(account)
        return ancestors

    def get_descendants(self, account_id: int) -> List[Account]:
        """All accounts below this one, depth-first"""
        result = []
        stack = list(reversed(self.get_children(account_id)))
        seen = {account_id}
        while stack:
            child = stack.pop()
            if child.id in seen:
                continue
            seen.add(child.id)
            result.append(child)
            stack.extend(reversed(self.get_children(child.id)))
        return result

    def has_postings(self, account_id: int) -> bool:
        """True when any journal line references the account"""
        return self.db.query(exists().where(JournalLine.account_id == account_id)).scalar()

    def has_children(self, account_id: int) -> bool:
        return self.db.query(exists().where(Account.parent_id == account_id)).scalar()

    # === MAINTENANCE ===

    def create_account(self, data: AccountCreate) -> Account:
        classification = classify_code(data.code)

        if self.find_by_code(data.code):
            raise DuplicateError("Account", field="code", value=data.code)

        if data.parent_id is not None:
            self._validate_parent(data.parent_id, classification)

        account = Account(
            code=data.code,
            name=data.name,
            account_type=classification.account_type,
            normal_balance=classification.normal_balance,
            category=classification.category,
            is_detail=data.is_detail,
            is_system=data.is_system,
            status=AccountStatus.ACTIVE.value,
            parent_id=data.parent_id,
            description=data.description,
        )
        self.db.add(account)
        self.db.flush()
        logger.info(f"Account {account.code} created ({account.account_type}/{account.category})")
        return account

    def update_account(self, account_id: int, data: AccountUpdate) -> Account:
        """
        Apply a partial update. Every rule is checked before any attribute
        changes, so a rejected update leaves the account untouched.
        """
        account = self.get_account(account_id)
        changes = data.model_dump(exclude_unset=True)

        new_code = changes.pop("code", None)
        code_changed = new_code is not None and new_code != account.code
        classification = None
        if code_changed:
            if account.is_system:
                raise ConflictError(
                    f"System account {account.code} cannot change its code",
                    details={"account_id": account.id, "code": account.code},
                )
            classification = classify_code(new_code)
            if self.find_by_code(new_code):
                raise DuplicateError("Account", field="code", value=new_code)

        parent_changed = "parent_id" in changes
        parent_id = changes.pop("parent_id") if parent_changed else account.parent_id
        if parent_id is not None and (code_changed or parent_changed):
            self._validate_parent(
                parent_id,
                classification or classify_code(account.code),
                child_id=account.id,
            )

        if changes.get("is_detail") is True and self.has_children(account.id):
            raise DomainRuleError(
                f"Account {account.code} has children and must stay a header account",
                rule="header_with_children",
            )
        if changes.get("is_detail") is False and self.has_postings(account.id):
            raise DomainRuleError(
                f"Account {account.code} has postings and cannot become a header account",
                rule="header_without_postings",
            )

        if code_changed:
            account.code = new_code
            account.account_type = classification.account_type
            account.normal_balance = classification.normal_balance
            account.category = classification.category
        if parent_changed:
            account.parent_id = parent_id
        for field, value in changes.items():
            setattr(account, field, value)

        self.db.flush()
        return account

    def activate(self, account_id: int) -> Account:
        return self._transition(account_id, AccountStatus.ACTIVE)

    def deactivate(self, account_id: int) -> Account:
        account = self.get_account(account_id)
        if account.is_system:
            raise InvalidStateError(
                f"System account {account.code} cannot be deactivated",
                current_state=account.status,
            )
        return self._transition(account_id, AccountStatus.INACTIVE)

    def archive(self, account_id: int) -> Account:
        return self._transition(account_id, AccountStatus.ARCHIVED)

    def delete_account(self, account_id: int) -> None:
        account = self.get_account(account_id)
        if account.is_system:
            raise DomainRuleError(f"System account {account.code} cannot be deleted", rule="system_account")
        if self.has_postings(account.id):
            raise DomainRuleError(
                f"Account {account.code} has postings and cannot be deleted; deactivate it instead",
                rule="account_has_postings",
            )
        if self.has_children(account.id):
            raise DomainRuleError(
                f"Account {account.code} has child accounts and cannot be deleted",
                rule="account_has_children",
            )
        self.db.delete(account)
        self.db.flush()
        logger.info(f"Account {account.code} deleted")

    def require_postable(self, account_id: int) -> Account:
        """Return the account if it can take journal lines, else raise InvalidAccountError"""
        account = self.get_account(account_id)
        if not account.is_detail:
            raise InvalidAccountError(account.code, reason="header accounts only aggregate")
        if account.status != AccountStatus.ACTIVE:
            raise InvalidAccountError(account.code, reason=f"account is {account.status}")
        return account

    # === INTERNAL HELPERS ===

    def _transition(self, account_id: int, new_status: AccountStatus) -> Account:
        account = self.get_account(account_id)
        validate_transition(f"Account {account.code}", ACCOUNT_TRANSITIONS, account.status, new_status)
        old_status = account.status
        account.status = new_status.value
        self.db.flush()
        logger.info(f"Account {account.code}: {old_status} → {account.status}")
        return account

    def _validate_parent(
        self,
        parent_id: int,
        classification: AccountClassification,
        child_id: Optional[int] = None,
    ) -> None:
        parent = self.get_account(parent_id)
        if parent.is_detail:
            raise ValidationError(
                f"Parent account {parent.code} is a detail account; only header accounts can have children",
                field="parent_id",
                value=parent_id,
            )
        if parent.account_type != classification.account_type:
            raise ValidationError(
                f"Parent account {parent.code} is {parent.account_type}, child is {classification.account_type}",
                field="parent_id",
                value=parent_id,
            )
        if child_id is not None:
            if parent.id == child_id or any(a.id == child_id for a in self.get_ancestors(parent.id)):
                raise ValidationError("Parent assignment would create a cycle", field="parent_id", value=parent_id)
