"""
Depreciation Engine - fixed asset lifecycle, monthly depreciation, disposal

Asset lifecycle:
    draft → active → fully_depreciated
                  ↘ disposed / written_off (terminal)

Monthly depreciation runs once per fiscal period:
    calculate (schedules only) → post (one journal entry) → reverse

Every asset mutation takes the caller's expected_version. The mapper's
version_id_col turns a stale write into zero updated rows, which surfaces
as ConcurrencyError.

IMPORTANT: This service does NOT commit. Caller is responsible for commit.
"""
import calendar
from abc import ABC, abstractmethod
from collections import OrderedDict
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ledger.core.money import ZERO, to_money
from ledger.core.settings import settings
from ledger.core.status_config import (
    ASSET_TRANSITIONS,
    DEPRECIATION_RUN_TRANSITIONS,
    MAINTENANCE_TRANSITIONS,
    AssetStatus,
    DepreciationMethod,
    DepreciationRunStatus,
    EntryType,
    MaintenanceStatus,
    MovementType,
    validate_transition,
)
from ledger.exceptions import (
    ConcurrencyError,
    ConflictError,
    DomainRuleError,
    DuplicateError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ledger.logging_config import get_logger
from ledger.models.fixed_asset import (
    AssetCategory,
    AssetMaintenance,
    AssetMovement,
    DepreciationRun,
    DepreciationSchedule,
    FixedAsset,
)
from ledger.schemas.accounting import JournalEntryCreate, JournalLineInput
from ledger.schemas.assets import (
    AssetCategoryCreate,
    DepreciationLine,
    DepreciationPreview,
    DisposalResult,
    FixedAssetCreate,
    FixedAssetUpdate,
    MaintenanceCreate,
    MaintenanceUpdate,
)
from ledger.services.journal_ledger import JournalLedger

logger = get_logger(__name__)

SOURCE_DEPRECIATION = "depreciation"
SOURCE_FIXED_ASSETS = "fixed-assets"


def period_end(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def previous_period_end(year: int, month: int) -> date:
    if month == 1:
        return period_end(year - 1, 12)
    return period_end(year, month - 1)


# =============================================================================
# Depreciation Calculators
# =============================================================================

class DepreciationCalculator(ABC):
    """Unclamped monthly depreciation for one asset"""

    @abstractmethod
    def monthly_amount(self, asset: FixedAsset) -> Decimal:
        ...


class StraightLineCalculator(DepreciationCalculator):
    """(cost - salvage) / useful life in months"""

    def monthly_amount(self, asset: FixedAsset) -> Decimal:
        depreciable = Decimal(asset.acquisition_cost) - Decimal(asset.salvage_value)
        return depreciable / Decimal(asset.useful_life_months)


class DecliningBalanceCalculator(DepreciationCalculator):
    """
    book value x annual rate / 12

    The annual rate is the category's declining_balance_rate, or
    DECLINING_BALANCE_FACTOR x the straight-line annual rate (12 / life).
    A 60 month life at factor 2 gives 40% a year.
    """

    def annual_rate(self, asset: FixedAsset) -> Decimal:
        category_rate = asset.category.declining_balance_rate if asset.category else None
        if category_rate is not None:
            return Decimal(category_rate)
        return Decimal(settings.DECLINING_BALANCE_FACTOR) * Decimal(12) / Decimal(asset.useful_life_months)

    def monthly_amount(self, asset: FixedAsset) -> Decimal:
        return Decimal(asset.book_value) * self.annual_rate(asset) / Decimal(12)


CALCULATORS: Dict[str, DepreciationCalculator] = {
    DepreciationMethod.STRAIGHT_LINE.value: StraightLineCalculator(),
    DepreciationMethod.DECLINING_BALANCE.value: DecliningBalanceCalculator(),
}


def get_calculator(method: str) -> DepreciationCalculator:
    calculator = CALCULATORS.get(method)
    if calculator is None:
        raise ValidationError(f"Unknown depreciation method: {method}", field="depreciation_method", value=method)
    return calculator


# =============================================================================
# Engine
# =============================================================================

class DepreciationEngine:
    """
    Fixed assets, depreciation runs, disposals and maintenance.

    IMPORTANT: This service does NOT commit. Caller is responsible for commit.
    """

    def __init__(self, db: Session, journal: Optional[JournalLedger] = None):
        self.db = db
        self.journal = journal or JournalLedger(db)
        self.accounts = self.journal.accounts

    # === CATEGORIES ===

    def create_category(self, data: AssetCategoryCreate) -> AssetCategory:
        if self.db.query(AssetCategory).filter(AssetCategory.code == data.code).first():
            raise DuplicateError("AssetCategory", field="code", value=data.code)
        for field in ("asset_account_id", "accumulated_depreciation_account_id", "depreciation_expense_account_id"):
            self.accounts.require_postable(getattr(data, field))
        if data.gain_loss_account_id is not None:
            self.accounts.require_postable(data.gain_loss_account_id)
        if data.declining_balance_rate is not None and not 0 < data.declining_balance_rate <= 1:
            raise ValidationError(
                "Declining balance rate must be between 0 and 1",
                field="declining_balance_rate",
                value=data.declining_balance_rate,
            )

        category = AssetCategory(**data.model_dump())
        self.db.add(category)
        self.db.flush()
        logger.info(f"Asset category {category.code} created")
        return category

    def get_category(self, category_id: int) -> AssetCategory:
        category = self.db.get(AssetCategory, category_id)
        if not category:
            raise NotFoundError("AssetCategory", category_id)
        return category

    # === ASSETS ===

    def get_asset(self, asset_id: int) -> FixedAsset:
        asset = self.db.get(FixedAsset, asset_id)
        if not asset:
            raise NotFoundError("FixedAsset", asset_id)
        return asset

    def register_asset(self, data: FixedAssetCreate, created_by: Optional[str] = None) -> FixedAsset:
        """
        Register a draft asset. Book value starts at cost.

        Raises:
            ValidationError: Cost or useful life not positive, negative salvage
            DomainRuleError: Salvage value exceeds cost
        """
        category = self.get_category(data.category_id)
        if not category.is_active:
            raise ValidationError(f"Asset category {category.code} is inactive", field="category_id")

        cost = to_money(data.acquisition_cost)
        life = data.useful_life_months if data.useful_life_months is not None else category.default_useful_life_months
        if data.salvage_value is not None:
            salvage = to_money(data.salvage_value)
        else:
            salvage = to_money(cost * Decimal(category.default_salvage_percent) / Decimal(100))
        self._validate_policy(cost, life, salvage)

        asset_number = data.asset_number or self._next_asset_number(category, data.acquisition_date.year)
        if self.db.query(FixedAsset).filter(FixedAsset.asset_number == asset_number).first():
            raise DuplicateError("FixedAsset", field="asset_number", value=asset_number)

        asset = FixedAsset(
            asset_number=asset_number,
            name=data.name,
            description=data.description,
            category_id=category.id,
            acquisition_date=data.acquisition_date,
            acquisition_method=data.acquisition_method,
            acquisition_cost=cost,
            useful_life_months=life,
            salvage_value=salvage,
            depreciation_method=data.depreciation_method or category.default_depreciation_method,
            depreciation_start_date=data.depreciation_start_date or data.acquisition_date,
            accumulated_depreciation=ZERO,
            book_value=cost,
            status=AssetStatus.DRAFT.value,
            created_by=created_by,
        )
        get_calculator(asset.depreciation_method)
        self.db.add(asset)
        self.db.flush()
        logger.info(f"Asset {asset.asset_number} registered at {cost}")
        return asset

    def activate_asset(
        self,
        asset_id: int,
        expected_version: Optional[int] = None,
        performed_by: Optional[str] = None,
    ) -> FixedAsset:
        """Draft → active, recording the acquisition movement"""
        asset = self.get_asset(asset_id)
        self._check_version(asset, expected_version)
        self._transition(asset, AssetStatus.ACTIVE)
        self.db.add(
            AssetMovement(
                asset_id=asset.id,
                movement_type=MovementType.ACQUISITION.value,
                movement_date=asset.acquisition_date,
                amount=asset.acquisition_cost,
                book_value=asset.book_value,
                performed_by=performed_by,
            )
        )
        self._flush_versioned(asset)
        return asset

    def update_asset(self, asset_id: int, expected_version: Optional[int], data: FixedAssetUpdate) -> FixedAsset:
        """Edit a draft asset; active assets only change through depreciation and disposal"""
        asset = self.get_asset(asset_id)
        self._check_version(asset, expected_version)
        if asset.status != AssetStatus.DRAFT:
            raise InvalidStateError(
                f"Asset {asset.asset_number} is {asset.status}; only draft assets can be edited",
                current_state=asset.status,
                allowed_states=[AssetStatus.DRAFT.value],
            )

        changes = data.model_dump(exclude_unset=True)
        cost = to_money(changes.get("acquisition_cost", asset.acquisition_cost))
        life = changes.get("useful_life_months", asset.useful_life_months)
        salvage = to_money(changes.get("salvage_value", asset.salvage_value))
        self._validate_policy(cost, life, salvage)
        if changes.get("depreciation_method"):
            get_calculator(changes["depreciation_method"])

        for field, value in changes.items():
            setattr(asset, field, value)
        asset.acquisition_cost = cost
        asset.salvage_value = salvage
        asset.book_value = cost
        self._flush_versioned(asset)
        return asset

    # === DEPRECIATION ===

    def monthly_depreciation(self, asset: FixedAsset) -> Decimal:
        """One month's depreciation, never taking book value below salvage"""
        amount = get_calculator(asset.depreciation_method).monthly_amount(asset)
        return to_money(min(amount, asset.depreciable_remaining))

    def preview(self, year: int, month: int) -> DepreciationPreview:
        """Read-only calculation for every depreciable asset in the period"""
        end = period_end(year, month)
        assets = (
            self.db.query(FixedAsset)
            .filter(
                FixedAsset.status == AssetStatus.ACTIVE.value,
                FixedAsset.depreciation_start_date <= end,
                FixedAsset.book_value > FixedAsset.salvage_value,
            )
            .order_by(FixedAsset.id)
            .all()
        )

        preview = DepreciationPreview(fiscal_year=year, fiscal_month=month)
        for asset in assets:
            if asset.last_depreciation_date is not None and asset.last_depreciation_date >= end:
                continue
            amount = self.monthly_depreciation(asset)
            if amount <= 0:
                continue
            opening = to_money(asset.book_value)
            closing = opening - amount
            preview.lines.append(
                DepreciationLine(
                    asset_id=asset.id,
                    asset_number=asset.asset_number,
                    category_id=asset.category_id,
                    opening_book_value=opening,
                    depreciation_amount=amount,
                    closing_book_value=closing,
                    accumulated_depreciation=to_money(asset.accumulated_depreciation) + amount,
                    fully_depreciated=closing <= to_money(asset.salvage_value),
                )
            )
            preview.total_depreciation += amount
        preview.asset_count = len(preview.lines)
        return preview

    def apply_depreciation(self, asset: FixedAsset, amount, as_of: date) -> Decimal:
        """
        Depreciate an active asset, clamped so book value stops at salvage.

        Returns the amount actually applied.

        Raises:
            InvalidStateError: Asset is not active
            ValidationError: Negative amount
        """
        if asset.status != AssetStatus.ACTIVE:
            raise InvalidStateError(
                f"Asset {asset.asset_number} is {asset.status}; only active assets depreciate",
                current_state=asset.status,
                allowed_states=[AssetStatus.ACTIVE.value],
            )
        amount = to_money(amount)
        if amount < 0:
            raise ValidationError("Depreciation amount cannot be negative", field="amount", value=amount)
        amount = to_money(min(amount, asset.depreciable_remaining))

        asset.accumulated_depreciation = to_money(asset.accumulated_depreciation) + amount
        asset.book_value = to_money(asset.book_value) - amount
        asset.last_depreciation_date = as_of
        if asset.book_value <= to_money(asset.salvage_value):
            self._transition(asset, AssetStatus.FULLY_DEPRECIATED)
        return amount

    def get_run(self, year: int, month: int) -> DepreciationRun:
        run = self.find_run(year, month)
        if not run:
            raise NotFoundError("DepreciationRun", f"{year}-{month:02d}")
        return run

    def find_run(self, year: int, month: int) -> Optional[DepreciationRun]:
        return (
            self.db.query(DepreciationRun)
            .filter(DepreciationRun.fiscal_year == year, DepreciationRun.fiscal_month == month)
            .first()
        )

    def calculate(
        self,
        year: int,
        month: int,
        calculated_by: Optional[str] = None,
        recalculate: bool = False,
    ) -> DepreciationRun:
        """
        Persist the period's run and schedules without touching assets.

        Raises:
            InvalidStateError: The period's run is already posted
            ConflictError: A calculated run exists and recalculate is False
        """
        existing = self.find_run(year, month)
        if existing is not None:
            if existing.status == DepreciationRunStatus.POSTED:
                raise InvalidStateError(
                    f"Depreciation for {year}-{month:02d} is already posted",
                    current_state=existing.status,
                )
            if existing.status == DepreciationRunStatus.CALCULATED and not recalculate:
                raise ConflictError(
                    f"Depreciation for {year}-{month:02d} is already calculated; pass recalculate=True to replace it",
                    details={"run_id": existing.id},
                )
            self.db.delete(existing)
            self.db.flush()

        preview = self.preview(year, month)
        run = DepreciationRun(
            fiscal_year=year,
            fiscal_month=month,
            total_depreciation=preview.total_depreciation,
            asset_count=preview.asset_count,
            status=DepreciationRunStatus.CALCULATED.value,
            calculated_by=calculated_by,
            calculated_at=datetime.utcnow(),
        )
        run.schedules = [
            DepreciationSchedule(
                asset_id=line.asset_id,
                opening_book_value=line.opening_book_value,
                depreciation_amount=line.depreciation_amount,
                closing_book_value=line.closing_book_value,
                accumulated_depreciation=line.accumulated_depreciation,
                status=DepreciationRunStatus.CALCULATED.value,
            )
            for line in preview.lines
        ]
        self.db.add(run)
        self.db.flush()
        logger.info(
            f"Depreciation {year}-{month:02d} calculated: {run.total_depreciation} "
            f"across {run.asset_count} assets"
        )
        return run

    def post(self, year: int, month: int, posted_by: Optional[str] = None) -> DepreciationRun:
        """
        Calculated → posted. Creates one posted journal entry for the run and
        applies each schedule to its asset.
        """
        run = self.get_run(year, month)
        validate_transition(
            f"Depreciation run {year}-{month:02d}", DEPRECIATION_RUN_TRANSITIONS, run.status, DepreciationRunStatus.POSTED
        )
        if not run.schedules or to_money(run.total_depreciation) <= 0:
            raise DomainRuleError(f"Depreciation run {year}-{month:02d} has nothing to post", rule="empty_run")

        for schedule in run.schedules:
            asset = schedule.asset
            if asset.status != AssetStatus.ACTIVE or to_money(asset.book_value) != to_money(schedule.opening_book_value):
                raise ConflictError(
                    f"Asset {asset.asset_number} changed since depreciation was calculated; recalculate the run",
                    details={"asset_id": asset.id, "run_id": run.id},
                )

        # One expense / accumulated pair per category
        per_category: Dict[int, Decimal] = OrderedDict()
        for schedule in run.schedules:
            category_id = schedule.asset.category_id
            per_category[category_id] = per_category.get(category_id, ZERO) + to_money(schedule.depreciation_amount)

        lines: List[JournalLineInput] = []
        for category_id, amount in per_category.items():
            category = self.get_category(category_id)
            memo = f"Depreciation - {category.name}"
            lines.append(JournalLineInput(
                account_id=category.depreciation_expense_account_id, direction="debit", amount=amount, memo=memo,
            ))
            lines.append(JournalLineInput(
                account_id=category.accumulated_depreciation_account_id, direction="credit", amount=amount, memo=memo,
            ))

        reference = f"DEP-{year}{month:02d}"
        end = period_end(year, month)
        entry = self.journal.create_entry(
            JournalEntryCreate(
                entry_date=end,
                description=f"Monthly depreciation {year}-{month:02d}",
                reference=reference,
                entry_type=EntryType.SYSTEM.value,
                source_service=SOURCE_DEPRECIATION,
                source_reference=reference,
                lines=lines,
                post_immediately=True,
            ),
            created_by=posted_by,
        )

        for schedule in run.schedules:
            self.apply_depreciation(schedule.asset, to_money(schedule.depreciation_amount), end)
            schedule.status = DepreciationRunStatus.POSTED.value

        run.status = DepreciationRunStatus.POSTED.value
        run.journal_entry_id = entry.id
        run.posted_by = posted_by
        run.posted_at = datetime.utcnow()
        self._flush_run(run)
        logger.info(f"Depreciation run {year}-{month:02d}: calculated → posted ({entry.entry_number})")
        return run

    def reverse(self, year: int, month: int, reversed_by: Optional[str], reason: str) -> DepreciationRun:
        """Posted → reversed. Voids the run's entry and restores each asset."""
        run = self.get_run(year, month)
        validate_transition(
            f"Depreciation run {year}-{month:02d}", DEPRECIATION_RUN_TRANSITIONS, run.status, DepreciationRunStatus.REVERSED
        )
        end = period_end(year, month)
        for schedule in run.schedules:
            asset = schedule.asset
            if asset.status in (AssetStatus.DISPOSED, AssetStatus.WRITTEN_OFF):
                raise InvalidStateError(
                    f"Asset {asset.asset_number} is {asset.status}; depreciation cannot be reversed",
                    current_state=asset.status,
                )
            if asset.last_depreciation_date is not None and asset.last_depreciation_date > end:
                raise DomainRuleError(
                    f"Asset {asset.asset_number} has later depreciation; reverse newer runs first",
                    rule="reverse_latest_run_first",
                )

        if run.journal_entry_id is not None:
            self.journal.void_entry(run.journal_entry_id, reversed_by, reason)

        for schedule in run.schedules:
            asset = schedule.asset
            amount = to_money(schedule.depreciation_amount)
            asset.accumulated_depreciation = to_money(asset.accumulated_depreciation) - amount
            asset.book_value = to_money(asset.book_value) + amount
            asset.last_depreciation_date = (
                previous_period_end(year, month) if asset.accumulated_depreciation > 0 else None
            )
            if asset.status == AssetStatus.FULLY_DEPRECIATED:
                # Outside ASSET_TRANSITIONS: only undoing a run may bring an asset back
                asset.status = AssetStatus.ACTIVE.value
                logger.info(f"Asset {asset.asset_number}: fully_depreciated → active (run reversed)")
            schedule.status = DepreciationRunStatus.REVERSED.value

        run.status = DepreciationRunStatus.REVERSED.value
        run.reversed_by = reversed_by
        run.reversed_at = datetime.utcnow()
        self._flush_run(run)
        logger.warning(f"Depreciation run {year}-{month:02d}: posted → reversed by {reversed_by} ({reason})")
        return run

    # === DISPOSAL ===

    def dispose(
        self,
        asset_id: int,
        expected_version: Optional[int],
        disposal_date: date,
        disposal_value,
        method: str,
        reason: Optional[str] = None,
        create_journal_entry: bool = True,
        performed_by: Optional[str] = None,
        proceeds_account_id: Optional[int] = None,
    ) -> DisposalResult:
        """
        Dispose of an asset, recognising gain or loss against book value.

        Journal entry (when requested):
            Dr accumulated depreciation   (if any)
            Dr proceeds                   (if disposal value > 0)
            Dr loss / Cr gain             (if any)
                Cr asset                  (cost)
        """
        return self._retire(
            asset_id,
            expected_version,
            disposal_date,
            to_money(disposal_value),
            AssetStatus.DISPOSED,
            MovementType.DISPOSAL,
            method=method,
            reason=reason,
            create_journal_entry=create_journal_entry,
            performed_by=performed_by,
            proceeds_account_id=proceeds_account_id,
        )

    def write_off(
        self,
        asset_id: int,
        expected_version: Optional[int],
        write_off_date: date,
        reason: str,
        create_journal_entry: bool = True,
        performed_by: Optional[str] = None,
    ) -> DisposalResult:
        """Disposal at zero value; the whole book value becomes a loss"""
        if not reason or not reason.strip():
            raise ValidationError("Write-off reason is required", field="reason")
        return self._retire(
            asset_id,
            expected_version,
            write_off_date,
            ZERO,
            AssetStatus.WRITTEN_OFF,
            MovementType.WRITE_OFF,
            method=None,
            reason=reason.strip(),
            create_journal_entry=create_journal_entry,
            performed_by=performed_by,
        )

    # === MAINTENANCE ===

    def get_maintenance(self, maintenance_id: int) -> AssetMaintenance:
        record = self.db.get(AssetMaintenance, maintenance_id)
        if not record:
            raise NotFoundError("AssetMaintenance", maintenance_id)
        return record

    def schedule_maintenance(self, data: MaintenanceCreate, created_by: Optional[str] = None) -> AssetMaintenance:
        self.get_asset(data.asset_id)
        if data.cost < 0:
            raise ValidationError("Maintenance cost cannot be negative", field="cost", value=data.cost)
        record = AssetMaintenance(
            **data.model_dump(exclude={"cost"}),
            cost=to_money(data.cost),
            status=MaintenanceStatus.SCHEDULED.value,
            created_by=created_by,
        )
        self.db.add(record)
        self.db.flush()
        return record

    def update_maintenance(self, maintenance_id: int, data: MaintenanceUpdate) -> AssetMaintenance:
        record = self.get_maintenance(maintenance_id)
        self._require_open_maintenance(record, "update")
        changes = data.model_dump(exclude_unset=True)
        if "cost" in changes:
            if changes["cost"] is None or changes["cost"] < 0:
                raise ValidationError("Maintenance cost cannot be negative", field="cost", value=changes["cost"])
            changes["cost"] = to_money(changes["cost"])
        for field, value in changes.items():
            setattr(record, field, value)
        self.db.flush()
        return record

    def start_maintenance(self, maintenance_id: int) -> AssetMaintenance:
        record = self.get_maintenance(maintenance_id)
        self._maintenance_transition(record, MaintenanceStatus.IN_PROGRESS)
        self.db.flush()
        return record

    def complete_maintenance(
        self,
        maintenance_id: int,
        performed_date: Optional[date] = None,
        cost=None,
        notes: Optional[str] = None,
    ) -> AssetMaintenance:
        record = self.get_maintenance(maintenance_id)
        if cost is not None and cost < 0:
            raise ValidationError("Maintenance cost cannot be negative", field="cost", value=cost)
        self._maintenance_transition(record, MaintenanceStatus.COMPLETED)
        record.performed_date = performed_date or date.today()
        if cost is not None:
            record.cost = to_money(cost)
        if notes:
            record.notes = notes
        self.db.flush()
        return record

    def cancel_maintenance(self, maintenance_id: int, reason: str) -> AssetMaintenance:
        record = self.get_maintenance(maintenance_id)
        self._maintenance_transition(record, MaintenanceStatus.CANCELLED)
        cancel_note = f"Cancelled: {reason}"
        record.notes = f"{record.notes}\n{cancel_note}" if record.notes else cancel_note
        self.db.flush()
        return record

    def delete_maintenance(self, maintenance_id: int) -> None:
        record = self.get_maintenance(maintenance_id)
        if record.status == MaintenanceStatus.COMPLETED:
            raise InvalidStateError(
                "Completed maintenance records cannot be deleted",
                current_state=record.status,
            )
        self.db.delete(record)
        self.db.flush()

    # === INTERNAL HELPERS ===

    def _retire(
        self,
        asset_id: int,
        expected_version: Optional[int],
        retire_date: date,
        value: Decimal,
        new_status: AssetStatus,
        movement_type: MovementType,
        method: Optional[str],
        reason: Optional[str],
        create_journal_entry: bool,
        performed_by: Optional[str],
        proceeds_account_id: Optional[int] = None,
    ) -> DisposalResult:
        asset = self.get_asset(asset_id)
        self._check_version(asset, expected_version)
        if value < 0:
            raise DomainRuleError("Disposal value cannot be negative", rule="non_negative_disposal_value")
        validate_transition(f"Asset {asset.asset_number}", ASSET_TRANSITIONS, asset.status, new_status)

        book_value = to_money(asset.book_value)
        gain_loss = value - book_value

        entry = None
        if create_journal_entry:
            lines = self._retirement_lines(asset, value, gain_loss, proceeds_account_id)
            entry = self.journal.create_entry(
                JournalEntryCreate(
                    entry_date=retire_date,
                    description=f"{movement_type.value.replace('_', ' ').capitalize()} of {asset.asset_number} {asset.name}",
                    reference=asset.asset_number,
                    entry_type=EntryType.SYSTEM.value,
                    source_service=SOURCE_FIXED_ASSETS,
                    source_reference=f"{movement_type.value}-{asset.id}",
                    lines=lines,
                    post_immediately=True,
                ),
                created_by=performed_by,
            )

        old_status = asset.status
        asset.status = new_status.value
        asset.disposal_date = retire_date
        asset.disposal_method = method
        asset.disposal_value = value
        asset.disposal_reason = reason
        self.db.add(
            AssetMovement(
                asset_id=asset.id,
                movement_type=movement_type.value,
                movement_date=retire_date,
                amount=value,
                book_value=book_value,
                journal_entry_id=entry.id if entry else None,
                notes=reason,
                performed_by=performed_by,
            )
        )
        self._flush_versioned(asset)
        logger.info(f"Asset {asset.asset_number}: {old_status} → {asset.status} (gain/loss {gain_loss})")

        return DisposalResult(
            asset_id=asset.id,
            book_value_at_disposal=book_value,
            disposal_value=value,
            gain_loss=gain_loss,
            is_gain=gain_loss > 0,
            journal_entry_id=entry.id if entry else None,
        )

    def _retirement_lines(
        self,
        asset: FixedAsset,
        value: Decimal,
        gain_loss: Decimal,
        proceeds_account_id: Optional[int],
    ) -> List[JournalLineInput]:
        category = asset.category
        memo = f"{asset.asset_number} {asset.name}"
        accumulated = to_money(asset.accumulated_depreciation)

        lines = []
        if accumulated > 0:
            lines.append(JournalLineInput(
                account_id=category.accumulated_depreciation_account_id, direction="debit", amount=accumulated, memo=memo,
            ))
        if value > 0:
            if proceeds_account_id is None:
                proceeds_account_id = self.accounts.get_by_code(settings.DISPOSAL_PROCEEDS_ACCOUNT_CODE).id
            lines.append(JournalLineInput(account_id=proceeds_account_id, direction="debit", amount=value, memo=memo))
        if gain_loss != 0:
            if category.gain_loss_account_id is None:
                raise DomainRuleError(
                    f"Asset category {category.code} has no gain/loss account",
                    rule="gain_loss_account_required",
                )
            lines.append(JournalLineInput(
                account_id=category.gain_loss_account_id,
                direction="credit" if gain_loss > 0 else "debit",
                amount=abs(gain_loss),
                memo=memo,
            ))
        lines.append(JournalLineInput(
            account_id=category.asset_account_id,
            direction="credit",
            amount=to_money(asset.acquisition_cost),
            memo=memo,
        ))
        return lines

    def _validate_policy(self, cost: Decimal, life: int, salvage: Decimal) -> None:
        if cost <= 0:
            raise ValidationError("Acquisition cost must be positive", field="acquisition_cost", value=cost)
        if life is None or life <= 0:
            raise ValidationError("Useful life must be positive", field="useful_life_months", value=life)
        if salvage < 0:
            raise ValidationError("Salvage value cannot be negative", field="salvage_value", value=salvage)
        if salvage > cost:
            raise DomainRuleError(
                f"Salvage value {salvage} exceeds acquisition cost {cost}",
                rule="salvage_not_above_cost",
            )

    def _next_asset_number(self, category: AssetCategory, year: int) -> str:
        prefix = f"FA-{category.code}-{year}-"
        last = (
            self.db.query(FixedAsset.asset_number)
            .filter(FixedAsset.asset_number.like(f"{prefix}%"))
            .order_by(func.length(FixedAsset.asset_number).desc(), FixedAsset.asset_number.desc())
            .first()
        )
        sequence = int(last[0].rsplit("-", 1)[1]) + 1 if last else 1
        return f"{prefix}{sequence:04d}"

    def _transition(self, asset: FixedAsset, new_status: AssetStatus) -> None:
        validate_transition(f"Asset {asset.asset_number}", ASSET_TRANSITIONS, asset.status, new_status)
        old_status = asset.status
        asset.status = new_status.value
        logger.info(f"Asset {asset.asset_number}: {old_status} → {asset.status}")

    def _check_version(self, asset: FixedAsset, expected_version: Optional[int]) -> None:
        if expected_version is not None and asset.version != expected_version:
            raise ConcurrencyError(
                f"Asset {asset.asset_number} was modified by another request",
                expected_version=expected_version,
                current_version=asset.version,
            )

    def _flush_versioned(self, asset: FixedAsset) -> None:
        try:
            self.db.flush()
        except StaleDataError as e:
            raise ConcurrencyError(
                f"Asset {asset.asset_number} was modified by another request",
                expected_version=asset.version,
            ) from e

    def _flush_run(self, run: DepreciationRun) -> None:
        try:
            self.db.flush()
        except StaleDataError as e:
            raise ConcurrencyError(
                f"An asset in depreciation run {run.fiscal_year}-{run.fiscal_month:02d} was modified concurrently"
            ) from e

    def _maintenance_transition(self, record: AssetMaintenance, new_status: MaintenanceStatus) -> None:
        validate_transition(f"Maintenance {record.id}", MAINTENANCE_TRANSITIONS, record.status, new_status)
        record.status = new_status.value

    def _require_open_maintenance(self, record: AssetMaintenance, action: str) -> None:
        if record.status in (MaintenanceStatus.COMPLETED, MaintenanceStatus.CANCELLED):
            raise InvalidStateError(
                f"Cannot {action} {record.status} maintenance",
                current_state=record.status,
                allowed_states=[MaintenanceStatus.SCHEDULED.value, MaintenanceStatus.IN_PROGRESS.value],
            )
