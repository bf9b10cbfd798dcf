"""
Fixed Asset Models

Asset categories carry the GL account mapping and depreciation defaults.
Fixed assets carry an optimistic version counter: every ORM update is issued
as UPDATE ... WHERE version = <loaded version>, so a stale write matches zero
rows and is rejected.
"""
from decimal import Decimal

from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Date, ForeignKey, Text, Boolean,
    CheckConstraint, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ledger.db.base import Base


class AssetCategory(Base):
    """Asset grouping with default depreciation policy and GL account mapping"""
    __tablename__ = "asset_categories"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(20), unique=True, nullable=False, index=True)  # "IT", "VEH"
    name = Column(String(100), nullable=False)

    # Defaults applied when registering an asset
    default_useful_life_months = Column(Integer, nullable=False)
    default_depreciation_method = Column(String(30), nullable=False, default="straight_line")
    default_salvage_percent = Column(Numeric(5, 2), nullable=False, default=0)

    # Annual rate for declining balance (0.40 = 40%). Null = factor x straight-line rate
    declining_balance_rate = Column(Numeric(6, 4), nullable=True)

    # GL account mapping
    asset_account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False)
    accumulated_depreciation_account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False)
    depreciation_expense_account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False)
    gain_loss_account_id = Column(Integer, ForeignKey("accounts.id"), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=False), server_default=func.now(), nullable=False)

    assets = relationship("FixedAsset", back_populates="category")

    def __repr__(self):
        return f"<AssetCategory {self.code}: {self.name}>"


class FixedAsset(Base):
    """Depreciable asset with one-directional lifecycle"""
    __tablename__ = "fixed_assets"
    __table_args__ = (
        CheckConstraint("acquisition_cost > 0", name="ck_fixed_asset_cost_positive"),
        CheckConstraint("useful_life_months > 0", name="ck_fixed_asset_life_positive"),
        CheckConstraint("salvage_value <= acquisition_cost", name="ck_fixed_asset_salvage"),
    )

    id = Column(Integer, primary_key=True, index=True)
    asset_number = Column(String(30), unique=True, nullable=False, index=True)  # "FA-IT-2026-0001"
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    category_id = Column(Integer, ForeignKey("asset_categories.id"), nullable=False, index=True)

    # Acquisition
    acquisition_date = Column(Date, nullable=False)
    # Values: purchase, lease, donation, transfer, construction
    acquisition_method = Column(String(20), nullable=False, default="purchase")
    acquisition_cost = Column(Numeric(18, 2), nullable=False)

    # Depreciation policy
    useful_life_months = Column(Integer, nullable=False)
    salvage_value = Column(Numeric(18, 2), nullable=False, default=0)
    # Values: straight_line, declining_balance
    depreciation_method = Column(String(30), nullable=False, default="straight_line")
    depreciation_start_date = Column(Date, nullable=False)

    # Running state
    accumulated_depreciation = Column(Numeric(18, 2), nullable=False, default=0)
    book_value = Column(Numeric(18, 2), nullable=False)
    last_depreciation_date = Column(Date, nullable=True)

    # Values: draft, active, fully_depreciated, disposed, written_off
    status = Column(String(20), nullable=False, default="draft", index=True)

    # Disposal
    disposal_date = Column(Date, nullable=True)
    disposal_method = Column(String(20), nullable=True)
    disposal_value = Column(Numeric(18, 2), nullable=True)
    disposal_reason = Column(Text, nullable=True)

    # Optimistic lock
    version = Column(Integer, nullable=False, default=1)

    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=False), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=False), server_default=func.now(), onupdate=func.now(), nullable=False)

    __mapper_args__ = {"version_id_col": version}

    category = relationship("AssetCategory", back_populates="assets")
    movements = relationship("AssetMovement", back_populates="asset", order_by="AssetMovement.id")
    maintenance_records = relationship("AssetMaintenance", back_populates="asset")

    @property
    def depreciable_remaining(self) -> Decimal:
        """Amount still allowed to depreciate before hitting salvage"""
        return max(Decimal("0"), Decimal(self.book_value) - Decimal(self.salvage_value))

    def __repr__(self):
        return f"<FixedAsset {self.asset_number} v{self.version} ({self.status})>"


class AssetMovement(Base):
    """Audit record of an asset acquisition, disposal, write-off or transfer"""
    __tablename__ = "asset_movements"

    id = Column(Integer, primary_key=True, index=True)
    asset_id = Column(Integer, ForeignKey("fixed_assets.id"), nullable=False, index=True)

    # Values: acquisition, disposal, write_off, transfer
    movement_type = Column(String(20), nullable=False)
    movement_date = Column(Date, nullable=False)
    amount = Column(Numeric(18, 2), nullable=False, default=0)
    book_value = Column(Numeric(18, 2), nullable=True)
    journal_entry_id = Column(Integer, ForeignKey("journal_entries.id"), nullable=True)
    notes = Column(Text, nullable=True)

    performed_by = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=False), server_default=func.now(), nullable=False)

    asset = relationship("FixedAsset", back_populates="movements")

    def __repr__(self):
        return f"<AssetMovement {self.movement_type} asset={self.asset_id} {self.amount}>"


class AssetMaintenance(Base):
    """Scheduled or completed maintenance on a fixed asset"""
    __tablename__ = "asset_maintenance"

    id = Column(Integer, primary_key=True, index=True)
    asset_id = Column(Integer, ForeignKey("fixed_assets.id"), nullable=False, index=True)

    maintenance_type = Column(String(50), nullable=False)  # preventive, repair, inspection
    description = Column(Text, nullable=False)
    scheduled_date = Column(Date, nullable=False)
    performed_date = Column(Date, nullable=True)
    cost = Column(Numeric(18, 2), nullable=False, default=0)
    vendor = Column(String(100), nullable=True)

    # Values: scheduled, in_progress, completed, cancelled
    status = Column(String(20), nullable=False, default="scheduled", index=True)
    notes = Column(Text, nullable=True)

    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=False), server_default=func.now(), nullable=False)

    asset = relationship("FixedAsset", back_populates="maintenance_records")

    def __repr__(self):
        return f"<AssetMaintenance {self.maintenance_type} asset={self.asset_id} ({self.status})>"


class DepreciationRun(Base):
    """Monthly depreciation batch across all depreciable assets"""
    __tablename__ = "depreciation_runs"
    __table_args__ = (
        UniqueConstraint("fiscal_year", "fiscal_month", name="uq_depreciation_run_period"),
    )

    id = Column(Integer, primary_key=True, index=True)
    fiscal_year = Column(Integer, nullable=False)
    fiscal_month = Column(Integer, nullable=False)

    total_depreciation = Column(Numeric(18, 2), nullable=False, default=0)
    asset_count = Column(Integer, nullable=False, default=0)

    # Values: calculated, posted, reversed
    status = Column(String(20), nullable=False, default="calculated", index=True)
    journal_entry_id = Column(Integer, ForeignKey("journal_entries.id"), nullable=True)

    calculated_by = Column(String(100), nullable=True)
    calculated_at = Column(DateTime, nullable=True)
    posted_by = Column(String(100), nullable=True)
    posted_at = Column(DateTime, nullable=True)
    reversed_by = Column(String(100), nullable=True)
    reversed_at = Column(DateTime, nullable=True)

    schedules = relationship(
        "DepreciationSchedule",
        back_populates="run",
        cascade="all, delete-orphan",
        order_by="DepreciationSchedule.asset_id",
    )
    journal_entry = relationship("JournalEntry")

    def __repr__(self):
        return f"<DepreciationRun {self.fiscal_year}-{self.fiscal_month:02d} ({self.status})>"


class DepreciationSchedule(Base):
    """One asset's depreciation inside a run"""
    __tablename__ = "depreciation_schedules"

    id = Column(Integer, primary_key=True, index=True)
    run_id = Column(
        Integer,
        ForeignKey("depreciation_runs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    asset_id = Column(Integer, ForeignKey("fixed_assets.id"), nullable=False, index=True)

    opening_book_value = Column(Numeric(18, 2), nullable=False)
    depreciation_amount = Column(Numeric(18, 2), nullable=False)
    closing_book_value = Column(Numeric(18, 2), nullable=False)
    accumulated_depreciation = Column(Numeric(18, 2), nullable=False)

    # Mirrors the run: calculated, posted, reversed
    status = Column(String(20), nullable=False, default="calculated")

    run = relationship("DepreciationRun", back_populates="schedules")
    asset = relationship("FixedAsset")
