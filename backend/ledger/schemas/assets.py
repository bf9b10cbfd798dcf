"""
Fixed Asset Pydantic Schemas

Categories, asset registration, depreciation previews, disposals and
maintenance.
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from datetime import date
from decimal import Decimal


# ============================================================================
# Category / Asset Schemas
# ============================================================================

class AssetCategoryCreate(BaseModel):
    code: str = Field(..., max_length=20)
    name: str = Field(..., max_length=100)
    default_useful_life_months: int = Field(..., gt=0)
    default_depreciation_method: Literal["straight_line", "declining_balance"] = "straight_line"
    default_salvage_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    declining_balance_rate: Optional[Decimal] = Field(
        None, description="Annual declining-balance rate, e.g. 0.40 for 40%"
    )
    asset_account_id: int
    accumulated_depreciation_account_id: int
    depreciation_expense_account_id: int
    gain_loss_account_id: Optional[int] = None


class FixedAssetCreate(BaseModel):
    """Register a new asset (starts in draft). Omitted policy fields use category defaults."""
    name: str = Field(..., max_length=200)
    category_id: int
    acquisition_date: date
    acquisition_method: Literal["purchase", "lease", "donation", "transfer", "construction"] = "purchase"
    acquisition_cost: Decimal
    useful_life_months: Optional[int] = None
    salvage_value: Optional[Decimal] = None
    depreciation_method: Optional[Literal["straight_line", "declining_balance"]] = None
    depreciation_start_date: Optional[date] = None
    description: Optional[str] = None
    asset_number: Optional[str] = Field(None, max_length=30)


class FixedAssetUpdate(BaseModel):
    """Editable fields of a draft asset"""
    name: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = None
    acquisition_cost: Optional[Decimal] = None
    useful_life_months: Optional[int] = None
    salvage_value: Optional[Decimal] = None
    depreciation_method: Optional[Literal["straight_line", "declining_balance"]] = None
    depreciation_start_date: Optional[date] = None


# ============================================================================
# Depreciation Schemas
# ============================================================================

class DepreciationLine(BaseModel):
    asset_id: int
    asset_number: str
    category_id: int
    opening_book_value: Decimal
    depreciation_amount: Decimal
    closing_book_value: Decimal
    accumulated_depreciation: Decimal
    fully_depreciated: bool = False


class DepreciationPreview(BaseModel):
    fiscal_year: int
    fiscal_month: int
    lines: List[DepreciationLine] = Field(default_factory=list)
    total_depreciation: Decimal = Decimal("0")
    asset_count: int = 0


class DisposalResult(BaseModel):
    """Outcome of disposing or writing off an asset"""
    asset_id: int
    book_value_at_disposal: Decimal
    disposal_value: Decimal
    gain_loss: Decimal
    is_gain: bool
    journal_entry_id: Optional[int] = None


# ============================================================================
# Maintenance Schemas
# ============================================================================

class MaintenanceCreate(BaseModel):
    asset_id: int
    maintenance_type: str = Field(..., max_length=50)
    description: str
    scheduled_date: date
    cost: Decimal = Decimal("0")
    vendor: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


class MaintenanceUpdate(BaseModel):
    maintenance_type: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = None
    scheduled_date: Optional[date] = None
    cost: Optional[Decimal] = None
    vendor: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None
