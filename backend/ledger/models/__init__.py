"""Database models"""
from ledger.models.accounting import (
    Account, FiscalPeriod, JournalEntry, JournalLine, AccountBalance
)
from ledger.models.banking import (
    BankAccount, BankTransaction, BankReconciliation, ReconcilingItem
)
from ledger.models.fixed_asset import (
    AssetCategory, FixedAsset, AssetMovement, AssetMaintenance,
    DepreciationRun, DepreciationSchedule,
)
from ledger.models.processed_event import ProcessedEvent

__all__ = [
    "Account",
    "FiscalPeriod",
    "JournalEntry",
    "JournalLine",
    "AccountBalance",
    "BankAccount",
    "BankTransaction",
    "BankReconciliation",
    "ReconcilingItem",
    "AssetCategory",
    "FixedAsset",
    "AssetMovement",
    "AssetMaintenance",
    "DepreciationRun",
    "DepreciationSchedule",
    "ProcessedEvent",
]
