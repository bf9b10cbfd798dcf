"""
Ledger services.

Each service wraps one SQLAlchemy Session and flushes but never commits;
the caller owns the transaction. Event handlers are the exception.
"""
from ledger.services.account_registry import AccountRegistry, classify_code
from ledger.services.balance_calculator import BalanceCalculator
from ledger.services.depreciation_engine import DepreciationEngine
from ledger.services.event_handlers import OrderCancelledHandler, OrderCompletedHandler, ProcessedEventLedger
from ledger.services.fiscal_period_manager import FiscalPeriodManager
from ledger.services.journal_ledger import JournalLedger
from ledger.services.reconciliation_engine import AmountDateMatchStrategy, MatchStrategy, ReconciliationEngine

__all__ = [
    "AccountRegistry",
    "classify_code",
    "BalanceCalculator",
    "DepreciationEngine",
    "FiscalPeriodManager",
    "JournalLedger",
    "ReconciliationEngine",
    "MatchStrategy",
    "AmountDateMatchStrategy",
    "ProcessedEventLedger",
    "OrderCompletedHandler",
    "OrderCancelledHandler",
]
