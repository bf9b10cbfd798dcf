"""
Unit Tests for core helpers

Tests:
1. Status transition tables
2. Exception payloads
3. Money rounding
4. Settings validation
5. Logging configuration
6. Session factory
"""
import json
import logging

import pytest
from decimal import Decimal
from pydantic import ValidationError as SettingsValidationError

from ledger.core.money import ZERO, to_money, within_tolerance
from ledger.core.settings import Settings
from ledger.core.status_config import (
    ASSET_TRANSITIONS,
    ENTRY_TRANSITIONS,
    PERIOD_TRANSITIONS,
    AssetStatus,
    EntryStatus,
    PeriodStatus,
    get_allowed_transitions,
    is_valid_transition,
    validate_transition,
)
from ledger.exceptions import (
    ConcurrencyError,
    DuplicateError,
    InvalidAccountError,
    InvalidStateError,
    NotFoundError,
    UnbalancedEntryError,
)
from ledger.logging_config import JsonFormatter, get_logging_config


class TestStatusConfig:
    """Transition tables and validate_transition"""

    def test_entry_lifecycle(self):
        assert is_valid_transition(ENTRY_TRANSITIONS, "draft", "posted")
        assert is_valid_transition(ENTRY_TRANSITIONS, "posted", "voided")
        assert not is_valid_transition(ENTRY_TRANSITIONS, "voided", "posted")
        assert not is_valid_transition(ENTRY_TRANSITIONS, "draft", "voided")

    def test_period_allowed_transitions(self):
        assert get_allowed_transitions(PERIOD_TRANSITIONS, PeriodStatus.CLOSED) == ["locked", "open"]
        assert get_allowed_transitions(PERIOD_TRANSITIONS, "locked") == []

    def test_validate_transition_error_details(self):
        with pytest.raises(InvalidStateError) as exc:
            validate_transition("Asset FA-1", ASSET_TRANSITIONS, "disposed", AssetStatus.ACTIVE)

        assert exc.value.details == {"current_state": "disposed"}
        assert "'disposed' to 'active'" in exc.value.message

    def test_enum_and_string_interchangeable(self):
        validate_transition("JE", ENTRY_TRANSITIONS, EntryStatus.DRAFT, "posted")
        validate_transition("JE", ENTRY_TRANSITIONS, "draft", EntryStatus.POSTED)


class TestExceptions:
    """Structured error payloads"""

    def test_not_found(self):
        error = NotFoundError("Account", 42)
        assert error.status_code == 404
        assert error.to_dict() == {
            "error": "NOT_FOUND",
            "message": "Account with ID 42 not found",
            "details": {"resource": "Account", "resource_id": "42"},
        }

    def test_duplicate_is_conflict(self):
        error = DuplicateError("Account", field="code", value="1101")
        assert error.status_code == 409
        assert error.message == "Account with code='1101' already exists"

    def test_concurrency_versions(self):
        error = ConcurrencyError(expected_version=3, current_version=4)
        assert error.error_code == "CONCURRENCY_ERROR"
        assert error.details == {"expected_version": 3, "current_version": 4}

    def test_unbalanced_entry(self):
        error = UnbalancedEntryError(Decimal("10.00"), Decimal("9.00"))
        assert error.status_code == 400
        assert error.details == {"total_debits": "10.00", "total_credits": "9.00"}

    def test_invalid_account(self):
        error = InvalidAccountError("1100", reason="header account")
        assert error.details["reason"] == "header account"
        assert error.details["field"] == "account_id"


class TestMoney:
    """Cent rounding"""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (None, ZERO),
            (1, Decimal("1.00")),
            (0.1, Decimal("0.10")),
            ("2.345", Decimal("2.35")),
            (Decimal("-2.345"), Decimal("-2.35")),
        ],
    )
    def test_to_money(self, value, expected):
        assert to_money(value) == expected

    def test_within_tolerance_is_strict(self):
        assert within_tolerance("10.00", "10.004", "0.01")
        assert not within_tolerance("10.00", "10.01", "0.01")


class TestSettings:
    """pydantic-settings validation"""

    def test_log_format_normalized(self):
        assert Settings(LOG_FORMAT="JSON").LOG_FORMAT == "json"

    def test_log_format_rejected(self):
        with pytest.raises(SettingsValidationError):
            Settings(LOG_FORMAT="xml")

    @pytest.mark.parametrize(
        "field,value",
        [
            ("AUTO_MATCH_DATE_WINDOW_DAYS", -1),
            ("BALANCE_TOLERANCE", Decimal("-0.01")),
            ("DECLINING_BALANCE_FACTOR", Decimal("-2")),
        ],
    )
    def test_negative_values_rejected(self, field, value):
        with pytest.raises(SettingsValidationError):
            Settings(**{field: value})

    def test_database_url_from_components(self):
        settings = Settings(DATABASE_URL=None, DB_USER="ledger", DB_PASSWORD="pw", DB_HOST="db", DB_PORT=5433, DB_NAME="books")
        assert settings.database_url == "postgresql+psycopg://ledger:pw@db:5433/books"

    def test_explicit_database_url_wins(self):
        assert Settings(DATABASE_URL="sqlite:///ledger.db").database_url == "sqlite:///ledger.db"


class TestLogging:
    """JSON formatter and dictConfig"""

    def test_json_formatter_includes_extras(self):
        record = logging.LogRecord("ledger.test", logging.INFO, __file__, 1, "Posted %s", ("JE-1",), None)
        record.entry_id = 7
        record.amount = Decimal("10.00")

        payload = json.loads(JsonFormatter().format(record))

        assert payload["level"] == "INFO"
        assert payload["logger"] == "ledger.test"
        assert payload["message"] == "Posted JE-1"
        assert payload["extra"] == {"entry_id": 7, "amount": "10.00"}

    def test_config_selects_formatter(self):
        config = get_logging_config(level="debug", fmt="json")

        assert config["handlers"]["console"]["formatter"] == "json"
        assert config["loggers"]["ledger"]["level"] == "DEBUG"
        assert get_logging_config(fmt="text")["handlers"]["console"]["formatter"] == "text"


def test_get_db_yields_session():
    from ledger.db.session import get_db

    generator = get_db()
    db = next(generator)
    try:
        assert db.autoflush is False
    finally:
        generator.close()
