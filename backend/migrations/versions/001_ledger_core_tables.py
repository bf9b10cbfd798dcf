"""Ledger core tables

Revision ID: 001_ledger_core
Revises:
Create Date: 2026-01-05

Adds:
- accounts, fiscal_periods, journal_entries, journal_lines, account_balances
- bank_accounts, bank_transactions, bank_reconciliations, reconciling_items
- asset_categories, fixed_assets, asset_movements, asset_maintenance,
  depreciation_runs, depreciation_schedules
- processed_events
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_ledger_core'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(updated: bool = True):
    columns = [sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now())]
    if updated:
        columns.append(sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()))
    return columns


def upgrade() -> None:
    # === General ledger ===
    op.create_table(
        'accounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=4), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('account_type', sa.String(length=20), nullable=False),
        sa.Column('normal_balance', sa.String(length=10), nullable=False),
        sa.Column('category', sa.String(length=40), nullable=False),
        sa.Column('is_detail', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_system', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
        sa.Column('parent_id', sa.Integer(), sa.ForeignKey('accounts.id'), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_accounts_code', 'accounts', ['code'], unique=True)
    op.create_index('ix_accounts_account_type', 'accounts', ['account_type'])
    op.create_index('ix_accounts_status', 'accounts', ['status'])

    op.create_table(
        'fiscal_periods',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='open'),
        sa.Column('closed_by', sa.String(length=100), nullable=True),
        sa.Column('closed_at', sa.DateTime(), nullable=True),
        sa.Column('reopened_by', sa.String(length=100), nullable=True),
        sa.Column('reopened_at', sa.DateTime(), nullable=True),
        sa.Column('reopen_reason', sa.Text(), nullable=True),
        sa.Column('locked_by', sa.String(length=100), nullable=True),
        sa.Column('locked_at', sa.DateTime(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('year', 'month', name='uq_fiscal_period_year_month'),
        sa.CheckConstraint('month BETWEEN 1 AND 12', name='ck_fiscal_period_month'),
    )
    op.create_index('ix_fiscal_periods_year', 'fiscal_periods', ['year'])
    op.create_index('ix_fiscal_periods_status', 'fiscal_periods', ['status'])

    op.create_table(
        'journal_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('entry_number', sa.String(length=20), nullable=False),
        sa.Column('entry_date', sa.Date(), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('reference', sa.String(length=100), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('entry_type', sa.String(length=20), nullable=False, server_default='manual'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='draft'),
        sa.Column('fiscal_year', sa.Integer(), nullable=False),
        sa.Column('fiscal_month', sa.Integer(), nullable=False),
        sa.Column('source_service', sa.String(length=50), nullable=True),
        sa.Column('source_reference', sa.String(length=100), nullable=True),
        sa.Column('created_by', sa.String(length=100), nullable=True),
        *_timestamps(),
        sa.Column('posted_by', sa.String(length=100), nullable=True),
        sa.Column('posted_at', sa.DateTime(), nullable=True),
        sa.Column('voided_by', sa.String(length=100), nullable=True),
        sa.Column('voided_at', sa.DateTime(), nullable=True),
        sa.Column('void_reason', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_journal_entries_entry_number', 'journal_entries', ['entry_number'], unique=True)
    op.create_index('ix_journal_entries_entry_date', 'journal_entries', ['entry_date'])
    op.create_index('ix_journal_entries_status', 'journal_entries', ['status'])
    op.create_index('ix_journal_entries_fiscal_year', 'journal_entries', ['fiscal_year'])
    op.create_index('ix_journal_entries_fiscal_month', 'journal_entries', ['fiscal_month'])
    op.create_index('ix_journal_entries_source_service', 'journal_entries', ['source_service'])
    op.create_index('ix_journal_entries_source_reference', 'journal_entries', ['source_reference'])

    op.create_table(
        'journal_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column(
            'journal_entry_id', sa.Integer(),
            sa.ForeignKey('journal_entries.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('account_id', sa.Integer(), sa.ForeignKey('accounts.id'), nullable=False),
        sa.Column('direction', sa.String(length=10), nullable=False),
        sa.Column('amount', sa.Numeric(precision=18, scale=2), nullable=False),
        sa.Column('memo', sa.String(length=255), nullable=True),
        sa.Column('line_order', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('amount > 0', name='ck_journal_line_amount_positive'),
    )
    op.create_index('ix_journal_lines_journal_entry_id', 'journal_lines', ['journal_entry_id'])
    op.create_index('ix_journal_lines_account_id', 'journal_lines', ['account_id'])

    op.create_table(
        'account_balances',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), sa.ForeignKey('accounts.id'), nullable=False),
        sa.Column('fiscal_year', sa.Integer(), nullable=False),
        sa.Column('fiscal_month', sa.Integer(), nullable=False),
        sa.Column('opening_balance', sa.Numeric(precision=18, scale=2), nullable=False, server_default='0'),
        sa.Column('debit_total', sa.Numeric(precision=18, scale=2), nullable=False, server_default='0'),
        sa.Column('credit_total', sa.Numeric(precision=18, scale=2), nullable=False, server_default='0'),
        sa.Column('closing_balance', sa.Numeric(precision=18, scale=2), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('account_id', 'fiscal_year', 'fiscal_month', name='uq_account_balance_period'),
    )
    op.create_index('ix_account_balances_account_id', 'account_balances', ['account_id'])
    op.create_index('ix_account_balances_fiscal_year', 'account_balances', ['fiscal_year'])

    # === Banking ===
    op.create_table(
        'bank_accounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), sa.ForeignKey('accounts.id'), nullable=False),
        sa.Column('bank_name', sa.String(length=100), nullable=False),
        sa.Column('account_number', sa.String(length=50), nullable=False),
        sa.Column('account_name', sa.String(length=100), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
        sa.Column('last_reconciled_date', sa.Date(), nullable=True),
        sa.Column('last_reconciled_balance', sa.Numeric(precision=18, scale=2), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('account_number'),
    )
    op.create_index('ix_bank_accounts_account_id', 'bank_accounts', ['account_id'])

    op.create_table(
        'bank_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('bank_account_id', sa.Integer(), sa.ForeignKey('bank_accounts.id'), nullable=False),
        sa.Column('transaction_date', sa.Date(), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('reference', sa.String(length=100), nullable=True),
        sa.Column('amount', sa.Numeric(precision=18, scale=2), nullable=False),
        sa.Column('fingerprint', sa.String(length=64), nullable=False),
        sa.Column('match_status', sa.String(length=20), nullable=False, server_default='unmatched'),
        sa.Column('matched_journal_line_id', sa.Integer(), sa.ForeignKey('journal_lines.id'), nullable=True),
        sa.Column('matched_by', sa.String(length=100), nullable=True),
        sa.Column('matched_at', sa.DateTime(), nullable=True),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('bank_account_id', 'fingerprint', name='uq_bank_transaction_fingerprint'),
    )
    op.create_index('ix_bank_transactions_bank_account_id', 'bank_transactions', ['bank_account_id'])
    op.create_index('ix_bank_transactions_transaction_date', 'bank_transactions', ['transaction_date'])
    op.create_index('ix_bank_transactions_match_status', 'bank_transactions', ['match_status'])

    op.create_table(
        'bank_reconciliations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('bank_account_id', sa.Integer(), sa.ForeignKey('bank_accounts.id'), nullable=False),
        sa.Column('fiscal_year', sa.Integer(), nullable=False),
        sa.Column('fiscal_month', sa.Integer(), nullable=False),
        sa.Column('statement_date', sa.Date(), nullable=False),
        sa.Column('statement_ending_balance', sa.Numeric(precision=18, scale=2), nullable=False),
        sa.Column('book_ending_balance', sa.Numeric(precision=18, scale=2), nullable=False),
        sa.Column('adjusted_bank_balance', sa.Numeric(precision=18, scale=2), nullable=True),
        sa.Column('adjusted_book_balance', sa.Numeric(precision=18, scale=2), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='draft'),
        sa.Column('started_by', sa.String(length=100), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_by', sa.String(length=100), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('approved_by', sa.String(length=100), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=100), nullable=True),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'bank_account_id', 'fiscal_year', 'fiscal_month', name='uq_bank_reconciliation_period'
        ),
    )
    op.create_index('ix_bank_reconciliations_bank_account_id', 'bank_reconciliations', ['bank_account_id'])
    op.create_index('ix_bank_reconciliations_status', 'bank_reconciliations', ['status'])

    op.create_table(
        'reconciling_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column(
            'reconciliation_id', sa.Integer(),
            sa.ForeignKey('bank_reconciliations.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('item_type', sa.String(length=30), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('amount', sa.Numeric(precision=18, scale=2), nullable=False),
        sa.Column('transaction_date', sa.Date(), nullable=False),
        sa.Column('reference', sa.String(length=100), nullable=True),
        sa.Column('requires_journal_entry', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('journal_entry_id', sa.Integer(), sa.ForeignKey('journal_entries.id'), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('created_by', sa.String(length=100), nullable=True),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_reconciling_items_reconciliation_id', 'reconciling_items', ['reconciliation_id'])

    # === Fixed assets ===
    op.create_table(
        'asset_categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=20), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('default_useful_life_months', sa.Integer(), nullable=False),
        sa.Column('default_depreciation_method', sa.String(length=30), nullable=False, server_default='straight_line'),
        sa.Column('default_salvage_percent', sa.Numeric(precision=5, scale=2), nullable=False, server_default='0'),
        sa.Column('declining_balance_rate', sa.Numeric(precision=6, scale=4), nullable=True),
        sa.Column('asset_account_id', sa.Integer(), sa.ForeignKey('accounts.id'), nullable=False),
        sa.Column('accumulated_depreciation_account_id', sa.Integer(), sa.ForeignKey('accounts.id'), nullable=False),
        sa.Column('depreciation_expense_account_id', sa.Integer(), sa.ForeignKey('accounts.id'), nullable=False),
        sa.Column('gain_loss_account_id', sa.Integer(), sa.ForeignKey('accounts.id'), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_asset_categories_code', 'asset_categories', ['code'], unique=True)

    op.create_table(
        'fixed_assets',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('asset_number', sa.String(length=30), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category_id', sa.Integer(), sa.ForeignKey('asset_categories.id'), nullable=False),
        sa.Column('acquisition_date', sa.Date(), nullable=False),
        sa.Column('acquisition_method', sa.String(length=20), nullable=False, server_default='purchase'),
        sa.Column('acquisition_cost', sa.Numeric(precision=18, scale=2), nullable=False),
        sa.Column('useful_life_months', sa.Integer(), nullable=False),
        sa.Column('salvage_value', sa.Numeric(precision=18, scale=2), nullable=False, server_default='0'),
        sa.Column('depreciation_method', sa.String(length=30), nullable=False, server_default='straight_line'),
        sa.Column('depreciation_start_date', sa.Date(), nullable=False),
        sa.Column('accumulated_depreciation', sa.Numeric(precision=18, scale=2), nullable=False, server_default='0'),
        sa.Column('book_value', sa.Numeric(precision=18, scale=2), nullable=False),
        sa.Column('last_depreciation_date', sa.Date(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='draft'),
        sa.Column('disposal_date', sa.Date(), nullable=True),
        sa.Column('disposal_method', sa.String(length=20), nullable=True),
        sa.Column('disposal_value', sa.Numeric(precision=18, scale=2), nullable=True),
        sa.Column('disposal_reason', sa.Text(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_by', sa.String(length=100), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('acquisition_cost > 0', name='ck_fixed_asset_cost_positive'),
        sa.CheckConstraint('useful_life_months > 0', name='ck_fixed_asset_life_positive'),
        sa.CheckConstraint('salvage_value <= acquisition_cost', name='ck_fixed_asset_salvage'),
    )
    op.create_index('ix_fixed_assets_asset_number', 'fixed_assets', ['asset_number'], unique=True)
    op.create_index('ix_fixed_assets_category_id', 'fixed_assets', ['category_id'])
    op.create_index('ix_fixed_assets_status', 'fixed_assets', ['status'])

    op.create_table(
        'asset_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('asset_id', sa.Integer(), sa.ForeignKey('fixed_assets.id'), nullable=False),
        sa.Column('movement_type', sa.String(length=20), nullable=False),
        sa.Column('movement_date', sa.Date(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=18, scale=2), nullable=False, server_default='0'),
        sa.Column('book_value', sa.Numeric(precision=18, scale=2), nullable=True),
        sa.Column('journal_entry_id', sa.Integer(), sa.ForeignKey('journal_entries.id'), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('performed_by', sa.String(length=100), nullable=True),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_asset_movements_asset_id', 'asset_movements', ['asset_id'])

    op.create_table(
        'asset_maintenance',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('asset_id', sa.Integer(), sa.ForeignKey('fixed_assets.id'), nullable=False),
        sa.Column('maintenance_type', sa.String(length=50), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('scheduled_date', sa.Date(), nullable=False),
        sa.Column('performed_date', sa.Date(), nullable=True),
        sa.Column('cost', sa.Numeric(precision=18, scale=2), nullable=False, server_default='0'),
        sa.Column('vendor', sa.String(length=100), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='scheduled'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=100), nullable=True),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_asset_maintenance_asset_id', 'asset_maintenance', ['asset_id'])
    op.create_index('ix_asset_maintenance_status', 'asset_maintenance', ['status'])

    op.create_table(
        'depreciation_runs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('fiscal_year', sa.Integer(), nullable=False),
        sa.Column('fiscal_month', sa.Integer(), nullable=False),
        sa.Column('total_depreciation', sa.Numeric(precision=18, scale=2), nullable=False, server_default='0'),
        sa.Column('asset_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='calculated'),
        sa.Column('journal_entry_id', sa.Integer(), sa.ForeignKey('journal_entries.id'), nullable=True),
        sa.Column('calculated_by', sa.String(length=100), nullable=True),
        sa.Column('calculated_at', sa.DateTime(), nullable=True),
        sa.Column('posted_by', sa.String(length=100), nullable=True),
        sa.Column('posted_at', sa.DateTime(), nullable=True),
        sa.Column('reversed_by', sa.String(length=100), nullable=True),
        sa.Column('reversed_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('fiscal_year', 'fiscal_month', name='uq_depreciation_run_period'),
    )
    op.create_index('ix_depreciation_runs_status', 'depreciation_runs', ['status'])

    op.create_table(
        'depreciation_schedules',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column(
            'run_id', sa.Integer(),
            sa.ForeignKey('depreciation_runs.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('asset_id', sa.Integer(), sa.ForeignKey('fixed_assets.id'), nullable=False),
        sa.Column('opening_book_value', sa.Numeric(precision=18, scale=2), nullable=False),
        sa.Column('depreciation_amount', sa.Numeric(precision=18, scale=2), nullable=False),
        sa.Column('closing_book_value', sa.Numeric(precision=18, scale=2), nullable=False),
        sa.Column('accumulated_depreciation', sa.Numeric(precision=18, scale=2), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='calculated'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_depreciation_schedules_run_id', 'depreciation_schedules', ['run_id'])
    op.create_index('ix_depreciation_schedules_asset_id', 'depreciation_schedules', ['asset_id'])

    # === Inbound events ===
    op.create_table(
        'processed_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('event_id', sa.String(length=100), nullable=False),
        sa.Column('event_type', sa.String(length=50), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('journal_entry_id', sa.Integer(), nullable=True),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('processed_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_processed_events_event_id', 'processed_events', ['event_id'], unique=True)
    op.create_index('ix_processed_events_event_type', 'processed_events', ['event_type'])
    op.create_index('ix_processed_events_processed_at', 'processed_events', ['processed_at'])


def downgrade() -> None:
    for table in (
        'processed_events',
        'depreciation_schedules',
        'depreciation_runs',
        'asset_maintenance',
        'asset_movements',
        'fixed_assets',
        'asset_categories',
        'reconciling_items',
        'bank_reconciliations',
        'bank_transactions',
        'bank_accounts',
        'account_balances',
        'journal_lines',
        'journal_entries',
        'fiscal_periods',
        'accounts',
    ):
        op.drop_table(table)
