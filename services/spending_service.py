import datetime
import logging
from decimal import Decimal

import pandas as pd

from engine.core import create_orchestrator, create_strategy, plan_period
from engine.money import plain, to_decimal
from schemas.accounts import AccountSnapshot, AccountType
from schemas.simulation import PeriodParams
from schemas.spending import SimulationSnapshot, SpendingContext

logger = logging.getLogger(__name__)

WITHDRAWAL_COLUMNS = [
    'Date', 'Account_ID', 'Account_Name', 'Account_Type', 'Tax_Treatment',
    'Amount', 'Prior_Balance', 'New_Balance', 'Strategy',
]


def _optional_decimal(value, field_name):
    return None if value is None else to_decimal(value, field_name)


def map_to_context(params: PeriodParams) -> SpendingContext:
    """Convert the request model to the engine's SpendingContext"""
    snapshots = tuple(
        AccountSnapshot.for_account(
            a.account_id, a.account_name, AccountType[a.account_type], to_decimal(a.balance, 'balance')
        )
        for a in params.accounts
    )
    simulation = SimulationSnapshot.of(
        accounts=snapshots,
        age=params.age,
        birth_year=params.birth_year,
        initial_portfolio_balance=_optional_decimal(params.initial_portfolio_balance, 'initial_portfolio_balance'),
        prior_period_spending=_optional_decimal(params.prior_period_spending, 'prior_period_spending'),
        prior_period_return=_optional_decimal(params.prior_period_return, 'prior_period_return'),
        last_ratchet_period=params.last_ratchet_period,
    )
    return SpendingContext.of(
        simulation=simulation,
        date=params.date,
        retirement_start_date=params.retirement_start_date,
        total_expenses=to_decimal(params.total_expenses, 'total_expenses'),
        other_income=to_decimal(params.other_income, 'other_income'),
        periods_per_year=params.periods_per_year,
        strategy_params=dict(params.strategy_params),
    )


def plan_to_records(plan, period_date) -> list:
    """One row per account withdrawal, ready for the caller's transaction history"""
    return [
        {
            'Date': period_date,
            'Account_ID': w.account_id,
            'Account_Name': w.account_name,
            'Account_Type': w.account_type.name,
            'Tax_Treatment': w.tax_treatment.value,
            'Amount': w.amount,
            'Prior_Balance': w.prior_balance,
            'New_Balance': w.new_balance,
            'Strategy': plan.strategy_used,
        }
        for w in plan.account_withdrawals
    ]


def plans_to_frame(dated_plans) -> pd.DataFrame:
    """
    Flatten (date, plan) pairs into a withdrawal history frame.

    Amounts stay Decimal (object dtype) so totals reconcile to the cent.
    """
    records = []
    for period_date, plan in dated_plans:
        records.extend(plan_to_records(plan, period_date))
    if not records:
        return pd.DataFrame(columns=WITHDRAWAL_COLUMNS)
    return pd.DataFrame(records, columns=WITHDRAWAL_COLUMNS)


def _json_value(val):
    if isinstance(val, Decimal):
        return plain(val, None)
    if isinstance(val, datetime.date):
        return val.isoformat()
    return val


def format_results(records: list) -> dict:
    """Format withdrawal rows for a JSON response"""
    columns = list(records[0]) if records else []
    return {
        'results': [{col: _json_value(row[col]) for col in columns} for row in records],
        'columns': columns,
    }


def summarize_plan(plan) -> dict:
    return {
        'strategy': plan.strategy_used,
        'target_withdrawal': plain(plan.target_withdrawal),
        'adjusted_withdrawal': plain(plan.adjusted_withdrawal),
        'meets_target': plan.meets_target,
        'shortfall': plain(plan.shortfall),
        'total_taxable_amount': plain(plan.total_taxable_amount),
        'total_tax_free_amount': plain(plan.total_tax_free_amount),
        'depleted_accounts': plan.depleted_account_count,
        'metadata': dict(plan.metadata),
    }


def run_spending_service(params: PeriodParams):
    """
    Service to plan one period's withdrawals and return formatted results.
    """
    context = map_to_context(params)
    strategy = create_strategy(params.strategy, **params.strategy_options)
    orchestrator = create_orchestrator(rmd_aware=params.rmd_aware)

    plan = plan_period(context, strategy, orchestrator)
    if not plan.meets_target:
        logger.warning("period %s: shortfall of %s", params.date, plan.shortfall)

    return {
        'success': True,
        'config': params.model_dump(mode='json'),
        'plan': summarize_plan(plan),
        'withdrawals': format_results(plan_to_records(plan, params.date)),
    }
