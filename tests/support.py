"""Shared builders for the engine tests."""
import datetime
import os
import sys
from decimal import Decimal

# Add parent dir to path to import modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from schemas.accounts import AccountSnapshot, AccountType
from schemas.spending import SimulationSnapshot, SpendingContext

START = datetime.date(2025, 1, 1)
AUTO = object()


def D(value):
    return Decimal(str(value))


def months_after(start, months):
    total = start.month - 1 + months
    return datetime.date(start.year + total // 12, total % 12 + 1, start.day)


def account(account_id, account_type, balance, name=None):
    return AccountSnapshot.for_account(account_id, name or account_id, account_type, D(balance))


def taxable(balance, account_id='brokerage'):
    return account(account_id, AccountType.TAXABLE_BROKERAGE, balance)


def ira(balance, account_id='ira'):
    return account(account_id, AccountType.TRADITIONAL_IRA, balance)


def roth(balance, account_id='roth'):
    return account(account_id, AccountType.ROTH_IRA, balance)


def make_context(accounts, date=START, start=START, expenses='10000', income='0',
                 age=65, birth_year=1960, initial=AUTO, prior_spending=None,
                 prior_return=None, last_ratchet=None, periods_per_year=12, params=None):
    """SpendingContext over ``accounts``; the initial balance defaults to today's total."""
    accounts = tuple(accounts)
    if initial is AUTO:
        initial = sum((a.balance for a in accounts), Decimal('0'))
    simulation = SimulationSnapshot.of(
        accounts=accounts,
        age=age,
        birth_year=birth_year,
        initial_portfolio_balance=None if initial is None else D(initial),
        prior_period_spending=None if prior_spending is None else D(prior_spending),
        prior_period_return=None if prior_return is None else D(prior_return),
        last_ratchet_period=last_ratchet,
    )
    return SpendingContext.of(
        simulation=simulation,
        date=date,
        retirement_start_date=start,
        total_expenses=D(expenses),
        other_income=D(income),
        periods_per_year=periods_per_year,
        strategy_params=params or {},
    )
