"""
Per-period inputs and outputs of the spending engine.

A SpendingContext is built by the simulation driver once per period and
handed to an orchestrator; the orchestrator answers with a SpendingPlan.
Cross-period state (prior spending, prior return, last ratchet period) lives
on the simulation view and is owned by the caller.
"""
import datetime
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Mapping, Optional, Tuple

from pydantic import Field, field_validator, model_validator

from engine.errors import require
from engine.money import ZERO, to_currency, to_decimal
from schemas.accounts import AccountSnapshot, AccountWithdrawal
from schemas.base import FrozenModel, read_only

MONTHS_PER_YEAR = 12
VALID_PERIODS_PER_YEAR = (1, 2, 3, 4, 6, 12)


class SimulationView(ABC):
    """
    Read-only window onto the running simulation.

    Implementations expose:
        age: owner's age this period
        birth_year: owner's birth year
        initial_portfolio_balance: portfolio balance at retirement start
        prior_period_spending: amount withdrawn last period (None before the first)
        prior_period_return: portfolio return over the last year (None if unknown)
        last_ratchet_period: retirement period of the last ratchet increase
    """

    @abstractmethod
    def account_snapshots(self):
        """Snapshots of every account, in the driver's own order."""

    def total_portfolio_balance(self):
        return sum((s.balance for s in self.account_snapshots()), ZERO)


class SimulationSnapshot(FrozenModel, SimulationView):
    """Immutable SimulationView built fresh by the driver each period."""
    accounts: Tuple[AccountSnapshot, ...] = ()
    age: int = Field(ge=0)
    birth_year: int = Field(gt=1800)
    initial_portfolio_balance: Optional[Decimal] = Field(default=None, ge=0)
    prior_period_spending: Optional[Decimal] = Field(default=None, ge=0)
    prior_period_return: Optional[Decimal] = None
    last_ratchet_period: Optional[int] = Field(default=None, ge=0)

    def account_snapshots(self):
        return list(self.accounts)


class SpendingContext(FrozenModel):
    """Everything a strategy, sequencer or orchestrator may look at for one period."""
    simulation: SimulationView
    date: datetime.date
    retirement_start_date: datetime.date
    total_expenses: Decimal = Field(default=ZERO, ge=0)
    other_income: Decimal = Field(default=ZERO, ge=0)
    periods_per_year: int = MONTHS_PER_YEAR
    strategy_params: Mapping[str, Any] = Field(default_factory=dict, validate_default=True)

    @field_validator("periods_per_year")
    @classmethod
    def _check_periods_per_year(cls, value):
        if value not in VALID_PERIODS_PER_YEAR:
            raise ValueError(f"periods_per_year must divide 12, got {value}")
        return value

    @field_validator("strategy_params")
    @classmethod
    def _freeze_params(cls, value):
        return read_only(value)

    @model_validator(mode="after")
    def _check_dates(self):
        if self.date < self.retirement_start_date:
            raise ValueError(
                f"date {self.date} precedes retirement start {self.retirement_start_date}"
            )
        return self

    @property
    def calendar_months_in_retirement(self) -> int:
        """Calendar months between the start month and this period's month, ignoring the day."""
        start, now = self.retirement_start_date, self.date
        return (now.year - start.year) * MONTHS_PER_YEAR + (now.month - start.month)

    @property
    def months_in_retirement(self) -> int:
        """Whole months elapsed since retirement started."""
        months = self.calendar_months_in_retirement
        if self.date.day < self.retirement_start_date.day:
            months -= 1
        return months

    @property
    def years_in_retirement(self) -> int:
        return self.months_in_retirement // MONTHS_PER_YEAR

    @property
    def periods_in_retirement(self) -> int:
        """Zero-based index of this period; 0 is the first period of retirement.

        Counted by calendar month so that month-end dates (Jan 31, Feb 28)
        never share an index.
        """
        return self.calendar_months_in_retirement // (MONTHS_PER_YEAR // self.periods_per_year)

    @property
    def is_review_period(self) -> bool:
        """True on the first period of each retirement year."""
        return self.periods_in_retirement % self.periods_per_year == 0

    @property
    def income_gap(self) -> Decimal:
        return max(ZERO, self.total_expenses - self.other_income)

    @property
    def current_portfolio_balance(self) -> Decimal:
        return self.simulation.total_portfolio_balance()

    @property
    def initial_portfolio_balance(self) -> Optional[Decimal]:
        return self.simulation.initial_portfolio_balance

    @property
    def age(self) -> int:
        return self.simulation.age

    @property
    def birth_year(self) -> int:
        return self.simulation.birth_year

    def strategy_param(self, key, default=None):
        value = self.strategy_params.get(key)
        return default if value is None else value


class SpendingPlan(FrozenModel):
    """Result of one orchestration call: how much to withdraw and from where."""
    target_withdrawal: Decimal = Field(ge=0)
    adjusted_withdrawal: Decimal = Field(ge=0)
    meets_target: bool
    shortfall: Decimal = Field(ge=0)
    account_withdrawals: Tuple[AccountWithdrawal, ...] = ()
    strategy_used: str
    metadata: Mapping[str, str] = Field(default_factory=dict, validate_default=True)

    @field_validator("metadata")
    @classmethod
    def _freeze_metadata(cls, value):
        return read_only(value)

    @model_validator(mode="after")
    def _check_shortfall(self):
        expected = max(ZERO, self.target_withdrawal - self.adjusted_withdrawal)
        if self.shortfall != expected:
            raise ValueError(f"shortfall {self.shortfall} must equal {expected}")
        return self

    @classmethod
    def create(cls, target, adjusted, strategy_used, account_withdrawals=(), metadata=None):
        """Plan with shortfall and meets_target derived from target and adjusted."""
        target = to_currency(require(target, "target_withdrawal"))
        adjusted = to_currency(require(adjusted, "adjusted_withdrawal"))
        return cls.of(
            target_withdrawal=target,
            adjusted_withdrawal=adjusted,
            meets_target=adjusted >= target,
            shortfall=max(ZERO, target - adjusted),
            account_withdrawals=tuple(account_withdrawals),
            strategy_used=require(strategy_used, "strategy_used"),
            metadata=dict(metadata or {}),
        )

    @classmethod
    def no_withdrawal_needed(cls, strategy_used, metadata=None):
        return cls.create(ZERO, ZERO, strategy_used, metadata=metadata)

    @property
    def total_withdrawn(self) -> Decimal:
        return sum((w.amount for w in self.account_withdrawals), ZERO)

    @property
    def total_taxable_amount(self) -> Decimal:
        """Withdrawals taxed as ordinary income (pre-tax accounts)."""
        return sum((w.amount for w in self.account_withdrawals if w.is_taxable), ZERO)

    @property
    def total_tax_free_amount(self) -> Decimal:
        return sum((w.amount for w in self.account_withdrawals if not w.is_taxable), ZERO)

    @property
    def depleted_account_count(self) -> int:
        return sum(1 for w in self.account_withdrawals if w.is_depleted)

    @property
    def has_depleted_accounts(self) -> bool:
        return self.depleted_account_count > 0

    def metadata_decimal(self, key):
        """Metadata value ``key`` parsed back to Decimal, or None when absent."""
        value = self.metadata.get(key)
        return None if value is None else to_decimal(value, key)
