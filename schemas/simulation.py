import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from schemas.accounts import AccountType


class AccountParams(BaseModel):
    """One account as supplied by the caller"""
    account_id: str = Field(min_length=1)
    account_name: str
    account_type: str
    balance: float = Field(ge=0)

    @field_validator('account_type')
    @classmethod
    def _known_account_type(cls, value):
        if value not in AccountType.__members__:
            raise ValueError(f"unknown account type {value!r}")
        return value


class PeriodParams(BaseModel):
    """Complete single-period spending request with validation"""
    # Dates
    date: datetime.date
    retirement_start_date: datetime.date
    periods_per_year: int = Field(default=12, ge=1, le=12)

    # Owner
    age: int = Field(ge=0, le=130)
    birth_year: int = Field(ge=1900, le=2100)

    # Cash flow
    total_expenses: float = Field(ge=0)
    other_income: float = Field(ge=0, default=0)

    # Accounts
    accounts: List[AccountParams] = Field(min_length=1)

    # Caller-owned state from previous periods
    initial_portfolio_balance: Optional[float] = Field(ge=0, default=None)
    prior_period_spending: Optional[float] = Field(ge=0, default=None)
    prior_period_return: Optional[float] = Field(ge=-1, default=None)
    last_ratchet_period: Optional[int] = Field(ge=0, default=None)

    # Policy
    strategy: str = 'static'
    strategy_options: Dict[str, Any] = Field(default_factory=dict)
    strategy_params: Dict[str, Any] = Field(default_factory=dict)
    rmd_aware: bool = True

    @model_validator(mode='after')
    def _check_dates(self):
        if self.date < self.retirement_start_date:
            raise ValueError('date cannot precede retirement_start_date')
        return self
