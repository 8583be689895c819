"""
Required Minimum Distribution rules and yearly projections.
"""
import datetime
from decimal import Decimal
from typing import Dict, Optional, Tuple

from pydantic import Field, model_validator

from engine.errors import invalid_range
from engine.money import ZERO, divide
from schemas.base import FrozenModel

DEFAULT_START_AGE = 75

# IRS Uniform Lifetime Table (2022 revision), ages 72-120
UNIFORM_LIFETIME_TABLE = {
    72: "27.4", 73: "26.5", 74: "25.5", 75: "24.6", 76: "23.7", 77: "22.9", 78: "22.0",
    79: "21.1", 80: "20.2", 81: "19.4", 82: "18.5", 83: "17.7", 84: "16.8", 85: "16.0",
    86: "15.2", 87: "14.4", 88: "13.7", 89: "12.9", 90: "12.2", 91: "11.5", 92: "10.8",
    93: "10.1", 94: "9.5", 95: "8.9", 96: "8.4", 97: "7.8", 98: "7.3", 99: "6.8", 100: "6.4",
    101: "6.0", 102: "5.6", 103: "5.2", 104: "4.9", 105: "4.6", 106: "4.3", 107: "4.1",
    108: "3.9", 109: "3.7", 110: "3.5", 111: "3.4", 112: "3.3", 113: "3.1", 114: "3.0",
    115: "2.9", 116: "2.8", 117: "2.7", 118: "2.5", 119: "2.3", 120: "2.0",
}


class StartAgeEntry(FrozenModel):
    """RMD start age for owners born within [birth_year_min, birth_year_max]; open ends allowed."""
    birth_year_min: Optional[int] = None
    birth_year_max: Optional[int] = None
    start_age: int = Field(gt=0)

    @model_validator(mode="after")
    def _check_range(self):
        lo, hi = self.birth_year_min, self.birth_year_max
        if lo is not None and hi is not None and lo > hi:
            raise invalid_range("birth_year_min", lo, "birth_year_max", hi)
        return self

    def covers(self, birth_year) -> bool:
        if self.birth_year_min is not None and birth_year < self.birth_year_min:
            return False
        if self.birth_year_max is not None and birth_year > self.birth_year_max:
            return False
        return True


class RmdRules(FrozenModel):
    start_age_by_birth_year: Tuple[StartAgeEntry, ...] = ()
    uniform_lifetime_table: Dict[int, Decimal] = Field(default_factory=dict)

    @classmethod
    def secure_2(cls):
        """SECURE 2.0 start ages with the current Uniform Lifetime Table."""
        return cls.of(
            start_age_by_birth_year=(
                StartAgeEntry.of(birth_year_max=1950, start_age=72),
                StartAgeEntry.of(birth_year_min=1951, birth_year_max=1959, start_age=73),
                StartAgeEntry.of(birth_year_min=1960, start_age=75),
            ),
            uniform_lifetime_table={age: Decimal(f) for age, f in UNIFORM_LIFETIME_TABLE.items()},
        )

    def start_age(self, birth_year) -> int:
        for entry in self.start_age_by_birth_year:
            if entry.covers(birth_year):
                return entry.start_age
        return DEFAULT_START_AGE

    def uniform_factor(self, age) -> Decimal:
        """Distribution period for ``age``; zero when the table has no entry."""
        return self.uniform_lifetime_table.get(age, ZERO)


class RmdProjection(FrozenModel):
    """One year's RMD for one account balance."""
    year: int
    account_balance: Decimal = Field(ge=0)
    rmd_amount: Decimal = Field(ge=0)
    distribution_factor: Decimal = Field(ge=0)
    deadline: Optional[datetime.date] = None
    is_first_rmd: bool = False
    age: int = Field(ge=0)

    @classmethod
    def standard(cls, year, balance, rmd_amount, factor, age):
        return cls.of(year=year, account_balance=balance, rmd_amount=rmd_amount,
                      distribution_factor=factor, deadline=datetime.date(year, 12, 31),
                      is_first_rmd=False, age=age)

    @classmethod
    def first_year(cls, year, balance, rmd_amount, factor, age):
        # the first distribution may be deferred to April 1 of the following year
        return cls.of(year=year, account_balance=balance, rmd_amount=rmd_amount,
                      distribution_factor=factor, deadline=datetime.date(year + 1, 4, 1),
                      is_first_rmd=True, age=age)

    @classmethod
    def not_required(cls, year, balance, age):
        return cls.of(year=year, account_balance=balance, rmd_amount=ZERO,
                      distribution_factor=ZERO, age=age)

    @property
    def is_required(self) -> bool:
        return self.rmd_amount > ZERO

    @property
    def withdrawal_percentage(self) -> Decimal:
        if self.account_balance == ZERO:
            return ZERO
        return divide(self.rmd_amount, self.account_balance, 6)
