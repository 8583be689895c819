import logging
from abc import ABC, abstractmethod
from decimal import Decimal

from engine.errors import require
from engine.money import ZERO, divide, to_decimal
from schemas.rmd import DEFAULT_START_AGE, RmdProjection, RmdRules

logger = logging.getLogger(__name__)

# Distribution period used past the end of the table
MIN_DISTRIBUTION_FACTOR = Decimal("2.0")
TABLE_MAX_AGE = 120


class RmdCalculator(ABC):
    """Abstract base class for Required Minimum Distribution calculators"""

    @abstractmethod
    def rmd_start_age(self, birth_year):
        """Age at which distributions must begin for someone born in ``birth_year``."""
        pass

    @abstractmethod
    def distribution_factor(self, age):
        """Life-expectancy divisor for ``age`` (zero when no RMD applies)."""
        pass

    def is_rmd_required(self, age, birth_year):
        return require(age, "age") >= self.rmd_start_age(require(birth_year, "birth_year"))

    def first_rmd_year(self, birth_year):
        return birth_year + self.rmd_start_age(birth_year)

    def calculate_rmd(self, prior_year_end_balance, age):
        """Annual RMD: prior year-end balance / distribution factor, to the cent."""
        balance = to_decimal(prior_year_end_balance, "prior_year_end_balance")
        factor = self.distribution_factor(require(age, "age"))
        if factor == ZERO:
            return ZERO
        return divide(balance, factor, 2)

    def calculate(self, prior_year_end_balance, age, birth_year, year):
        """Full projection for one account and year, including the filing deadline."""
        balance = to_decimal(prior_year_end_balance, "prior_year_end_balance")
        start_age = self.rmd_start_age(require(birth_year, "birth_year"))
        if age < start_age:
            return RmdProjection.not_required(year, balance, age)

        factor = self.distribution_factor(age)
        amount = self.calculate_rmd(balance, age)
        if age == start_age:
            return RmdProjection.first_year(year, balance, amount, factor, age)
        return RmdProjection.standard(year, balance, amount, factor, age)

    @staticmethod
    def is_subject_to_rmd(account_type):
        return require(account_type, "account_type").subject_to_rmd


class DefaultRmdCalculator(RmdCalculator):
    """RMD calculator backed by an RmdRules table (SECURE 2.0 when none is given)."""

    def __init__(self, rules=None):
        self.rules = rules if rules is not None else RmdRules.secure_2()

    def rmd_start_age(self, birth_year):
        start_age = self.rules.start_age(birth_year)
        return start_age if start_age > 0 else DEFAULT_START_AGE

    def distribution_factor(self, age):
        factor = self.rules.uniform_factor(age)
        if factor == ZERO and age > TABLE_MAX_AGE:
            logger.debug("age %s beyond uniform table, using factor %s", age, MIN_DISTRIBUTION_FACTOR)
            return MIN_DISTRIBUTION_FACTOR
        return factor
