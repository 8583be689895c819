import logging
from abc import ABC, abstractmethod

from engine.errors import CalculationError, ValidationError, require
from engine.money import (
    ONE, ZERO, clamp, divide, plain, power, rate_text, to_currency, to_decimal,
)
from schemas.guardrails import GuardrailsConfiguration, GuardrailsRuleset
from schemas.spending import SpendingPlan

logger = logging.getLogger(__name__)

PARAM_INFLATION_RATE = "inflationRate"


def _flag(value):
    return "true" if value else "false"


class SpendingStrategy(ABC):
    """Abstract base class for spending strategies"""
    name = "Strategy"
    description = ""
    # True when the amount responds to portfolio performance
    is_dynamic = False
    # True when prior-period state must be threaded through the simulation view
    requires_prior_period_state = False

    @abstractmethod
    def calculate_withdrawal(self, context):
        """
        Compute the target withdrawal for the period.

        Returns:
            SpendingPlan with target and adjusted amounts but no account withdrawals
        """
        pass

    def _plan(self, context, target, metadata):
        """Cap ``target`` at what the portfolio holds and wrap it in a plan."""
        target = to_currency(max(ZERO, target))
        available = max(ZERO, context.current_portfolio_balance)
        adjusted = min(target, available)
        if adjusted < target:
            logger.warning("%s target %s exceeds portfolio balance %s", self.name, target, available)
        return SpendingPlan.create(target, adjusted, self.name, metadata=metadata)


class StaticSpendingStrategy(SpendingStrategy):
    """
    Classic fixed-rate rule:
    1. Year-one spending = balance at retirement start x withdrawal rate
    2. Later years grow with inflation (optional)
    3. Per-period amount is capped by the income gap
    """
    name = "Static"
    description = "Fixed percentage of the starting balance, adjusted for inflation"

    def __init__(self, withdrawal_rate="0.04", inflation_rate="0.025", adjust_for_inflation=True):
        self.withdrawal_rate = to_decimal(withdrawal_rate, "withdrawal_rate")
        self.inflation_rate = to_decimal(inflation_rate, "inflation_rate")
        self.adjust_for_inflation = adjust_for_inflation
        if not ZERO < self.withdrawal_rate < ONE:
            raise ValidationError(f"withdrawal_rate must be in (0, 1), got {self.withdrawal_rate}",
                                  "withdrawal_rate")
        if not ZERO <= self.inflation_rate < ONE:
            raise ValidationError(f"inflation_rate must be in [0, 1), got {self.inflation_rate}",
                                  "inflation_rate")

    def calculate_withdrawal(self, context):
        require(context, "context")
        initial_balance = require(context.initial_portfolio_balance, "initial_portfolio_balance")
        year1_annual = initial_balance * self.withdrawal_rate

        years = context.years_in_retirement
        if self.adjust_for_inflation and years > 0:
            annual = year1_annual * power(ONE + self.inflation_rate, years)
        else:
            annual = year1_annual

        rule_based = divide(annual, context.periods_per_year)
        income_gap = context.income_gap
        target = min(rule_based, income_gap) if income_gap > ZERO else ZERO

        logger.debug("static: year %s rule amount %s, income gap %s", years, rule_based, income_gap)
        return self._plan(context, target, {
            "withdrawalRate": rate_text(self.withdrawal_rate),
            "inflationRate": rate_text(self.inflation_rate),
            "adjustForInflation": _flag(self.adjust_for_inflation),
            "yearsInRetirement": str(years),
            "year1AnnualAmount": plain(year1_annual),
            "currentAnnualAmount": plain(annual),
            "ruleBasedMonthly": plain(rule_based),
            "incomeGap": plain(income_gap),
        })


class IncomeGapStrategy(SpendingStrategy):
    """
    Withdraw exactly what expenses exceed other income by,
    optionally grossed up so the after-tax amount covers the gap.
    """
    name = "Income Gap"

    def __init__(self, marginal_tax_rate=None):
        rate = ZERO if marginal_tax_rate is None else to_decimal(marginal_tax_rate, "marginal_tax_rate")
        if not ZERO <= rate < ONE:
            raise ValidationError(f"marginal_tax_rate must be in [0, 1), got {rate}", "marginal_tax_rate")
        self.marginal_tax_rate = rate
        self.gross_up_for_taxes = rate > ZERO

    @property
    def description(self):
        base = "Withdraws exactly the gap between expenses and other income"
        if self.gross_up_for_taxes:
            return f"{base}, grossed up for {plain(self.marginal_tax_rate * 100, 0)}% taxes"
        return base

    def calculate_withdrawal(self, context):
        require(context, "context")
        income_gap = context.income_gap
        if self.gross_up_for_taxes and income_gap > ZERO:
            target = divide(income_gap, ONE - self.marginal_tax_rate)
        else:
            target = income_gap

        return self._plan(context, target, {
            "incomeGap": plain(income_gap),
            "totalExpenses": plain(context.total_expenses),
            "otherIncome": plain(context.other_income),
            "grossUpForTaxes": _flag(self.gross_up_for_taxes),
            "marginalTaxRate": rate_text(self.marginal_tax_rate),
        })


class GuardrailsSpendingStrategy(SpendingStrategy):
    """
    Dynamic spending that reacts to the portfolio's withdrawal rate.

    The first period draws ``initial_withdrawal_rate`` of the current balance.
    After that, spending is carried forward period to period and re-examined
    on the first period of each retirement year, where the configured
    ruleset may raise or cut it:

        Guyton-Klinger    cut above the upper guardrail, raise below the lower
        Vanguard dynamic  follow the portfolio, bounded by +increase / -decrease
        Kitces ratchet    raise after strong growth, never cut

    The strategy keeps no state between calls. Prior spending, prior return
    and the last ratchet period all come from the simulation view.
    """
    name = "Guardrails"
    description = "Dynamic spending with guardrails-based adjustments for portfolio performance"
    is_dynamic = True
    requires_prior_period_state = True

    def __init__(self, config=None):
        self.config = config if config is not None else GuardrailsConfiguration.guyton_klinger()

    def calculate_withdrawal(self, context):
        require(context, "context")
        config = self.config
        simulation = require(context.simulation, "simulation")
        inflation = to_decimal(context.strategy_param(PARAM_INFLATION_RATE, config.inflation_rate),
                               PARAM_INFLATION_RATE)
        metadata = {
            "ruleset": config.ruleset.value,
            "initialRate": rate_text(config.initial_withdrawal_rate),
            "inflationRate": rate_text(inflation),
        }
        balance = context.current_portfolio_balance
        prior = simulation.prior_period_spending

        if prior is None or prior == ZERO:
            annual = balance * config.initial_withdrawal_rate
            metadata["firstYear"] = "true"
            metadata["annualSpending"] = plain(annual)
            return self._capped_plan(context, divide(annual, context.periods_per_year), metadata)

        metadata["priorPeriodSpending"] = plain(prior)
        if not context.is_review_period:
            metadata["reviewed"] = "false"
            return self._capped_plan(context, prior, metadata)

        if balance <= ZERO:
            raise CalculationError(
                f"cannot compute a withdrawal rate on a portfolio balance of {balance}"
            )

        metadata["reviewed"] = "true"
        ppy = context.periods_per_year
        base = self._inflate(prior * ppy, balance, inflation, simulation, metadata)
        current_rate = divide(base, balance)
        metadata["baseAfterInflation"] = plain(base)
        metadata["currentRate"] = plain(current_rate, 4)

        if config.ruleset is GuardrailsRuleset.KITCES_RATCHET:
            annual = self._kitces(base, current_rate, context, metadata)
        elif config.ruleset is GuardrailsRuleset.VANGUARD_DYNAMIC:
            annual = self._vanguard(base, balance, metadata)
        else:
            annual = self._guyton_klinger(base, current_rate, context, metadata)

        annual = self._apply_limits(annual, metadata)
        metadata["annualSpending"] = plain(annual)
        return self._capped_plan(context, divide(annual, ppy), metadata)

    def _capped_plan(self, context, period_amount, metadata):
        # never draw more than the expenses the portfolio has to cover
        return self._plan(context, min(period_amount, context.income_gap), metadata)

    def _inflate(self, prior_annual, balance, inflation, simulation, metadata):
        """Prior annual spending grown by one year of inflation, unless Rule 2 applies."""
        config = self.config
        prior_return = simulation.prior_period_return
        if config.skip_inflation_on_down_years and prior_return is not None and prior_return < ZERO:
            if divide(prior_annual, balance) > config.initial_withdrawal_rate:
                logger.debug("guardrails: inflation skipped after a %s return", prior_return)
                metadata["inflationSkipped"] = "true"
                return prior_annual
        return prior_annual * (ONE + inflation)

    def _guyton_klinger(self, base, current_rate, context, metadata):
        config = self.config
        initial_rate = config.initial_withdrawal_rate
        if config.has_upper_guardrail and current_rate > initial_rate * config.upper_guardrail_ratio:
            if config.capital_preservation_active(context.years_in_retirement):
                logger.debug("guardrails: rate %s above upper guardrail, cutting", current_rate)
                metadata["adjustment"] = "decrease"
                metadata["reason"] = "capital preservation rule triggered"
                return base * (ONE - config.decrease_pct)
            return base
        if config.has_lower_guardrail and current_rate < initial_rate * config.lower_guardrail_ratio:
            logger.debug("guardrails: rate %s below lower guardrail, raising", current_rate)
            metadata["adjustment"] = "increase"
            metadata["reason"] = "prosperity rule triggered"
            return base * (ONE + config.increase_pct)
        return base

    def _kitces(self, base, current_rate, context, metadata):
        config = self.config
        initial_balance = require(context.initial_portfolio_balance, "initial_portfolio_balance")
        growth = divide(context.current_portfolio_balance, initial_balance)
        metadata["portfolioGrowth"] = plain(growth, 4)

        threshold = config.ratchet_growth_threshold
        grown = threshold is None or growth > threshold
        low_rate = (not config.has_lower_guardrail
                    or current_rate < config.initial_withdrawal_rate * config.lower_guardrail_ratio)
        period = context.periods_in_retirement
        last_ratchet = context.simulation.last_ratchet_period
        cooled_down = last_ratchet is None or period - last_ratchet >= config.min_periods_between_ratchets

        if grown and low_rate and cooled_down:
            logger.debug("guardrails: ratchet at period %s (growth %s)", period, growth)
            metadata["adjustment"] = "increase"
            metadata["reason"] = "ratchet rule triggered"
            metadata["lastRatchetPeriod"] = str(period)
            return base * (ONE + config.increase_pct)
        if grown and low_rate:
            logger.debug("guardrails: ratchet held, last at period %s", last_ratchet)
            metadata["ratchetDeferred"] = "true"
        return base

    def _vanguard(self, base, balance, metadata):
        config = self.config
        portfolio_amount = balance * config.initial_withdrawal_rate
        ceiling = base * (ONE + config.increase_pct)
        floor = base * (ONE - config.decrease_pct) if config.allow_spending_cuts else base
        annual = clamp(portfolio_amount, floor, ceiling)
        metadata["portfolioAmount"] = plain(portfolio_amount)
        if annual > base:
            metadata["adjustment"] = "increase"
        elif annual < base:
            metadata["adjustment"] = "decrease"
        return annual

    def _apply_limits(self, annual, metadata):
        config = self.config
        limited = clamp(annual, config.absolute_floor, config.absolute_ceiling)
        if config.absolute_floor is not None and limited == config.absolute_floor and annual < limited:
            metadata["constraint"] = "floor applied"
        elif config.absolute_ceiling is not None and limited == config.absolute_ceiling and annual > limited:
            metadata["constraint"] = "ceiling applied"
        return limited
