import logging
from abc import ABC, abstractmethod

from engine.errors import require
from engine.money import ZERO, divide, plain
from engine.sequencers import RmdFirstSequencer, TaxEfficientSequencer
from schemas.accounts import AccountWithdrawal, TaxTreatment
from schemas.spending import SpendingPlan

logger = logging.getLogger(__name__)

# Once RMDs are flowing, extra money comes out of pre-tax accounts first
RMD_DISCRETIONARY_TIERS = {
    TaxTreatment.PRE_TAX: 1,
    TaxTreatment.TAXABLE: 2,
    TaxTreatment.ROTH: 3,
    TaxTreatment.HSA: 4,
}


class SpendingOrchestrator(ABC):
    """Abstract base class for turning a strategy's target into account withdrawals"""

    @abstractmethod
    def execute(self, strategy, sequencer, context):
        """
        Run ``strategy`` for the period and allocate its target across accounts.

        Returns:
            SpendingPlan with populated account_withdrawals
        """
        pass

    @abstractmethod
    def select_default_sequencer(self, context):
        pass

    def execute_with_default(self, strategy, context):
        """Execute with whatever sequencer this orchestrator prefers for ``context``."""
        return self.execute(strategy, self.select_default_sequencer(require(context, "context")), context)


def _check_inputs(strategy, sequencer, context):
    require(strategy, "strategy")
    require(sequencer, "sequencer")
    require(context, "context")
    require(context.simulation, "simulation")


class DefaultSpendingOrchestrator(SpendingOrchestrator):
    """
    Draws the strategy's target from accounts in sequencer order:
    1. Ask the strategy for this period's target
    2. Take min(remaining, balance) from each account in turn
    3. Whatever is left over becomes the shortfall
    """

    def execute(self, strategy, sequencer, context):
        _check_inputs(strategy, sequencer, context)

        strategy_plan = strategy.calculate_withdrawal(context)
        target = strategy_plan.target_withdrawal
        if target <= ZERO:
            return SpendingPlan.no_withdrawal_needed(strategy.name, strategy_plan.metadata)

        withdrawals = []
        remaining = target
        for account in sequencer.sequence(context):
            if remaining <= ZERO:
                break
            if account.balance <= ZERO:
                continue
            amount = min(remaining, account.balance)
            withdrawals.append(AccountWithdrawal.from_snapshot(account, amount))
            remaining -= amount

        total = sum((w.amount for w in withdrawals), ZERO)
        if remaining > ZERO:
            logger.warning("%s: shortfall of %s against target %s", strategy.name, remaining, target)

        metadata = dict(strategy_plan.metadata)
        metadata["sequencer"] = sequencer.name
        metadata["accountsUsed"] = str(len(withdrawals))
        return SpendingPlan.create(target, total, strategy.name, withdrawals, metadata)

    def select_default_sequencer(self, context):
        return TaxEfficientSequencer()


class RmdAwareOrchestrator(SpendingOrchestrator):
    """
    Wraps another orchestrator so required minimum distributions always come out.

    When the owner has reached RMD age the period target becomes
    max(strategy target, per-period RMD). RMD-subject accounts are drawn
    first, each up to its own share of the RMD; anything still needed comes
    from the remaining balances, pre-tax first. Before RMD age every call is
    passed straight to the wrapped orchestrator.
    """

    def __init__(self, rmd_calculator, delegate=None):
        self.rmd_calculator = require(rmd_calculator, "rmd_calculator")
        self.delegate = delegate if delegate is not None else DefaultSpendingOrchestrator()

    def rmd_applies(self, context):
        return self.rmd_calculator.is_rmd_required(context.age, context.birth_year)

    def execute(self, strategy, sequencer, context):
        _check_inputs(strategy, sequencer, context)
        if not self.rmd_applies(context):
            return self.delegate.execute(strategy, sequencer, context)

        strategy_plan = strategy.calculate_withdrawal(context)
        strategy_target = strategy_plan.target_withdrawal
        ppy = context.periods_per_year

        # per-account RMD shares, drawn in tax-efficient order
        rmd_accounts = sorted(
            (s for s in context.simulation.account_snapshots() if s.subject_to_rmd and s.has_balance),
            key=lambda s: (s.tax_tier, s.balance),
        )
        annual_rmds = [(s, self.rmd_calculator.calculate_rmd(s.balance, context.age)) for s in rmd_accounts]
        total_annual_rmd = sum((annual for _, annual in annual_rmds), ZERO)
        period_rmd = divide(total_annual_rmd, ppy, 2)
        effective_target = max(strategy_target, period_rmd)
        rmd_forced = period_rmd > strategy_target
        if rmd_forced:
            logger.warning("RMD of %s forces withdrawal above strategy target %s", period_rmd, strategy_target)

        drawn = {}
        remaining = effective_target
        rmd_withdrawn = ZERO
        for account, annual in annual_rmds:
            if remaining <= ZERO:
                break
            amount = min(remaining, divide(annual, ppy, 2), account.balance)
            if amount > ZERO:
                drawn[account.account_id] = amount
                remaining -= amount
                rmd_withdrawn += amount

        discretionary_withdrawn = ZERO
        if remaining > ZERO:
            for account in self._discretionary_order(context):
                if remaining <= ZERO:
                    break
                capacity = account.balance - drawn.get(account.account_id, ZERO)
                amount = min(remaining, capacity)
                if amount > ZERO:
                    drawn[account.account_id] = drawn.get(account.account_id, ZERO) + amount
                    remaining -= amount
                    discretionary_withdrawn += amount

        withdrawals = self._merge(context, drawn)
        total = rmd_withdrawn + discretionary_withdrawn
        if remaining > ZERO:
            logger.warning("%s: shortfall of %s against RMD-adjusted target %s",
                           strategy.name, remaining, effective_target)

        metadata = dict(strategy_plan.metadata)
        metadata.update({
            "sequencer": sequencer.name,
            "accountsUsed": str(len(withdrawals)),
            "rmdRequired": plain(period_rmd),
            "strategyTarget": plain(strategy_target),
            "rmdForced": "true" if rmd_forced else "false",
            "rmdWithdrawn": plain(rmd_withdrawn),
            "discretionaryWithdrawn": plain(discretionary_withdrawn),
        })
        return SpendingPlan.create(effective_target, total, strategy.name, withdrawals, metadata)

    def select_default_sequencer(self, context):
        if self.rmd_applies(require(context, "context")):
            return RmdFirstSequencer()
        return self.delegate.select_default_sequencer(context)

    @staticmethod
    def _discretionary_order(context):
        funded = [s for s in context.simulation.account_snapshots() if s.has_balance]
        return sorted(funded, key=lambda s: (RMD_DISCRETIONARY_TIERS[s.tax_treatment], -s.balance))

    @staticmethod
    def _merge(context, drawn):
        """One withdrawal per account, in the order accounts were first drawn."""
        by_id = {s.account_id: s for s in context.simulation.account_snapshots()}
        return [AccountWithdrawal.from_snapshot(by_id[account_id], amount)
                for account_id, amount in drawn.items()]
