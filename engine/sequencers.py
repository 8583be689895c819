import logging
from abc import ABC, abstractmethod

from engine.errors import require
from engine.money import ZERO

logger = logging.getLogger(__name__)


def funded_accounts(context):
    """Snapshots with a positive balance, in the driver's order."""
    require(context, "context")
    require(context.simulation, "simulation")
    return [s for s in context.simulation.account_snapshots() if s.balance > ZERO]


def tax_efficient_key(snapshot):
    return (snapshot.tax_tier, snapshot.balance)


class AccountSequencer(ABC):
    """Abstract base class for account withdrawal ordering"""
    name = "Sequencer"
    is_tax_aware = False
    is_rmd_aware = False

    @abstractmethod
    def sequence(self, context):
        """
        Order the funded accounts of ``context`` for withdrawal.

        Returns:
            list of AccountSnapshot, accounts with no balance excluded
        """
        pass

    @property
    def description(self):
        return f"{self.name} account sequencing"


class TaxEfficientSequencer(AccountSequencer):
    """
    Taxable first, then pre-tax, then Roth, then HSA.
    Smaller accounts go first inside a tier so they close out early.
    """
    name = "Tax-Efficient"
    is_tax_aware = True

    @property
    def description(self):
        return ("Withdraws from taxable accounts first, then pre-tax, then Roth. "
                "Optimizes for tax-deferred growth.")

    def sequence(self, context):
        return sorted(funded_accounts(context), key=tax_efficient_key)


class RmdFirstSequencer(AccountSequencer):
    """RMD-subject accounts first, then tax-efficient ordering for the rest."""
    name = "RMD-First"
    is_tax_aware = True
    is_rmd_aware = True

    @property
    def description(self):
        return ("Prioritizes accounts subject to Required Minimum Distributions, "
                "then follows tax-efficient ordering for remaining accounts.")

    def sequence(self, context):
        accounts = funded_accounts(context)
        rmd_group = sorted((s for s in accounts if s.subject_to_rmd), key=tax_efficient_key)
        others = sorted((s for s in accounts if not s.subject_to_rmd), key=tax_efficient_key)
        logger.debug("rmd-first order: %d RMD accounts ahead of %d others", len(rmd_group), len(others))
        return rmd_group + others
