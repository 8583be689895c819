"""
Account snapshots and the withdrawals drawn against them.

Snapshots are produced fresh each period by the simulation driver; the
engine only reads them. AccountWithdrawal is what the driver applies to its
own balances afterwards.
"""
from decimal import Decimal
from enum import Enum

from pydantic import Field, model_validator

from engine.errors import require
from engine.money import ZERO, to_decimal
from schemas.base import FrozenModel


class TaxTreatment(str, Enum):
    TAXABLE = "Taxable"
    PRE_TAX = "PreTax"
    ROTH = "Roth"
    HSA = "Hsa"


# Lower tier is drawn first by the tax-efficient ordering
TAX_EFFICIENT_TIERS = {
    TaxTreatment.TAXABLE: 1,
    TaxTreatment.PRE_TAX: 2,
    TaxTreatment.ROTH: 3,
    TaxTreatment.HSA: 4,
}


class AccountType(Enum):
    """Account registrations with their tax treatment and RMD exposure."""
    TRADITIONAL_401K = ("Traditional 401(k)", TaxTreatment.PRE_TAX, True, True)
    ROTH_401K = ("Roth 401(k)", TaxTreatment.ROTH, True, True)
    TRADITIONAL_IRA = ("Traditional IRA", TaxTreatment.PRE_TAX, False, True)
    ROTH_IRA = ("Roth IRA", TaxTreatment.ROTH, False, False)
    HSA = ("Health Savings Account", TaxTreatment.HSA, False, False)
    TAXABLE_BROKERAGE = ("Taxable Brokerage", TaxTreatment.TAXABLE, False, False)
    TRADITIONAL_403B = ("Traditional 403(b)", TaxTreatment.PRE_TAX, True, True)
    ROTH_403B = ("Roth 403(b)", TaxTreatment.ROTH, True, True)
    TRADITIONAL_457B = ("Traditional 457(b)", TaxTreatment.PRE_TAX, True, True)

    def __init__(self, display_name, tax_treatment, employer_sponsored, subject_to_rmd):
        self.display_name = display_name
        self.tax_treatment = tax_treatment
        self.employer_sponsored = employer_sponsored
        self.subject_to_rmd = subject_to_rmd


class AccountSnapshot(FrozenModel):
    """Read-only view of one account's balance and tax classification."""
    account_id: str = Field(min_length=1)
    account_name: str
    account_type: AccountType
    tax_treatment: TaxTreatment
    balance: Decimal = Field(ge=0)
    subject_to_rmd: bool

    @classmethod
    def for_account(cls, account_id, account_name, account_type, balance):
        """Snapshot whose tax treatment and RMD flag come from the account type."""
        require(account_type, "account_type")
        return cls.of(
            account_id=account_id,
            account_name=account_name,
            account_type=account_type,
            tax_treatment=account_type.tax_treatment,
            balance=balance,
            subject_to_rmd=account_type.subject_to_rmd,
        )

    @property
    def has_balance(self) -> bool:
        return self.balance > ZERO

    @property
    def is_taxable(self) -> bool:
        """Withdrawals count as ordinary income (pre-tax money)."""
        return self.tax_treatment is TaxTreatment.PRE_TAX

    @property
    def tax_tier(self) -> int:
        return TAX_EFFICIENT_TIERS[self.tax_treatment]


class AccountWithdrawal(FrozenModel):
    """Amount drawn from one account during the period."""
    account_id: str = Field(min_length=1)
    account_name: str
    account_type: AccountType
    tax_treatment: TaxTreatment
    amount: Decimal = Field(ge=0)
    prior_balance: Decimal = Field(ge=0)
    new_balance: Decimal = Field(ge=0)

    @model_validator(mode="after")
    def _check_balances(self):
        if self.amount > self.prior_balance:
            raise ValueError(
                f"withdrawal {self.amount} exceeds prior balance {self.prior_balance}"
            )
        if self.new_balance != self.prior_balance - self.amount:
            raise ValueError(
                f"new balance {self.new_balance} must equal "
                f"{self.prior_balance} - {self.amount}"
            )
        return self

    @classmethod
    def from_snapshot(cls, snapshot, amount, prior_balance=None):
        """
        Withdrawal of ``amount`` from ``snapshot``.

        Args:
            snapshot: the account being drawn
            amount: amount withdrawn this period
            prior_balance: balance before this withdrawal when it differs from
                the snapshot (the account was already drawn earlier in the period)
        """
        prior = snapshot.balance if prior_balance is None else prior_balance
        amount = to_decimal(amount, "amount")
        return cls.of(
            account_id=snapshot.account_id,
            account_name=snapshot.account_name,
            account_type=snapshot.account_type,
            tax_treatment=snapshot.tax_treatment,
            amount=amount,
            prior_balance=prior,
            new_balance=prior - amount,
        )

    @property
    def is_taxable(self) -> bool:
        return self.tax_treatment is TaxTreatment.PRE_TAX

    @property
    def is_depleted(self) -> bool:
        return self.new_balance == ZERO
