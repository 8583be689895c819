"""
Guardrails policy parameters.

Three published rulesets are available as presets:

    guyton_klinger()    5.2% start, +/-10% at 80% / 120% of the initial rate,
                        inflation skipped after down years
    vanguard_dynamic()  4% start, yearly change bounded to +5% / -2.5%
    kitces_ratchet()    4% start, +10% ratchets at most every three years,
                        never cuts spending
"""
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import Field, model_validator

from engine.errors import ValidationError, invalid_range
from schemas.base import FrozenModel

DEFAULT_INFLATION = Decimal("0.025")


class GuardrailsRuleset(str, Enum):
    GUYTON_KLINGER = "guyton_klinger"
    VANGUARD_DYNAMIC = "vanguard_dynamic"
    KITCES_RATCHET = "kitces_ratchet"


class GuardrailsConfiguration(FrozenModel):
    """
    Immutable guardrails parameters.

    Ratios are multiples of the initial withdrawal rate: spending is cut when
    the current rate rises above ``upper_guardrail_ratio`` x initial and
    raised when it falls below ``lower_guardrail_ratio`` x initial. Periods
    are counted in the driver's periods (months when periods_per_year is 12).
    """
    initial_withdrawal_rate: Decimal = Field(gt=0, lt=1)
    inflation_rate: Decimal = Field(default=DEFAULT_INFLATION, ge=0, lt=1)
    upper_guardrail_ratio: Optional[Decimal] = Field(default=None, gt=0)
    lower_guardrail_ratio: Optional[Decimal] = Field(default=None, gt=0)
    increase_pct: Decimal = Field(default=Decimal("0"), ge=0, lt=1)
    decrease_pct: Decimal = Field(default=Decimal("0"), ge=0, lt=1)
    absolute_floor: Optional[Decimal] = Field(default=None, ge=0)
    absolute_ceiling: Optional[Decimal] = Field(default=None, ge=0)
    ruleset: GuardrailsRuleset = GuardrailsRuleset.GUYTON_KLINGER
    min_periods_between_ratchets: int = Field(default=0, ge=0)
    skip_inflation_on_down_years: bool = False
    allow_spending_cuts: bool = True
    capital_preservation_years: int = Field(default=0, ge=0)
    ratchet_growth_threshold: Optional[Decimal] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _check_ranges(self):
        lower, upper = self.lower_guardrail_ratio, self.upper_guardrail_ratio
        if lower is not None and upper is not None and lower > upper:
            raise invalid_range("lower_guardrail_ratio", lower, "upper_guardrail_ratio", upper)
        floor, ceiling = self.absolute_floor, self.absolute_ceiling
        if floor is not None and ceiling is not None and floor > ceiling:
            raise invalid_range("absolute_floor", floor, "absolute_ceiling", ceiling)
        return self

    @property
    def has_upper_guardrail(self) -> bool:
        return self.upper_guardrail_ratio is not None

    @property
    def has_lower_guardrail(self) -> bool:
        return self.lower_guardrail_ratio is not None

    def capital_preservation_active(self, years_in_retirement) -> bool:
        """Cuts are allowed until ``capital_preservation_years`` have passed (0 = always)."""
        if not self.allow_spending_cuts:
            return False
        return self.capital_preservation_years == 0 or years_in_retirement < self.capital_preservation_years

    @classmethod
    def guyton_klinger(cls, periods_per_year=12, **overrides):
        fields = dict(
            initial_withdrawal_rate=Decimal("0.052"),
            upper_guardrail_ratio=Decimal("1.20"),
            lower_guardrail_ratio=Decimal("0.80"),
            increase_pct=Decimal("0.10"),
            decrease_pct=Decimal("0.10"),
            ruleset=GuardrailsRuleset.GUYTON_KLINGER,
            min_periods_between_ratchets=periods_per_year,
            skip_inflation_on_down_years=True,
            allow_spending_cuts=True,
            capital_preservation_years=15,
        )
        fields.update(overrides)
        return cls.of(**fields)

    @classmethod
    def vanguard_dynamic(cls, periods_per_year=12, **overrides):
        fields = dict(
            initial_withdrawal_rate=Decimal("0.04"),
            increase_pct=Decimal("0.05"),
            decrease_pct=Decimal("0.025"),
            ruleset=GuardrailsRuleset.VANGUARD_DYNAMIC,
            min_periods_between_ratchets=periods_per_year,
            allow_spending_cuts=True,
        )
        fields.update(overrides)
        return cls.of(**fields)

    @classmethod
    def kitces_ratchet(cls, periods_per_year=12, **overrides):
        fields = dict(
            initial_withdrawal_rate=Decimal("0.04"),
            lower_guardrail_ratio=Decimal("0.667"),
            increase_pct=Decimal("0.10"),
            decrease_pct=Decimal("0"),
            ruleset=GuardrailsRuleset.KITCES_RATCHET,
            min_periods_between_ratchets=3 * periods_per_year,
            allow_spending_cuts=False,
            ratchet_growth_threshold=Decimal("1.50"),
        )
        fields.update(overrides)
        return cls.of(**fields)

    @classmethod
    def preset(cls, name, periods_per_year=12, **overrides):
        """Look up a preset by ruleset name ("guyton_klinger", "vanguard_dynamic", ...)."""
        builders = {
            GuardrailsRuleset.GUYTON_KLINGER: cls.guyton_klinger,
            GuardrailsRuleset.VANGUARD_DYNAMIC: cls.vanguard_dynamic,
            GuardrailsRuleset.KITCES_RATCHET: cls.kitces_ratchet,
        }
        try:
            ruleset = GuardrailsRuleset(name)
        except ValueError:
            raise invalid_preset(name) from None
        return builders[ruleset](periods_per_year=periods_per_year, **overrides)


def invalid_preset(name):
    known = ", ".join(r.value for r in GuardrailsRuleset)
    return ValidationError(f"unknown guardrails preset {name!r} (expected one of: {known})", "preset")
