"""
Composition helpers: build strategies and orchestrators by name and run one period.
"""
import logging

from engine.errors import ValidationError, require
from engine.orchestrators import DefaultSpendingOrchestrator, RmdAwareOrchestrator
from engine.rmd import DefaultRmdCalculator
from engine.strategies import GuardrailsSpendingStrategy, IncomeGapStrategy, StaticSpendingStrategy
from schemas.guardrails import GuardrailsConfiguration

logger = logging.getLogger(__name__)

STRATEGY_NAMES = ('static', 'income_gap', 'guardrails')


def create_strategy(name: str = 'static', **params):
    """
    Build a spending strategy by name.

    Args:
        name: 'static', 'income_gap' or 'guardrails'
        params: constructor arguments. For 'guardrails' pass either ``config``
            (a GuardrailsConfiguration) or ``preset`` plus optional
            ``periods_per_year`` and field overrides.
    """
    if name == 'static':
        return StaticSpendingStrategy(**params)
    if name == 'income_gap':
        return IncomeGapStrategy(**params)
    if name == 'guardrails':
        config = params.pop('config', None)
        if config is None:
            preset = params.pop('preset', 'guyton_klinger')
            config = GuardrailsConfiguration.preset(preset, **params)
        elif params:
            raise ValidationError(
                f"guardrails takes either a config or preset overrides, not both: {sorted(params)}",
                'config',
            )
        return GuardrailsSpendingStrategy(config)
    raise ValidationError(
        f"unknown strategy {name!r} (expected one of: {', '.join(STRATEGY_NAMES)})", 'strategy'
    )


def create_orchestrator(rmd_calculator=None, rmd_aware: bool = True):
    """Default orchestrator, wrapped for RMD compliance unless ``rmd_aware`` is False."""
    orchestrator = DefaultSpendingOrchestrator()
    if not rmd_aware:
        return orchestrator
    calculator = rmd_calculator if rmd_calculator is not None else DefaultRmdCalculator()
    return RmdAwareOrchestrator(calculator, orchestrator)


def plan_period(context, strategy, orchestrator=None, sequencer=None):
    """
    Run one period (core engine entry point).

    Args:
        context: SpendingContext for the period
        strategy: SpendingStrategy instance
        orchestrator: defaults to an RMD-aware orchestrator over the SECURE 2.0 rules
        sequencer: defaults to the orchestrator's own choice for this context
    """
    require(context, 'context')
    require(strategy, 'strategy')
    if orchestrator is None:
        orchestrator = create_orchestrator()
    if sequencer is None:
        sequencer = orchestrator.select_default_sequencer(context)
    logger.debug("planning %s with %s / %s", context.date, strategy.name, sequencer.name)
    return orchestrator.execute(strategy, sequencer, context)
