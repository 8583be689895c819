import unittest

from support import D, START, account, ira, make_context, months_after, roth, taxable

from engine.core import create_orchestrator, create_strategy, plan_period
from engine.errors import MissingRequiredFieldError, ValidationError
from engine.orchestrators import DefaultSpendingOrchestrator, RmdAwareOrchestrator
from engine.rmd import DefaultRmdCalculator
from engine.strategies import GuardrailsSpendingStrategy, IncomeGapStrategy, StaticSpendingStrategy
from schemas.accounts import AccountType
from schemas.guardrails import GuardrailsConfiguration, GuardrailsRuleset
from schemas.rmd import RmdRules


class TestCreateStrategy(unittest.TestCase):
    def test_by_name(self):
        self.assertIsInstance(create_strategy('static'), StaticSpendingStrategy)
        self.assertIsInstance(create_strategy('income_gap', marginal_tax_rate='0.2'), IncomeGapStrategy)
        self.assertIsInstance(create_strategy('guardrails'), GuardrailsSpendingStrategy)

    def test_static_params(self):
        strategy = create_strategy('static', withdrawal_rate='0.035', adjust_for_inflation=False)
        self.assertEqual(strategy.withdrawal_rate, D('0.035'))
        self.assertFalse(strategy.adjust_for_inflation)

    def test_guardrails_presets(self):
        self.assertEqual(create_strategy('guardrails').config.ruleset, GuardrailsRuleset.GUYTON_KLINGER)
        strategy = create_strategy('guardrails', preset='kitces_ratchet', periods_per_year=4)
        self.assertEqual(strategy.config.ruleset, GuardrailsRuleset.KITCES_RATCHET)
        self.assertEqual(strategy.config.min_periods_between_ratchets, 12)

    def test_guardrails_config(self):
        config = GuardrailsConfiguration.vanguard_dynamic()
        self.assertIs(create_strategy('guardrails', config=config).config, config)
        with self.assertRaises(ValidationError):
            create_strategy('guardrails', config=config, increase_pct=D('0.1'))

    def test_unknown_names(self):
        with self.assertRaises(ValidationError):
            create_strategy('bucket')
        with self.assertRaises(ValidationError):
            create_strategy('guardrails', preset='bengen')


class TestCreateOrchestrator(unittest.TestCase):
    def test_rmd_aware_by_default(self):
        orchestrator = create_orchestrator()
        self.assertIsInstance(orchestrator, RmdAwareOrchestrator)
        self.assertIsInstance(orchestrator.delegate, DefaultSpendingOrchestrator)
        self.assertIsInstance(orchestrator.rmd_calculator, DefaultRmdCalculator)

    def test_plain_orchestrator(self):
        self.assertIsInstance(create_orchestrator(rmd_aware=False), DefaultSpendingOrchestrator)

    def test_custom_calculator(self):
        calculator = DefaultRmdCalculator(RmdRules.secure_2())
        self.assertIs(create_orchestrator(calculator).rmd_calculator, calculator)


class TestPlanPeriod(unittest.TestCase):
    def test_static_first_period(self):
        ctx = make_context([ira(400000), taxable(600000)])
        plan = plan_period(ctx, create_strategy('static'))
        self.assertEqual(plan.target_withdrawal, D('3333.33'))
        self.assertEqual([w.account_id for w in plan.account_withdrawals], ['brokerage'])

    def test_rmd_applies_through_default_orchestrator(self):
        ctx = make_context([ira(500000)], expenses=1000, age=75, birth_year=1950)
        plan = plan_period(ctx, create_strategy('income_gap'))
        self.assertEqual(plan.metadata['rmdForced'], 'true')
        self.assertEqual(plan.metadata['sequencer'], 'RMD-First')

    def test_ratchet_period_returned_to_caller(self):
        for age, birth_year in ((65, 1960), (76, 1949)):
            ctx = make_context([taxable(1000000), account('401k', AccountType.TRADITIONAL_401K, 1000000)],
                               date=months_after(START, 12), initial=1000000, prior_spending='3333.33',
                               prior_return='0.10', age=age, birth_year=birth_year)
            plan = plan_period(ctx, create_strategy('guardrails', preset='kitces_ratchet'))
            self.assertEqual(plan.metadata['lastRatchetPeriod'], '12')

    def test_missing_inputs(self):
        with self.assertRaises(MissingRequiredFieldError):
            plan_period(None, create_strategy('static'))
        with self.assertRaises(MissingRequiredFieldError):
            plan_period(make_context([taxable(1)]), None)

    def test_depleted_portfolio_between_reviews(self):
        ctx = make_context([taxable(0)], date=months_after(START, 13), prior_spending=3000)
        plan = plan_period(ctx, create_strategy('guardrails'))
        self.assertEqual(plan.account_withdrawals, ())
        self.assertFalse(plan.meets_target)
        self.assertEqual(plan.shortfall, D('3000.00'))

    def test_same_context_same_plan(self):
        ctx = make_context([ira(300000), taxable(200000), roth(100000)], date=months_after(START, 36))
        strategy = create_strategy('guardrails')
        self.assertEqual(plan_period(ctx, strategy), plan_period(ctx, strategy))

    def test_driver_loop_threads_caller_state(self):
        """Two years of monthly periods, with the test acting as the simulation driver."""
        balances = {'brokerage': D(20000), 'ira': D(30000)}
        kinds = {'brokerage': AccountType.TAXABLE_BROKERAGE, 'ira': AccountType.TRADITIONAL_IRA}
        strategy = create_strategy('guardrails', preset='guyton_klinger')
        prior_spending = None
        for month in range(24):
            accounts = [account(i, kinds[i], balances[i]) for i in sorted(balances)]
            ctx = make_context(accounts, date=months_after(START, month), expenses=3000,
                               initial=50000, prior_spending=prior_spending, prior_return='0.02')
            plan = plan_period(ctx, strategy)
            self.assertLessEqual(plan.adjusted_withdrawal, ctx.current_portfolio_balance)
            for w in plan.account_withdrawals:
                balances[w.account_id] = w.new_balance
            prior_spending = plan.adjusted_withdrawal
        self.assertLess(sum(balances.values()), D(50000))


if __name__ == '__main__':
    unittest.main()
