import datetime
import unittest

from support import D

from engine.errors import MissingRequiredFieldError, ValidationError
from engine.rmd import DefaultRmdCalculator
from schemas.accounts import AccountType
from schemas.rmd import RmdProjection, RmdRules, StartAgeEntry


class TestRmdRules(unittest.TestCase):
    def setUp(self):
        self.rules = RmdRules.secure_2()

    def test_start_age_by_birth_year(self):
        self.assertEqual(self.rules.start_age(1940), 72)
        self.assertEqual(self.rules.start_age(1950), 72)
        self.assertEqual(self.rules.start_age(1951), 73)
        self.assertEqual(self.rules.start_age(1959), 73)
        self.assertEqual(self.rules.start_age(1960), 75)
        self.assertEqual(self.rules.start_age(1975), 75)

    def test_uniform_table(self):
        self.assertEqual(self.rules.uniform_factor(72), D('27.4'))
        self.assertEqual(self.rules.uniform_factor(75), D('24.6'))
        self.assertEqual(self.rules.uniform_factor(120), D('2.0'))
        self.assertEqual(self.rules.uniform_factor(70), D('0'))

    def test_empty_rules_fall_back_to_75(self):
        self.assertEqual(RmdRules().start_age(1950), 75)

    def test_start_age_range_validated(self):
        with self.assertRaises(ValidationError):
            StartAgeEntry.of(birth_year_min=1960, birth_year_max=1950, start_age=73)


class TestDefaultRmdCalculator(unittest.TestCase):
    def setUp(self):
        self.calc = DefaultRmdCalculator()

    def test_rmd_required(self):
        self.assertTrue(self.calc.is_rmd_required(75, 1950))
        self.assertFalse(self.calc.is_rmd_required(74, 1960))
        self.assertTrue(self.calc.is_rmd_required(75, 1960))

    def test_missing_inputs(self):
        with self.assertRaises(MissingRequiredFieldError):
            self.calc.is_rmd_required(None, 1950)
        with self.assertRaises(MissingRequiredFieldError):
            self.calc.calculate_rmd(None, 75)

    def test_calculate_rmd(self):
        # 500,000 / 24.6
        self.assertEqual(self.calc.calculate_rmd(D(500000), 75), D('20325.20'))
        self.assertEqual(self.calc.calculate_rmd(D(24600), 75), D('1000.00'))

    def test_no_rmd_below_table(self):
        self.assertEqual(self.calc.calculate_rmd(D(500000), 70), D('0'))

    def test_beyond_table_uses_minimum_factor(self):
        self.assertEqual(self.calc.distribution_factor(121), D('2.0'))
        self.assertEqual(self.calc.calculate_rmd(D(10000), 125), D('5000.00'))

    def test_first_rmd_year(self):
        self.assertEqual(self.calc.first_rmd_year(1960), 2035)

    def test_projection_first_year_deadline(self):
        projection = self.calc.calculate(D(500000), 73, 1952, 2025)
        self.assertTrue(projection.is_first_rmd)
        self.assertEqual(projection.deadline, datetime.date(2026, 4, 1))
        self.assertEqual(projection.distribution_factor, D('26.5'))
        self.assertTrue(projection.is_required)

    def test_projection_standard_deadline(self):
        projection = self.calc.calculate(D(500000), 80, 1945, 2025)
        self.assertFalse(projection.is_first_rmd)
        self.assertEqual(projection.deadline, datetime.date(2025, 12, 31))
        self.assertEqual(projection.rmd_amount, D('24752.48'))

    def test_projection_not_required(self):
        projection = self.calc.calculate(D(500000), 70, 1955, 2025)
        self.assertFalse(projection.is_required)
        self.assertIsNone(projection.deadline)
        self.assertEqual(projection.withdrawal_percentage, D('0'))

    def test_withdrawal_percentage(self):
        projection = RmdProjection.standard(2025, D(500000), D('20325.20'), D('24.6'), 75)
        self.assertEqual(projection.withdrawal_percentage, D('0.040650'))

    def test_custom_rules(self):
        rules = RmdRules.of(
            start_age_by_birth_year=(StartAgeEntry.of(start_age=70),),
            uniform_lifetime_table={70: D('20')},
        )
        calc = DefaultRmdCalculator(rules)
        self.assertTrue(calc.is_rmd_required(70, 1990))
        self.assertEqual(calc.calculate_rmd(D(1000), 70), D('50.00'))

    def test_account_type_exposure(self):
        self.assertTrue(self.calc.is_subject_to_rmd(AccountType.TRADITIONAL_401K))
        self.assertFalse(self.calc.is_subject_to_rmd(AccountType.ROTH_IRA))


if __name__ == '__main__':
    unittest.main()
