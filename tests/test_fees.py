"""
Test Suite for Note Costs

This test suite covers:
- Brokerage rate with minimum charge
- Note-level settlement and registration fees
- Fees printed on the note taking precedence
- Configuration integration and validation
"""

import os
import sys
import tempfile
import unittest
from dataclasses import replace
from decimal import Decimal

import yaml

sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

from notes_engine.fees import NoteCostCalculator, StatedFees, read_stated_fees
from fixtures import SAMPLE_NOTE, make_operation


class TestNoteCostCalculator(unittest.TestCase):
    """Tests for the note cost calculator."""

    def setUp(self):
        """Set up test fixtures."""
        self.config_data = {
            'costs': {
                'brokerage_rate': 0.001,       # 0.1%
                'min_brokerage': 2.50,         # R$ 2.50
                'settlement_rate': 0.00025,    # 0.025%
                'registration_rate': 0.00005,  # 0.005%
            }
        }

        self.temp_config = tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False)
        yaml.dump(self.config_data, self.temp_config)
        self.temp_config.close()

        self.calculator = NoteCostCalculator(self.temp_config.name)

    def tearDown(self):
        """Clean up test fixtures."""
        if os.path.exists(self.temp_config.name):
            os.unlink(self.temp_config.name)

    def test_initialization(self):
        params = self.calculator.get_cost_parameters()
        self.assertEqual(params['brokerage_rate'], Decimal("0.001"))
        self.assertEqual(params['min_brokerage'], Decimal("2.5"))

    def test_minimum_brokerage(self):
        self.assertEqual(self.calculator.brokerage_fee(Decimal("1000.00")), Decimal("2.50"))

    def test_proportional_brokerage(self):
        self.assertEqual(self.calculator.brokerage_fee(Decimal("10000.00")), Decimal("10.00"))

    def test_derived_note_fees(self):
        ops = [make_operation("buy", "PETR4", 100, "100.00"), make_operation("sell", "VALE3", 100, "100.00")]
        ops = [replace(op, brokerage_fee=self.calculator.brokerage_fee(op.total_value)) for op in ops]
        fees = self.calculator.note_fees(ops)
        self.assertEqual(fees.brokerage_fee, Decimal("20.00"))
        self.assertEqual(fees.settlement_fee, Decimal("5.00"))
        self.assertEqual(fees.registration_fee, Decimal("1.00"))
        self.assertEqual(fees.total, Decimal("26.00"))

    def test_stated_fees_take_precedence(self):
        ops = [make_operation("buy", "PETR4", 100, "100.00")]
        stated = StatedFees(brokerage_fee=Decimal("4.90"), settlement_fee=Decimal("2.75"))
        fees = self.calculator.note_fees(ops, stated)
        self.assertEqual(fees.brokerage_fee, Decimal("4.90"))
        self.assertEqual(fees.settlement_fee, Decimal("2.75"))
        self.assertEqual(fees.registration_fee, Decimal("0.50"))

    def test_empty_note(self):
        fees = self.calculator.note_fees([])
        self.assertEqual(fees.total, Decimal("0.00"))

    def test_cost_parameter_validation(self):
        with self.assertRaises(ValueError):
            NoteCostCalculator(config={'costs': {'min_brokerage': -1}})
        with self.assertRaises(ValueError):
            NoteCostCalculator(config={'costs': {'brokerage_rate': 2}})

    def test_missing_config_file_uses_defaults(self):
        calculator = NoteCostCalculator("does/not/exist.yaml")
        self.assertEqual(calculator.get_cost_parameters()['min_brokerage'], Decimal("5.0"))


class TestReadStatedFees(unittest.TestCase):

    def test_sample_note(self):
        stated = read_stated_fees(SAMPLE_NOTE)
        self.assertEqual(stated.brokerage_fee, Decimal("15.00"))
        self.assertEqual(stated.settlement_fee, Decimal("2.19"))
        self.assertEqual(stated.registration_fee, Decimal("0.44"))

    def test_note_title_is_not_a_brokerage_fee(self):
        stated = read_stated_fees("NOTA DE CORRETAGEM 12.345,00")
        self.assertIsNone(stated.brokerage_fee)

    def test_silent_note(self):
        self.assertEqual(read_stated_fees(""), StatedFees())


if __name__ == '__main__':
    unittest.main(verbosity=2)
