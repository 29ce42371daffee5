"""
Test Suite for the Tax Calculation Engine

This test suite covers:
- Swing-trade rates per instrument type (stocks 15%, REIT funds 20%)
- Day-trade rate and same-day netting
- Losses owe nothing and feed the carried-loss figure
- Idempotence over the same history
- Monthly swing-trade exemption status
- Configuration validation
"""

import os
import sys
import tempfile
import unittest
from datetime import date
from decimal import Decimal

import yaml

sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

from notes_engine.models import InstrumentType
from notes_engine.operation_extractor import mark_day_trades
from notes_engine.tax import TaxCalculator, calculate_tax, swing_exemption_status
from fixtures import make_operation, random_operations

D1 = date(2024, 3, 6)
D2 = date(2024, 3, 7)


def round_trip(code, buy_price, sell_price, quantity=100, buy_date=D1, sell_date=D2):
    return mark_day_trades([
        make_operation("buy", code, quantity, buy_price, buy_date),
        make_operation("sell", code, quantity, sell_price, sell_date),
    ])


class TestCalculateTax(unittest.TestCase):

    def test_stock_swing_trade(self):
        tax = calculate_tax(round_trip("CCCC4", "10.00", "20.00"))
        self.assertEqual(tax.swing_trade, Decimal("150.00"))
        self.assertEqual(tax.day_trade, Decimal("0.00"))
        self.assertEqual(tax.swing_trade_result, Decimal("1000.00"))

    def test_reit_fund_swing_trade(self):
        tax = calculate_tax(round_trip("DDDD11", "10.00", "20.00"))
        self.assertEqual(tax.swing_trade, Decimal("200.00"))
        self.assertEqual(tax.by_instrument_type[InstrumentType.REIT_FUND].swing_trade, Decimal("200.00"))

    def test_catalogued_code_outside_stock_rule_is_taxed_as_unknown(self):
        ops = round_trip("USIM5", "10.00", "20.00")
        tax = calculate_tax(ops)
        self.assertEqual(tax.by_instrument_type[InstrumentType.UNKNOWN].swing_trade, Decimal("150.00"))
        self.assertEqual(tax.by_instrument_type[InstrumentType.STOCK].swing_trade, Decimal("0.00"))
        self.assertEqual(swing_exemption_status(ops)[0].disposal_value, Decimal("0.00"))

    def test_day_trade(self):
        tax = calculate_tax(round_trip("AAAA4", "10.00", "10.50", sell_date=D1))
        self.assertEqual(tax.day_trade_result, Decimal("50.00"))
        self.assertEqual(tax.day_trade, Decimal("10.00"))
        self.assertEqual(tax.swing_trade, Decimal("0.00"))

    def test_losses_are_not_taxed(self):
        tax = calculate_tax(round_trip("CCCC4", "20.00", "10.00"))
        self.assertEqual(tax.swing_trade, Decimal("0.00"))
        self.assertEqual(tax.total, Decimal("0.00"))
        self.assertEqual(tax.carried_loss, Decimal("300.00"))

    def test_no_carried_loss_on_gains(self):
        tax = calculate_tax(round_trip("CCCC4", "10.00", "20.00"))
        self.assertEqual(tax.carried_loss, Decimal("0.00"))

    def test_loss_in_one_type_does_not_offset_another(self):
        ops = round_trip("CCCC4", "10.00", "20.00") + round_trip("DDDD11", "20.00", "10.00")
        tax = calculate_tax(ops)
        self.assertEqual(tax.swing_trade, Decimal("150.00"))

    def test_operations_outside_blocks_are_ignored(self):
        ops = round_trip("CCCC4", "10.00", "20.00")
        ops.append(make_operation("sell", "CCCC4", 1000, "50.00", D2, in_block=False))
        self.assertEqual(calculate_tax(ops).swing_trade, Decimal("150.00"))

    def test_idempotent(self):
        ops = mark_day_trades(random_operations(seed=5, count=40))
        self.assertEqual(calculate_tax(ops), calculate_tax(ops))

    def test_empty_history(self):
        tax = calculate_tax([])
        self.assertEqual(tax.total, Decimal("0.00"))
        self.assertEqual(tax.carried_loss, Decimal("0.00"))

    def test_rounding_half_up(self):
        # 15% of a 0.10 gain is 0.015
        tax = calculate_tax(round_trip("CCCC4", "10.00", "10.001", quantity=100))
        self.assertEqual(tax.swing_trade, Decimal("0.02"))


class TestTaxCalculatorConfig(unittest.TestCase):

    def setUp(self):
        self.config_data = {
            'taxes': {
                'day_trade_rate': 0.20,
                'swing_trade_rate': 0.10,
                'rate_overrides': {'option': {'swing_trade': 0.15}},
                'carried_loss_factor': 0.5,
                'swing_exemption_limit': 35000,
            }
        }
        self.temp_config = tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False)
        yaml.dump(self.config_data, self.temp_config)
        self.temp_config.close()

    def tearDown(self):
        if os.path.exists(self.temp_config.name):
            os.unlink(self.temp_config.name)

    def test_rates_from_file(self):
        calculator = TaxCalculator(self.temp_config.name)
        self.assertEqual(calculator.rate_for(InstrumentType.STOCK, day_trade=False), Decimal("0.1"))
        self.assertEqual(calculator.rate_for(InstrumentType.OPTION, day_trade=False), Decimal("0.15"))
        self.assertEqual(calculator.rate_for(InstrumentType.OPTION, day_trade=True), Decimal("0.2"))
        self.assertEqual(calculator.swing_exemption_limit, Decimal("35000"))

    def test_invalid_rate_raises(self):
        with self.assertRaises(ValueError):
            TaxCalculator(config={'taxes': {'day_trade_rate': 1.5}})

    def test_invalid_limit_raises(self):
        with self.assertRaises(ValueError):
            TaxCalculator(config={'taxes': {'swing_exemption_limit': -1}})

    def test_default_reit_override(self):
        calculator = TaxCalculator(config={})
        self.assertEqual(calculator.rate_for(InstrumentType.REIT_FUND, day_trade=False), Decimal("0.2"))
        self.assertEqual(calculator.rate_for(InstrumentType.STOCK, day_trade=False), Decimal("0.15"))


class TestSwingExemption(unittest.TestCase):

    def test_monthly_status(self):
        ops = mark_day_trades([
            make_operation("buy", "CCCC4", 1000, "10.00", date(2024, 3, 4)),
            make_operation("sell", "CCCC4", 1000, "15.00", date(2024, 3, 20)),
            make_operation("buy", "CCCC4", 1000, "20.00", date(2024, 4, 2)),
            make_operation("sell", "CCCC4", 1000, "25.00", date(2024, 4, 22)),
        ])
        statuses = swing_exemption_status(ops)
        self.assertEqual([s.month for s in statuses], ["2024-03", "2024-04"])
        self.assertEqual(statuses[0].disposal_value, Decimal("15000.00"))
        self.assertTrue(statuses[0].exempt)
        self.assertEqual(statuses[1].disposal_value, Decimal("25000.00"))
        self.assertFalse(statuses[1].exempt)

    def test_reit_sales_do_not_count(self):
        ops = round_trip("DDDD11", "100.00", "300.00", quantity=100)
        statuses = swing_exemption_status(ops)
        self.assertEqual(statuses[0].disposal_value, Decimal("0.00"))
        self.assertTrue(statuses[0].exempt)

    def test_day_trade_sales_do_not_count(self):
        ops = round_trip("CCCC4", "300.00", "301.00", quantity=100, sell_date=D1)
        self.assertEqual(swing_exemption_status(ops)[0].disposal_value, Decimal("0.00"))

    def test_calculator_uses_configured_limit(self):
        calculator = TaxCalculator(config={'taxes': {'swing_exemption_limit': 10000}})
        statuses = calculator.swing_exemption_status(round_trip("CCCC4", "100.00", "150.00", quantity=100))
        self.assertFalse(statuses[0].exempt)


if __name__ == '__main__':
    unittest.main(verbosity=2)
