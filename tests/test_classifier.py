"""
Test Suite for the Instrument Classifier

This test suite covers:
- Priority order of the classification rules
- ETF allow-list against the generic "ends in 11" rule
- Futures contracts against the broad option shape
- Normalization and totality on odd inputs
"""

import os
import sys
import unittest

sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

from notes_engine.classifier import ETF_ALLOW_LIST, OPTION_PATTERN, classify, is_ticker_shaped, normalize_code
from notes_engine.models import InstrumentType
from fixtures import random_operations


class TestClassify(unittest.TestCase):
    """Tests for classify()."""

    def test_stocks(self):
        for code in ("PETR4", "VALE3", "ITUB4", "ABEV3"):
            self.assertEqual(classify(code), InstrumentType.STOCK, code)

    def test_reit_funds(self):
        for code in ("HGLG11", "KNRI11", "MXRF11", "DDDD11"):
            self.assertEqual(classify(code), InstrumentType.REIT_FUND, code)

    def test_etf_allow_list_wins_over_reit_shape(self):
        for code in ETF_ALLOW_LIST:
            self.assertEqual(classify(code), InstrumentType.ETF, code)

    def test_options(self):
        self.assertEqual(classify("PETRC400"), InstrumentType.OPTION)
        self.assertEqual(classify("VALEO65"), InstrumentType.OPTION)
        self.assertEqual(classify("BBASX12"), InstrumentType.OPTION)

    def test_futures_are_not_options(self):
        self.assertEqual(classify("WINJ24"), InstrumentType.FUTURE)
        self.assertEqual(classify("WDOK24"), InstrumentType.FUTURE)
        self.assertEqual(classify("INDM24"), InstrumentType.FUTURE)

    def test_unknown(self):
        for code in ("", "XYZ", "PETR", "12345", "PETR9", "A1B2C3"):
            self.assertEqual(classify(code), InstrumentType.UNKNOWN, code)

    def test_non_string_inputs_are_unknown(self):
        self.assertEqual(classify(None), InstrumentType.UNKNOWN)
        self.assertEqual(classify(1234), InstrumentType.UNKNOWN)

    def test_case_and_whitespace_are_ignored(self):
        self.assertEqual(classify("  petr4 "), InstrumentType.STOCK)
        self.assertEqual(classify("bova11"), InstrumentType.ETF)

    def test_deterministic_over_history(self):
        """Same code always gets the same type."""
        codes = [op.asset_code for op in random_operations(seed=7, count=100)]
        for code in codes:
            self.assertEqual(classify(code), classify(code))


class TestPatterns(unittest.TestCase):
    """Tests for helpers and scanning patterns."""

    def test_normalize_code(self):
        self.assertEqual(normalize_code(" pe tr4 "), "PETR4")
        self.assertEqual(normalize_code(None), "")

    def test_is_ticker_shaped(self):
        for code in ("ITUB3", "abcd11", "BOVA11", "PETRC400", "WINJ24"):
            self.assertTrue(is_ticker_shaped(code), code)
        for code in ("ITAUSA PN", "WEGE9", "B3", "", None):
            self.assertFalse(is_ticker_shaped(code), code)

    def test_option_pattern_captures_root(self):
        match = OPTION_PATTERN.search("OPCAO DE COMPRA PETRC400 PN")
        self.assertIsNotNone(match)
        self.assertEqual(match.group(0), "PETRC400")
        self.assertEqual(match.group(1), "PETR")

    def test_option_pattern_ignores_embedded_codes(self):
        self.assertIsNone(OPTION_PATTERN.search("XPETRC400"))


if __name__ == '__main__':
    unittest.main(verbosity=2)
