"""
Test Suite for Market Quotes and Portfolio Valuation

Network access is mocked: yfinance tickers and requests.get are patched.
"""

import os
import sys
import unittest
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pandas as pd
import requests

sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

from market_data.quotes import (BrapiQuoteProvider, YahooQuoteProvider,
                                create_quote_provider, fetch_quotes)
from market_data.valuation import value_portfolio
from notes_engine.errors import QuoteFetchError
from notes_engine.models import PortfolioPosition
from fixtures import RecordingProvider, make_quote


class TestYahooQuoteProvider(unittest.TestCase):

    def _history(self, closes):
        index = pd.date_range("2024-03-06", periods=len(closes), freq="D", tz="America/Sao_Paulo")
        return pd.DataFrame({'Close': closes}, index=index)

    @patch('market_data.quotes.yf.Ticker')
    def test_quotes_from_history(self, mock_ticker):
        mock_ticker.return_value.history.return_value = self._history([30.0, 33.0])

        quotes = YahooQuoteProvider().get_quotes(["PETR4"])

        mock_ticker.assert_called_once_with("PETR4.SA")
        self.assertEqual(len(quotes), 1)
        self.assertEqual(quotes[0].asset_code, "PETR4")
        self.assertEqual(quotes[0].price, Decimal("33.00"))
        self.assertEqual(quotes[0].change_percent, Decimal("10.00"))

    @patch('market_data.quotes.yf.Ticker')
    def test_empty_history_is_skipped(self, mock_ticker):
        mock_ticker.return_value.history.return_value = pd.DataFrame()
        self.assertEqual(YahooQuoteProvider().get_quotes(["PETR4"]), [])

    @patch('market_data.quotes.yf.Ticker')
    def test_all_requests_failing_raises(self, mock_ticker):
        mock_ticker.return_value.history.side_effect = ConnectionError("offline")
        with self.assertRaises(QuoteFetchError):
            YahooQuoteProvider().get_quotes(["PETR4", "VALE3"])


class TestBrapiQuoteProvider(unittest.TestCase):

    @patch('market_data.quotes.requests.get')
    def test_quotes_from_api(self, mock_get):
        response = MagicMock()
        response.json.return_value = {'results': [
            {'symbol': 'PETR4', 'regularMarketPrice': 38.12, 'regularMarketChangePercent': 1.5,
             'regularMarketTime': '2024-03-08T20:07:00.000Z'},
            {'symbol': 'VALE3'},
        ]}
        mock_get.return_value = response

        provider = BrapiQuoteProvider(token="abc")
        quotes = provider.get_quotes(["PETR4", "VALE3"])

        args, kwargs = mock_get.call_args
        self.assertEqual(args[0], "https://brapi.dev/api/quote/PETR4,VALE3")
        self.assertEqual(kwargs['params'], {'token': 'abc'})
        self.assertEqual(len(quotes), 1)
        self.assertEqual(quotes[0].price, Decimal("38.12"))
        self.assertEqual(quotes[0].change_percent, Decimal("1.50"))
        self.assertEqual(quotes[0].updated_at.hour, 17)

    @patch('market_data.quotes.time.sleep')
    @patch('market_data.quotes.requests.get')
    def test_retries_then_raises(self, mock_get, mock_sleep):
        mock_get.side_effect = requests.exceptions.ConnectionError("offline")
        provider = BrapiQuoteProvider(max_retries=2)

        with self.assertRaises(QuoteFetchError):
            provider.get_quotes(["PETR4"])

        self.assertEqual(mock_get.call_count, 3)
        self.assertEqual(mock_sleep.call_count, 2)

    def test_invalid_parameters(self):
        with self.assertRaises(ValueError):
            BrapiQuoteProvider(timeout=0)
        with self.assertRaises(ValueError):
            BrapiQuoteProvider(max_retries=-1)


class TestFetchQuotes(unittest.TestCase):

    def test_unknown_codes_are_dropped_silently(self):
        provider = RecordingProvider([make_quote("PETR4", "30.00")])
        quotes = fetch_quotes(provider, ["PETR4", "XPTO3", "PETR4"])
        self.assertEqual(provider.requested, [["PETR4"]])
        self.assertEqual([q.asset_code for q in quotes], ["PETR4"])

    def test_nothing_known_means_no_request(self):
        provider = RecordingProvider()
        self.assertEqual(fetch_quotes(provider, ["XPTO3"]), [])
        self.assertEqual(provider.requested, [])

    def test_provider_failure_yields_empty_list(self):
        provider = RecordingProvider(error=QuoteFetchError("down"))
        self.assertEqual(fetch_quotes(provider, ["PETR4"]), [])

    def test_create_quote_provider(self):
        self.assertIsInstance(create_quote_provider({}), YahooQuoteProvider)
        provider = create_quote_provider({'quotes': {'provider': 'brapi', 'timeout': 5, 'max_retries': 1}})
        self.assertIsInstance(provider, BrapiQuoteProvider)
        self.assertEqual(provider.timeout, 5)
        with self.assertRaises(ValueError):
            create_quote_provider({'quotes': {'provider': 'bloomberg'}})


class TestValuePortfolio(unittest.TestCase):

    def setUp(self):
        self.positions = [
            PortfolioPosition("PETR4", 100, Decimal("20.00"), Decimal("2000.00")),
            PortfolioPosition("VALE3", 10, Decimal("60.00"), Decimal("600.00")),
        ]

    def test_quoted_position(self):
        valuations = value_portfolio(self.positions, [make_quote("PETR4", "25.00", "1.20")])
        petr = valuations[0]
        self.assertTrue(petr.quoted)
        self.assertEqual(petr.current_price, Decimal("25.00"))
        self.assertEqual(petr.market_value, Decimal("2500.00"))
        self.assertEqual(petr.rentability, Decimal("25.00"))
        self.assertEqual(petr.change_percent, Decimal("1.20"))

    def test_unquoted_position_falls_back_to_average_cost(self):
        vale = value_portfolio(self.positions, [])[1]
        self.assertFalse(vale.quoted)
        self.assertEqual(vale.current_price, Decimal("60.00"))
        self.assertEqual(vale.market_value, Decimal("600.00"))
        self.assertEqual(vale.rentability, Decimal("0.00"))


if __name__ == '__main__':
    unittest.main(verbosity=2)
