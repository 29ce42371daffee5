"""
Market Quote Providers

Pluggable collaborators returning current prices for B3 instruments:
- YahooQuoteProvider: Yahoo Finance through yfinance ("PETR4.SA" symbols)
- BrapiQuoteProvider: brapi.dev REST API through requests, with retries
- fetch_quotes: best-effort front door used by the dashboard

Quotes are advisory. A failing provider never blocks parsing or tax
figures; the caller simply gets no quotes.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pytz
import requests
import yfinance as yf

from notes_engine.errors import QuoteFetchError
from notes_engine.market_utils import MARKET_TIMEZONE, money
from notes_engine.registry import DEFAULT_REGISTRY, InstrumentRegistry

# Configure logging
logger = logging.getLogger(__name__)

YAHOO_SUFFIX = ".SA"
BRAPI_URL = "https://brapi.dev/api/quote/{symbols}"


@dataclass(frozen=True)
class Quote:
    """
    Current market quote for one instrument.

    Attributes:
        asset_code: B3 ticker
        price: Last traded price in BRL
        change_percent: Change against the previous close, in percent
        updated_at: Quote timestamp (market timezone)
    """
    asset_code: str
    price: Decimal
    change_percent: Decimal
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            'asset_code': self.asset_code,
            'price': str(self.price),
            'change_percent': str(self.change_percent),
            'updated_at': self.updated_at.isoformat(),
        }


class QuoteProvider(ABC):
    """Source of current quotes for a list of B3 codes."""

    @abstractmethod
    def get_quotes(self, codes: Sequence[str]) -> List[Quote]:
        """
        Fetch quotes for the given codes.

        Codes the provider does not know are left out of the result.

        Raises:
            QuoteFetchError: If the provider could not be reached at all
        """


def _to_decimal(value: Any) -> Decimal:
    return Decimal(str(value))


class YahooQuoteProvider(QuoteProvider):
    """Quotes from Yahoo Finance."""

    def __init__(self, period: str = "5d", timezone: str = MARKET_TIMEZONE):
        self.period = period
        self.timezone = pytz.timezone(timezone)

    def get_quotes(self, codes: Sequence[str]) -> List[Quote]:
        quotes = []
        failures = 0

        for code in codes:
            symbol = f"{code}{YAHOO_SUFFIX}"
            try:
                df = yf.Ticker(symbol).history(period=self.period)
            except Exception as e:
                failures += 1
                logger.warning(f"Yahoo Finance request failed for {symbol}: {e}")
                continue

            if df is None or df.empty or 'Close' not in df.columns:
                logger.warning(f"No Yahoo Finance data for {symbol}")
                continue

            closes = df['Close'].dropna()
            if closes.empty:
                logger.warning(f"No closing prices for {symbol}")
                continue

            last = _to_decimal(closes.iloc[-1])
            previous = _to_decimal(closes.iloc[-2]) if len(closes) > 1 else last
            change = (last / previous - 1) * 100 if previous else Decimal("0")

            timestamp = closes.index[-1].to_pydatetime()
            if timestamp.tzinfo is None:
                timestamp = self.timezone.localize(timestamp)

            quotes.append(Quote(
                asset_code=code,
                price=money(last),
                change_percent=money(change),
                updated_at=timestamp.astimezone(self.timezone),
            ))

        if codes and failures == len(codes):
            raise QuoteFetchError(f"Yahoo Finance unavailable for all {len(codes)} codes")

        logger.info(f"Yahoo Finance returned {len(quotes)} of {len(codes)} quotes")
        return quotes


class BrapiQuoteProvider(QuoteProvider):
    """Quotes from the brapi.dev API."""

    def __init__(self,
                 token: Optional[str] = None,
                 timeout: int = 10,
                 max_retries: int = 3,
                 timezone: str = MARKET_TIMEZONE):
        """
        Initialize the provider.

        Args:
            token: brapi.dev API token (optional for a few free tickers)
            timeout: Request timeout in seconds
            max_retries: Retries after the first failed request
            timezone: Market timezone name
        """
        if timeout <= 0:
            raise ValueError("Timeout must be positive")
        if max_retries < 0:
            raise ValueError("Max retries must be non-negative")

        self.token = token
        self.timeout = timeout
        self.max_retries = max_retries
        self.timezone = pytz.timezone(timezone)

    def _make_request_with_retry(self, url: str, params: Dict[str, str]) -> Dict[str, Any]:
        """
        Make an API request with exponential backoff retry logic.

        Raises:
            QuoteFetchError: If all attempts fail
        """
        for attempt in range(self.max_retries + 1):
            try:
                response = requests.get(url, params=params, timeout=self.timeout)
                response.raise_for_status()
                return response.json()
            except (requests.exceptions.RequestException, ValueError) as e:
                logger.warning(f"Request failed (attempt {attempt + 1}/{self.max_retries + 1}): {e}")
                if attempt < self.max_retries:
                    wait_time = 2 ** attempt
                    logger.info(f"Retrying in {wait_time} seconds...")
                    time.sleep(wait_time)

        raise QuoteFetchError(f"All retry attempts failed for {url}")

    def get_quotes(self, codes: Sequence[str]) -> List[Quote]:
        if not codes:
            return []

        params = {'token': self.token} if self.token else {}
        data = self._make_request_with_retry(BRAPI_URL.format(symbols=",".join(codes)), params)

        quotes = []
        for item in data.get('results', []) or []:
            try:
                code = item['symbol']
                price = _to_decimal(item['regularMarketPrice'])
                change = _to_decimal(item.get('regularMarketChangePercent') or 0)
            except (KeyError, TypeError, ArithmeticError) as e:
                logger.warning(f"Skipping invalid quote record: {item}, error: {e}")
                continue

            updated_at = item.get('regularMarketTime')
            timestamp = datetime.now(self.timezone)
            if updated_at:
                try:
                    timestamp = datetime.fromisoformat(str(updated_at).replace('Z', '+00:00'))
                    if timestamp.tzinfo is None:
                        timestamp = self.timezone.localize(timestamp)
                    timestamp = timestamp.astimezone(self.timezone)
                except ValueError:
                    logger.debug(f"Unparseable quote time {updated_at!r} for {code}")

            quotes.append(Quote(code, money(price), money(change), timestamp))

        logger.info(f"brapi.dev returned {len(quotes)} of {len(codes)} quotes")
        return quotes


def create_quote_provider(config: Optional[Dict[str, Any]] = None) -> QuoteProvider:
    """
    Create the quote provider named in the ``quotes`` config section.

    Raises:
        ValueError: If the provider name is unknown
    """
    quote_config = (config or {}).get('quotes', {}) or {}
    provider = quote_config.get('provider', 'yahoo')

    if provider == 'yahoo':
        return YahooQuoteProvider()
    if provider == 'brapi':
        return BrapiQuoteProvider(
            token=quote_config.get('brapi_token'),
            timeout=int(quote_config.get('timeout', 10)),
            max_retries=int(quote_config.get('max_retries', 3)),
        )
    raise ValueError(f"Unknown quote provider: {provider}")


def fetch_quotes(provider: QuoteProvider,
                 codes: Iterable[str],
                 registry: Optional[InstrumentRegistry] = None) -> List[Quote]:
    """
    Fetch quotes for known instruments, best effort.

    Codes missing from the registry are dropped without a request. A
    provider failure is logged and yields an empty list.

    Args:
        provider: Quote provider
        codes: Requested B3 codes
        registry: Instrument registry used to filter the codes

    Returns:
        Quotes for the codes the provider answered
    """
    registry = registry or DEFAULT_REGISTRY
    known = [code for code in dict.fromkeys(codes) if registry.exists(code)]
    if not known:
        return []

    try:
        return provider.get_quotes(known)
    except QuoteFetchError as e:
        logger.error(f"Quote fetch failed: {e}")
        return []
