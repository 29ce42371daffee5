"""
Day-Trade Reconciliation Engine

Nets same-day opposing trades of one instrument into a day-trade portion
and a residual swing-trade portion, and rebuilds the running portfolio
(quantity and average cost) from the full operation history.

Brazilian tax law taxes day trades on the intraday spread and swing trades
against the position's average cost. Only the residual left after netting
a day enters the position, so same-day activity never contaminates the
average cost.
"""

import logging
from collections import OrderedDict, defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Tuple

from notes_engine.market_utils import ZERO, money
from notes_engine.models import InstrumentType, Operation, PortfolioPosition, TypeResult

# Configure logging
logger = logging.getLogger(__name__)


@dataclass
class DayBook:
    """Bought and sold totals of one instrument on one trading date."""
    bought_quantity: int = 0
    bought_value: Decimal = ZERO
    sold_quantity: int = 0
    sold_value: Decimal = ZERO

    def add(self, op: Operation) -> None:
        if op.is_buy:
            self.bought_quantity += op.quantity
            self.bought_value += op.total_value
        else:
            self.sold_quantity += op.quantity
            self.sold_value += op.total_value

    @property
    def has_both_sides(self) -> bool:
        return self.bought_quantity > 0 and self.sold_quantity > 0

    @property
    def day_trade_quantity(self) -> int:
        return min(self.bought_quantity, self.sold_quantity) if self.has_both_sides else 0

    @property
    def average_buy_price(self) -> Decimal:
        return self.bought_value / self.bought_quantity if self.bought_quantity else ZERO

    @property
    def average_sell_price(self) -> Decimal:
        return self.sold_value / self.sold_quantity if self.sold_quantity else ZERO

    @property
    def day_trade_result(self) -> Decimal:
        """Netted quantity times the spread between average sell and buy."""
        if not self.has_both_sides:
            return ZERO
        if self.bought_quantity == self.sold_quantity:
            return self.sold_value - self.bought_value
        if self.bought_quantity > self.sold_quantity:
            return self.sold_value - self.bought_value * self.sold_quantity / self.bought_quantity
        return self.sold_value * self.bought_quantity / self.sold_quantity - self.bought_value

    def residual(self) -> Tuple[int, Decimal]:
        """
        Signed quantity and value left after netting the day.

        A buy-side residual is valued at the day's average buy price, a
        sell-side residual at the day's average sell price. Single-sided
        days carry their full quantity and value.
        """
        if not self.has_both_sides:
            return self.bought_quantity - self.sold_quantity, self.bought_value - self.sold_value

        if self.bought_quantity > self.sold_quantity:
            quantity = self.bought_quantity - self.sold_quantity
            return quantity, self.bought_value * quantity / self.bought_quantity
        if self.sold_quantity > self.bought_quantity:
            quantity = self.sold_quantity - self.bought_quantity
            return -quantity, -(self.sold_value * quantity / self.sold_quantity)
        return 0, ZERO


@dataclass
class TradeResults:
    """Unrounded day-trade and swing-trade results, overall and per type."""
    day_trade: Decimal = ZERO
    swing_trade: Decimal = ZERO
    by_type: Dict[InstrumentType, List[Decimal]] = field(
        default_factory=lambda: {itype: [ZERO, ZERO] for itype in InstrumentType}
    )

    def rounded_by_type(self) -> Dict[InstrumentType, TypeResult]:
        return {itype: TypeResult(money(dt), money(sw)) for itype, (dt, sw) in self.by_type.items()}


@dataclass
class ReconciliationResult:
    """
    Reconciled portfolio and trade results.

    Attributes:
        portfolio: Open positions (quantity > 0)
        day_trade_result: Net day-trade result
        swing_trade_result: Net swing-trade result
        result_by_instrument_type: Results per instrument type
        day_trade_quantities: Netted quantity per instrument (informational)
    """
    portfolio: List[PortfolioPosition]
    day_trade_result: Decimal
    swing_trade_result: Decimal
    result_by_instrument_type: Dict[InstrumentType, TypeResult]
    day_trade_quantities: Dict[str, int] = field(default_factory=dict)


def valid_operations(operations: Iterable[Operation]) -> List[Operation]:
    """Operations found inside a recognized block; the rest is noise."""
    return [op for op in operations if op.is_in_block]


def compute_trade_results(operations: Iterable[Operation]) -> TradeResults:
    """
    Split results into day-trade and swing-trade buckets.

    Day-trade operations are netted per (date, instrument); whatever is not
    netted counts as a swing-trade flow at the winning side's average price.
    Swing-trade flows are summed per instrument type as sells minus buys.

    Args:
        operations: Validated operations (``is_day_trade`` already marked)

    Returns:
        Unrounded TradeResults
    """
    results = TradeResults()
    day_books: Dict[Tuple[date, str], DayBook] = OrderedDict()
    types: Dict[str, InstrumentType] = {}

    for op in operations:
        types.setdefault(op.asset_code, op.instrument_type)
        if op.is_day_trade:
            day_books.setdefault((op.trade_date, op.asset_code), DayBook()).add(op)
        else:
            signed = op.total_value if not op.is_buy else -op.total_value
            results.swing_trade += signed
            results.by_type[op.instrument_type][1] += signed

    for (_, code), book in day_books.items():
        itype = types[code]
        dt_result = book.day_trade_result
        results.day_trade += dt_result
        results.by_type[itype][0] += dt_result

        # the residual enters the swing bucket with the opposite sign of a position
        _, residual_value = book.residual()
        results.swing_trade -= residual_value
        results.by_type[itype][1] -= residual_value

    return results


def reconcile(operations: Iterable[Operation]) -> ReconciliationResult:
    """
    Rebuild the portfolio and trade results from an operation history.

    Per instrument, operations are grouped by trading date (ascending).
    Days with buys and sells net the smaller side as day trade and carry
    the residual into the position; single-sided days apply their full
    quantity and value. Average cost is accumulated value divided by
    accumulated quantity (0 when the quantity is 0) and positions with
    quantity <= 0 are dropped.

    Args:
        operations: Operation history; operations outside recognized
            blocks are ignored

    Returns:
        ReconciliationResult
    """
    operations = valid_operations(operations)

    by_instrument: Dict[str, Dict[date, DayBook]] = OrderedDict()
    for op in operations:
        by_instrument.setdefault(op.asset_code, defaultdict(DayBook))[op.trade_date].add(op)

    portfolio: List[PortfolioPosition] = []
    day_trade_quantities: Dict[str, int] = {}

    for code, books in by_instrument.items():
        quantity = 0
        value = ZERO
        netted = 0

        for trade_date in sorted(books):
            book = books[trade_date]
            netted += book.day_trade_quantity
            residual_quantity, residual_value = book.residual()
            quantity += residual_quantity
            value += residual_value

        if netted:
            day_trade_quantities[code] = netted

        average_cost = value / quantity if quantity != 0 else ZERO
        if quantity <= 0:
            logger.debug(f"{code} closed or short (quantity {quantity}) - not in portfolio")
            continue

        portfolio.append(PortfolioPosition(
            asset_code=code,
            quantity=quantity,
            average_cost=money(average_cost),
            total_value=money(value),
        ))

    results = compute_trade_results(operations)

    logger.info(f"Reconciled {len(operations)} operations into {len(portfolio)} positions "
                f"(day trade: R$ {results.day_trade:,.2f}, swing trade: R$ {results.swing_trade:,.2f})")

    return ReconciliationResult(
        portfolio=portfolio,
        day_trade_result=money(results.day_trade),
        swing_trade_result=money(results.swing_trade),
        result_by_instrument_type=results.rounded_by_type(),
        day_trade_quantities=day_trade_quantities,
    )
