"""
Portfolio valuation at current market prices.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from market_data.quotes import Quote
from notes_engine.market_utils import ZERO, money
from notes_engine.models import PortfolioPosition

# Configure logging
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PositionValuation:
    """
    A portfolio position marked to market.

    Attributes:
        asset_code: B3 ticker
        quantity: Units held
        average_cost: Average cost per unit
        current_price: Quoted price, or the average cost when unquoted
        market_value: quantity * current_price
        rentability: (current_price / average_cost - 1) * 100
        change_percent: Day change reported by the provider
        quoted: Whether a quote was available
        updated_at: Quote timestamp
    """
    asset_code: str
    quantity: int
    average_cost: Decimal
    current_price: Decimal
    market_value: Decimal
    rentability: Decimal
    change_percent: Decimal = Decimal("0.00")
    quoted: bool = False
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'asset_code': self.asset_code,
            'quantity': self.quantity,
            'average_cost': str(self.average_cost),
            'current_price': str(self.current_price),
            'market_value': str(self.market_value),
            'rentability': str(self.rentability),
            'change_percent': str(self.change_percent),
            'quoted': self.quoted,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


def value_portfolio(positions: Iterable[PortfolioPosition], quotes: Iterable[Quote]) -> List[PositionValuation]:
    """
    Mark positions to market.

    Positions without a quote keep their average cost as price and show a
    rentability of zero.

    Args:
        positions: Derived portfolio positions
        quotes: Quotes returned by a provider

    Returns:
        One PositionValuation per position, same order
    """
    by_code = {quote.asset_code: quote for quote in quotes}
    valuations = []

    for position in positions:
        quote = by_code.get(position.asset_code)
        if quote is None:
            valuations.append(PositionValuation(
                asset_code=position.asset_code,
                quantity=position.quantity,
                average_cost=position.average_cost,
                current_price=position.average_cost,
                market_value=money(position.average_cost * position.quantity),
                rentability=Decimal("0.00"),
            ))
            continue

        rentability = ZERO
        if position.average_cost > 0:
            rentability = (quote.price / position.average_cost - 1) * 100

        valuations.append(PositionValuation(
            asset_code=position.asset_code,
            quantity=position.quantity,
            average_cost=position.average_cost,
            current_price=quote.price,
            market_value=money(quote.price * position.quantity),
            rentability=money(rentability),
            change_percent=quote.change_percent,
            quoted=True,
            updated_at=quote.updated_at,
        ))

    unquoted = sum(1 for v in valuations if not v.quoted)
    if unquoted:
        logger.info(f"{unquoted} of {len(valuations)} positions valued at average cost (no quote)")
    return valuations
