"""
Shared builders for the test suite.

Random operation histories are generated here only, with a fixed seed, so
that property-style tests stay reproducible.
"""

import random
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytz

from market_data.quotes import Quote, QuoteProvider
from notes_engine.classifier import classify
from notes_engine.market_utils import money, reference_month
from notes_engine.models import ExtractionMethod, NoteFees, Operation, SettlementNote, Side
from notes_engine.reconciliation import reconcile

TRADE_DATE = date(2024, 3, 6)

SAMPLE_NOTE = """NOTA DE CORRETAGEM
XP INVESTIMENTOS CCTVM S/A
Nr. nota 12345  Data pregão 06/03/2024
Negócios realizados
1-BOVESPA C VISTA PETR4 PN N2 100 28,50 2.850,00 D
1-BOVESPA V VISTA PETR4 PN N2 100 29,00 2.900,00 C
1-BOVESPA C VISTA VALE3 ON NM 50 60,00 3.000,00 D
Resumo dos Negócios
Valor das operações 8.750,00
Taxa de liquidação 2,19
Taxa de Registro 0,44
Corretagem 15,00
"""


def make_operation(side, code, quantity, price, trade_date=TRADE_DATE, in_block=True, day_trade=False):
    """Build a valid operation; the total is quantity * price."""
    price = Decimal(str(price))
    return Operation(
        side=Side(side),
        asset_code=code,
        instrument_type=classify(code),
        quantity=quantity,
        unit_price=price,
        trade_date=trade_date,
        total_value=price * quantity,
        is_day_trade=day_trade,
        is_in_block=in_block,
    )


def make_note(note_id, operations, broker="XP Investimentos"):
    """Build a settlement note from already marked operations."""
    operations = tuple(operations)
    trade_date = min(op.trade_date for op in operations)
    results = reconcile(operations)
    zero = Decimal("0.00")
    return SettlementNote(
        note_id=note_id,
        trade_date=trade_date,
        reference_month=reference_month(trade_date),
        settlement_date=trade_date + timedelta(days=2),
        broker=broker,
        total_value=money(sum(op.total_value for op in operations)),
        operations=operations,
        day_trade_result=results.day_trade_result,
        swing_trade_result=results.swing_trade_result,
        result_by_instrument_type=results.result_by_instrument_type,
        fees=NoteFees(zero, zero, zero, zero),
        extraction_method=ExtractionMethod.TEXT,
    )


def random_operations(seed=42, count=50, codes=("PETR4", "VALE3", "HGLG11", "BOVA11"), days=10):
    """Seeded random history of in-block operations over a few trading days."""
    rng = random.Random(seed)
    operations = []
    for _ in range(count):
        price = Decimal(rng.randint(500, 10000)) / 100
        operations.append(make_operation(
            side=rng.choice(["buy", "sell"]),
            code=rng.choice(codes),
            quantity=rng.randint(1, 20) * 100,
            price=price,
            trade_date=TRADE_DATE + timedelta(days=rng.randint(0, days - 1)),
        ))
    return operations


def make_quote(code, price, change="0.00"):
    updated_at = pytz.timezone("America/Sao_Paulo").localize(datetime(2024, 3, 8, 17, 0))
    return Quote(code, Decimal(price), Decimal(change), updated_at)


class RecordingProvider(QuoteProvider):
    """Provider returning fixed quotes and recording requests."""

    def __init__(self, quotes=(), error=None):
        self.quotes = list(quotes)
        self.error = error
        self.requested = []

    def get_quotes(self, codes):
        self.requested.append(list(codes))
        if self.error:
            raise self.error
        return [quote for quote in self.quotes if quote.asset_code in codes]
