"""
Dashboard report tables.

Builds pandas DataFrames from a DashboardReport and exports them as CSV
or Parquet files, one file per table. Monetary columns are exported as
floats rounded to two decimals.
"""

import logging
from pathlib import Path
from typing import Dict, List, Union

import pandas as pd

from notes_engine.history import DashboardReport

# Configure logging
logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ('csv', 'parquet')

NOTE_COLUMNS = ['note_id', 'trade_date', 'settlement_date', 'reference_month', 'broker',
                'total_value', 'day_trade_result', 'swing_trade_result', 'fees_total',
                'operations', 'extraction_method']
OPERATION_COLUMNS = ['note_id', 'trade_date', 'side', 'asset_code', 'instrument_type', 'quantity',
                     'unit_price', 'total_value', 'brokerage_fee', 'is_day_trade',
                     'option_strike', 'base_instrument']
PORTFOLIO_COLUMNS = ['asset_code', 'quantity', 'average_cost', 'total_value', 'current_price',
                     'market_value', 'rentability', 'quoted']
TAX_COLUMNS = ['instrument_type', 'day_trade_result', 'swing_trade_result',
               'day_trade_tax', 'swing_trade_tax']
EXEMPTION_COLUMNS = ['month', 'disposal_value', 'limit', 'exempt']


def notes_frame(report: DashboardReport) -> pd.DataFrame:
    rows = []
    for note in report.notes:
        rows.append({
            'note_id': note.note_id,
            'trade_date': note.trade_date,
            'settlement_date': note.settlement_date,
            'reference_month': note.reference_month,
            'broker': note.broker,
            'total_value': float(note.total_value),
            'day_trade_result': float(note.day_trade_result),
            'swing_trade_result': float(note.swing_trade_result),
            'fees_total': float(note.fees.total),
            'operations': len(note.operations),
            'extraction_method': note.extraction_method.value,
        })
    return pd.DataFrame(rows, columns=NOTE_COLUMNS)


def operations_frame(report: DashboardReport) -> pd.DataFrame:
    rows = []
    for note in report.notes:
        for op in note.operations:
            rows.append({
                'note_id': note.note_id,
                'trade_date': op.trade_date,
                'side': op.side.value,
                'asset_code': op.asset_code,
                'instrument_type': op.instrument_type.value,
                'quantity': op.quantity,
                'unit_price': float(op.unit_price),
                'total_value': float(op.total_value),
                'brokerage_fee': float(op.brokerage_fee),
                'is_day_trade': op.is_day_trade,
                'option_strike': float(op.option_strike) if op.option_strike is not None else None,
                'base_instrument': op.base_instrument,
            })
    return pd.DataFrame(rows, columns=OPERATION_COLUMNS)


def portfolio_frame(report: DashboardReport) -> pd.DataFrame:
    """Positions joined with their valuation."""
    valuations = {valuation.asset_code: valuation for valuation in report.valuations}
    rows = []
    for position in report.portfolio:
        valuation = valuations.get(position.asset_code)
        rows.append({
            'asset_code': position.asset_code,
            'quantity': position.quantity,
            'average_cost': float(position.average_cost),
            'total_value': float(position.total_value),
            'current_price': float(valuation.current_price) if valuation else float(position.average_cost),
            'market_value': float(valuation.market_value) if valuation else float(position.total_value),
            'rentability': float(valuation.rentability) if valuation else 0.0,
            'quoted': valuation.quoted if valuation else False,
        })
    return pd.DataFrame(rows, columns=PORTFOLIO_COLUMNS)


def tax_frame(report: DashboardReport) -> pd.DataFrame:
    """One row per instrument type with results and tax due."""
    tax = report.tax
    rows = []
    for itype, due in tax.by_instrument_type.items():
        result = tax.results_by_instrument_type.get(itype)
        rows.append({
            'instrument_type': itype.value,
            'day_trade_result': float(result.day_trade) if result else 0.0,
            'swing_trade_result': float(result.swing_trade) if result else 0.0,
            'day_trade_tax': float(due.day_trade),
            'swing_trade_tax': float(due.swing_trade),
        })
    return pd.DataFrame(rows, columns=TAX_COLUMNS)


def exemptions_frame(report: DashboardReport) -> pd.DataFrame:
    rows = [{
        'month': status.month,
        'disposal_value': float(status.disposal_value),
        'limit': float(status.limit),
        'exempt': status.exempt,
    } for status in report.exemptions]
    return pd.DataFrame(rows, columns=EXEMPTION_COLUMNS)


def build_frames(report: DashboardReport) -> Dict[str, pd.DataFrame]:
    """All report tables keyed by file stem."""
    return {
        'notes': notes_frame(report),
        'operations': operations_frame(report),
        'portfolio': portfolio_frame(report),
        'tax': tax_frame(report),
        'exemptions': exemptions_frame(report),
    }


def export_report(report: DashboardReport, directory: Union[str, Path], fmt: str = "csv") -> List[Path]:
    """
    Export the report tables to a directory.

    Args:
        report: Dashboard snapshot
        directory: Output directory (created when missing)
        fmt: "csv" or "parquet"

    Returns:
        Paths of the written files

    Raises:
        ValueError: If the format is not supported
    """
    if fmt not in SUPPORTED_FORMATS:
        raise ValueError(f"Unsupported export format: {fmt} (use one of {', '.join(SUPPORTED_FORMATS)})")

    output_dir = Path(directory)
    output_dir.mkdir(parents=True, exist_ok=True)

    written = []
    for name, frame in build_frames(report).items():
        path = output_dir / f"{name}.{fmt}"
        if fmt == 'csv':
            frame.to_csv(path, index=False)
        else:
            # dates are stored as strings in parquet
            frame = frame.astype({col: str for col in ('trade_date', 'settlement_date') if col in frame.columns})
            frame.to_parquet(path, index=False)
        written.append(path)
        logger.info(f"Saved {len(frame)} rows to {path}")

    return written
