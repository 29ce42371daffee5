#!/usr/bin/env python3
"""
Process B3 brokerage settlement notes and print the dashboard.

This script:
1. Reads note text files produced by the text/OCR extraction step
2. Parses each note into operations, fees and results
3. Recomputes portfolio and taxes over all parsed notes
4. Optionally values the portfolio at current quotes
5. Optionally exports the report tables (CSV or Parquet)

Usage:
    python scripts/process_notes.py NOTE [NOTE ...] [--config CONFIG] [--method text|ocr] [--broker BROKER]
                                    [--export DIR] [--format csv|parquet] [--quotes] [--strict] [--verbose]

Examples:
    # Parse two notes and print the dashboard
    python scripts/process_notes.py notes/12345.txt notes/12346.txt

    # Value the portfolio with current quotes and export CSV tables
    python scripts/process_notes.py notes/*.txt --quotes --export reports
"""

import argparse
import logging
import os
import sys
from datetime import datetime
from pathlib import Path

# Add the project root to the path
sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

from market_data.quotes import create_quote_provider
from notes_engine.config import load_config
from notes_engine.errors import EmptyDocumentError, ExtractionEmptyError
from notes_engine.history import NoteHistory
from notes_engine.models import DocumentText, ExtractionMethod
from notes_engine.note_parser import SettlementNoteParser, note_id_from_filename
from notes_engine.report import SUPPORTED_FORMATS, export_report

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level=logging.INFO):
    """Set up logging configuration."""
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stderr)
        ]
    )


def add_file_logging(log_dir):
    """Also write logs to process_notes.log under log_dir."""
    os.makedirs(log_dir, exist_ok=True)
    file_handler = logging.FileHandler(os.path.join(log_dir, 'process_notes.log'), encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.getLogger().addHandler(file_handler)
    return file_handler


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Parse B3 brokerage settlement notes and compute portfolio and taxes',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/process_notes.py notes/12345.txt notes/12346.txt
  python scripts/process_notes.py notes/*.txt --quotes --export reports
  python scripts/process_notes.py notes/scan.txt --method ocr --strict
        """
    )

    parser.add_argument(
        'files',
        nargs='+',
        help='Text files holding the extracted note text'
    )

    parser.add_argument(
        '--config',
        default='config/settings.yaml',
        help='Configuration file (default: config/settings.yaml)'
    )

    parser.add_argument(
        '--method',
        choices=[method.value for method in ExtractionMethod],
        default=ExtractionMethod.TEXT.value,
        help='How the text was extracted (default: text)'
    )

    parser.add_argument(
        '--broker',
        help='Broker name (default: detected from the note)'
    )

    parser.add_argument(
        '--export',
        metavar='DIR',
        help='Export report tables to this directory'
    )

    parser.add_argument(
        '--format',
        choices=SUPPORTED_FORMATS,
        default='csv',
        help='Export format (default: csv)'
    )

    parser.add_argument(
        '--quotes',
        action='store_true',
        help='Value the portfolio with current market quotes'
    )

    parser.add_argument(
        '--strict',
        action='store_true',
        help='Fail on notes without any recognized section'
    )

    parser.add_argument(
        '--log-file',
        action='store_true',
        help='Also write logs to process_notes.log under the configured log directory'
    )

    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable debug logging'
    )

    return parser.parse_args(argv)


def print_note_summary(path, outcome):
    """Print the extraction summary of one note."""
    summary = outcome.summary
    status = "OK" if summary.success else "FAILED"
    print(f"\n📄 {path} [{status}]")
    print(f"   Method: {summary.method.value}")
    print(f"   Block found: {summary.block_found}")
    print(f"   Operations: {summary.total_operations}")
    print(f"   Assets: {', '.join(summary.assets) if summary.assets else '-'}")

    if summary.asset_type_counts:
        counts = ", ".join(f"{entry['type'].value}: {entry['count']}" for entry in summary.asset_type_counts)
        print(f"   By type: {counts}")
    if summary.unrecognized_assets:
        print(f"   Unrecognized assets: {', '.join(summary.unrecognized_assets)}")
    if summary.skipped_lines:
        print(f"   Skipped lines: {summary.skipped_lines}")
    if summary.discrepancies:
        print(f"   ⚠️  Discrepancies: {', '.join(sorted(summary.discrepancies))}")

    if outcome.note is not None:
        note = outcome.note
        print(f"   Broker: {note.broker}")
        print(f"   Trade date: {note.trade_date:%d/%m/%Y} (settles {note.settlement_date:%d/%m/%Y})")
        print(f"   Total: R$ {note.total_value:,.2f} | Fees: R$ {note.fees.total:,.2f}")


def print_dashboard(report):
    """Print portfolio, tax and exemption figures."""
    print("\n" + "="*60)
    print("DASHBOARD")
    print("="*60)
    print(f"Notes: {len(report.notes)} | Operations: {report.total_operations}")
    print(f"Assets: {', '.join(report.assets) if report.assets else '-'}")

    print(f"\n📊 PORTFOLIO:")
    if not report.valuations:
        print("   (empty)")
    for valuation in report.valuations:
        price_source = "quote" if valuation.quoted else "avg cost"
        print(f"   {valuation.asset_code:<8} {valuation.quantity:>8} @ R$ {valuation.average_cost:,.2f}"
              f" | R$ {valuation.current_price:,.2f} ({price_source}) | {valuation.rentability:+.2f}%")

    tax = report.tax
    print(f"\n💰 TAXES:")
    print(f"   Day trade result: R$ {tax.day_trade_result:,.2f} -> tax R$ {tax.day_trade:,.2f}")
    print(f"   Swing trade result: R$ {tax.swing_trade_result:,.2f} -> tax R$ {tax.swing_trade:,.2f}")
    print(f"   Total due: R$ {tax.total:,.2f}")
    print(f"   Carried loss: R$ {tax.carried_loss:,.2f}")

    if report.exemptions:
        print(f"\n🧾 SWING TRADE EXEMPTION:")
        for status in report.exemptions:
            label = "exempt" if status.exempt else "taxable"
            print(f"   {status.month}: sales R$ {status.disposal_value:,.2f} / R$ {status.limit:,.2f} ({label})")

    print("="*60)


def main(argv=None):
    """Main function."""
    args = parse_arguments(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    logger = logging.getLogger(__name__)

    config = load_config(args.config)
    log_settings = config.get('logging', {})
    if not args.verbose:
        logging.getLogger().setLevel(log_settings.get('level', 'INFO'))
    if args.log_file:
        add_file_logging(log_settings.get('log_dir', 'logs'))
    parser = SettlementNoteParser(config=config, strict=args.strict)
    history = NoteHistory(config=config, registry=parser.registry)
    method = ExtractionMethod(args.method)

    failures = 0
    notes = []
    for file_name in args.files:
        path = Path(file_name)
        try:
            text = path.read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Cannot read {path}: {e}")
            failures += 1
            continue

        received_at = datetime.fromtimestamp(path.stat().st_mtime)
        try:
            outcome = parser.parse(DocumentText(text, method), note_id_from_filename(file_name),
                                   received_at=received_at, broker=args.broker)
        except EmptyDocumentError as e:
            logger.error(str(e))
            failures += 1
            continue
        except ExtractionEmptyError as e:
            logger.error(str(e))
            return 1

        print_note_summary(path, outcome)
        if outcome.note is None:
            failures += 1
        else:
            notes.append(outcome.note)

    report = history.extend(notes)

    if args.quotes and report.portfolio:
        report = history.refresh_quotes(create_quote_provider(config))

    print_dashboard(report)

    if args.export:
        written = export_report(report, args.export, args.format)
        print(f"\nExported {len(written)} tables to {args.export}")

    if failures:
        logger.warning(f"{failures} of {len(args.files)} notes could not be read")
    return 0 if notes or not failures else 1


if __name__ == "__main__":
    sys.exit(main())
