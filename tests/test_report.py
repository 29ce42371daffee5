"""
Test Suite for Report Tables and Export
"""

import os
import shutil
import sys
import tempfile
import unittest
from datetime import date

import pandas as pd

sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

from notes_engine.history import NoteHistory
from notes_engine.models import InstrumentType
from notes_engine.report import build_frames, export_report, portfolio_frame, tax_frame
from fixtures import make_note, make_operation

D1 = date(2024, 3, 6)
D2 = date(2024, 3, 7)


class TestReport(unittest.TestCase):

    def setUp(self):
        history = NoteHistory(config={})
        history.append(make_note("n1", [
            make_operation("buy", "PETR4", 100, "10.00", D1),
            make_operation("buy", "HGLG11", 10, "150.00", D1),
        ]))
        self.report = history.append(make_note("n2", [make_operation("sell", "HGLG11", 10, "170.00", D2)]))
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_frames(self):
        frames = build_frames(self.report)
        self.assertEqual(set(frames), {'notes', 'operations', 'portfolio', 'tax', 'exemptions'})
        self.assertEqual(len(frames['notes']), 2)
        self.assertEqual(len(frames['operations']), 3)

    def test_portfolio_frame(self):
        frame = portfolio_frame(self.report)
        self.assertEqual(list(frame['asset_code']), ["PETR4"])
        self.assertEqual(frame.iloc[0]['average_cost'], 10.0)
        self.assertFalse(frame.iloc[0]['quoted'])

    def test_tax_frame(self):
        frame = tax_frame(self.report).set_index('instrument_type')
        self.assertEqual(len(frame), len(InstrumentType))
        self.assertEqual(frame.loc['reit_fund', 'swing_trade_result'], 200.0)
        self.assertEqual(frame.loc['reit_fund', 'swing_trade_tax'], 40.0)

    def test_export_csv(self):
        written = export_report(self.report, self.temp_dir, "csv")
        self.assertEqual(len(written), 5)
        operations = pd.read_csv(os.path.join(self.temp_dir, "operations.csv"))
        self.assertEqual(list(operations['asset_code']), ["PETR4", "HGLG11", "HGLG11"])

    def test_export_parquet(self):
        export_report(self.report, self.temp_dir, "parquet")
        notes = pd.read_parquet(os.path.join(self.temp_dir, "notes.parquet"))
        self.assertEqual(list(notes['note_id']), ["n1", "n2"])
        self.assertEqual(notes.iloc[0]['trade_date'], "2024-03-06")

    def test_unsupported_format(self):
        with self.assertRaises(ValueError):
            export_report(self.report, self.temp_dir, "xlsx")

    def test_empty_report_exports(self):
        written = export_report(NoteHistory(config={}).report, self.temp_dir, "csv")
        self.assertTrue(all(path.exists() for path in written))


if __name__ == '__main__':
    unittest.main(verbosity=2)
