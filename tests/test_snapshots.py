import unittest
from datetime import date

from schemas.portfolio import NetWorthSnapshot, Position, PriceData
from services.snapshot_manager import (
    calculate_performance,
    create_daily_snapshot,
    get_snapshots_by_period,
    get_snapshots_in_range,
    should_take_snapshot,
)

TODAY = date(2025, 6, 30)


def _snap(d, total, **kw):
    return NetWorthSnapshot(date=d, total_value=total, **kw)


class TestSnapshots(unittest.TestCase):
    def test_create_daily_snapshot(self):
        positions = [
            Position(symbol="BTC", amount=1),
            Position(symbol="AAPL", type="stock", amount=10),
            Position(symbol="USD", type="cash", amount=500),
        ]
        prices = {"btc": PriceData(symbol="btc", price=30000), "aapl": PriceData(symbol="aapl", price=100)}
        snap = create_daily_snapshot(positions, prices, today=TODAY)
        self.assertEqual(snap.date, "2025-06-30")
        self.assertAlmostEqual(snap.total_value, 31500)
        self.assertAlmostEqual(snap.crypto_value, 30000)
        self.assertAlmostEqual(snap.stock_value, 1000)
        self.assertAlmostEqual(snap.cash_value, 500)

    def test_should_take_snapshot(self):
        self.assertTrue(should_take_snapshot([], TODAY))
        self.assertTrue(should_take_snapshot([_snap("2025-06-29", 1)], TODAY))
        self.assertFalse(should_take_snapshot([_snap("2025-06-30", 1)], TODAY))

    def test_range_is_inclusive(self):
        snaps = [_snap("2025-06-01", 1), _snap("2025-06-15", 2), _snap("2025-06-30", 3)]
        out = get_snapshots_in_range(snaps, "2025-06-01", "2025-06-15")
        self.assertEqual([s.total_value for s in out], [1, 2])

    def test_by_period(self):
        snaps = [_snap("2024-01-01", 1), _snap("2025-06-01", 2), _snap("2025-06-25", 3)]
        self.assertEqual(len(get_snapshots_by_period(snaps, "7d", TODAY)), 1)
        self.assertEqual(len(get_snapshots_by_period(snaps, "30d", TODAY)), 2)
        self.assertEqual(len(get_snapshots_by_period(snaps, "all", TODAY)), 3)
        with self.assertRaises(ValueError):
            get_snapshots_by_period(snaps, "2w", TODAY)

    def test_performance_between_two_snapshots(self):
        start = _snap("2025-06-01", 1000, crypto_value=600, stock_value=400)
        end = _snap("2025-06-30", 1250, crypto_value=900, stock_value=350)
        perf = calculate_performance(start, end)
        self.assertEqual(perf["absolute_change"], 250)
        self.assertEqual(perf["percent_change"], 25.0)
        self.assertEqual(perf["crypto_change"], 300)
        self.assertEqual(perf["stock_change"], -50)

    def test_performance_from_zero_start(self):
        perf = calculate_performance(_snap("2025-06-01", 0), _snap("2025-06-02", 100))
        self.assertEqual(perf["percent_change"], 0.0)


if __name__ == "__main__":
    unittest.main()
