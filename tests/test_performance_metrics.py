import math
import unittest
from datetime import date, timedelta

from schemas.portfolio import NetWorthSnapshot
from services.portfolio.performance_metrics import (
    calculate_cagr,
    calculate_daily_returns,
    calculate_max_drawdown,
    calculate_performance_metrics,
    calculate_sharpe_ratio,
    calculate_volatility,
)


def _series(values, start=date(2024, 1, 1)):
    return [
        NetWorthSnapshot(date=(start + timedelta(days=i)).isoformat(), total_value=v)
        for i, v in enumerate(values)
    ]


class TestPerformanceMetrics(unittest.TestCase):
    def test_cagr(self):
        self.assertAlmostEqual(calculate_cagr(100, 110, 365), 10.0)
        self.assertAlmostEqual(calculate_cagr(100, 121, 730), 10.0)
        self.assertEqual(calculate_cagr(0, 100, 365), 0.0)
        self.assertEqual(calculate_cagr(100, 200, 0), 0.0)

    def test_max_drawdown(self):
        dd = calculate_max_drawdown(_series([100, 120, 90, 110, 60, 80]))
        self.assertAlmostEqual(dd["max_drawdown_percent"], 50.0)
        self.assertAlmostEqual(dd["max_drawdown_absolute"], 60.0)
        self.assertEqual(dd["max_drawdown_date"], "2024-01-05")
        self.assertAlmostEqual(dd["current_drawdown"], (120 - 80) / 120 * 100)
        self.assertEqual(dd["peak"], 120.0)

    def test_no_drawdown_when_rising(self):
        dd = calculate_max_drawdown(_series([100, 110, 120]))
        self.assertEqual(dd["max_drawdown_percent"], 0.0)
        self.assertIsNone(dd["max_drawdown_date"])

    def test_daily_returns_skip_non_positive_base(self):
        returns = calculate_daily_returns(_series([0, 100, 110, 99]))
        self.assertEqual(len(returns), 2)
        self.assertAlmostEqual(returns[0], 0.1)
        self.assertAlmostEqual(returns[1], -0.1)

    def test_volatility(self):
        self.assertEqual(calculate_volatility([0.01]), 0.0)
        self.assertAlmostEqual(calculate_volatility([0.01, 0.01, 0.01]), 0.0)
        vol = calculate_volatility([0.01, -0.01])
        self.assertAlmostEqual(vol, math.sqrt(0.0002) * math.sqrt(252) * 100)

    def test_sharpe(self):
        self.assertAlmostEqual(calculate_sharpe_ratio(0.15, 0.2, 0.05), 0.5)
        self.assertEqual(calculate_sharpe_ratio(0.15, 0.0), 0.0)

    def test_metrics_insufficient_data(self):
        out = calculate_performance_metrics(_series([100]))
        self.assertTrue(out["data_quality"]["has_insufficient_data"])
        self.assertEqual(out["data_points"], 1)
        self.assertEqual(out["risk_free_rate_used"], 0.05)

    def test_metrics_full_year(self):
        values = [100 + i * 0.1 for i in range(366)]
        out = calculate_performance_metrics(_series(values), risk_free_rate=0.02)
        self.assertEqual(out["period_days"], 365)
        self.assertAlmostEqual(out["total_return"], 36.5)
        self.assertAlmostEqual(out["cagr"], 36.5)
        self.assertEqual(out["max_drawdown"], 0.0)
        self.assertEqual(out["risk_free_rate_used"], 0.02)
        self.assertFalse(out["data_quality"]["has_insufficient_data"])
        self.assertIsNone(out["data_quality"]["cagr_warning"])

    def test_short_history_warns(self):
        out = calculate_performance_metrics(_series([100, 101, 102, 103, 104]))
        dq = out["data_quality"]
        self.assertTrue(dq["has_insufficient_data"])
        self.assertIn("CAGR", dq["cagr_warning"])
        self.assertIn("Sharpe", dq["sharpe_warning"])


if __name__ == "__main__":
    unittest.main()
