import unittest

from schemas.portfolio import AssetWithPrice, Position, PriceData
from services.portfolio.aggregation import aggregate_positions_by_symbol, group_assets, normalize_alloc, sort_assets
from services.portfolio.portfolio_service import allocation_by, calculate_portfolio_summary, summarize_assets
from services.portfolio.valuation import calculate_all_positions_with_prices


def _asset(symbol, value, **kw):
    kw.setdefault("amount", abs(value))
    return AssetWithPrice(symbol=symbol, value=value, **kw)


class TestAggregation(unittest.TestCase):
    def test_merges_same_symbol_and_type(self):
        assets = [
            _asset("ETH", 2000, amount=1, current_price=2000, change_24h=10),
            _asset("eth", 4000, amount=2, current_price=2000, change_24h=20),
            _asset("USDC", 1000),
        ]
        out = aggregate_positions_by_symbol(assets)
        self.assertEqual(len(out), 2)
        eth = out[0]
        self.assertEqual(eth.amount, 3)
        self.assertEqual(eth.value, 6000)
        self.assertEqual(eth.change_24h, 30)
        self.assertAlmostEqual(eth.current_price, 2000)
        self.assertAlmostEqual(eth.allocation, 6000 / 7000 * 100)

    def test_debt_nets_against_holding(self):
        assets = [
            _asset("USDC", 1000, amount=1000, current_price=1),
            _asset("USDC", -400, amount=400, current_price=1, is_debt=True),
        ]
        out = aggregate_positions_by_symbol(assets)
        self.assertEqual(len(out), 1)
        self.assertEqual(out[0].amount, 600)
        self.assertEqual(out[0].value, 600)
        self.assertFalse(out[0].is_debt)

    def test_valued_positions_merge_end_to_end(self):
        positions = [Position(symbol="BTC", amount=1), Position(symbol="BTC", amount=0.5)]
        prices = {"btc": PriceData(symbol="btc", price=50000)}
        out = aggregate_positions_by_symbol(calculate_all_positions_with_prices(positions, prices))
        self.assertEqual(len(out), 1)
        self.assertEqual(out[0].amount, 1.5)
        self.assertEqual(out[0].value, 75000)
        self.assertEqual(out[0].current_price, 50000)
        self.assertEqual(out[0].allocation, 100.0)

    def test_perp_rows_aggregate_separately(self):
        assets = [
            _asset("BTC", 1000),
            _asset("BTC", 5000, is_perp_notional=True),
        ]
        out = aggregate_positions_by_symbol(assets)
        self.assertEqual(len(out), 2)
        perp = next(a for a in out if a.is_perp_notional)
        self.assertEqual(perp.allocation, 0.0)

    def test_sort_value_puts_debts_last(self):
        assets = [_asset("A", -5000, is_debt=True), _asset("B", 10), _asset("C", 500)]
        self.assertEqual([a.symbol for a in sort_assets(assets)], ["C", "B", "A"])

    def test_sort_other_keys(self):
        assets = [_asset("b", 1, amount=3), _asset("A", 2, amount=1), _asset("c", 3, amount=2)]
        self.assertEqual([a.symbol for a in sort_assets(assets, "symbol", False)], ["A", "b", "c"])
        self.assertEqual([a.symbol for a in sort_assets(assets, "amount", True)], ["b", "c", "A"])
        with self.assertRaises(ValueError):
            sort_assets(assets, "colour")

    def test_group_assets(self):
        assets = [_asset("BTC", 300, chain="btc"), _asset("ETH", 100, chain="eth"), _asset("ARB", 100, chain="eth")]
        rows = group_assets(assets, lambda a: a.chain or "none")
        self.assertEqual(rows[0]["key"], "btc")
        self.assertAlmostEqual(rows[0]["weight"], 60.0)
        self.assertEqual(rows[1]["count"], 2)

    def test_normalize_alloc_zero_total(self):
        self.assertEqual(normalize_alloc({"x": 0.0}, 0.0), [{"key": "x", "value": 0.0, "weight": None}])


class TestSummary(unittest.TestCase):
    def test_summary_totals(self):
        assets = [
            _asset("BTC", 6000, change_24h=600),
            _asset("AAPL", 3000, type="stock", change_24h=-100),
            _asset("CASH_EUR_1", 1000, type="cash"),
            _asset("DAI", -500, is_debt=True),
            _asset("BTC", 9000, is_perp_notional=True),
        ]
        s = summarize_assets(assets)
        self.assertAlmostEqual(s.total_value, 9500)
        self.assertAlmostEqual(s.gross_assets, 10000)
        self.assertAlmostEqual(s.total_debts, 500)
        self.assertAlmostEqual(s.change_24h, 500)
        self.assertAlmostEqual(s.change_percent_24h, 500 / 9000 * 100)
        self.assertAlmostEqual(s.crypto_value, 5500)
        self.assertAlmostEqual(s.stock_value, 3000)
        self.assertAlmostEqual(s.cash_value, 1000)
        self.assertEqual(s.position_count, 5)
        self.assertEqual(s.top_assets[0].symbol, "BTC")
        by_type = {t.type: t for t in s.assets_by_type}
        self.assertAlmostEqual(by_type["stock"].percentage, 3000 / 9500 * 100)

    def test_empty_summary(self):
        s = summarize_assets([])
        self.assertEqual(s.total_value, 0.0)
        self.assertEqual(s.change_percent_24h, 0.0)
        self.assertEqual(s.top_assets, [])

    def test_from_positions(self):
        positions = [Position(symbol="BTC", amount=0.5), Position(symbol="AAPL", type="stock", amount=10)]
        prices = {"btc": PriceData(symbol="btc", price=60000), "aapl": PriceData(symbol="aapl", price=200)}
        s = calculate_portfolio_summary(positions, prices)
        self.assertAlmostEqual(s.total_value, 32000)
        self.assertEqual(s.asset_count, 2)

    def test_allocation_by_attribute(self):
        assets = [_asset("BTC", 750), _asset("AAPL", 250, type="stock")]
        rows = allocation_by(assets, "type")
        self.assertEqual(rows[0]["key"], "crypto")
        self.assertAlmostEqual(rows[0]["weight"], 75.0)
        rows = allocation_by(assets, "chain")
        self.assertEqual(rows, [{"key": "unspecified", "value": 1000.0, "weight": 100.0}])


if __name__ == "__main__":
    unittest.main()
