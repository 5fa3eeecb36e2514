import unittest

from schemas.portfolio import Account, AccountConnection, NetWorthSnapshot, Position, PriceData
from services.portfolio_store import PortfolioState


class TestPortfolioState(unittest.TestCase):
    def setUp(self):
        self.state = PortfolioState(
            positions=[Position(id="p1", symbol="BTC", amount=1)],
            accounts=[Account(id="a1", name="Ledger", connection=AccountConnection(data_source="debank", address="0x1"))],
        )

    def test_add_position_rejects_duplicate_id(self):
        with self.assertRaises(ValueError):
            self.state.add_position(Position(id="p1", symbol="ETH"))

    def test_update_position_keeps_identity(self):
        before = self.state.get_position("p1")
        updated = self.state.update_position("p1", {"amount": 2, "id": "hijack", "added_at": "x"})
        self.assertEqual(updated.id, "p1")
        self.assertEqual(updated.added_at, before.added_at)
        self.assertEqual(updated.amount, 2)

    def test_missing_ids_raise_key_error(self):
        with self.assertRaises(KeyError):
            self.state.update_position("nope", {"amount": 1})
        with self.assertRaises(KeyError):
            self.state.remove_account("nope")
        with self.assertRaises(KeyError):
            self.state.remove_custom_price("btc")

    def test_remove_account_cascades(self):
        self.state.add_position(Position(id="p2", symbol="ETH", amount=1, account_id="a1"))
        self.state.remove_account("a1")
        self.assertEqual([p.id for p in self.state.positions], ["p1"])

    def test_asset_class_override(self):
        p = self.state.set_asset_class_override("p1", "metals")
        self.assertEqual(p.asset_class_override, "metals")

    def test_prices_are_keyed_lowercase(self):
        self.state.set_prices({"BTC": PriceData(symbol="btc", price=100)})
        self.state.set_prices({"btc": PriceData(symbol="btc", price=200)})
        self.assertEqual(self.state.prices["btc"].price, 200)
        self.assertEqual(self.state.summary().total_value, 200)

    def test_fx_rates_merge_and_pin_usd(self):
        self.state.set_fx_rates({"eur": 1.2, "usd": 3.0, "JPY": 0})
        self.assertEqual(self.state.fx_rates["EUR"], 1.2)
        self.assertEqual(self.state.fx_rates["USD"], 1.0)
        self.assertGreater(self.state.fx_rates["JPY"], 0)

    def test_snapshot_replaces_same_day(self):
        self.state.add_snapshot(NetWorthSnapshot(date="2025-01-02", total_value=2))
        self.state.add_snapshot(NetWorthSnapshot(date="2025-01-01", total_value=1))
        self.state.add_snapshot(NetWorthSnapshot(date="2025-01-02", total_value=5))
        self.assertEqual([s.date for s in self.state.snapshots], ["2025-01-01", "2025-01-02"])
        self.assertEqual(self.state.snapshots[-1].total_value, 5)

    def test_settings(self):
        self.assertTrue(self.state.toggle_hide_dust())
        self.assertFalse(self.state.toggle_hide_dust())
        with self.assertRaises(ValueError):
            self.state.set_risk_free_rate(1.5)

    def test_selectors(self):
        self.state.add_account(Account(id="a2", name="Kraken", connection=AccountConnection(data_source="kraken")))
        self.state.add_account(Account(id="a3", name="Bank", slug="bank"))
        self.assertEqual([a.id for a in self.state.wallet_accounts()], ["a1"])
        self.assertEqual([a.id for a in self.state.cex_accounts()], ["a2"])
        self.assertEqual([a.id for a in self.state.manual_accounts()], ["a3"])
        self.assertEqual([a.id for a in self.state.cash_accounts()], ["a3"])


if __name__ == "__main__":
    unittest.main()
