import unittest
from datetime import date

from schemas.portfolio import Account, AccountConnection, Position, PriceData
from services.actions.mutation_executor import MutationExecutor
from services.portfolio_store import PortfolioState

WALLET_ADDR = "0xAbC0000000000000000000000000000000000001"


def _state():
    return PortfolioState(
        positions=[
            Position(id="p-btc", symbol="BTC", name="Bitcoin", amount=1, cost_basis=30000),
            Position(id="p-eth", symbol="ETH", name="Ethereum", amount=2, account_id="acc-w"),
            Position(
                id="p-eur", symbol="CASH_EUR_1", name="Revolut (EUR)", type="cash",
                amount=1000, account_id="acc-rev",
            ),
        ],
        accounts=[
            Account(
                id="acc-w", name="Main wallet",
                connection=AccountConnection(data_source="debank", address=WALLET_ADDR, chains=["eth"]),
            ),
            Account(id="acc-rev", name="Revolut"),
            Account(id="acc-revb", name="Revolut Business"),
            Account(id="acc-bin", name="Binance", connection=AccountConnection(data_source="binance")),
        ],
        prices={
            "btc": PriceData(symbol="btc", price=60000),
            "eth": PriceData(symbol="eth", price=2000),
        },
    )


class MutationExecutorTestBase(unittest.TestCase):
    def setUp(self):
        self.state = _state()
        self.ex = MutationExecutor(self.state, today=lambda: date(2025, 6, 30))

    def run_tool(self, tool, args):
        preview = self.ex.preview(tool, args)
        self.assertTrue(preview.ok, preview.error)
        return preview, self.ex.execute(tool, preview.resolved_args)


class TestBuy(MutationExecutorTestBase):
    def test_buy_adds_to_existing_position(self):
        preview, result = self.run_tool("buy_position", {"symbol": "btc", "amount": 0.5, "price": 50000})
        self.assertEqual(preview.summary, "Buy 0.5 BTC at $50,000.00")
        self.assertEqual(preview.resolved_args["matched_position_id"], "p-btc")
        self.assertTrue(result.success)
        self.assertEqual(result.summary, "Bought 0.5 BTC at $50,000.00")

        btc = self.state.get_position("p-btc")
        self.assertEqual(btc.amount, 1.5)
        self.assertEqual(btc.cost_basis, 55000)
        self.assertEqual(len(self.state.transactions), 1)
        self.assertEqual(self.state.transactions[0].date, "2025-06-30")

    def test_buy_opens_new_position_from_total_cost(self):
        preview, result = self.run_tool("buy_position", {"symbol": "sol", "totalCost": "1,000", "price": 100})
        self.assertEqual(preview.summary, "Buy 10 SOL at $100.00")
        self.assertEqual(preview.changes[1].before, "New position")
        self.assertTrue(result.success)

        sol = next(p for p in self.state.positions if p.symbol == "SOL")
        self.assertEqual(sol.amount, 10)
        self.assertEqual(sol.cost_basis, 1000)
        self.assertEqual(self.state.transactions[0].position_id, sol.id)

    def test_buy_falls_back_to_market_price(self):
        preview = self.ex.preview("buy_position", {"symbol": "ETH", "amount": 1})
        self.assertEqual(preview.resolved_args["price_per_unit"], 2000)

    def test_buy_without_any_price_is_rejected(self):
        preview = self.ex.preview("buy_position", {"symbol": "XYZ", "amount": 1})
        self.assertFalse(preview.ok)
        self.assertEqual(preview.error, "No price provided for XYZ and no market price available")
        self.assertEqual(preview.resolved_args, {"_error": preview.error})

    def test_non_positive_price_is_rejected(self):
        preview = self.ex.preview("buy_position", {"symbol": "BTC", "amount": 1, "price": 0})
        self.assertEqual(preview.error, "Price must be greater than zero")

    def test_invalid_args_become_error_preview(self):
        preview = self.ex.preview("buy_position", {"amount": 1})
        self.assertFalse(preview.ok)
        self.assertTrue(preview.error.startswith("Invalid tool arguments: symbol"))


class TestSell(MutationExecutorTestBase):
    def test_oversell_is_rejected(self):
        preview = self.ex.preview("sell_partial", {"symbol": "ETH", "amount": 5})
        self.assertEqual(preview.error, "Cannot sell 5, only 2 available")

    def test_sell_percent_at_market(self):
        _, result = self.run_tool("sell_partial", {"symbol": "eth", "percent": 50})
        self.assertEqual(result.summary, "Sold 1 ETH at $2,000.00")
        self.assertEqual(self.state.get_position("p-eth").amount, 1)

    def test_sell_all_removes_position_and_records_pnl(self):
        _, result = self.run_tool("sell_all", {"symbol": "BTC", "price": 70000})
        self.assertEqual(result.summary, "Sold all 1 BTC at $70,000.00")
        self.assertNotIn("p-btc", [p.id for p in self.state.positions])
        self.assertEqual(self.state.transactions[0].realized_pnl, 40000)

    def test_unknown_symbol(self):
        preview = self.ex.preview("sell_all", {"symbol": "DOGE"})
        self.assertEqual(preview.error, 'No position found for "DOGE"')

    def test_stale_preview_leaves_state_unchanged(self):
        preview = self.ex.preview("sell_partial", {"symbol": "ETH", "amount": 2})
        self.state.update_position("p-eth", {"amount": 1})
        result = self.ex.execute("sell_partial", preview.resolved_args)
        self.assertFalse(result.success)
        self.assertEqual(self.state.get_position("p-eth").amount, 1)
        self.assertEqual(self.state.transactions, [])


class TestPositionEdits(MutationExecutorTestBase):
    def test_remove_position(self):
        _, result = self.run_tool("remove_position", {"symbol": "btc"})
        self.assertEqual(result.summary, "Removed BTC position")
        self.assertEqual(self.state.transactions, [])

    def test_update_position(self):
        preview, result = self.run_tool("update_position", {"symbol": "BTC", "costBasis": 25000, "date": "yesterday"})
        self.assertEqual(preview.resolved_args["purchase_date"], "2025-06-29")
        self.assertEqual(result.summary, "Updated BTC position")
        self.assertEqual(self.state.get_position("p-btc").cost_basis, 25000)

    def test_update_position_without_fields(self):
        preview = self.ex.preview("update_position", {"symbol": "BTC"})
        self.assertEqual(preview.error, "No fields to update")

    def test_set_price(self):
        preview, result = self.run_tool("set_price", {"symbol": "btc", "price": 65000, "note": "OTC"})
        self.assertEqual(preview.changes[1].before, "$60,000.00")
        self.assertEqual(result.summary, "Set custom price for BTC: $65,000.00")
        self.assertEqual(self.state.custom_prices["btc"].price, 65000)
        self.assertEqual(self.ex.current_price("BTC"), 65000)


class TestCash(MutationExecutorTestBase):
    def test_add_cash(self):
        preview, result = self.run_tool("add_cash", {"currency": "usd", "amount": "2.5k"})
        self.assertEqual(preview.summary, "Add 2,500 USD cash")
        self.assertEqual(result.summary, "Added 2,500 USD cash")
        cash = [p for p in self.state.positions if p.symbol.startswith("CASH_USD_")]
        self.assertEqual(len(cash), 1)
        self.assertEqual(cash[0].amount, 2500)

    def test_update_cash_rejects_non_positive(self):
        for amount in (0, -5):
            preview = self.ex.preview("update_cash", {"currency": "EUR", "amount": amount})
            self.assertEqual(preview.error, "Amount must be greater than zero")

    def test_ambiguous_account_lists_candidates(self):
        preview = self.ex.preview("update_cash", {"currency": "EUR", "amount": 10, "account": "rev"})
        self.assertEqual(preview.error, 'Multiple accounts match "rev": Revolut, Revolut Business')
        self.assertEqual([c.id for c in preview.candidates], ["acc-rev", "acc-revb"])

    def test_exact_name_breaks_tie(self):
        preview, result = self.run_tool("update_cash", {"currency": "eur", "amount": 1500, "account": "revolut"})
        self.assertEqual(preview.summary, "Update Revolut (EUR) balance to 1,500")
        self.assertEqual(result.summary, "Updated CASH_EUR_1 balance to 1,500")
        self.assertEqual(self.state.get_position("p-eur").amount, 1500)

    def test_cash_role_skips_exchange_accounts(self):
        res = self.ex.resolve_account("binance", "cash")
        self.assertIsNone(res.account)
        self.assertEqual(self.ex.resolve_account("binance").account.id, "acc-bin")


class TestWallets(MutationExecutorTestBase):
    def test_duplicate_wallet(self):
        preview = self.ex.preview("add_wallet", {"address": WALLET_ADDR.lower()})
        self.assertEqual(preview.error, "Wallet already connected")

    def test_add_wallet(self):
        addr = "0x1111111111111111111111111111111111111111"
        preview, result = self.run_tool("add_wallet", {"address": addr, "chains": "eth, arb"})
        self.assertEqual(preview.summary, "Connect wallet 0x1111...1111")
        self.assertEqual(result.summary, "Connected wallet Wallet 0x1111")
        added = self.state.wallet_accounts()[-1]
        self.assertEqual(added.connection.chains, ["eth", "arb"])

    def test_remove_wallet_drops_linked_positions(self):
        _, result = self.run_tool("remove_wallet", {"identifier": "main"})
        self.assertEqual(result.summary, "Wallet removed")
        self.assertEqual(self.state.wallet_accounts(), [])
        self.assertNotIn("p-eth", [p.id for p in self.state.positions])

    def test_remove_unknown_wallet(self):
        preview = self.ex.preview("remove_wallet", {"identifier": "0xdead"})
        self.assertEqual(preview.error, 'No wallet found matching "0xdead"')


class TestSettings(MutationExecutorTestBase):
    def test_toggles(self):
        preview, result = self.run_tool("toggle_hide_balances", {})
        self.assertEqual(preview.summary, "Hide balances")
        self.assertEqual(result.summary, "Balances hidden")
        _, result = self.run_tool("toggle_hide_balances", None)
        self.assertEqual(result.summary, "Balances visible")
        _, result = self.run_tool("toggle_hide_dust", {})
        self.assertEqual(result.summary, "Dust positions hidden")
        self.assertTrue(self.state.hide_dust)

    def test_risk_free_rate(self):
        preview, result = self.run_tool("set_risk_free_rate", {"rate": "4.5%"})
        self.assertEqual(preview.summary, "Set risk-free rate to 4.5%")
        self.assertEqual(result.summary, "Risk-free rate set to 4.5%")
        self.assertAlmostEqual(self.state.risk_free_rate, 0.045)

    def test_risk_free_rate_out_of_range(self):
        preview = self.ex.preview("set_risk_free_rate", {"rate": 150})
        self.assertEqual(preview.error, "Risk-free rate must be between 0% and 100%")


class TestDispatch(MutationExecutorTestBase):
    def test_error_marker_short_circuits_execute(self):
        result = self.ex.execute("sell_all", {"_error": "boom"})
        self.assertFalse(result.success)
        self.assertEqual(result.error, "boom")
        self.assertEqual(len(self.state.positions), 3)

    def test_unknown_tool(self):
        self.assertEqual(self.ex.preview("navigate", {}).error, 'No handler for mutation tool "navigate"')
        self.assertFalse(self.ex.execute("frobnicate", {}).success)

    def test_missing_position_on_execute(self):
        result = self.ex.execute("remove_position", {"matched_position_id": "gone"})
        self.assertEqual(result.error, "Position not found")

    def test_resolve_date(self):
        self.assertEqual(self.ex.resolve_date(None), "2025-06-30")
        self.assertEqual(self.ex.resolve_date("Yesterday"), "2025-06-29")
        self.assertEqual(self.ex.resolve_date("2030-01-01"), "2025-06-30")
        self.assertEqual(self.ex.resolve_date("2024-02-29"), "2024-02-29")
        self.assertEqual(self.ex.resolve_date("next week"), "2025-06-30")


if __name__ == "__main__":
    unittest.main()
