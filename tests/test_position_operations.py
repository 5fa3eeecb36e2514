import unittest

from schemas.actions import ParsedPositionAction
from schemas.portfolio import Position
from services.actions.position_operations import execute_buy, execute_full_sell, execute_partial_sell


class TestSells(unittest.TestCase):
    def setUp(self):
        self.pos = Position(id="p1", symbol="ETH", name="Ethereum", amount=2, cost_basis=400)

    def test_partial_sell_is_proportional(self):
        res = execute_partial_sell(self.pos, 1, 300, "2025-01-15")
        tx = res.transaction
        self.assertEqual(tx.type, "sell")
        self.assertEqual(tx.cost_basis_at_execution, 200)
        self.assertEqual(tx.realized_pnl, 100)
        self.assertEqual(tx.total_value, 300)
        self.assertEqual(tx.position_id, "p1")
        self.assertEqual(res.updated_fields, {"amount": 1, "cost_basis": 200})
        self.assertIsNone(res.removed_position_id)

    def test_partial_sell_of_everything_removes(self):
        res = execute_partial_sell(self.pos, 2, 300, "2025-01-15")
        self.assertEqual(res.removed_position_id, "p1")
        self.assertEqual(res.updated_fields, {})

    def test_oversell_rejected(self):
        with self.assertRaises(ValueError) as ctx:
            execute_partial_sell(self.pos, 3, 300, "2025-01-15")
        self.assertIn("only 2", str(ctx.exception))

    def test_zero_sell_rejected(self):
        with self.assertRaises(ValueError):
            execute_partial_sell(self.pos, 0, 300, "2025-01-15")

    def test_without_cost_basis(self):
        pos = Position(id="p2", symbol="SOL", amount=10)
        res = execute_partial_sell(pos, 4, 20, "2025-01-15")
        self.assertIsNone(res.transaction.cost_basis_at_execution)
        self.assertIsNone(res.transaction.realized_pnl)
        self.assertIsNone(res.updated_fields["cost_basis"])

    def test_full_sell(self):
        pos = Position(id="p3", symbol="BTC", amount=0.5, cost_basis=500)
        res = execute_full_sell(pos, 1200, "2025-02-01", notes="exit")
        self.assertEqual(res.removed_position_id, "p3")
        self.assertEqual(res.transaction.total_value, 600)
        self.assertEqual(res.transaction.realized_pnl, 100)
        self.assertEqual(res.transaction.notes, "exit")


class TestBuys(unittest.TestCase):
    def test_buy_new_position(self):
        action = ParsedPositionAction(action="buy", symbol="AAPL", asset_type="stock", amount=10, price_per_unit=150)
        res = execute_buy(None, action, "2025-03-01")
        p = res.new_position
        self.assertIsNotNone(p)
        self.assertEqual(p.symbol, "AAPL")
        self.assertEqual(p.cost_basis, 1500)
        self.assertEqual(p.asset_class, "equity")
        self.assertEqual(p.purchase_date, "2025-03-01")
        self.assertEqual(res.transaction.position_id, p.id)

    def test_buy_adds_to_existing(self):
        existing = Position(id="p1", symbol="ETH", amount=1, cost_basis=2000, purchase_date="2024-01-01")
        action = ParsedPositionAction(action="buy", symbol="ETH", amount=0.5, price_per_unit=3000)
        res = execute_buy(existing, action, "2025-03-01")
        self.assertIsNone(res.new_position)
        self.assertEqual(res.updated_fields["amount"], 1.5)
        self.assertEqual(res.updated_fields["cost_basis"], 3500)
        self.assertEqual(res.updated_fields["purchase_date"], "2024-01-01")

    def test_total_cost_wins_over_price(self):
        action = ParsedPositionAction(action="buy", symbol="BTC", amount=0.1, price_per_unit=50000, total_cost=5100)
        res = execute_buy(None, action, "2025-03-01")
        self.assertEqual(res.transaction.total_value, 5100)

    def test_zero_amount_rejected(self):
        with self.assertRaises(ValueError):
            execute_buy(None, ParsedPositionAction(action="buy", symbol="BTC", amount=0), "2025-03-01")


if __name__ == "__main__":
    unittest.main()
