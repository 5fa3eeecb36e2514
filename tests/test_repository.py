import os
import threading
import time
import unittest
from unittest.mock import patch

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from database import Base
from schemas.portfolio import (
    Account,
    AccountConnection,
    NetWorthSnapshot,
    Position,
    PriceData,
    Transaction,
)
from services.portfolio_repository import (
    commit_mutation,
    get_cached_state,
    load_state,
    reset_cached_state,
    save_state,
)
from services.portfolio_store import PortfolioState


class TestRepository(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine(
            "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
        )
        Base.metadata.create_all(bind=self.engine)
        self.Session = sessionmaker(bind=self.engine, autoflush=False)
        reset_cached_state()

    def tearDown(self):
        reset_cached_state()
        self.engine.dispose()

    def _state(self):
        state = PortfolioState(
            positions=[
                Position(id="p1", symbol="BTC", amount=0.5, cost_basis=20000, purchase_date="2025-01-10"),
                Position(id="p2", symbol="ETH", amount=3, account_id="w1", chain="eth"),
            ],
            accounts=[
                Account(
                    id="w1", name="Main",
                    connection=AccountConnection(data_source="debank", address="0xabc", chains=["eth", "arb"]),
                ),
            ],
            prices={"btc": PriceData(symbol="btc", price=60000)},
            transactions=[
                Transaction(id="t2", type="buy", symbol="BTC", amount=0.2, position_id="p1", date="2025-02-01"),
                Transaction(id="t1", type="buy", symbol="BTC", amount=0.3, position_id="p1", date="2025-01-10"),
            ],
            snapshots=[
                NetWorthSnapshot(date="2025-01-02", total_value=2),
                NetWorthSnapshot(date="2025-01-01", total_value=1),
            ],
            hide_dust=True,
            risk_free_rate=0.03,
        )
        state.set_custom_price("HOUSE", 350000, "appraisal")
        state.set_fx_rates({"EUR": 1.15})
        return state

    def test_round_trip(self):
        with self.Session() as db:
            save_state(db, self._state())
        with self.Session() as db:
            loaded = load_state(db)

        self.assertEqual({p.id for p in loaded.positions}, {"p1", "p2"})
        btc = loaded.get_position("p1")
        self.assertEqual(btc.cost_basis, 20000)
        self.assertEqual(btc.purchase_date, "2025-01-10")
        self.assertEqual(loaded.get_account("w1").connection.chains, ["eth", "arb"])
        self.assertEqual([t.id for t in loaded.transactions], ["t1", "t2"])
        self.assertEqual([s.date for s in loaded.snapshots], ["2025-01-01", "2025-01-02"])
        self.assertEqual(loaded.custom_prices["house"].note, "appraisal")
        self.assertEqual(loaded.fx_rates["EUR"], 1.15)
        self.assertTrue(loaded.hide_dust)
        self.assertFalse(loaded.hide_balances)
        self.assertEqual(loaded.risk_free_rate, 0.03)
        # live prices are not stored
        self.assertEqual(loaded.prices, {})

    def test_save_replaces_previous_rows(self):
        state = self._state()
        with self.Session() as db:
            save_state(db, state)
        state.remove_position("p2")
        state.remove_custom_price("house")
        with self.Session() as db:
            save_state(db, state)
            loaded = load_state(db)
        self.assertEqual([p.id for p in loaded.positions], ["p1"])
        self.assertEqual(loaded.custom_prices, {})

    def test_empty_database_gives_defaults(self):
        with self.Session() as db:
            loaded = load_state(db)
        self.assertEqual(loaded.positions, [])
        self.assertEqual(loaded.risk_free_rate, 0.05)
        self.assertEqual(loaded.fx_rates["USD"], 1.0)

    def test_cached_state_loads_once(self):
        with self.Session() as db:
            first = get_cached_state(db)
            first.add_position(Position(symbol="SOL", amount=1))
            self.assertIs(get_cached_state(db), first)
        reset_cached_state()
        with self.Session() as db:
            self.assertEqual(get_cached_state(db).positions, [])


class TestCommitMutation(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine(
            "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
        )
        Base.metadata.create_all(bind=self.engine)
        self.Session = sessionmaker(bind=self.engine, autoflush=False)
        reset_cached_state()
        with self.Session() as db:
            save_state(db, PortfolioState(positions=[Position(id="p1", symbol="BTC", amount=1)]))

    def tearDown(self):
        reset_cached_state()
        self.engine.dispose()

    def test_commit_swaps_in_saved_state(self):
        with self.Session() as db:
            before = get_cached_state(db)
            commit_mutation(db, lambda s: s.add_position(Position(id="p2", symbol="ETH", amount=2)))
            after = get_cached_state(db)
            self.assertIsNot(before, after)
            self.assertEqual(len(before.positions), 1)
            self.assertEqual({p.id for p in after.positions}, {"p1", "p2"})
            self.assertEqual(len(load_state(db).positions), 2)

    def test_failed_commit_keeps_cache_and_database(self):
        with self.Session() as db:
            get_cached_state(db).set_prices({"btc": PriceData(symbol="btc", price=50000)})
            with patch.object(db, "commit", side_effect=SQLAlchemyError("disk full")):
                with self.assertRaises(SQLAlchemyError):
                    commit_mutation(db, lambda s: s.update_position("p1", {"amount": 5}))

            cached = get_cached_state(db)
            self.assertEqual(cached.get_position("p1").amount, 1)
            self.assertEqual(cached.prices["btc"].price, 50000)
            self.assertEqual(load_state(db).get_position("p1").amount, 1)

    def test_raising_mutation_changes_nothing(self):
        def half_done(state):
            state.update_position("p1", {"amount": 9})
            state.remove_position("missing")

        with self.Session() as db:
            with self.assertRaises(KeyError):
                commit_mutation(db, half_done)
            self.assertEqual(get_cached_state(db).get_position("p1").amount, 1)

    def test_rejected_result_is_dropped(self):
        def add_then_refuse(state):
            state.add_position(Position(id="p2", symbol="ETH", amount=2))
            return False

        with self.Session() as db:
            self.assertFalse(commit_mutation(db, add_then_refuse, accept=bool))
            self.assertEqual([p.id for p in get_cached_state(db).positions], ["p1"])
            self.assertEqual(len(load_state(db).positions), 1)

    def test_unpersisted_write_stays_in_memory(self):
        with self.Session() as db:
            commit_mutation(db, lambda s: s.set_prices({"btc": PriceData(symbol="btc", price=1)}), persist=False)
            self.assertIn("btc", get_cached_state(db).prices)
            with patch("services.portfolio_repository.save_state") as save:
                commit_mutation(db, lambda s: s.set_prices({"eth": PriceData(symbol="eth", price=2)}), persist=False)
            save.assert_not_called()

    def test_concurrent_writers_do_not_lose_updates(self):
        def bump(state):
            amount = state.get_position("p1").amount
            time.sleep(0.001)
            state.update_position("p1", {"amount": amount + 1})

        with self.Session() as db:
            get_cached_state(db)

            def worker():
                for _ in range(25):
                    commit_mutation(db, bump, persist=False)

            threads = [threading.Thread(target=worker) for _ in range(4)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()
            self.assertEqual(get_cached_state(db).get_position("p1").amount, 101)


if __name__ == "__main__":
    unittest.main()
