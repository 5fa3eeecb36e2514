import os
import unittest
from unittest.mock import patch

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from fastapi.testclient import TestClient
from sqlalchemy.exc import SQLAlchemyError

from database import SessionLocal
from main import app
from routers.command_routes import get_parser
from routers.positions_routes import get_fx_service
from services.actions.intent_parser import RuleBasedIntentParser
from services.portfolio_repository import reset_cached_state, save_state
from services.portfolio_store import PortfolioState


class _FakeFx:
    async def get_rates(self):
        return {"USD": 1.0, "EUR": 1.2}


class RouteTestBase(unittest.TestCase):
    def setUp(self):
        reset_cached_state()
        with SessionLocal() as db:
            save_state(db, PortfolioState())
        app.dependency_overrides[get_parser] = RuleBasedIntentParser
        app.dependency_overrides[get_fx_service] = _FakeFx
        self.client = TestClient(app)

    def tearDown(self):
        app.dependency_overrides.clear()
        reset_cached_state()

    def seed_btc(self):
        r = self.client.post("/api/positions", json={"id": "p1", "symbol": "BTC", "name": "Bitcoin", "amount": 2})
        self.assertEqual(r.status_code, 201)
        r = self.client.put("/api/prices", json={"btc": {"symbol": "btc", "price": 50000}})
        self.assertEqual(r.json(), {"count": 1})


class TestPositionRoutes(RouteTestBase):
    def test_health(self):
        self.assertEqual(self.client.get("/health").json(), {"status": "ok"})

    def test_position_crud(self):
        self.seed_btc()
        self.assertEqual(self.client.post("/api/positions", json={"id": "p1", "symbol": "ETH"}).status_code, 409)

        r = self.client.patch("/api/positions/p1", json={"amount": 3})
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["amount"], 3)
        self.assertEqual(self.client.patch("/api/positions/nope", json={"amount": 1}).status_code, 404)
        self.assertEqual(self.client.patch("/api/positions/p1", json={"type": "spaceship"}).status_code, 422)

        r = self.client.put("/api/positions/p1/asset-class", json={"asset_class": "metals"})
        self.assertEqual(r.json()["asset_class_override"], "metals")

        r = self.client.delete("/api/positions/p1")
        self.assertEqual(r.json(), {"message": "Position deleted successfully"})
        self.assertEqual(self.client.get("/api/positions").json(), [])

    def test_positions_survive_reload(self):
        self.seed_btc()
        reset_cached_state()
        rows = self.client.get("/api/positions").json()
        self.assertEqual([p["symbol"] for p in rows], ["BTC"])

    def test_accounts(self):
        r = self.client.post("/api/accounts", json={"id": "a1", "name": "Revolut"})
        self.assertEqual(r.status_code, 201)
        r = self.client.patch("/api/accounts/a1", json={"name": "Revolut EUR"})
        self.assertEqual(r.json()["name"], "Revolut EUR")
        self.assertEqual(self.client.delete("/api/accounts/zzz").status_code, 404)
        self.assertEqual(self.client.delete("/api/accounts/a1").status_code, 200)

    def test_custom_prices(self):
        self.seed_btc()
        r = self.client.put("/api/custom-prices/BTC", json={"price": 40000, "note": "otc"})
        self.assertEqual(r.status_code, 200)
        summary = self.client.get("/api/portfolio/summary").json()
        self.assertAlmostEqual(summary["total_value"], 80000)
        self.assertEqual(self.client.put("/api/custom-prices/BTC", json={"price": 0}).status_code, 422)
        self.assertEqual(self.client.delete("/api/custom-prices/btc").status_code, 200)
        self.assertEqual(self.client.delete("/api/custom-prices/btc").status_code, 404)

    def test_settings(self):
        r = self.client.put("/api/settings", json={"hide_dust": True, "risk_free_rate": 0.04})
        self.assertEqual(r.json(), {"hide_balances": False, "hide_dust": True, "risk_free_rate": 0.04})
        self.assertEqual(self.client.put("/api/settings", json={"risk_free_rate": 2}).status_code, 422)
        self.assertTrue(self.client.get("/api/settings").json()["hide_dust"])

    def test_fx_refresh(self):
        r = self.client.post("/api/fx/refresh")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["EUR"], 1.2)


class TestPortfolioRoutes(RouteTestBase):
    def test_summary_and_assets(self):
        self.seed_btc()
        summary = self.client.get("/api/portfolio/summary").json()
        self.assertAlmostEqual(summary["total_value"], 100000)
        assets = self.client.get("/api/portfolio/assets").json()
        self.assertEqual(assets[0]["symbol"], "BTC")
        self.assertAlmostEqual(assets[0]["allocation"], 100.0)
        self.assertEqual(self.client.get("/api/portfolio/assets?sort=colour").status_code, 422)

    def test_asset_detail(self):
        self.seed_btc()
        r = self.client.get("/api/portfolio/assets/btc")
        self.assertEqual(r.json()["summary"]["total_value"], 100000)
        self.assertEqual(self.client.get("/api/portfolio/assets/doge").status_code, 404)

    def test_breakdown_endpoints(self):
        self.seed_btc()
        for path in ("exposure", "allocation", "risk", "perps", "custody", "chains",
                     "crypto-metrics", "cash", "equities", "assets/aggregated"):
            r = self.client.get(f"/api/portfolio/{path}")
            self.assertEqual(r.status_code, 200, path)
        rows = self.client.get("/api/portfolio/allocation?by=type").json()
        self.assertEqual(rows, [{"key": "crypto", "value": 100000.0, "weight": 100.0}])

    def test_snapshots_and_performance(self):
        self.seed_btc()
        first = self.client.post("/api/portfolio/snapshots").json()
        self.assertAlmostEqual(first["total_value"], 100000)
        again = self.client.post("/api/portfolio/snapshots").json()
        self.assertEqual(again["id"], first["id"])
        self.assertEqual(len(self.client.get("/api/portfolio/snapshots").json()), 1)

        perf = self.client.get("/api/portfolio/performance?period=all").json()
        self.assertEqual(perf["summary"]["snapshot_count"], 1)
        self.assertIn("metrics", perf)


class TestCommandRoutes(RouteTestBase):
    def test_tools(self):
        tools = {t["id"]: t for t in self.client.get("/api/command/tools").json()}
        self.assertTrue(tools["remove_wallet"]["requires_confirmation"])
        self.assertFalse(tools["buy_position"]["requires_confirmation"])
        self.assertEqual(tools["navigate"]["type"], "navigation")

    def test_classify(self):
        r = self.client.post("/api/command/classify", json={"text": "sold all btc"})
        self.assertEqual(r.json()["tool_ids"], ["sell_all"])

    def test_preview_then_execute(self):
        preview = self.client.post(
            "/api/command/preview",
            json={"tool": "buy_position", "args": {"symbol": "eth", "amount": 1, "price": 2000}},
        ).json()
        self.assertEqual(preview["summary"], "Buy 1 ETH at $2,000.00")
        self.assertIsNone(preview["error"])

        result = self.client.post(
            "/api/command/execute",
            json={"tool": "buy_position", "resolved_args": preview["resolved_args"]},
        ).json()
        self.assertEqual(result, {"success": True, "summary": "Bought 1 ETH at $2,000.00", "error": None})

        reset_cached_state()
        symbols = [p["symbol"] for p in self.client.get("/api/positions").json()]
        self.assertEqual(symbols, ["ETH"])

    def test_error_preview_cannot_execute(self):
        preview = self.client.post("/api/command/preview", json={"tool": "sell_all", "args": {"symbol": "DOGE"}}).json()
        self.assertEqual(preview["error"], 'No position found for "DOGE"')
        result = self.client.post(
            "/api/command/execute", json={"tool": "sell_all", "resolved_args": preview["resolved_args"]}
        ).json()
        self.assertFalse(result["success"])

    def test_failed_save_leaves_state_untouched(self):
        self.seed_btc()
        args = {"symbol": "eth", "amount": 1, "price": 2000}
        preview = self.client.post("/api/command/preview", json={"tool": "buy_position", "args": args}).json()
        with patch("services.portfolio_repository.save_state", side_effect=SQLAlchemyError("disk full")):
            with self.assertRaises(SQLAlchemyError):
                self.client.post(
                    "/api/command/execute",
                    json={"tool": "buy_position", "resolved_args": preview["resolved_args"]},
                )

        symbols = [p["symbol"] for p in self.client.get("/api/positions").json()]
        self.assertEqual(symbols, ["BTC"])
        # live prices survive the failed write
        summary = self.client.get("/api/portfolio/summary").json()
        self.assertAlmostEqual(summary["total_value"], 100000)

    def test_parse_attaches_preview(self):
        out = self.client.post("/api/command/parse", json={"text": "hide dust"}).json()
        self.assertEqual(out["tool_call"]["tool"], "toggle_hide_dust")
        self.assertEqual(out["preview"]["summary"], "Hide dust positions")

        out = self.client.post("/api/command/parse", json={"text": "what is my net worth"}).json()
        self.assertEqual(out["tool_call"]["tool"], "query_net_worth")
        self.assertIsNone(out["preview"])

        out = self.client.post("/api/command/parse", json={"text": "hello there"}).json()
        self.assertIsNone(out["tool_call"])


if __name__ == "__main__":
    unittest.main()
