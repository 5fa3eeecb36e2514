import unittest

from pydantic import ValidationError

from services.actions.tool_registry import (
    ALL_TOOL_NAMES,
    MUTATION_TOOL_NAMES,
    NoArgs,
    QUERY_TOOL_NAMES,
    format_validation_error,
    get_tool_by_id,
    get_tools_by_type,
    to_ollama_tools,
    validate_tool_args,
)


class ToolArgsTests(unittest.TestCase):
    def test_buy_args_coerce_strings_and_aliases(self):
        args = validate_tool_args(
            "buy_position", {"symbol": " $btc ", "totalCost": "$5k", "assetType": "Stock", "amount": "0.5"}
        )
        self.assertEqual(args.symbol, "BTC")
        self.assertEqual(args.total_cost, 5000)
        self.assertEqual(args.amount, 0.5)
        self.assertEqual(args.asset_type, "stock")

    def test_unknown_keys_are_ignored(self):
        args = validate_tool_args("remove_position", {"symbol": "doge", "reason": "rug"})
        self.assertEqual(args.symbol, "DOGE")

    def test_bad_number_is_a_validation_error(self):
        with self.assertRaises(ValidationError):
            validate_tool_args("buy_position", {"symbol": "BTC", "amount": "lots"})
        with self.assertRaises(ValidationError):
            validate_tool_args("buy_position", {"symbol": "BTC", "amount": True})

    def test_percent(self):
        self.assertEqual(validate_tool_args("sell_partial", {"symbol": "ETH", "percent": "50%"}).percent, 50)
        with self.assertRaises(ValidationError):
            validate_tool_args("sell_partial", {"symbol": "ETH", "percent": 150})
        with self.assertRaises(ValidationError):
            validate_tool_args("sell_partial", {"symbol": "ETH", "percent": 0})

    def test_cash_args(self):
        args = validate_tool_args("add_cash", {"currency": "eur", "amount": "1,500"})
        self.assertEqual(args.currency, "EUR")
        self.assertEqual(args.amount, 1500)
        with self.assertRaises(ValidationError):
            validate_tool_args("update_cash", {"currency": "EUR"})
        with self.assertRaises(ValidationError):
            validate_tool_args("add_cash", {"currency": "E", "amount": 1})

    def test_set_price_requires_price(self):
        with self.assertRaises(ValidationError):
            validate_tool_args("set_price", {"symbol": "BTC"})

    def test_wallet_chains(self):
        self.assertEqual(validate_tool_args("add_wallet", {"address": "0xabc"}).chains, ["eth"])
        args = validate_tool_args("add_wallet", {"address": "0xabc", "chains": "ETH, arb,"})
        self.assertEqual(args.chains, ["eth", "arb"])
        with self.assertRaises(ValidationError):
            validate_tool_args("add_wallet", {"address": "  "})

    def test_risk_free_rate(self):
        self.assertAlmostEqual(validate_tool_args("set_risk_free_rate", {"rate": "4.5%"}).rate, 0.045)
        self.assertAlmostEqual(validate_tool_args("set_risk_free_rate", {"rate": 4.5}).rate, 0.045)
        self.assertAlmostEqual(validate_tool_args("set_risk_free_rate", {"rate": 0.03}).rate, 0.03)

    def test_navigate(self):
        self.assertEqual(validate_tool_args("navigate", {"page": "Performance"}).page, "performance")
        with self.assertRaises(ValidationError):
            validate_tool_args("navigate", {"page": "casino"})

    def test_query_and_unknown_tools(self):
        self.assertIsInstance(validate_tool_args("query_net_worth", {"x": 1}), NoArgs)
        with self.assertRaises(KeyError):
            validate_tool_args("launch_rocket", {})

    def test_format_validation_error(self):
        try:
            validate_tool_args("set_price", {"symbol": "BTC"})
        except ValidationError as exc:
            msg = format_validation_error(exc)
        self.assertTrue(msg.startswith("Invalid tool arguments: "))
        self.assertIn("price", msg)


class ToolRegistryTests(unittest.TestCase):
    def test_name_sets(self):
        self.assertEqual(len(MUTATION_TOOL_NAMES), 13)
        self.assertEqual(len(QUERY_TOOL_NAMES), 15)
        self.assertIn("navigate", ALL_TOOL_NAMES)
        self.assertTrue(MUTATION_TOOL_NAMES.isdisjoint(QUERY_TOOL_NAMES))

    def test_lookup(self):
        self.assertEqual(get_tool_by_id("sell_all").type, "mutation")
        self.assertIsNone(get_tool_by_id("nope"))
        self.assertEqual([t.id for t in get_tools_by_type("navigation")], ["navigate"])

    def test_ollama_schema_is_filtered(self):
        tools = to_ollama_tools(["buy_position", "navigate"])
        self.assertEqual([t["function"]["name"] for t in tools], ["buy_position", "navigate"])
        buy = tools[0]["function"]
        self.assertEqual(buy["parameters"]["required"], ["symbol"])
        self.assertIn("totalCost", buy["parameters"]["properties"])
        self.assertIn("Examples:", buy["description"])
        nav = tools[1]["function"]["parameters"]["properties"]["page"]
        self.assertIn("settings", nav["enum"])
        self.assertEqual(len(to_ollama_tools()), len(ALL_TOOL_NAMES))


if __name__ == "__main__":
    unittest.main()
