# services/category_service.py
"""
Static asset taxonomy.

Three levels:
  - main category: crypto / equities / metals / cash / other (+ explicit unclassified)
  - sub category inside a main category (btc, eth, stablecoins, stocks, gold, ...)
  - exposure category: finer crypto buckets used by exposure charts

Everything here is a pure table lookup. New symbols need a table update.
"""
from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple


class MainCategory(str, Enum):
    CRYPTO = "crypto"
    EQUITIES = "equities"
    METALS = "metals"
    CASH = "cash"
    OTHER = "other"
    UNCLASSIFIED = "unclassified"


class SubCategory(str, Enum):
    BTC = "btc"
    ETH = "eth"
    SOL = "sol"
    STABLECOINS = "stablecoins"
    TOKENS = "tokens"
    PERPS = "perps"
    STOCKS = "stocks"
    ETFS = "etfs"
    GOLD = "gold"
    SILVER = "silver"
    PLATINUM = "platinum"
    PALLADIUM = "palladium"
    MINERS = "miners"
    NONE = "none"


class ExposureCategory(str, Enum):
    STABLECOINS = "stablecoins"
    BTC = "btc"
    ETH = "eth"
    SOL = "sol"
    DEFI = "defi"
    RWA = "rwa"
    PRIVACY = "privacy"
    AI = "ai"
    MEME = "meme"
    TOKENS = "tokens"


USD_STABLECOINS: FrozenSet[str] = frozenset({
    "usd", "usdt", "usdc", "dai", "busd", "tusd", "usdp", "usdd", "frax", "lusd",
    "gusd", "susd", "cusd", "ust", "mim", "fei", "ousd", "dola", "rai",
    "pyusd", "usdm", "gho", "crvusd", "mkusd", "usds", "dusd", "husd", "xusd",
    "usde", "susde", "wusde", "usdai", "usd0", "usd0++", "fdusd", "usdb", "usdx",
    "usdy", "usdz", "zusd", "musd", "pusd", "ausd", "rusd", "cgusd",
    "wxdai", "xdai", "sdai", "susds", "stusdt",
})

EUR_STABLECOINS: FrozenSet[str] = frozenset({
    "euroc", "eurt", "ceur", "ageur", "jeur", "eur", "eurc", "eure", "eura", "steur", "seur",
})

GBP_STABLECOINS: FrozenSet[str] = frozenset({"gbpt", "gbpc"})

STABLECOINS: FrozenSet[str] = USD_STABLECOINS | EUR_STABLECOINS | GBP_STABLECOINS

BTC_LIKE: FrozenSet[str] = frozenset({
    "btc", "wbtc", "btcb", "renbtc", "hbtc", "sbtc", "tbtc", "pbtc",
    "obtc", "fbtc", "mbtc", "ibtc", "bbtc", "ebtc", "xbtc", "rbtc",
    "btc.b", "cbbtc", "lbtc", "btcpx",
})

ETH_LIKE: FrozenSet[str] = frozenset({
    "eth", "weth", "steth", "wsteth", "reth", "cbeth", "seth", "meth",
    "frxeth", "sfrxeth", "oeth", "ankreth", "seth2", "reth2", "eeth", "weeth",
    "ezeth", "rseth", "pufeth", "sweth", "ethx", "unsteth",
})

SOL_LIKE: FrozenSet[str] = frozenset({
    "sol", "wsol", "msol", "jitosol", "bsol", "stsol", "scnsol", "lsol",
    "hsol", "csol", "dsol", "vsol", "risksol", "laine", "bonksol", "jupsol",
    "inf", "phsol", "jsol",
})

FIAT_CURRENCIES: FrozenSet[str] = frozenset({
    "usd", "eur", "gbp", "chf", "jpy", "cny", "cad", "aud", "nzd",
    "hkd", "sgd", "sek", "nok", "dkk", "krw", "inr", "brl", "mxn",
    "zar", "aed", "thb", "pln", "czk", "ils", "php", "idr", "myr",
    "try", "rub", "huf", "ron", "bgn", "hrk", "isk", "twd", "vnd",
})

PERP_PROTOCOLS: FrozenSet[str] = frozenset({
    "hyperliquid", "lighter", "ethereal", "vertex", "drift",
    "hyperliquid perp", "hyperliquid perpetual",
    "lighter exchange", "ethereal exchange",
    "vertex protocol", "vertex exchange",
    "drift protocol", "drift exchange",
})
_PERP_PROTOCOL_ROOTS: Tuple[str, ...] = ("hyperliquid", "lighter", "ethereal", "vertex", "drift")

DEFI_TOKENS: FrozenSet[str] = frozenset({
    # dexes / amms
    "uni", "uniswap", "sushi", "cake", "crv", "bal", "joe", "velo", "aero", "sky",
    "gmx", "dydx", "perp", "rune", "osmo", "ray", "orca", "jup", "jupiter",
    "1inch", "dodo", "bancor", "bnt", "kyber", "knc", "camelot", "thena",
    "velodrome", "aerodrome", "quickswap",
    # lending
    "aave", "comp", "compound", "mkr", "maker", "ldo", "lido", "rpl",
    "morpho", "euler", "radiant", "rdnt", "benqi", "qi", "venus", "xvs",
    "fxs", "spell", "alcx", "liquity", "lqty",
    # yield
    "yfi", "yearn", "cvx", "convex", "btrfly", "ohm", "pendle", "rbn", "dpx",
    "jones", "umami", "beefy", "bifi", "sdt",
    # derivatives, bridges, infra
    "snx", "synthetix", "lyra", "premia", "hegic",
    "stargate", "stg", "hop", "across", "acx", "synapse", "syn", "celr",
    "wormhole", "lz", "inst", "gns", "kwenta", "api3", "band", "uma", "ren",
    "eigen", "ethfi", "ena", "ethena", "drv", "lit", "resolv", "angle",
    # l2 / l1 governance
    "arb", "op", "strk", "matic", "pol", "zk", "manta", "scr", "linea",
    "blast", "metis", "mnt", "avax", "ftm", "one", "celo", "glmr", "kava",
    "atom", "dot", "ksm", "link", "pyth",
})

RWA_TOKENS: FrozenSet[str] = frozenset({
    "ondo", "maple", "mpl", "goldfinch", "gfi", "centrifuge", "cfg", "syrup",
    "clearpool", "cpool", "truefi", "tru", "credix",
    "paxg", "xaut", "tgold", "dgld", "pmgt", "cache", "cgo",
    "rwa", "realt", "landshare", "propy", "pro", "parcl", "lofty",
    "backed", "buidl", "superstate", "matrixdock", "rsv", "mountain",
})

PRIVACY_TOKENS: FrozenSet[str] = frozenset({
    "xmr", "zec", "dash", "scrt", "rose", "arrr", "firo", "beam", "grin",
    "nym", "dero", "xhv", "oxen", "mask", "torn", "rail", "zano",
})

AI_TOKENS: FrozenSet[str] = frozenset({
    "fet", "agix", "ocean", "vvv", "rndr", "render", "tao", "akt", "grt",
    "ar", "fil", "storj", "sc", "nmr", "vana", "prime", "ai16z", "virtual",
    "goat", "act", "arc", "griffain", "zerebro", "aixbt", "grass",
    "io", "wld", "jasmy", "pha", "nos", "near", "gpu",
})

MEME_TOKENS: FrozenSet[str] = frozenset({
    "doge", "shib", "pepe", "floki", "bonk", "wif", "meme", "wojak", "turbo",
    "brett", "mog", "popcat", "pnut", "neiro", "toshi", "degen", "ponke",
    "myro", "slerf", "bome", "trump", "fartcoin",
})

ETFS: FrozenSet[str] = frozenset({
    "spy", "voo", "ivv", "qqq", "qqqm", "dia", "iwm", "vti", "vtv", "vug",
    "schd", "schx", "schb", "splg", "itot",
    "xlk", "xlf", "xle", "xlv", "xli", "xlp", "xly", "xlb", "xlu", "xlre",
    "vgt", "vht", "vde", "vnq",
    "vxus", "vea", "vwo", "efa", "eem", "iefa", "iemg", "vgk", "fxi",
    "bnd", "agg", "lqd", "tlt", "ief", "shy", "tip", "bndx",
    "arkk", "arkw", "soxx", "smh", "kweb", "uso", "ung",
    "tqqq", "sqqq", "upro", "soxl",
    "gbtc", "ethe", "bito", "ibit", "arkb",
    "dax", "cac", "ewg", "ewq", "ewu", "ezu", "fez", "veur", "meud", "exs1", "c40",
})

METALS_GOLD: FrozenSet[str] = frozenset({
    "xaut", "paxg", "xau", "tgold", "dgld", "pmgt", "cache", "cgo",
    "gld", "iau", "gldm", "sgol", "phys", "bar", "aaau",
})
METALS_SILVER: FrozenSet[str] = frozenset({"xag", "xage", "slv", "sivr", "pslv"})
METALS_PLATINUM: FrozenSet[str] = frozenset({"pplt", "xpt"})
METALS_PALLADIUM: FrozenSet[str] = frozenset({"pall", "xpd"})
METALS_MINERS: FrozenSet[str] = frozenset({"gdx", "gdxj", "sil", "silj", "ring"})

_PENDLE_STABLE_HINTS = ("usd", "dai", "eur", "frax", "gho", "lusd")
_PENDLE_ETH_HINTS = ("eth",)
_PENDLE_BTC_HINTS = ("btc",)
_PENDLE_SOL_HINTS = ("sol",)

MAIN_CATEGORY_LABELS: Dict[MainCategory, str] = {
    MainCategory.CRYPTO: "Crypto",
    MainCategory.EQUITIES: "Equities",
    MainCategory.METALS: "Metals",
    MainCategory.CASH: "Cash",
    MainCategory.OTHER: "Other",
    MainCategory.UNCLASSIFIED: "Unclassified",
}

SUB_CATEGORY_LABELS: Dict[str, str] = {
    "crypto_btc": "BTC",
    "crypto_eth": "ETH",
    "crypto_sol": "SOL",
    "crypto_stablecoins": "Stablecoins",
    "crypto_tokens": "Tokens",
    "crypto_perps": "Perps",
    "equities_stocks": "Stocks",
    "equities_etfs": "ETFs",
    "metals_gold": "Gold",
    "metals_silver": "Silver",
    "metals_platinum": "Platinum",
    "metals_palladium": "Palladium",
    "metals_miners": "Miners",
}

EXPOSURE_CATEGORY_LABELS: Dict[ExposureCategory, str] = {
    ExposureCategory.STABLECOINS: "Stablecoins",
    ExposureCategory.BTC: "BTC",
    ExposureCategory.ETH: "ETH",
    ExposureCategory.SOL: "SOL",
    ExposureCategory.DEFI: "DeFi",
    ExposureCategory.RWA: "RWA",
    ExposureCategory.PRIVACY: "Privacy",
    ExposureCategory.AI: "AI",
    ExposureCategory.MEME: "Meme",
    ExposureCategory.TOKENS: "Tokens",
}

SUB_CATEGORIES_BY_MAIN: Dict[MainCategory, List[SubCategory]] = {
    MainCategory.CRYPTO: [
        SubCategory.BTC, SubCategory.ETH, SubCategory.SOL,
        SubCategory.STABLECOINS, SubCategory.TOKENS, SubCategory.PERPS,
    ],
    MainCategory.EQUITIES: [SubCategory.STOCKS, SubCategory.ETFS],
    MainCategory.METALS: [
        SubCategory.GOLD, SubCategory.SILVER, SubCategory.PLATINUM,
        SubCategory.PALLADIUM, SubCategory.MINERS,
    ],
}


def _norm(symbol: Optional[str]) -> str:
    return (symbol or "").strip().lower()


def _norm_type(asset_type: Optional[str]) -> str:
    return (asset_type or "").strip().lower()


def _is_pendle(sym: str) -> bool:
    return "pt-" in sym or "yt-" in sym or sym.startswith("pt_") or sym.startswith("yt_")


def _pendle_underlying(sym: str) -> Optional[SubCategory]:
    if any(h in sym for h in _PENDLE_STABLE_HINTS):
        return SubCategory.STABLECOINS
    if any(h in sym for h in _PENDLE_ETH_HINTS):
        return SubCategory.ETH
    if any(h in sym for h in _PENDLE_BTC_HINTS):
        return SubCategory.BTC
    if any(h in sym for h in _PENDLE_SOL_HINTS):
        return SubCategory.SOL
    return None


class CategoryService:
    """Lookup facade over the static tables above."""

    # ---------- simple predicates ----------
    def is_perp_protocol(self, protocol: Optional[str]) -> bool:
        p = _norm(protocol)
        if not p:
            return False
        return p in PERP_PROTOCOLS or any(root in p for root in _PERP_PROTOCOL_ROOTS)

    def is_fiat(self, symbol: Optional[str]) -> bool:
        return _norm(symbol) in FIAT_CURRENCIES

    def is_stablecoin(self, symbol: Optional[str]) -> bool:
        sym = _norm(symbol)
        if sym in STABLECOINS:
            return True
        if _is_pendle(sym):
            return any(h in sym for h in ("usd", "dai", "frax", "gho", "lusd", "eur", "gbp"))
        return False

    def is_known_etf(self, symbol: Optional[str]) -> bool:
        sym = _norm(symbol)
        if sym in ETFS:
            return True
        # exchange suffixes: dax.pa -> dax
        if "." in sym:
            base = sym.rsplit(".", 1)[0]
            return base in ETFS
        return False

    def is_metal_symbol(self, symbol: Optional[str]) -> bool:
        sym = _norm(symbol)
        return (
            sym in METALS_GOLD
            or sym in METALS_SILVER
            or sym in METALS_PLATINUM
            or sym in METALS_PALLADIUM
            or sym in METALS_MINERS
        )

    def get_underlying_fiat_currency(self, symbol: Optional[str]) -> Optional[str]:
        sym = _norm(symbol)
        if sym in FIAT_CURRENCIES:
            return sym.upper()
        if sym in USD_STABLECOINS:
            return "USD"
        if sym in EUR_STABLECOINS:
            return "EUR"
        if sym in GBP_STABLECOINS:
            return "GBP"
        if _is_pendle(sym):
            if any(h in sym for h in ("usd", "dai", "frax", "gho", "dola", "mim")):
                return "USD"
            if "eur" in sym:
                return "EUR"
            if "gbp" in sym:
                return "GBP"
        if sym.endswith(("dai", "usd", "usdc", "usdt", "frax")):
            return "USD"
        return None

    # ---------- taxonomy ----------
    def get_main_category(self, symbol: Optional[str], asset_type: Optional[str] = None) -> MainCategory:
        sym = _norm(symbol)
        t = _norm_type(asset_type)

        if t == "cash" or sym.startswith("cash_"):
            return MainCategory.CASH
        if t == "metals" or self.is_metal_symbol(sym):
            return MainCategory.METALS
        if t in ("stock", "etf", "equity"):
            return MainCategory.EQUITIES
        if t == "crypto":
            return MainCategory.CRYPTO
        if t == "other":
            return MainCategory.OTHER

        # untyped / manual: fall back to the symbol tables
        if sym in FIAT_CURRENCIES:
            return MainCategory.CASH
        if sym in STABLECOINS or sym in BTC_LIKE or sym in ETH_LIKE or sym in SOL_LIKE:
            return MainCategory.CRYPTO
        if sym in ETFS:
            return MainCategory.EQUITIES
        return MainCategory.UNCLASSIFIED

    def _metal_sub_category(self, sym: str) -> SubCategory:
        if sym in METALS_GOLD:
            return SubCategory.GOLD
        if sym in METALS_SILVER:
            return SubCategory.SILVER
        if sym in METALS_PLATINUM:
            return SubCategory.PLATINUM
        if sym in METALS_PALLADIUM:
            return SubCategory.PALLADIUM
        return SubCategory.MINERS

    def _crypto_sub_category(self, sym: str) -> SubCategory:
        if sym in STABLECOINS:
            return SubCategory.STABLECOINS
        if sym in BTC_LIKE:
            return SubCategory.BTC
        if sym in ETH_LIKE:
            return SubCategory.ETH
        if sym in SOL_LIKE:
            return SubCategory.SOL
        if _is_pendle(sym):
            return _pendle_underlying(sym) or SubCategory.TOKENS
        return SubCategory.TOKENS

    def get_sub_category(self, symbol: Optional[str], asset_type: Optional[str] = None) -> SubCategory:
        sym = _norm(symbol)
        t = _norm_type(asset_type)
        main = self.get_main_category(sym, t)

        if main == MainCategory.METALS:
            return self._metal_sub_category(sym)
        if main == MainCategory.CRYPTO:
            return self._crypto_sub_category(sym)
        if main == MainCategory.EQUITIES:
            if t == "etf" or self.is_known_etf(sym):
                return SubCategory.ETFS
            return SubCategory.STOCKS
        return SubCategory.NONE

    def get_exposure_category(self, symbol: Optional[str], asset_type: Optional[str] = None) -> ExposureCategory:
        sym = _norm(symbol)
        if self.get_main_category(sym, asset_type) != MainCategory.CRYPTO:
            return ExposureCategory.TOKENS

        if sym in STABLECOINS:
            return ExposureCategory.STABLECOINS
        if sym in BTC_LIKE:
            return ExposureCategory.BTC
        if sym in ETH_LIKE:
            return ExposureCategory.ETH
        if sym in SOL_LIKE:
            return ExposureCategory.SOL
        if sym in DEFI_TOKENS:
            return ExposureCategory.DEFI
        if sym in RWA_TOKENS:
            return ExposureCategory.RWA
        if sym in PRIVACY_TOKENS:
            return ExposureCategory.PRIVACY
        if sym in AI_TOKENS:
            return ExposureCategory.AI
        if sym in MEME_TOKENS:
            return ExposureCategory.MEME
        if _is_pendle(sym):
            underlying = _pendle_underlying(sym)
            if underlying is None:
                return ExposureCategory.DEFI
            return ExposureCategory(underlying.value)
        return ExposureCategory.TOKENS

    def get_asset_category(self, symbol: Optional[str], asset_type: Optional[str] = None) -> str:
        """Combined main_sub key, e.g. crypto_btc. Cash / other / unclassified stay bare."""
        main = self.get_main_category(symbol, asset_type)
        sub = self.get_sub_category(symbol, asset_type)
        if sub == SubCategory.NONE or main in (MainCategory.CASH, MainCategory.OTHER, MainCategory.UNCLASSIFIED):
            return main.value
        return f"{main.value}_{sub.value}"

    def get_asset_class(self, symbol: Optional[str], asset_type: Optional[str] = None) -> str:
        main = self.get_main_category(symbol, asset_type)
        return {
            MainCategory.CRYPTO: "crypto",
            MainCategory.EQUITIES: "equity",
            MainCategory.METALS: "metals",
            MainCategory.CASH: "cash",
        }.get(main, "other")

    def classify_position(self, position) -> Tuple[MainCategory, SubCategory]:
        """Main/sub for a Position, honouring asset_class_override > asset_class > type."""
        t = position.category_input
        return self.get_main_category(position.symbol, t), self.get_sub_category(position.symbol, t)

    # ---------- labels ----------
    def get_category_label(self, category: str) -> str:
        if "_" in category:
            return SUB_CATEGORY_LABELS.get(category, category)
        try:
            return MAIN_CATEGORY_LABELS[MainCategory(category)]
        except ValueError:
            return category

    def get_main_category_label(self, category: MainCategory) -> str:
        return MAIN_CATEGORY_LABELS[category]

    def get_exposure_category_label(self, category: ExposureCategory) -> str:
        return EXPOSURE_CATEGORY_LABELS.get(category, "Tokens")

    def get_category_hierarchy(self, symbol: str, asset_type: Optional[str] = None) -> Dict[str, Optional[str]]:
        main = self.get_main_category(symbol, asset_type)
        sub = self.get_sub_category(symbol, asset_type)
        category = self.get_asset_category(symbol, asset_type)
        return {
            "main": main.value,
            "sub": sub.value if sub != SubCategory.NONE else None,
            "label": self.get_category_label(category),
        }

    def get_sub_categories(self, main: MainCategory) -> List[SubCategory]:
        return list(SUB_CATEGORIES_BY_MAIN.get(main, []))

    def is_asset_in_category(self, symbol: str, category: str, asset_type: Optional[str] = None) -> bool:
        asset_category = self.get_asset_category(symbol, asset_type)
        if asset_category == category:
            return True
        return "_" not in category and asset_category.startswith(category + "_")

    # ---------- table audits ----------
    def _exposure_tables(self) -> List[Tuple[ExposureCategory, FrozenSet[str]]]:
        return [
            (ExposureCategory.STABLECOINS, STABLECOINS),
            (ExposureCategory.BTC, BTC_LIKE),
            (ExposureCategory.ETH, ETH_LIKE),
            (ExposureCategory.SOL, SOL_LIKE),
            (ExposureCategory.DEFI, DEFI_TOKENS),
            (ExposureCategory.RWA, RWA_TOKENS),
            (ExposureCategory.PRIVACY, PRIVACY_TOKENS),
            (ExposureCategory.AI, AI_TOKENS),
            (ExposureCategory.MEME, MEME_TOKENS),
        ]

    def validate_categories(self) -> List[Dict[str, object]]:
        """Tokens listed under more than one exposure table (exposure priority decides the winner)."""
        seen: Dict[str, List[str]] = {}
        for cat, table in self._exposure_tables():
            for token in table:
                seen.setdefault(token, []).append(cat.value)
        dupes = [{"token": t, "categories": cats} for t, cats in seen.items() if len(cats) > 1]
        return sorted(dupes, key=lambda d: d["token"])

    def get_all_categorized_tokens(self) -> List[Dict[str, str]]:
        out = [
            {"token": token, "category": cat.value}
            for cat, table in self._exposure_tables()
            for token in table
        ]
        return sorted(out, key=lambda d: (d["token"], d["category"]))


_instance: Optional[CategoryService] = None


def get_category_service() -> CategoryService:
    global _instance
    if _instance is None:
        _instance = CategoryService()
    return _instance
