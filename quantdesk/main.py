"""QuantDesk entry point.

Runs the screening and diagnosis engine over a JSON universe file and prints
a JSON report:

    python -m quantdesk.main universe.json [--limit 30]

Diagnoses are listed best verdict first.

Universe layout (every key except ``fundamentals`` and ``prices`` optional):
    fundamentals     list of fundamental snapshots
    prices           {code: [{"date": ..., "close": ...}, ...]}, any order
    ohlcv            {code: [{"date": ..., "open", "high", "low", "close", "volume"}, ...]}
    supply_demand    {code: {"foreign_net_5d": ..., ...}} or {code: [investor trade rows]}
    short_balances   {code: [{"trade_date": ..., "close_price", "loan_balance_quantity"}, ...]}
    foreign_net_buy  {code: 3-day foreign net buy, 억원}
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from quantdesk.analysis.diagnosis import aggregate_investor_flows
from quantdesk.analysis.quant_screener import QuantScreener
from quantdesk.analysis.squeeze import SqueezeScorer, records_from_rows
from quantdesk.config.settings import settings
from quantdesk.models.schemas import FundamentalSnapshot, InvestorTrade, SupplyDemandInput
from quantdesk.models.series import OhlcvSeries, PriceSeries
from quantdesk.services.engine_service import EngineService

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[
        logging.StreamHandler(sys.stderr),
    ],
)
logger = logging.getLogger(__name__)


class UniverseProvider:
    """Price history provider backed by the ``prices`` / ``ohlcv`` sections of a universe."""

    def __init__(self, prices: dict, ohlcv: dict | None = None):
        self._prices = prices
        self._ohlcv = ohlcv or {}

    def close_prices(self, code: str) -> PriceSeries:
        rows = self._prices.get(code, [])
        return PriceSeries.from_dated((row["date"], row.get("close")) for row in rows)

    def ohlcv(self, code: str) -> OhlcvSeries:
        rows = sorted(self._ohlcv.get(code, []), key=lambda row: row["date"], reverse=True)
        return OhlcvSeries.newest_first(rows)


def _supply_demand(raw) -> SupplyDemandInput | None:
    if raw is None:
        return None
    if isinstance(raw, list):
        return aggregate_investor_flows(InvestorTrade.model_validate(row) for row in raw)
    return SupplyDemandInput.model_validate(raw)


def build_report(universe: dict, limit: int | None = None) -> dict:
    limit = limit if limit is not None else settings.magic_formula_default_limit
    fundamentals = [FundamentalSnapshot.model_validate(row) for row in universe.get("fundamentals", [])]
    by_code = {f.stock_code: f for f in fundamentals}
    logger.info(f"Universe loaded - {len(fundamentals)} fundamentals, {len(universe.get('prices', {}))} price histories")

    ranking = QuantScreener().magic_formula(fundamentals, limit=limit)

    short_balances = {
        code: records_from_rows(rows) for code, rows in universe.get("short_balances", {}).items()
    }
    squeeze = SqueezeScorer().find_candidates(
        short_balances,
        universe.get("foreign_net_buy", {}),
        limit=limit,
        names={code: f.stock_name for code, f in by_code.items()},
    )

    service = EngineService(UniverseProvider(universe.get("prices", {}), universe.get("ohlcv")))
    supply = universe.get("supply_demand", {})
    diagnoses = [
        service.diagnose(code, by_code.get(code), _supply_demand(supply.get(code)))
        for code in universe.get("prices", {})
    ]
    diagnoses.sort(key=lambda d: d.verdict_level.rank, reverse=True)

    return {
        "magic_formula": [r.model_dump(mode="json") for r in ranking],
        "squeeze_candidates": [s.model_dump(mode="json") for s in squeeze],
        "diagnoses": [d.model_dump(mode="json") for d in diagnoses],
    }


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="QuantDesk screening and diagnosis report")
    parser.add_argument("universe", type=Path, help="universe JSON file")
    parser.add_argument("--limit", type=int, default=None, help="truncate rankings to this many entries")
    args = parser.parse_args(argv)

    logger.info(f"Starting QuantDesk report: {args.universe}")
    universe = json.loads(args.universe.read_text(encoding="utf-8"))
    report = build_report(universe, args.limit)
    json.dump(report, sys.stdout, ensure_ascii=False, indent=2)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
