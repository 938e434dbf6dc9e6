"""Quant screener.

Fundamentals-only screens over a universe of ``FundamentalSnapshot``:
- Magic Formula: operating-margin rank + ROE rank + PER rank (lower is better)
- Low PEG: undervalued growth (PEG = PER / EPS growth)
- Turnaround: loss-to-profit or >=50% net-income growth vs previous report

Ranks are relative to the input universe of one run and are not comparable
across runs.
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Iterable, Mapping, Sequence

from quantdesk.models.schemas import (
    FundamentalSnapshot,
    PegResult,
    RankedResult,
    TurnaroundResult,
    TurnaroundType,
)

logger = logging.getLogger(__name__)

TURNAROUND_GROWTH_THRESHOLD = Decimal("50")
LOSS_TO_PROFIT_RATE = Decimal("999.99")
SUMMARY_TOP_N = 5


def _truncate(results: list, limit: int | None) -> list:
    if limit is not None and limit > 0:
        return results[:limit]
    return results


def _ranks(
    stocks: Sequence[FundamentalSnapshot],
    key: Callable[[FundamentalSnapshot], Decimal | None],
    descending: bool,
    eligible: Callable[[Decimal], bool] = lambda v: True,
) -> dict[int, int]:
    """1-based ranks by ``key``, keyed by position in ``stocks``.

    Ties keep input order (stable sort).
    """
    candidates = [i for i, s in enumerate(stocks) if key(s) is not None and eligible(key(s))]
    ordered = sorted(candidates, key=lambda i: key(stocks[i]), reverse=descending)
    return {index: rank for rank, index in enumerate(ordered, start=1)}


class QuantScreener:
    """Ranks and filters a fundamentals universe."""

    def magic_formula(
        self,
        snapshots: Iterable[FundamentalSnapshot],
        limit: int | None = None,
        min_market_cap: Decimal | None = None,
    ) -> list[RankedResult]:
        """Magic Formula ranking over the full universe, truncated to ``limit`` last.

        Instruments without a positive PER (or without margin / ROE) are left
        out of that metric's rank list and take rank = universe size.
        """
        logger.info(f"Magic formula screening - limit: {limit}, min_market_cap: {min_market_cap}")
        stocks = list(snapshots)
        if min_market_cap is not None:
            stocks = [s for s in stocks if s.market_cap is not None and s.market_cap >= min_market_cap]

        if not stocks:
            logger.info("Magic formula: no instruments to rank")
            return []

        universe = len(stocks)
        margin_ranks = _ranks(stocks, lambda s: s.operating_margin, descending=True)
        roe_ranks = _ranks(stocks, lambda s: s.roe, descending=True)
        per_ranks = _ranks(stocks, lambda s: s.per, descending=False, eligible=lambda v: v > 0)

        scored = []
        for index, stock in enumerate(stocks):
            margin_rank = margin_ranks.get(index, universe)
            roe_rank = roe_ranks.get(index, universe)
            per_rank = per_ranks.get(index, universe)
            scored.append((margin_rank + roe_rank + per_rank, stock, margin_rank, roe_rank, per_rank))

        scored.sort(key=lambda row: row[0])

        results = [
            RankedResult(
                stock_code=stock.stock_code,
                stock_name=stock.stock_name,
                market=stock.market,
                operating_margin=stock.operating_margin,
                roe=stock.roe,
                per=stock.per,
                operating_margin_rank=margin_rank,
                roe_rank=roe_rank,
                per_rank=per_rank,
                magic_formula_score=total,
                magic_formula_rank=position,
            )
            for position, (total, stock, margin_rank, roe_rank, per_rank) in enumerate(scored, start=1)
        ]

        results = _truncate(results, limit)
        logger.info(f"Magic formula screening done - {len(results)} results (universe: {universe})")
        return results

    def low_peg(
        self,
        snapshots: Iterable[FundamentalSnapshot],
        max_peg: Decimal | None = Decimal("1.0"),
        min_eps_growth: Decimal | None = Decimal("10"),
        limit: int | None = None,
    ) -> list[PegResult]:
        """PEG below ``max_peg`` with EPS growth of at least ``min_eps_growth`` %."""
        logger.info(f"PEG screening - max_peg: {max_peg}, min_eps_growth: {min_eps_growth}, limit: {limit}")
        results = []
        for stock in snapshots:
            growth = stock.eps_growth
            if growth is None or stock.per is None:
                continue
            peg = stock.peg
            if peg is None:
                if growth <= 0:
                    continue
                peg = (stock.per / growth).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
            if peg <= 0:
                continue
            if max_peg is not None and peg > max_peg:
                continue
            if min_eps_growth is not None and growth < min_eps_growth:
                continue
            results.append(PegResult(
                stock_code=stock.stock_code,
                stock_name=stock.stock_name,
                per=stock.per,
                eps_growth=growth,
                peg=peg,
            ))

        results.sort(key=lambda r: r.peg)
        results = _truncate(results, limit)
        logger.info(f"PEG screening done - {len(results)} results")
        return results

    def turnarounds(
        self,
        history: Mapping[str, Sequence[FundamentalSnapshot]],
        limit: int | None = None,
    ) -> list[TurnaroundResult]:
        """Compare the two newest reports per instrument (``history`` is newest first)."""
        logger.info(f"Turnaround screening - limit: {limit}")
        results = []
        for code, reports in history.items():
            if len(reports) < 2:
                continue
            current, previous = reports[0], reports[1]
            if current.net_income is None or previous.net_income is None:
                continue

            now, before = current.net_income, previous.net_income
            if before < 0 < now:
                kind, rate = TurnaroundType.LOSS_TO_PROFIT, LOSS_TO_PROFIT_RATE
            elif 0 < before < now:
                rate = ((now - before) / abs(before)).quantize(
                    Decimal("0.0001"), rounding=ROUND_HALF_UP
                ) * 100
                if rate < TURNAROUND_GROWTH_THRESHOLD:
                    continue
                kind = TurnaroundType.PROFIT_GROWTH
            else:
                continue

            results.append(TurnaroundResult(
                stock_code=code,
                stock_name=current.stock_name,
                turnaround_type=kind,
                previous_net_income=before,
                current_net_income=now,
                net_income_change_rate=rate,
            ))

        results.sort(key=lambda r: (
            r.turnaround_type is not TurnaroundType.LOSS_TO_PROFIT,
            -r.net_income_change_rate,
        ))
        results = _truncate(results, limit)
        logger.info(f"Turnaround screening done - {len(results)} results (analyzed: {len(history)})")
        return results

    def summary(
        self,
        snapshots: Iterable[FundamentalSnapshot],
        history: Mapping[str, Sequence[FundamentalSnapshot]] | None = None,
    ) -> dict:
        """Top entries of every screen, for dashboards."""
        stocks = list(snapshots)
        magic = self.magic_formula(stocks, limit=SUMMARY_TOP_N)
        peg = self.low_peg(stocks, limit=SUMMARY_TOP_N)
        turnaround = self.turnarounds(history or {}, limit=SUMMARY_TOP_N)
        return {
            "magic_formula": magic,
            "magic_formula_count": len(magic),
            "low_peg": peg,
            "low_peg_count": len(peg),
            "turnaround": turnaround,
            "turnaround_count": len(turnaround),
        }
