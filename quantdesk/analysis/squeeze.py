"""Short squeeze scorer.

Scores short-covering potential (0-100) from four additive components:
- 대차잔고 과열도 (max 30): current loan balance vs its 20-day average
- 숏커버링 진행도 (max 30): 5-day loan balance decline
- 외국인 순매수 (max 20): 3-day foreign net buy, 억원
- 추세 전환 (max 20): above MA20 or 5-day price rise
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Mapping, Sequence

from quantdesk.analysis.signals import PRICE_RISE_THRESHOLD, is_trend_reversal, price_change_pct
from quantdesk.analysis.technical import calculate_snapshot
from quantdesk.config.settings import settings
from quantdesk.models.schemas import (
    IndicatorSnapshot,
    RsiZone,
    ShortBalanceRecord,
    SqueezeInputs,
    SqueezeScore,
)
from quantdesk.models.series import PriceSeries

logger = logging.getLogger(__name__)

ANALYSIS_DAYS = 20
SHORT_COVERING_DAYS = 5
FOREIGN_NET_BUY_10B = Decimal("10")
FOREIGN_NET_BUY_5B = Decimal("5")

DEFAULT_TIERS = (
    (80, "CRITICAL", "숏스퀴즈 임박! 대차잔고 급감 + 외국인 매수 + 주가 상승"),
    (60, "HIGH", "숏커버링 진행 중. 추가 상승 가능성 높음"),
    (40, "MEDIUM", "숏커버링 초기 신호. 관찰 필요"),
    (0, "LOW", "숏커버링 가능성 낮음"),
)


def _validate_tiers(tiers: Sequence[tuple]) -> tuple:
    tiers = tuple(tuple(t) for t in tiers)
    if not tiers:
        raise ValueError("at least one squeeze tier is required")
    thresholds = [t[0] for t in tiers]
    if any(a <= b for a, b in zip(thresholds, thresholds[1:])):
        raise ValueError(f"squeeze tier thresholds must be strictly descending: {thresholds}")
    # pad to (threshold, level, description)
    return tuple(t if len(t) == 3 else (t[0], t[1], "") for t in tiers)


def _average(values: list[Decimal | None], days: int, total_count: int) -> Decimal:
    """Sum of the valid values over min(days, total_count), 2 decimal places."""
    valid = [v for v in values[:days] if v is not None]
    return (sum(valid, Decimal("0")) / min(days, total_count)).quantize(
        Decimal("0.01"), rounding=ROUND_HALF_UP
    )


def _change_pct(values: list[Decimal | None], days: int) -> Decimal | None:
    if len(values) < days:
        return None
    current, previous = values[0], values[days - 1]
    if current is None or previous is None or previous == 0:
        return None
    return ((current - previous) / previous).quantize(
        Decimal("0.0001"), rounding=ROUND_HALF_UP
    ) * 100


def inputs_from_history(
    records: Sequence[ShortBalanceRecord],
    foreign_net_buy: Decimal | int | float = 0,
) -> SqueezeInputs | None:
    """Derive scorer inputs from newest-first daily short-balance rows.

    Returns None with fewer than 5 rows, a missing current balance or a zero
    20-day average.
    """
    if len(records) < SHORT_COVERING_DAYS:
        return None

    loans = [r.loan_balance_quantity for r in records]
    closes = [r.close_price for r in records]
    current = loans[0]
    average = _average(loans, ANALYSIS_DAYS, len(records))
    if current is None or average == 0:
        return None

    ma20 = _average(closes, ANALYSIS_DAYS, len(records))
    price_change = price_change_pct(PriceSeries.newest_first(closes), SHORT_COVERING_DAYS)
    above_ma20 = closes[0] is not None and closes[0] > ma20
    rising = price_change is not None and price_change >= PRICE_RISE_THRESHOLD

    return SqueezeInputs(
        loan_balance_current=current,
        loan_balance_avg20=average,
        loan_balance_change_5d=_change_pct(loans, SHORT_COVERING_DAYS),
        foreign_net_buy_3d=Decimal(str(foreign_net_buy)),
        is_trend_reversal=is_trend_reversal(above_ma20, price_change),
        is_price_rising=rising,
        price_change_5d=price_change,
        ma20=ma20,
    )


class SqueezeScorer:
    """Scores squeeze inputs and maps the score onto caller-defined tiers."""

    def __init__(self, tiers: Sequence[tuple] | None = None, min_score: int | None = None):
        self.tiers = _validate_tiers(DEFAULT_TIERS if tiers is None else tiers)
        self.min_score = settings.squeeze_min_score if min_score is None else min_score

    # --- components ---

    @staticmethod
    def overheat_score(current: Decimal, average: Decimal) -> int:
        if average <= 0 or current <= average:
            return 0
        ratio = ((current - average) / average).quantize(
            Decimal("0.0001"), rounding=ROUND_HALF_UP
        ) * 100
        return min(30, int(ratio) * 3 // 2)

    @staticmethod
    def covering_score(change_5d: Decimal | None) -> int:
        if change_5d is None or change_5d >= 0:
            return 0
        return min(30, abs(int(change_5d)) * 3)

    @staticmethod
    def foreign_buy_score(net_buy: Decimal) -> int:
        if net_buy <= 0:
            return 0
        score = 10
        if net_buy >= FOREIGN_NET_BUY_10B:
            score += 10
        elif net_buy >= FOREIGN_NET_BUY_5B:
            score += 5
        return score

    @staticmethod
    def trend_reversal_score(is_trend_reversal: bool, is_price_rising: bool) -> int:
        if not is_trend_reversal:
            return 0
        return 20 if is_price_rising else 10

    # --- scoring ---

    def level_for(self, score: int) -> tuple[str, str]:
        for threshold, level, description in self.tiers:
            if score >= threshold:
                return level, description
        _, level, description = self.tiers[-1]
        return level, description

    def describe(self, description: str, snapshot: IndicatorSnapshot | None) -> str:
        if snapshot is None:
            return description
        if snapshot.is_golden_cross:
            description += " + 골든크로스"
        if snapshot.is_arranged_up:
            description += " + 정배열"
        if snapshot.rsi_zone is RsiZone.OVERSOLD:
            description += " + RSI 침체(반등 가능)"
        return description

    def score(
        self,
        code: str,
        inputs: SqueezeInputs,
        name: str | None = None,
        technical: IndicatorSnapshot | None = None,
    ) -> SqueezeScore:
        overheat = self.overheat_score(inputs.loan_balance_current, inputs.loan_balance_avg20)
        covering = self.covering_score(inputs.loan_balance_change_5d)
        foreign = self.foreign_buy_score(inputs.foreign_net_buy_3d)
        trend = self.trend_reversal_score(inputs.is_trend_reversal, inputs.is_price_rising)
        total = max(0, min(100, overheat + covering + foreign + trend))

        level, description = self.level_for(total)
        return SqueezeScore(
            stock_code=code,
            stock_name=name or "",
            overheat_score=overheat,
            covering_score=covering,
            foreign_buy_score=foreign,
            trend_reversal_score=trend,
            squeeze_score=total,
            squeeze_level=level,
            signal_description=self.describe(description, technical),
            inputs=inputs,
            technical=technical,
        )

    def find_candidates(
        self,
        universe: Mapping[str, Sequence[ShortBalanceRecord]],
        foreign_net_buy: Mapping[str, Decimal] | None = None,
        limit: int | None = None,
        names: Mapping[str, str] | None = None,
    ) -> list[SqueezeScore]:
        """Score every instrument and keep those at or above ``min_score``."""
        foreign_net_buy = foreign_net_buy or {}
        names = names or {}
        logger.info(f"Short squeeze screening - universe: {len(universe)}, limit: {limit}")

        candidates = []
        for code, records in universe.items():
            inputs = inputs_from_history(records, foreign_net_buy.get(code, 0))
            if inputs is None:
                logger.debug(f"{code}: not enough short-balance history ({len(records)} rows)")
                continue

            closes = PriceSeries.newest_first(r.close_price for r in records)
            snapshot = None
            if closes.valid_count >= SHORT_COVERING_DAYS:
                snapshot = calculate_snapshot(closes)

            result = self.score(code, inputs, name=names.get(code), technical=snapshot)
            if result.squeeze_score >= self.min_score:
                candidates.append(result)

        candidates.sort(key=lambda c: c.squeeze_score, reverse=True)
        if limit is not None and limit > 0:
            candidates = candidates[:limit]
        logger.info(f"Short squeeze screening done - {len(candidates)} candidates")
        return candidates


def records_from_rows(rows: Iterable[Mapping]) -> list[ShortBalanceRecord]:
    """Parse raw rows and order them newest first by trade date."""
    records = [ShortBalanceRecord.model_validate(r) for r in rows]
    records.sort(key=lambda r: r.trade_date, reverse=True)
    return records
