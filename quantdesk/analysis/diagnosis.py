"""Stock diagnosis ("더블 체크").

Second look at a screened instrument:
1. 재무 건전성: operating profit vs net income (one-time gain warning)
2. 수급 현황: foreign / institution net buying over the last 5 sessions
3. 기술적 분석: MA arrangement, RSI, Bollinger Bands, MFI

The three sub-scores are blended into an overall 0-100 score and a verdict.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from quantdesk.analysis.signals import MFI_OVERBOUGHT, MFI_OVERSOLD, RSI_OVERBOUGHT, RSI_OVERSOLD
from quantdesk.analysis.technical import (
    INSUFFICIENT_DATA,
    calculate_snapshot,
    require_ohlcv,
    require_series,
)
from quantdesk.config.settings import settings
from quantdesk.models.schemas import (
    DiagnosisResult,
    FinancialHealth,
    FundamentalSnapshot,
    IndicatorSnapshot,
    InvestorTrade,
    MfiZone,
    SupplyDemand,
    SupplyDemandInput,
    TechnicalAnalysis,
    VerdictLevel,
)
from quantdesk.models.series import OhlcvSeries, PriceSeries

logger = logging.getLogger(__name__)

SUPPLY_DEMAND_DAYS = 5
MIN_TECHNICAL_PRICES = 20
ONE_TIME_GAIN_THRESHOLD = Decimal("50")
GOOD_MARGIN = Decimal("10")

VERDICT_THRESHOLDS = (
    (75, VerdictLevel.STRONG_BUY),
    (60, VerdictLevel.BUY),
    (45, VerdictLevel.NEUTRAL),
    (30, VerdictLevel.CAUTION),
)
WARNING_PENALTY = 10

NO_FUNDAMENTALS_VERDICT = "분석 불가"
NO_FUNDAMENTALS_WARNING = "재무 데이터가 없습니다. 먼저 데이터를 수집해주세요."


def _clamp(score: int) -> int:
    return max(0, min(100, score))


def aggregate_investor_flows(trades: Iterable[InvestorTrade], days: int = SUPPLY_DEMAND_DAYS) -> SupplyDemandInput:
    """Fold investor trade rows over the newest ``days`` distinct trade dates.

    BUY rows add their net amount, any other trade type subtracts it. A day
    counts as a buy-day when that investor's net for the day is positive.
    """
    daily: dict = defaultdict(lambda: {"FOREIGN": Decimal("0"), "INSTITUTION": Decimal("0")})
    for trade in trades:
        day = daily[trade.trade_date]
        if trade.investor_type not in day:
            continue
        amount = trade.net_buy_amount or Decimal("0")
        day[trade.investor_type] += amount if trade.trade_type == "BUY" else -amount

    recent = sorted(daily, reverse=True)[:days]
    foreign_net = sum((daily[d]["FOREIGN"] for d in recent), Decimal("0"))
    institution_net = sum((daily[d]["INSTITUTION"] for d in recent), Decimal("0"))
    return SupplyDemandInput(
        foreign_net_5d=foreign_net,
        foreign_buy_days=sum(1 for d in recent if daily[d]["FOREIGN"] > 0),
        institution_net_5d=institution_net,
        institution_buy_days=sum(1 for d in recent if daily[d]["INSTITUTION"] > 0),
    )


class DiagnosisComposer:
    """Builds a ``DiagnosisResult`` from fundamentals, flows and price history."""

    def __init__(self, weights: tuple | None = None):
        if weights is None:
            weights = (settings.weight_financial, settings.weight_supply, settings.weight_technical)
        weights = tuple(Decimal(str(w)) for w in weights)
        if len(weights) != 3 or sum(weights) != 1:
            raise ValueError(f"diagnosis weights must be three values summing to 1, got {weights}")
        self.weights = weights

    # --- 1. 재무 건전성 ---

    def financial_health(self, data: FundamentalSnapshot) -> FinancialHealth:
        op, ni = data.operating_profit, data.net_income

        warning = False
        reason = None
        gap = None
        gap_ratio = None
        if op is not None and ni is not None and op != 0:
            gap = ni - op
            gap_ratio = (gap / abs(op)).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP) * 100
            if gap_ratio > ONE_TIME_GAIN_THRESHOLD:
                warning = True
                shown = gap_ratio.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
                reason = f"순이익이 영업이익 대비 {shown}% 높음 (자산매각, 환차익 등 확인 필요)"
            elif op > 0 and ni < 0:
                warning = True
                reason = "영업이익 흑자, 순이익 적자 (영업외비용 확인 필요)"

        score = self._financial_score(data.operating_margin, data.roe, data.debt_ratio, warning)
        assessment = "양호" if score >= 70 else "보통" if score >= 40 else "주의"

        return FinancialHealth(
            operating_profit=op,
            net_income=ni,
            profit_gap=gap,
            profit_gap_ratio=gap_ratio,
            has_one_time_gain_warning=warning,
            one_time_gain_reason=reason,
            operating_margin=data.operating_margin,
            net_margin=data.net_margin,
            roe=data.roe,
            debt_ratio=data.debt_ratio,
            score=score,
            assessment=assessment,
        )

    @staticmethod
    def _financial_score(margin, roe, debt_ratio, one_time_gain: bool) -> int:
        score = 50

        if margin is not None:
            if margin > 15:
                score += 20
            elif margin > 10:
                score += 15
            elif margin > 5:
                score += 10
            elif margin > 0:
                score += 5
            else:
                score -= 10

        if roe is not None:
            if roe > 15:
                score += 15
            elif roe > 10:
                score += 10
            elif roe > 5:
                score += 5
            elif roe < 0:
                score -= 15

        if debt_ratio is not None:
            if debt_ratio < 50:
                score += 10
            elif debt_ratio < 100:
                score += 5
            elif debt_ratio > 200:
                score -= 15

        if one_time_gain:
            score -= 20

        return _clamp(score)

    # --- 2. 수급 ---

    def supply_demand(self, flows: SupplyDemandInput) -> SupplyDemand:
        foreign_buying = flows.foreign_net_5d > 0
        institution_buying = flows.institution_net_5d > 0
        both_buying = foreign_buying and institution_buying
        both_selling = (
            not foreign_buying
            and not institution_buying
            and (flows.foreign_net_5d < 0 or flows.institution_net_5d < 0)
        )

        score = 50
        for buying, buy_days in (
            (foreign_buying, flows.foreign_buy_days),
            (institution_buying, flows.institution_buy_days),
        ):
            if buying:
                score += 15 + buy_days * 3
            else:
                score -= 10
        score = _clamp(score)

        return SupplyDemand(
            foreign_net_5d=flows.foreign_net_5d,
            foreign_buy_days=flows.foreign_buy_days,
            is_foreign_buying=foreign_buying,
            institution_net_5d=flows.institution_net_5d,
            institution_buy_days=flows.institution_buy_days,
            is_institution_buying=institution_buying,
            is_both_buying=both_buying,
            is_both_selling=both_selling,
            score=score,
            assessment="매수 우위" if both_buying else "매도 우위" if both_selling else "혼조",
        )

    # --- 3. 기술적 분석 ---

    def technical(self, series: PriceSeries, ohlcv: OhlcvSeries | None = None) -> TechnicalAnalysis:
        series = require_series(series)
        if ohlcv is not None:
            ohlcv = require_ohlcv(ohlcv)
        if series.valid_count < MIN_TECHNICAL_PRICES:
            logger.debug(f"Not enough prices for technical analysis ({series.valid_count})")
            return TechnicalAnalysis(score=50, assessment=INSUFFICIENT_DATA)

        snapshot = calculate_snapshot(series, ohlcv)
        score = self._technical_score(snapshot)
        rsi14 = snapshot.rsi14

        return TechnicalAnalysis(
            indicators=snapshot,
            is_rsi_oversold=rsi14 is not None and rsi14 <= RSI_OVERSOLD,
            is_rsi_overbought=rsi14 is not None and rsi14 >= RSI_OVERBOUGHT,
            signal_description=self._describe(snapshot),
            score=score,
            assessment="매수 신호" if score >= 60 else "매도 신호" if score <= 40 else "중립",
        )

    @staticmethod
    def _technical_score(snapshot: IndicatorSnapshot) -> int:
        score = snapshot.buy_signal_strength if snapshot.buy_signal_strength is not None else 50

        bands = snapshot.bollinger
        if bands is not None:
            if bands.is_squeeze:
                score += 5
            if bands.is_breakout:
                score += 10

        if snapshot.money_flow is not None:
            mfi = snapshot.money_flow.mfi_score
            if mfi <= MFI_OVERSOLD:
                score += 10
            elif mfi >= MFI_OVERBOUGHT:
                score -= 5

        return _clamp(score)

    @staticmethod
    def _describe(snapshot: IndicatorSnapshot) -> str:
        signals = []
        if snapshot.is_golden_cross:
            signals.append("골든크로스")
        if snapshot.is_dead_cross:
            signals.append("데드크로스")
        if snapshot.is_arranged_up:
            signals.append("정배열")
        if snapshot.is_arranged_down:
            signals.append("역배열")

        if snapshot.rsi14 is not None:
            if snapshot.rsi14 >= RSI_OVERBOUGHT:
                signals.append("RSI 과열")
            elif snapshot.rsi14 <= RSI_OVERSOLD:
                signals.append("RSI 침체")

        if snapshot.bollinger is not None:
            if snapshot.bollinger.is_squeeze:
                signals.append("BB 스퀴즈(폭발 대기)")
            if snapshot.bollinger.is_breakout:
                signals.append("BB 상단 돌파")

        if snapshot.money_flow is not None:
            if snapshot.money_flow.mfi_zone is MfiZone.OVERBOUGHT:
                signals.append("MFI 과열")
            elif snapshot.money_flow.mfi_zone is MfiZone.OVERSOLD:
                signals.append("MFI 침체(거래량↑매수)")

        return " / ".join(signals) if signals else "특이 신호 없음"

    # --- 종합 ---

    def overall_score(self, financial: int, supply: int, technical: int) -> int:
        w_fin, w_sup, w_tech = self.weights
        weighted = w_fin * financial + w_sup * supply + w_tech * technical
        return _clamp(int(weighted.quantize(Decimal("1"), rounding=ROUND_HALF_UP)))

    @staticmethod
    def verdict_level(overall_score: int, warning_count: int) -> VerdictLevel:
        adjusted = overall_score - warning_count * WARNING_PENALTY
        for threshold, level in VERDICT_THRESHOLDS:
            if adjusted >= threshold:
                return level
        return VerdictLevel.AVOID

    def diagnose(
        self,
        code: str,
        fundamentals: FundamentalSnapshot | None,
        supply_demand: SupplyDemandInput | None,
        series: PriceSeries,
        ohlcv: OhlcvSeries | None = None,
    ) -> DiagnosisResult:
        series = require_series(series)
        logger.info(f"Diagnosis started: {code}")

        if fundamentals is None:
            logger.warning(f"No fundamentals for {code}")
            return DiagnosisResult(
                stock_code=code,
                overall_score=0,
                verdict_level=VerdictLevel.NEUTRAL,
                verdict=NO_FUNDAMENTALS_VERDICT,
                warnings=[NO_FUNDAMENTALS_WARNING],
            )

        financial = self.financial_health(fundamentals)
        supply = self.supply_demand(supply_demand or SupplyDemandInput())
        tech = self.technical(series, ohlcv)
        indicators = tech.indicators

        warnings = []
        if financial.has_one_time_gain_warning:
            warnings.append(f"일회성 이익 의심: {financial.one_time_gain_reason}")
        if supply.is_both_selling:
            warnings.append("외국인+기관 동반 매도 중")
        if tech.is_rsi_overbought:
            warnings.append("RSI 과열 구간 (단기 조정 가능성)")
        if indicators is not None and indicators.is_dead_cross:
            warnings.append("데드크로스 발생")

        positives = []
        if financial.operating_margin is not None and financial.operating_margin > GOOD_MARGIN:
            positives.append(f"영업이익률 {financial.operating_margin}% (양호)")
        if supply.is_both_buying:
            positives.append("외국인+기관 동반 매수 중")
        if indicators is not None and indicators.is_arranged_up:
            positives.append("이평선 정배열 (상승 추세)")
        if indicators is not None and indicators.is_golden_cross:
            positives.append("골든크로스 발생")
        if tech.is_rsi_oversold:
            positives.append("RSI 침체 구간 (반등 기회)")

        overall = self.overall_score(financial.score, supply.score, tech.score)
        level = self.verdict_level(overall, len(warnings))
        logger.info(f"Diagnosis done: {code} - score {overall}, verdict {level.value}, warnings {len(warnings)}")

        return DiagnosisResult(
            stock_code=code,
            stock_name=fundamentals.stock_name,
            market=fundamentals.market,
            current_price=fundamentals.current_price,
            financial_health=financial,
            supply_demand=supply,
            technical_analysis=tech,
            overall_score=overall,
            verdict_level=level,
            verdict=level.label,
            verdict_description=level.description,
            warnings=warnings,
            positives=positives,
        )
