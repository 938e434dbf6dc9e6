"""Signal composition.

Turns indicator values into boolean / categorical signals:
- Price above / below each moving average
- Golden / dead cross (MA5 vs MA20, today vs previous session)
- Arranged up / down (MA5 > MA20 > MA60 or the reverse)
- RSI and MFI zones
- 0-100 buy-signal strength and its five-step label
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from quantdesk.models.schemas import MfiZone, RsiZone, TechnicalSignal

RSI_OVERBOUGHT = Decimal("70")
RSI_OVERSOLD = Decimal("30")
MFI_OVERBOUGHT = Decimal("80")
MFI_OVERSOLD = Decimal("20")
PRICE_RISE_THRESHOLD = Decimal("3.0")

# Buy-signal point budget
BASELINE = 50
MA_POINTS = {"ma5": 5, "ma20": 10, "ma60": 15}
GOLDEN_CROSS_POINTS = 15
ARRANGED_UP_POINTS = 15
RSI_OVERSOLD_POINTS = 20
RSI_OVERBOUGHT_POINTS = -10

SIGNAL_THRESHOLDS = (
    (80, TechnicalSignal.STRONG_BUY),
    (60, TechnicalSignal.BUY),
    (40, TechnicalSignal.NEUTRAL),
    (20, TechnicalSignal.SELL),
)


def is_above(price: Decimal | None, ma: Decimal | None) -> bool | None:
    if price is None or ma is None:
        return None
    return price > ma


def detect_cross(
    ma5: Decimal | None,
    ma20: Decimal | None,
    prev_ma5: Decimal | None,
    prev_ma20: Decimal | None,
) -> tuple[bool | None, bool | None]:
    """Return ``(golden_cross, dead_cross)``; ``(None, None)`` when any MA is missing."""
    if None in (ma5, ma20, prev_ma5, prev_ma20):
        return None, None
    golden = prev_ma5 < prev_ma20 and ma5 > ma20
    dead = prev_ma5 > prev_ma20 and ma5 < ma20
    return golden, dead


def detect_arrangement(
    ma5: Decimal | None, ma20: Decimal | None, ma60: Decimal | None
) -> tuple[bool | None, bool | None]:
    """Return ``(arranged_up, arranged_down)``; undefined without all three MAs."""
    if None in (ma5, ma20, ma60):
        return None, None
    return ma5 > ma20 > ma60, ma5 < ma20 < ma60


def classify_rsi(value: Decimal | None) -> RsiZone | None:
    if value is None:
        return None
    if value >= RSI_OVERBOUGHT:
        return RsiZone.OVERBOUGHT
    if value <= RSI_OVERSOLD:
        return RsiZone.OVERSOLD
    return RsiZone.NEUTRAL


def classify_mfi(value: Decimal | None) -> MfiZone | None:
    if value is None:
        return None
    if value >= MFI_OVERBOUGHT:
        return MfiZone.OVERBOUGHT
    if value <= MFI_OVERSOLD:
        return MfiZone.OVERSOLD
    return MfiZone.NEUTRAL


def buy_signal_strength(
    price: Decimal | None,
    ma5: Decimal | None,
    ma20: Decimal | None,
    ma60: Decimal | None,
    rsi: Decimal | None,
    is_golden_cross: bool | None,
    is_arranged_up: bool | None,
) -> int:
    """매수 신호 강도 (0~100), starting from a neutral 50."""
    score = BASELINE

    if price is not None:
        for key, ma in (("ma5", ma5), ("ma20", ma20), ("ma60", ma60)):
            if ma is None:
                continue
            if price > ma:
                score += MA_POINTS[key]
            elif price < ma:
                score -= MA_POINTS[key]

    if is_golden_cross is True:
        score += GOLDEN_CROSS_POINTS
    if is_arranged_up is True:
        score += ARRANGED_UP_POINTS

    if rsi is not None:
        if rsi <= RSI_OVERSOLD:
            score += RSI_OVERSOLD_POINTS
        elif rsi >= RSI_OVERBOUGHT:
            score += RSI_OVERBOUGHT_POINTS

    return max(0, min(100, score))


def overall_signal(strength: int) -> TechnicalSignal:
    for threshold, signal in SIGNAL_THRESHOLDS:
        if strength >= threshold:
            return signal
    return TechnicalSignal.STRONG_SELL


def describe_signals(
    is_golden_cross: bool | None,
    is_dead_cross: bool | None,
    is_arranged_up: bool | None,
    is_arranged_down: bool | None,
    rsi: Decimal | None,
) -> str:
    signals = []
    if is_golden_cross:
        signals.append("골든크로스 발생")
    if is_dead_cross:
        signals.append("데드크로스 발생")
    if is_arranged_up:
        signals.append("이평선 정배열")
    if is_arranged_down:
        signals.append("이평선 역배열")
    if rsi is not None:
        shown = rsi.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
        if rsi >= RSI_OVERBOUGHT:
            signals.append(f"RSI 과열({shown})")
        elif rsi <= RSI_OVERSOLD:
            signals.append(f"RSI 침체({shown})")

    if not signals:
        return "특이 신호 없음"
    return " / ".join(signals)


def price_change_pct(series, days: int = 5) -> Decimal | None:
    """% change from ``series[days - 1]`` to the newest reading."""
    if len(series) < days:
        return None
    current, previous = series[0], series[days - 1]
    if current is None or previous is None:
        return None
    change = (current - previous) / previous
    return change.quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP) * 100


def is_trend_reversal(
    is_above_ma20: bool | None,
    price_change_5d: Decimal | None,
    threshold: Decimal = PRICE_RISE_THRESHOLD,
) -> bool:
    """Price above MA20, or up at least ``threshold`` % over five sessions."""
    rising = price_change_5d is not None and price_change_5d >= threshold
    return bool(is_above_ma20) or rising
