"""Technical indicator calculator.

Pure functions over newest-first series:
- Simple moving averages (5/20/60/120)
- RSI(14), simple-average variant
- Population standard deviation
- Bollinger Bands(20, 2σ) with squeeze / breakout flags
- Money Flow Index(14)

All arithmetic is Decimal. Each division is rounded half-up to 4 places;
final oscillator values are rounded to 2 places. Not enough history yields
``None`` rather than an exception.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from quantdesk.analysis.signals import classify_mfi
from quantdesk.models.schemas import BollingerBands, MoneyFlow
from quantdesk.models.series import OhlcvBar, OhlcvSeries, PriceSeries

MA_PERIODS = (5, 20, 60, 120)
RSI_PERIOD = 14
BB_PERIOD = 20
BB_STD_MULTIPLIER = Decimal("2.0")
BB_SQUEEZE_THRESHOLD = Decimal("0.7")
MFI_PERIOD = 14

SCALE = Decimal("0.0001")
FINAL = Decimal("0.01")
HUNDRED = Decimal("100")
THREE = Decimal("3")
ZERO = Decimal("0")


def div(numerator: Decimal, denominator: Decimal | int) -> Decimal:
    """Divide and round half-up to 4 decimal places."""
    return (Decimal(numerator) / Decimal(denominator)).quantize(SCALE, rounding=ROUND_HALF_UP)


def finalize(value: Decimal) -> Decimal:
    return value.quantize(FINAL, rounding=ROUND_HALF_UP)


def clamp_percent(value: Decimal) -> Decimal:
    return max(ZERO, min(HUNDRED, value))


def moving_average(series: PriceSeries, period: int) -> Decimal | None:
    """Mean of the valid readings among the newest ``period`` entries."""
    if len(series) < period:
        return None
    window = series.window(period)
    if not window:
        return None
    return div(sum(window, ZERO), len(window))


def rsi(series: PriceSeries, period: int = RSI_PERIOD) -> Decimal | None:
    """Relative Strength Index (0-100) from simple average gain / loss.

    Uses the newest ``period`` day-over-day changes. Not Wilder smoothing.
    """
    if len(series) < period + 1:
        return None

    total_gain = ZERO
    total_loss = ZERO
    valid_changes = 0
    for i in range(period):
        current, previous = series[i], series[i + 1]
        if current is None or previous is None:
            continue
        change = current - previous
        valid_changes += 1
        if change > 0:
            total_gain += change
        else:
            total_loss += -change

    if valid_changes == 0:
        return None

    avg_gain = div(total_gain, valid_changes)
    avg_loss = div(total_loss, valid_changes)
    return _oscillator(avg_gain, avg_loss)


def _oscillator(up: Decimal, down: Decimal) -> Decimal:
    """100 - 100 / (1 + up/down), saturating when either side is empty."""
    if down == 0:
        return finalize(HUNDRED)
    if up == 0:
        return finalize(ZERO)
    ratio = div(up, down)
    value = HUNDRED - div(HUNDRED, Decimal(1) + ratio)
    return finalize(clamp_percent(value))


def standard_deviation(series: PriceSeries, period: int) -> Decimal | None:
    """Population standard deviation (divide by N) of the newest ``period`` readings."""
    if len(series) < period:
        return None
    window = series.window(period)
    if not window:
        return None
    mean = div(sum(window, ZERO), len(window))
    squared = sum(((p - mean) * (p - mean) for p in window), ZERO)
    variance = div(squared, len(window))
    if variance <= 0:
        return ZERO.quantize(SCALE)
    return variance.sqrt().quantize(SCALE, rounding=ROUND_HALF_UP)


def _band_width(series: PriceSeries, period: int, k: Decimal) -> Decimal | None:
    ma = moving_average(series, period)
    std = standard_deviation(series, period)
    if ma is None or std is None or ma <= 0:
        return None
    upper = ma + std * k
    lower = ma - std * k
    return div(upper - lower, ma) * HUNDRED


def bollinger_bands(
    series: PriceSeries,
    period: int = BB_PERIOD,
    k: Decimal | float | str = BB_STD_MULTIPLIER,
) -> BollingerBands | None:
    """Bollinger Bands around the ``period``-day SMA.

    Squeeze: current band width is at most 0.7x the average width over the
    latest ``period`` anchor sessions (each anchor uses its own lookback).
    Breakout: latest close above the upper band.
    """
    if len(series) < period:
        return None
    current_price = series.latest
    middle = moving_average(series, period)
    std = standard_deviation(series, period)
    if current_price is None or middle is None or not std:
        return None

    k = Decimal(str(k))
    upper = middle + std * k
    lower = middle - std * k
    band_width = finalize(div(upper - lower, middle) * HUNDRED)

    widths = []
    for anchor in range(period):
        history = series.shifted(anchor)
        if len(history) < period:
            break
        width = _band_width(history, period, k)
        if width is not None:
            widths.append(width)

    is_squeeze = False
    if widths:
        average_width = div(sum(widths, ZERO), len(widths))
        is_squeeze = band_width <= average_width * BB_SQUEEZE_THRESHOLD

    return BollingerBands(
        upper_band=finalize(upper),
        middle_band=finalize(middle),
        lower_band=finalize(lower),
        band_width=band_width,
        is_squeeze=is_squeeze,
        is_breakout=current_price > upper,
    )


def typical_price(bar: OhlcvBar) -> Decimal:
    return div(bar.high + bar.low + bar.close, THREE)


def money_flow_index(ohlcv: OhlcvSeries, period: int = MFI_PERIOD) -> MoneyFlow | None:
    """Money Flow Index over the newest ``period`` bar pairs.

    Bars whose typical price is unchanged from the previous bar are ignored.
    """
    if len(ohlcv) < period + 1:
        return None

    positive_flow = ZERO
    negative_flow = ZERO
    for i in range(period):
        current, previous = ohlcv[i], ohlcv[i + 1]
        if not current.is_valid or not previous.is_valid:
            continue
        tp = typical_price(current)
        prev_tp = typical_price(previous)
        raw_flow = tp * current.volume
        if tp > prev_tp:
            positive_flow += raw_flow
        elif tp < prev_tp:
            negative_flow += raw_flow

    score = _oscillator(positive_flow, negative_flow)
    return MoneyFlow(mfi_score=score, mfi_zone=classify_mfi(score))


def disparity(price: Decimal | None, ma: Decimal | None) -> Decimal | None:
    """이격도: (price - MA) / MA * 100."""
    if price is None or ma is None or ma == 0:
        return None
    return finalize(div(price - ma, ma) * HUNDRED)
