"""Indicator snapshot assembly.

Runs the indicator calculator and the signal composer over one instrument's
history and freezes the result into an ``IndicatorSnapshot``.
"""

from __future__ import annotations

import logging

from quantdesk.analysis import indicators, signals
from quantdesk.models.schemas import IndicatorSnapshot, TechnicalSignal
from quantdesk.models.series import OhlcvSeries, PriceSeries

logger = logging.getLogger(__name__)

INSUFFICIENT_DATA = "데이터 부족"


def require_series(series) -> PriceSeries:
    if not isinstance(series, PriceSeries):
        raise TypeError(
            f"expected PriceSeries (newest first), got {type(series).__name__}; "
            "wrap raw lists with PriceSeries.newest_first() or PriceSeries.chronological()"
        )
    return series


def require_ohlcv(ohlcv) -> OhlcvSeries:
    if not isinstance(ohlcv, OhlcvSeries):
        raise TypeError(
            f"expected OhlcvSeries (newest first), got {type(ohlcv).__name__}; "
            "wrap raw bars with OhlcvSeries.newest_first() or OhlcvSeries.chronological()"
        )
    return ohlcv


def empty_snapshot(data_count: int = 0) -> IndicatorSnapshot:
    return IndicatorSnapshot(
        data_count=data_count,
        has_enough_data_for_120ma=False,
        overall_signal=TechnicalSignal.NEUTRAL,
        signal_description=INSUFFICIENT_DATA,
    )


def calculate_snapshot(series: PriceSeries, ohlcv: OhlcvSeries | None = None) -> IndicatorSnapshot:
    """Full indicator pass: MAs, disparity, RSI, crosses, arrangement, bands, MFI."""
    series = require_series(series)
    if ohlcv is not None:
        ohlcv = require_ohlcv(ohlcv)
    data_count = len(series)
    current_price = series.latest
    if current_price is None:
        logger.debug(f"No valid latest price (entries={data_count}); returning empty snapshot")
        return empty_snapshot(data_count)

    ma5, ma20, ma60, ma120 = (indicators.moving_average(series, p) for p in indicators.MA_PERIODS)
    rsi14 = indicators.rsi(series, indicators.RSI_PERIOD)

    previous = series.shifted(1)
    is_golden_cross, is_dead_cross = (None, None)
    if ma5 is not None and ma20 is not None:
        is_golden_cross, is_dead_cross = signals.detect_cross(
            ma5, ma20,
            indicators.moving_average(previous, 5),
            indicators.moving_average(previous, 20),
        )
    is_arranged_up, is_arranged_down = signals.detect_arrangement(ma5, ma20, ma60)

    strength = signals.buy_signal_strength(
        current_price, ma5, ma20, ma60, rsi14, is_golden_cross, is_arranged_up
    )

    money_flow = indicators.money_flow_index(ohlcv) if ohlcv is not None else None

    return IndicatorSnapshot(
        data_count=data_count,
        has_enough_data_for_120ma=data_count >= 120,
        ma5=ma5,
        ma20=ma20,
        ma60=ma60,
        ma120=ma120,
        disparity5=indicators.disparity(current_price, ma5),
        disparity20=indicators.disparity(current_price, ma20),
        disparity60=indicators.disparity(current_price, ma60),
        rsi14=rsi14,
        rsi_zone=signals.classify_rsi(rsi14),
        is_above_ma5=signals.is_above(current_price, ma5),
        is_above_ma20=signals.is_above(current_price, ma20),
        is_above_ma60=signals.is_above(current_price, ma60),
        is_golden_cross=is_golden_cross,
        is_dead_cross=is_dead_cross,
        is_arranged_up=is_arranged_up,
        is_arranged_down=is_arranged_down,
        bollinger=indicators.bollinger_bands(series),
        money_flow=money_flow,
        buy_signal_strength=strength,
        overall_signal=signals.overall_signal(strength),
        signal_description=signals.describe_signals(
            is_golden_cross, is_dead_cross, is_arranged_up, is_arranged_down, rsi14
        ),
    )


def calculate_simple(series: PriceSeries) -> IndicatorSnapshot:
    """Lightweight pass (MA5, MA20, RSI only) for list screens."""
    series = require_series(series)
    if not len(series):
        return empty_snapshot(0)

    current_price = series.latest
    ma5 = indicators.moving_average(series, 5)
    ma20 = indicators.moving_average(series, 20)
    rsi14 = indicators.rsi(series, indicators.RSI_PERIOD)
    return IndicatorSnapshot(
        data_count=len(series),
        ma5=ma5,
        ma20=ma20,
        rsi14=rsi14,
        rsi_zone=signals.classify_rsi(rsi14),
        is_above_ma5=signals.is_above(current_price, ma5),
        is_above_ma20=signals.is_above(current_price, ma20),
    )
