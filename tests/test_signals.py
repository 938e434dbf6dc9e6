"""Signal composer tests."""
from __future__ import annotations

from decimal import Decimal as D

import pytest

from quantdesk.analysis import signals
from quantdesk.models.schemas import MfiZone, RsiZone, TechnicalSignal
from quantdesk.models.series import PriceSeries


class TestCrossAndArrangement:
    def test_golden_cross(self):
        assert signals.detect_cross(D("101"), D("100"), D("99"), D("100")) == (True, False)

    def test_dead_cross(self):
        assert signals.detect_cross(D("99"), D("100"), D("101"), D("100")) == (False, True)

    def test_no_cross_when_already_above(self):
        assert signals.detect_cross(D("102"), D("100"), D("101"), D("100")) == (False, False)

    def test_cross_undefined_without_previous(self):
        assert signals.detect_cross(D("101"), D("100"), None, D("100")) == (None, None)

    def test_arrangement(self):
        assert signals.detect_arrangement(D("3"), D("2"), D("1")) == (True, False)
        assert signals.detect_arrangement(D("1"), D("2"), D("3")) == (False, True)
        assert signals.detect_arrangement(D("2"), D("3"), D("1")) == (False, False)
        assert signals.detect_arrangement(D("3"), D("2"), None) == (None, None)


class TestZones:
    @pytest.mark.parametrize("value,zone", [
        (D("70"), RsiZone.OVERBOUGHT),
        (D("69.99"), RsiZone.NEUTRAL),
        (D("30"), RsiZone.OVERSOLD),
        (None, None),
    ])
    def test_rsi_zone(self, value, zone):
        assert signals.classify_rsi(value) is zone

    @pytest.mark.parametrize("value,zone", [
        (D("80"), MfiZone.OVERBOUGHT),
        (D("50"), MfiZone.NEUTRAL),
        (D("20"), MfiZone.OVERSOLD),
    ])
    def test_mfi_zone(self, value, zone):
        assert signals.classify_mfi(value) is zone

    def test_zone_labels(self):
        assert RsiZone.OVERSOLD.label == "침체"
        assert MfiZone.OVERBOUGHT.label == "과열"


class TestBuySignalStrength:
    def test_everything_bullish_is_clamped(self):
        score = signals.buy_signal_strength(D("110"), D("105"), D("100"), D("95"), D("25"), True, True)
        assert score == 100

    def test_everything_bearish(self):
        score = signals.buy_signal_strength(D("90"), D("95"), D("100"), D("105"), D("75"), False, False)
        assert score == 10

    def test_neutral_baseline(self):
        assert signals.buy_signal_strength(None, None, None, None, None, None, None) == 50

    def test_price_equal_to_ma_scores_nothing(self):
        assert signals.buy_signal_strength(D("100"), D("100"), None, None, D("50"), None, None) == 50

    @pytest.mark.parametrize("strength,expected", [
        (100, TechnicalSignal.STRONG_BUY),
        (80, TechnicalSignal.STRONG_BUY),
        (79, TechnicalSignal.BUY),
        (40, TechnicalSignal.NEUTRAL),
        (20, TechnicalSignal.SELL),
        (19, TechnicalSignal.STRONG_SELL),
    ])
    def test_overall_signal(self, strength, expected):
        assert signals.overall_signal(strength) is expected


class TestDescriptions:
    def test_no_signals(self):
        assert signals.describe_signals(False, False, False, False, D("50")) == "특이 신호 없음"

    def test_joined(self):
        text = signals.describe_signals(True, False, True, False, D("25"))
        assert text == "골든크로스 발생 / 이평선 정배열 / RSI 침체(25.0)"


class TestTrend:
    def test_price_change(self):
        series = PriceSeries.newest_first([110, 108, 105, 103, 100, 90])
        assert signals.price_change_pct(series, 5) == D("10")

    def test_price_change_needs_history(self):
        assert signals.price_change_pct(PriceSeries.newest_first([110, 100]), 5) is None

    def test_trend_reversal(self):
        assert signals.is_trend_reversal(True, None) is True
        assert signals.is_trend_reversal(False, D("3.0")) is True
        assert signals.is_trend_reversal(False, D("2.99")) is False
        assert signals.is_trend_reversal(None, None) is False
