"""Newest-first series containers."""
from __future__ import annotations

from datetime import date
from decimal import Decimal

import pandas as pd
import pytest

from quantdesk.models.series import OhlcvBar, OhlcvSeries, PriceSeries, SeriesOrderError, _NewestFirst, to_price


class TestToPrice:
    @pytest.mark.parametrize("raw", [None, "abc", 0, -1, "-3.5", float("nan"), float("inf"), True])
    def test_invalid_readings_are_absent(self, raw):
        assert to_price(raw) is None

    def test_numeric_strings_and_numbers(self):
        assert to_price("101.5") == Decimal("101.5")
        assert to_price(7) == Decimal("7")
        assert to_price(Decimal("0.01")) == Decimal("0.01")


class TestPriceSeries:
    def test_chronological_input_is_reversed(self):
        series = PriceSeries.chronological([1, 2, 3])
        assert series[0] == Decimal("3")
        assert series.latest == Decimal("3")
        assert list(series) == [Decimal("3"), Decimal("2"), Decimal("1")]

    def test_newest_first_keeps_order(self):
        series = PriceSeries.newest_first([3, 2, 1])
        assert series == PriceSeries.chronological([1, 2, 3])

    def test_invalid_entries_count_toward_length(self):
        series = PriceSeries.newest_first([10, None, "x", -5, 20])
        assert len(series) == 5
        assert series.valid_count == 2
        assert series.window(3) == [Decimal("10")]

    def test_slice_and_shift_keep_type(self, short_series):
        head = short_series[:3]
        assert isinstance(head, PriceSeries)
        assert len(head) == 3

        previous = short_series.shifted(1)
        assert isinstance(previous, PriceSeries)
        assert previous[0] == short_series[1]
        assert len(previous) == len(short_series) - 1

    def test_empty_series(self):
        series = PriceSeries.newest_first([])
        assert len(series) == 0
        assert series.latest is None

    def test_from_dated_sorts_newest_first(self):
        series = PriceSeries.from_dated([
            (date(2024, 1, 2), 100),
            (date(2024, 1, 4), 102),
            (date(2024, 1, 3), 101),
        ])
        assert list(series) == [Decimal("102"), Decimal("101"), Decimal("100")]

    def test_from_dated_rejects_duplicate_dates(self):
        with pytest.raises(SeriesOrderError):
            PriceSeries.from_dated([(date(2024, 1, 2), 100), (date(2024, 1, 2), 101)])

    def test_from_frame_uses_last_row_as_latest(self):
        df = pd.DataFrame(
            {"Close": [100.0, 101.0, 102.0]},
            index=pd.date_range("2024-01-01", periods=3, freq="B"),
        )
        series = PriceSeries.from_frame(df)
        assert series.latest == Decimal("102.0")

    def test_from_frame_sorts_unsorted_index(self):
        index = pd.to_datetime(["2024-01-03", "2024-01-01", "2024-01-02"])
        df = pd.DataFrame({"close": [103, 101, 102]}, index=index)
        assert list(PriceSeries.from_frame(df)) == [Decimal("103"), Decimal("102"), Decimal("101")]

    def test_from_frame_rejects_duplicate_index(self):
        index = pd.to_datetime(["2024-01-01", "2024-01-01"])
        with pytest.raises(SeriesOrderError):
            PriceSeries.from_frame(pd.DataFrame({"close": [1, 2]}, index=index))

    def test_from_frame_missing_column(self):
        df = pd.DataFrame({"open": [1, 2]})
        with pytest.raises(KeyError):
            PriceSeries.from_frame(df)


class TestOhlcv:
    def test_bar_without_volume_is_invalid(self):
        bar = OhlcvBar.from_mapping({"High": 11, "Low": 9, "Close": 10})
        assert bar.volume is None
        assert not bar.is_valid

    def test_bar_coerces_values(self):
        bar = OhlcvBar(open="10", high=11, low=9.5, close="10.5", volume=1000)
        assert bar.high == Decimal("11")
        assert bar.close == Decimal("10.5")
        assert bar.is_valid

    def test_closes_are_parallel(self, rising_ohlcv):
        closes = rising_ohlcv.closes()
        assert isinstance(closes, PriceSeries)
        assert len(closes) == len(rising_ohlcv)
        assert closes[0] == Decimal("24")

    def test_from_frame(self):
        df = pd.DataFrame(
            {
                "Open": [10, 11],
                "High": [12, 13],
                "Low": [9, 10],
                "Close": [11, 12],
                "Volume": [500, 600],
            },
            index=pd.date_range("2024-01-01", periods=2, freq="B"),
        )
        series = OhlcvSeries.from_frame(df)
        assert series[0].close == Decimal("12")
        assert series[1].volume == Decimal("500")

    def test_from_frame_requires_volume(self):
        df = pd.DataFrame({"High": [1], "Low": [1], "Close": [1]})
        with pytest.raises(KeyError):
            OhlcvSeries.from_frame(df)

    def test_rejects_unknown_rows(self):
        with pytest.raises(TypeError):
            OhlcvSeries.newest_first([(1, 2, 3, 4, 5)])

    def test_missing_bar_is_kept_as_invalid(self, rising_ohlcv):
        series = OhlcvSeries.newest_first([rising_ohlcv[0], None, {"high": 2, "low": 1, "close": 1, "volume": 10}])
        assert len(series) == 3
        assert series[1].close is None
        assert not series[1].is_valid
        assert series[2].is_valid

    def test_base_container_is_abstract(self):
        with pytest.raises(TypeError):
            _NewestFirst.newest_first([1, 2])
