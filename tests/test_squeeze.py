"""Short squeeze scorer tests."""
from __future__ import annotations

from decimal import Decimal as D

import pytest

from quantdesk.analysis.squeeze import SqueezeScorer, inputs_from_history, records_from_rows
from quantdesk.models.schemas import IndicatorSnapshot, RsiZone, SqueezeInputs


@pytest.fixture
def scorer() -> SqueezeScorer:
    return SqueezeScorer()


def inputs(**kwargs) -> SqueezeInputs:
    base = {"loan_balance_current": D("100"), "loan_balance_avg20": D("100")}
    base.update(kwargs)
    return SqueezeInputs(**base)


class TestComponents:
    def test_full_score_scenario(self, scorer):
        result = scorer.score("000660", inputs(
            loan_balance_current=D("120"),
            loan_balance_avg20=D("100"),
            loan_balance_change_5d=D("-12"),
            foreign_net_buy_3d=D("12"),
            is_trend_reversal=True,
            is_price_rising=True,
        ))
        assert (result.overheat_score, result.covering_score) == (30, 30)
        assert (result.foreign_buy_score, result.trend_reversal_score) == (20, 20)
        assert result.squeeze_score == 100
        assert result.squeeze_level == "CRITICAL"

    def test_overheat_truncates_whole_percent(self):
        assert SqueezeScorer.overheat_score(D("110"), D("100")) == 15
        assert SqueezeScorer.overheat_score(D("103.9"), D("100")) == 4
        assert SqueezeScorer.overheat_score(D("90"), D("100")) == 0

    def test_covering(self):
        assert SqueezeScorer.covering_score(D("-5.5")) == 15
        assert SqueezeScorer.covering_score(D("-40")) == 30
        assert SqueezeScorer.covering_score(D("3")) == 0
        assert SqueezeScorer.covering_score(None) == 0

    @pytest.mark.parametrize("net_buy,expected", [
        (D("0"), 0), (D("-3"), 0), (D("1"), 10), (D("5"), 15), (D("9.99"), 15), (D("10"), 20),
    ])
    def test_foreign_buy(self, net_buy, expected):
        assert SqueezeScorer.foreign_buy_score(net_buy) == expected

    def test_trend(self):
        assert SqueezeScorer.trend_reversal_score(True, False) == 10
        assert SqueezeScorer.trend_reversal_score(True, True) == 20
        assert SqueezeScorer.trend_reversal_score(False, True) == 0

    def test_extreme_inputs_stay_in_range(self, scorer):
        result = scorer.score("X", inputs(
            loan_balance_current=D("1e12"),
            loan_balance_avg20=D("1"),
            loan_balance_change_5d=D("-99999"),
            foreign_net_buy_3d=D("1e9"),
            is_trend_reversal=True,
            is_price_rising=True,
        ))
        assert 0 <= result.squeeze_score <= 100


class TestTiers:
    @pytest.mark.parametrize("total,level", [(100, "CRITICAL"), (80, "CRITICAL"), (79, "HIGH"), (40, "MEDIUM"), (0, "LOW")])
    def test_default_levels(self, scorer, total, level):
        assert scorer.level_for(total)[0] == level

    def test_custom_tiers(self):
        scorer = SqueezeScorer(tiers=[(70, "HOT"), (30, "WARM"), (0, "NORMAL")])
        assert scorer.level_for(75) == ("HOT", "")
        assert scorer.level_for(30) == ("WARM", "")
        assert scorer.level_for(5) == ("NORMAL", "")

    @pytest.mark.parametrize("tiers", [[(30, "WARM"), (70, "HOT")], [(50, "A"), (50, "B")], []])
    def test_non_monotonic_tiers_rejected(self, tiers):
        with pytest.raises(ValueError):
            SqueezeScorer(tiers=tiers)

    def test_description_with_technical_notes(self, scorer):
        technical = IndicatorSnapshot(is_golden_cross=True, rsi_zone=RsiZone.OVERSOLD)
        result = scorer.score("X", inputs(), technical=technical)
        assert result.squeeze_level == "LOW"
        assert result.signal_description == "숏커버링 가능성 낮음 + 골든크로스 + RSI 침체(반등 가능)"


class TestHistory:
    def test_inputs_from_history(self, squeeze_history):
        derived = inputs_from_history(squeeze_history, D("12"))
        assert derived.loan_balance_current == D("120")
        assert derived.loan_balance_avg20 == D("101.00")
        assert derived.loan_balance_change_5d == D("20")
        assert derived.ma20 == D("100.50")
        assert derived.price_change_5d == D("10")
        assert derived.is_price_rising is True
        assert derived.is_trend_reversal is True
        assert derived.foreign_net_buy_3d == D("12")

    def test_too_few_rows(self, short_history):
        assert inputs_from_history(short_history([100] * 4, [100] * 4)) is None

    def test_zero_average(self, short_history):
        assert inputs_from_history(short_history([0] * 10, [100] * 10)) is None

    def test_flat_history_has_no_trend(self, flat_history):
        derived = inputs_from_history(flat_history)
        assert derived.is_trend_reversal is False
        assert derived.loan_balance_change_5d == D("0")

    def test_rise_alone_marks_trend_reversal(self, short_history):
        # below MA20 (107.65) but up exactly 3% over five sessions
        derived = inputs_from_history(short_history([100] * 20, [103, 100, 100, 100, 100] + [110] * 15))
        assert derived.ma20 == D("107.65")
        assert derived.price_change_5d == D("3")
        assert derived.is_price_rising is True
        assert derived.is_trend_reversal is True

    def test_below_ma20_and_flat_is_no_reversal(self, short_history):
        derived = inputs_from_history(short_history([100] * 20, [102, 100, 100, 100, 100] + [110] * 15))
        assert derived.is_price_rising is False
        assert derived.is_trend_reversal is False

    def test_records_from_rows_orders_newest_first(self):
        records = records_from_rows([
            {"trade_date": "2024-03-27", "close_price": 100, "loan_balance_quantity": 10},
            {"trade_date": "2024-03-29", "close_price": 102, "loan_balance_quantity": 12},
        ])
        assert [r.loan_balance_quantity for r in records] == [D("12"), D("10")]


class TestFindCandidates:
    def test_filters_and_sorts(self, squeeze_history, flat_history):
        scorer = SqueezeScorer()
        universe = {
            "FLAT": flat_history,
            "MEDIUM": squeeze_history,
            "STRONG": squeeze_history,
        }
        results = scorer.find_candidates(universe, {"STRONG": D("12")}, names={"STRONG": "강세"})

        assert [r.stock_code for r in results] == ["STRONG", "MEDIUM"]
        # overheat int(18.81) * 3 // 2 = 27, covering 0, trend 20
        assert results[0].squeeze_score == 67
        assert results[0].squeeze_level == "HIGH"
        assert results[0].stock_name == "강세"
        assert results[1].squeeze_score == 47
        assert results[1].squeeze_level == "MEDIUM"
        assert results[0].technical is not None

    def test_min_score_and_limit(self, squeeze_history):
        universe = {"A": squeeze_history, "B": squeeze_history}
        assert SqueezeScorer(min_score=50).find_candidates(universe) == []
        assert len(SqueezeScorer().find_candidates(universe, limit=1)) == 1
