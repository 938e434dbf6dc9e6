# conftest.py - 공통 픽스처
from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

import pytest

from quantdesk.models.schemas import FundamentalSnapshot, ShortBalanceRecord
from quantdesk.models.series import OhlcvSeries, PriceSeries


@pytest.fixture
def rising_series() -> PriceSeries:
    """130일 연속 상승 (100 -> 229), 최신이 앞."""
    return PriceSeries.chronological(range(100, 230))


@pytest.fixture
def short_series() -> PriceSeries:
    return PriceSeries.newest_first([105, 103, 102, 100, 101, 99, 98, 97, 96, 95])


@pytest.fixture
def rising_ohlcv() -> OhlcvSeries:
    """15개 봉, 전형가격이 매일 상승."""
    bars = [
        {"open": p, "high": p + 1, "low": p - 1, "close": p, "volume": 1000}
        for p in range(10, 25)
    ]
    return OhlcvSeries.chronological(bars)


@pytest.fixture
def abc_universe() -> list[FundamentalSnapshot]:
    return [
        FundamentalSnapshot(stock_code="A", stock_name="에이", operating_margin=Decimal("20"), roe=Decimal("15"), per=Decimal("8")),
        FundamentalSnapshot(stock_code="B", stock_name="비", operating_margin=Decimal("10"), roe=Decimal("25"), per=Decimal("5")),
        FundamentalSnapshot(stock_code="C", stock_name="씨", operating_margin=Decimal("5"), roe=Decimal("5"), per=Decimal("20")),
    ]


@pytest.fixture
def healthy_fundamentals() -> FundamentalSnapshot:
    return FundamentalSnapshot(
        stock_code="005930",
        stock_name="삼성전자",
        market="KOSPI",
        current_price=Decimal("71000"),
        operating_margin=Decimal("20"),
        roe=Decimal("18"),
        debt_ratio=Decimal("40"),
        operating_profit=Decimal("100"),
        net_income=Decimal("90"),
    )


def make_short_history(
    loans: list,
    closes: list,
    start: date = date(2024, 3, 29),
) -> list[ShortBalanceRecord]:
    """Newest-first daily rows; ``loans`` / ``closes`` are newest first too."""
    return [
        ShortBalanceRecord(
            trade_date=start - timedelta(days=i),
            close_price=close,
            loan_balance_quantity=loan,
        )
        for i, (loan, close) in enumerate(zip(loans, closes))
    ]


@pytest.fixture
def squeeze_history() -> list[ShortBalanceRecord]:
    """대차잔고 120 (나머지 100), 종가 110 (나머지 100), 20일."""
    return make_short_history([120] + [100] * 19, [110] + [100] * 19)


@pytest.fixture
def flat_history() -> list[ShortBalanceRecord]:
    return make_short_history([100] * 20, [100] * 20)


@pytest.fixture
def short_history():
    return make_short_history
